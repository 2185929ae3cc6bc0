"""Environment-based configuration."""

import os

# SQLite database location
DB_PATH = os.getenv("ARM5LIBRARY_DB_PATH", "arm5library.db")

# Seconds to wait on a locked database before giving up
DB_TIMEOUT_S = float(os.getenv("ARM5LIBRARY_DB_TIMEOUT", "30"))

LOG_LEVEL = os.getenv("ARM5LIBRARY_LOG_LEVEL", "INFO").upper()
