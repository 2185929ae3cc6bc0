"""SQLite schema + persistence helpers for the library catalogue.

Everything lives in one SQLite file (arm5library.db by default). Base entity
tables hold the records; relation tables record which entity belongs to which
parent chain (library -> [collection] -> [book] -> content).
"""
