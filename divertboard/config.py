from __future__ import annotations
import os

# Civil zone every date key and wall-clock time is read in.
DIVERT_TZ = os.getenv("DIVERT_TZ", "America/Regina")

SQLITE_PATH = os.getenv("SQLITE_PATH", "./data/divertboard.db")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{SQLITE_PATH}")

# How many days before a query window to look for diverts still running.
BACKFILL_DAYS = int(os.getenv("BACKFILL_DAYS", "7"))

LOG_JSON = os.getenv("LOG_JSON", "0") == "1"
LOG_VERBOSE = os.getenv("LOG_VERBOSE", "0") == "1"
