# backend/bakery_pos/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location (postgresql://...)
        "sqlite:///bakery_pos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # IANA zone that defines a "business day" for daily sale listings
    STORE_TIMEZONE = os.environ.get("STORE_TIMEZONE", "UTC")

    SHIFT_PAGE_SIZE = int(os.environ.get("SHIFT_PAGE_SIZE", "20"))
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Attempts for transactional writers on lock/deadlock failures
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "3"))
