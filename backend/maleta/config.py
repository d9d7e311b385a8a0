# backend/maleta/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/maleta.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///maleta.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Applied when the seller has no commission rate of their own
    DEFAULT_COMMISSION_RATE = os.environ.get("DEFAULT_COMMISSION_RATE", "0.3")

    # Settlement slot locks older than this are treated as abandoned
    SETTLEMENT_LOCK_TTL_SECONDS = int(os.environ.get("SETTLEMENT_LOCK_TTL_SECONDS", "300"))

    CLEANUP_MAX_ATTEMPTS = int(os.environ.get("CLEANUP_MAX_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.1"))

    # "purge" deletes sold-item rows when a settlement is reversed,
    # "retain" keeps them voided for audit
    REVERSAL_SOLD_ITEMS_POLICY = os.environ.get("REVERSAL_SOLD_ITEMS_POLICY", "purge")

    # None -> <instance_path>/receipts
    RECEIPT_DIR = os.environ.get("RECEIPT_DIR")
    RECEIPT_BASE_URL = os.environ.get("RECEIPT_BASE_URL", "/receipts")
