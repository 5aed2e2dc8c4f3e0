# backend/splitledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///splitledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens minted by `flask users issue-token`
    SESSION_TOKEN_TTL_HOURS = int(os.environ.get("SESSION_TOKEN_TTL_HOURS", "24"))

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")

    # One initial attempt plus one automatic retry on a lost optimistic race
    CONCURRENCY_RETRY_ATTEMPTS = int(os.environ.get("CONCURRENCY_RETRY_ATTEMPTS", "2"))

    INVITE_CODE_LENGTH = int(os.environ.get("INVITE_CODE_LENGTH", "8"))
    BILL_LIST_LIMIT = int(os.environ.get("BILL_LIST_LIMIT", "50"))

    CHAT_MESSAGE_MAX_LENGTH = int(os.environ.get("CHAT_MESSAGE_MAX_LENGTH", "2000"))
    CHAT_PAGE_SIZE = int(os.environ.get("CHAT_PAGE_SIZE", "50"))
