# backend/stockpilot/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockpilot.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockpilot.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Listing defaults (page size is capped server-side)
    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "10"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "100"))

    # Attempts for stock-mutating units of work that lose a concurrency race
    STOCK_RETRY_ATTEMPTS = int(os.environ.get("STOCK_RETRY_ATTEMPTS", "3"))

    # Hosted image service (product photos)
    IMAGE_FOLDER = os.environ.get("IMAGE_FOLDER", "stockpilot_products")
    IMAGE_CLOUD_NAME = os.environ.get("IMAGE_CLOUD_NAME")
    IMAGE_API_KEY = os.environ.get("IMAGE_API_KEY")
    IMAGE_API_SECRET = os.environ.get("IMAGE_API_SECRET")

    # Text-generation endpoint backing the reorder suggestions
    REORDER_ADVISOR_URL = os.environ.get("REORDER_ADVISOR_URL")
    REORDER_ADVISOR_TIMEOUT = float(os.environ.get("REORDER_ADVISOR_TIMEOUT", "30"))

    # bcrypt cost factor for password hashes
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
