# backend/ricebook/config.py
from __future__ import annotations
import os


DEFAULT_BRANDS = "Sona Masoori,Basmati,Ponni Rice,Idly Rice"


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ricebook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ricebook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Optimistic concurrency: attempts per atomic ledger operation before
    # surfacing StoreConflict, and the base delay for exponential backoff.
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "5"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.05"))

    # Catalog input: comma-separated product identifiers and
    # "Brand=cost;Brand=cost" default unit costs (used only when no batch
    # history exists for a product).
    RICEBOOK_BRANDS = os.environ.get("RICEBOOK_BRANDS", DEFAULT_BRANDS)
    RICEBOOK_DEFAULT_COSTS = os.environ.get("RICEBOOK_DEFAULT_COSTS", "")
