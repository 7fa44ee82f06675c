# backend/ledgerdesk/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the instance by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///ledgerdesk.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Bounded retry for store contention (optimistic lock conflicts, busy db)
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "5"))
    LEDGER_RETRY_BACKOFF = float(os.environ.get("LEDGER_RETRY_BACKOFF", "0.05"))

    # "reject": a payment larger than the invoice's remaining amount fails.
    # "allow": the excess becomes a credit on the account.
    LEDGER_OVERPAYMENT_POLICY = os.environ.get("LEDGER_OVERPAYMENT_POLICY", "reject")

    # Optional callable(product_id) -> unit price in cents, supplied by the
    # catalog collaborator. Invoices with priced lines do not need it.
    LEDGER_PRICE_LOOKUP = None
