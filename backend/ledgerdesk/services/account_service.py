# Overview: Service-layer operations for accounts and the financial summary.

"""
Account Service

Customers and suppliers whose debt the ledger tracks. Balances are never
written here; they come from balance_service.
"""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import Conflict, NotFound, ValidationError
from ..models import Account
from ..models.accounts import ACCOUNT_KIND_CUSTOMER, ACCOUNT_KIND_SUPPLIER, VALID_ACCOUNT_KINDS
from ..models.treasury import TREASURY_BANK, TREASURY_CASH
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import run_in_transaction
from . import treasury_service


ACCOUNT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"display_name", "phone", "kind"},
    required_on_create={"display_name"},
)


def create_account(display_name: str, phone: str | None = None, kind: str = ACCOUNT_KIND_CUSTOMER) -> Account:
    """
    Create a customer or supplier account with a zero balance.

    Raises:
        ValidationError: missing name or unknown kind
        Conflict: phone already used by another account of the same kind
    """
    clean = validate_payload(
        model=Account,
        payload={"display_name": display_name, "phone": phone, "kind": kind},
        policy=ACCOUNT_CREATE_POLICY,
        partial=False,
    )
    if clean["kind"] not in VALID_ACCOUNT_KINDS:
        raise ValidationError(f"Invalid account kind: {clean['kind']}. Must be one of {list(VALID_ACCOUNT_KINDS)}")
    phone = clean.get("phone") or None

    def _op():
        if phone is not None:
            existing = db.session.query(Account).filter_by(kind=clean["kind"], phone=phone).first()
            if existing:
                raise Conflict(f"A {clean['kind']} with phone {phone} already exists (account {existing.id})")

        account = Account(
            kind=clean["kind"],
            display_name=clean["display_name"],
            phone=phone,
            cached_balance_cents=0,
        )
        db.session.add(account)
        db.session.flush()
        return account

    try:
        return run_in_transaction(_op)
    except IntegrityError as exc:
        raise Conflict(f"A {clean['kind']} with phone {phone} already exists") from exc


def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if not account:
        raise NotFound(f"Account {account_id} not found")
    return account


def list_accounts(kind: str | None = None) -> list[Account]:
    query = db.session.query(Account)
    if kind is not None:
        if kind not in VALID_ACCOUNT_KINDS:
            raise ValidationError(f"Invalid account kind: {kind}")
        query = query.filter(Account.kind == kind)
    return query.order_by(Account.display_name, Account.id).all()


def financial_summary() -> dict:
    """
    Cash and bank on hand plus what is owed in both directions.

    receivables: positive customer balances only (credits are not income)
    payables: net supplier balance
    """
    receivables = db.session.query(func.coalesce(func.sum(Account.cached_balance_cents), 0)).filter(
        Account.kind == ACCOUNT_KIND_CUSTOMER,
        Account.cached_balance_cents > 0,
    ).scalar()
    payables = db.session.query(func.coalesce(func.sum(Account.cached_balance_cents), 0)).filter(
        Account.kind == ACCOUNT_KIND_SUPPLIER,
    ).scalar()

    return {
        "cash_cents": treasury_service.balance_as_of(TREASURY_CASH),
        "bank_cents": treasury_service.balance_as_of(TREASURY_BANK),
        "receivables_cents": int(receivables or 0),
        "payables_cents": int(payables or 0),
    }
