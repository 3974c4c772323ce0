# Overview: Ledger-backed wallet accounts; the only writer of account balances.

"""
Wallet Ledger Invariants (authoritative)

- Exactly one WalletAccount per (scope_id, wallet_type); accounts are created
  lazily and idempotently ("ensure" semantics).
- balance_cents >= 0 at all times.
- Every balance change is explained by exactly one WalletLedgerEntry written
  in the same DB transaction, before the balances are touched.
- Ledger entries are append-only: no updates, no deletes.
- A transfer with no source account models external money entering the
  system (till sale, seed). Every other transfer conserves the total.
- Balance check and decrement happen on a row locked FOR UPDATE in the same
  transaction, so two concurrent debits cannot both pass the check.
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..context import CallerContext
from ..errors import (
    InsufficientBalanceError,
    NotFoundError,
    TransientStoreFailure,
    UnauthorizedError,
    ValidationError,
)
from ..extensions import db
from ..models import WalletAccount, WalletLedgerEntry
from ..models.wallets import WALLET_TYPES
from ..validation import require_positive_int
from . import scope_service
from .concurrency import lock_for_update, unit_of_work


@dataclass(frozen=True)
class LedgerCharges:
    """Informational breakdown stored on a ledger entry (not separately booked)."""
    admin_charge_cents: int = 0
    tax_cents: int = 0
    commission_cents: int = 0


def _require_wallet_type(wallet_type: str) -> None:
    if wallet_type not in WALLET_TYPES:
        raise ValidationError(f"Unknown wallet type {wallet_type!r}")


def ensure_accounts(scope_id: int, *, commit: bool = True) -> list[WalletAccount]:
    """
    Ensure a scope has its FUND, INCOME and SALES_INCENTIVE accounts.

    Safe to call repeatedly (idempotent). If a concurrent caller wins the
    insert race the unique constraint fires and the whole unit fails with
    TransientStoreFailure; retrying finds the rows already there.
    """
    with unit_of_work(commit=commit):
        scope_service.get_node(scope_id)

        existing = {
            account.wallet_type: account
            for account in db.session.query(WalletAccount).filter_by(scope_id=scope_id).all()
        }

        missing = [wallet_type for wallet_type in WALLET_TYPES if wallet_type not in existing]
        for wallet_type in missing:
            account = WalletAccount(scope_id=scope_id, wallet_type=wallet_type, balance_cents=0)
            db.session.add(account)
            existing[wallet_type] = account

        if missing:
            try:
                db.session.flush()
            except IntegrityError as exc:
                raise TransientStoreFailure(
                    f"Concurrent account creation for scope {scope_id}"
                ) from exc

        accounts = [existing[wallet_type] for wallet_type in WALLET_TYPES]

    return accounts


def get_or_create_account(scope_id: int, wallet_type: str, *, commit: bool = True) -> WalletAccount:
    _require_wallet_type(wallet_type)

    account = db.session.query(WalletAccount).filter_by(scope_id=scope_id, wallet_type=wallet_type).first()
    if account is not None:
        return account

    accounts = ensure_accounts(scope_id, commit=commit)
    return accounts[WALLET_TYPES.index(wallet_type)]


def get_account(account_id: int) -> WalletAccount:
    account = db.session.query(WalletAccount).filter_by(id=account_id).first()
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


def transfer(
    from_account_id: int | None,
    to_account_id: int,
    amount_cents: int,
    ref_type: str,
    ref_id: str,
    notes: str | None = None,
    charges: LedgerCharges | None = None,
    *,
    commit: bool = True,
) -> WalletLedgerEntry:
    """
    Move money between two accounts as one atomic unit.

    Effects, in order: ledger entry inserted, source debited (if any),
    target credited. Either all of them commit or none do.

    Raises:
        ValidationError: amount not a positive integer, missing target
        NotFoundError: source or target account does not exist
        InsufficientBalanceError: source balance below amount
    """
    require_positive_int(amount_cents, "amount_cents")
    if to_account_id is None:
        raise ValidationError("to_account_id is required")
    if from_account_id is not None and from_account_id == to_account_id:
        raise ValidationError("Cannot transfer to the same account")

    charges = charges or LedgerCharges()

    with unit_of_work(commit=commit):
        # Lock in ascending id order so opposing transfers cannot deadlock each other
        account_ids = sorted(i for i in (from_account_id, to_account_id) if i is not None)
        locked = lock_for_update(
            db.session.query(WalletAccount)
            .filter(WalletAccount.id.in_(account_ids))
            .order_by(WalletAccount.id.asc())
        ).all()
        accounts = {account.id: account for account in locked}

        to_account = accounts.get(to_account_id)
        if to_account is None:
            raise NotFoundError(f"Account {to_account_id} not found")

        from_account = None
        if from_account_id is not None:
            from_account = accounts.get(from_account_id)
            if from_account is None:
                raise NotFoundError(f"Account {from_account_id} not found")
            if from_account.balance_cents < amount_cents:
                raise InsufficientBalanceError(
                    f"Insufficient balance in {from_account.wallet_type} account {from_account.id}. "
                    f"Available: {from_account.balance_cents}, Required: {amount_cents}",
                    available_cents=from_account.balance_cents,
                    requested_cents=amount_cents,
                )

        entry = WalletLedgerEntry(
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            amount_cents=amount_cents,
            ref_type=ref_type,
            ref_id=str(ref_id),
            notes=notes,
            admin_charge_cents=charges.admin_charge_cents,
            tax_cents=charges.tax_cents,
            commission_cents=charges.commission_cents,
        )
        db.session.add(entry)
        db.session.flush()  # ledger first: entry gets its id before balances move

        if from_account is not None:
            from_account.balance_cents -= amount_cents
        to_account.balance_cents += amount_cents

    current_app.logger.info(
        "Wallet transfer %s -> %s amount_cents=%s ref=%s:%s",
        from_account_id, to_account_id, amount_cents, ref_type, ref_id,
    )
    return entry


def credit_account(
    scope_id: int,
    wallet_type: str,
    amount_cents: int,
    ref_type: str,
    ref_id: str,
    notes: str | None = None,
    charges: LedgerCharges | None = None,
    *,
    commit: bool = True,
) -> WalletLedgerEntry:
    """Book external money into a scope's account (no debit leg)."""
    with unit_of_work(commit=commit):
        account = get_or_create_account(scope_id, wallet_type, commit=False)
        entry = transfer(None, account.id, amount_cents, ref_type, ref_id, notes, charges, commit=False)
    return entry


def transfer_between_scopes(
    caller: CallerContext | None,
    *,
    from_scope_id: int,
    from_wallet_type: str,
    to_scope_id: int,
    to_wallet_type: str,
    amount_cents: int,
    notes: str | None = None,
) -> WalletLedgerEntry:
    """
    Manual transfer between two scope accounts.

    The caller must reach the source scope (it is being debited). The target
    only has to exist within the same company.
    """
    _require_wallet_type(from_wallet_type)
    _require_wallet_type(to_wallet_type)
    require_positive_int(amount_cents, "amount_cents")

    scope_service.ensure_can_access(caller, from_scope_id)
    from_scope = scope_service.get_node(from_scope_id)
    to_scope = scope_service.get_node(to_scope_id)
    if from_scope.company_id != to_scope.company_id:
        raise UnauthorizedError("Cannot transfer between companies")

    ref_id = str(caller.scope_id) if caller is not None else "0"

    with unit_of_work():
        from_account = get_or_create_account(from_scope_id, from_wallet_type, commit=False)
        to_account = get_or_create_account(to_scope_id, to_wallet_type, commit=False)
        entry = transfer(
            from_account.id,
            to_account.id,
            amount_cents,
            "ManualTransfer",
            ref_id,
            notes,
            commit=False,
        )
    return entry


def list_accounts(scope_id: int) -> list[WalletAccount]:
    return ensure_accounts(scope_id)


def list_ledger(account_id: int, *, limit: int = 200) -> list[WalletLedgerEntry]:
    get_account(account_id)
    return (
        db.session.query(WalletLedgerEntry)
        .filter(
            or_(
                WalletLedgerEntry.from_account_id == account_id,
                WalletLedgerEntry.to_account_id == account_id,
            )
        )
        .order_by(WalletLedgerEntry.created_at.desc(), WalletLedgerEntry.id.desc())
        .limit(limit)
        .all()
    )


def list_ledger_for_caller(caller: CallerContext, account_id: int, *, limit: int = 200) -> list[WalletLedgerEntry]:
    """Ledger listing with ownership check on the account's scope."""
    account = get_account(account_id)
    scope_service.ensure_can_access(caller, account.scope_id)
    return list_ledger(account_id, limit=limit)
