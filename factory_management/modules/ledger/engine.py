"""
modules/ledger/engine.py

Per-party running balance over an append-only entry log.

Ordering is (date, entry_id): a new entry follows every existing entry of the
same date. Posting computes

    balance_after = previous.balance_after + debit - credit

where `previous` is the latest entry at or before the new entry's date (or the
signed opening balance), then walks every later entry and rewrites its
balance_after (the back-dated cascade). Every balance write is a
compare-and-swap against the value read in the same unit of work.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Iterable, Mapping, Optional

from ...constants import (
    BALANCE_TYPES,
    CANCEL_PREFIX,
    CANCELLABLE_TRANSACTION_TYPES,
    LEDGER_TRANSACTION_TYPES,
    PARTY_TYPES,
)
from ...database.errors import NotFound, ValidationError
from ...database.repositories.ledger_repo import LedgerEntry, LedgerRepo
from ...database.repositories.parties_repo import PartiesRepo, Party
from ...database.transactions import immediate_tx
from ...utils.helpers import normalize_date, round_money, today_str
from ...utils.loggers import get_logger
from ...utils.retry import retry_on_conflict
from ...utils.validators import require_choice, require_non_empty, require_non_negative
from ..batch.runner import BatchMode, BatchReport, run_batch


def _iso(value, field_label: str = "Date") -> str:
    try:
        return normalize_date(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_label} must be an ISO date YYYY-MM-DD (got {value!r}).") from e


class LedgerEngine:
    def __init__(
        self,
        conn: sqlite3.Connection,
        parties: PartiesRepo | None = None,
        entries: LedgerRepo | None = None,
        logger: logging.Logger | None = None,
    ):
        self.conn = conn
        self.parties = parties or PartiesRepo(conn)
        self.entries = entries or LedgerRepo(conn)
        self._log = logger or get_logger("factory.ledger")

    # ------------------------------------------------------------------
    # Parties
    # ------------------------------------------------------------------
    def create_party(
        self,
        name: str,
        party_type: str = "customer",
        opening_balance: float = 0.0,
        balance_type: str = "debit",
    ) -> Party:
        name = require_non_empty(name, "Party name")
        require_choice(party_type, PARTY_TYPES, "Party type")
        require_choice(balance_type, BALANCE_TYPES, "Balance type")
        opening = round_money(require_non_negative(opening_balance, "Opening balance"))
        with immediate_tx(self.conn):
            party_id = self.parties.create(name, party_type, opening, balance_type)
        self._log.info("created %s party #%s %s (opening %.2f %s)", party_type, party_id, name, opening, balance_type)
        return self.parties.get(party_id)

    def get_party(self, party_id: int) -> Party:
        party = self.parties.get(party_id)
        if party is None:
            raise NotFound(f"Party {party_id} does not exist.")
        return party

    def current_balance(self, party_id: int) -> float:
        self.get_party(party_id)
        bal = self.parties.get_balance(party_id)
        if bal is None:
            last = self.entries.last_entry(party_id)
            bal = last.balance_after if last else self.get_party(party_id).signed_opening
        return float(bal)

    def list_entries(
        self,
        party_id: int,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> list[LedgerEntry]:
        self.get_party(party_id)
        return self.entries.list_entries(
            party_id,
            _iso(date_from, "From date") if date_from else None,
            _iso(date_to, "To date") if date_to else None,
        )

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------
    def _cascade(self, party_id: int, date: str, entry_id: int, running: float) -> tuple[float, int]:
        """Rewrite balances of entries ordered after (date, entry_id); returns (last balance, rows changed)."""
        changed = 0
        for later in self.entries.entries_after(party_id, date, entry_id):
            new_balance = round_money(running + later.net)
            if new_balance != float(later.balance_after):
                self.entries.update_balance_after(later.entry_id, new_balance, expected=later.balance_after)
                changed += 1
            running = new_balance
        return running, changed

    def _refresh_cache(self, party_id: int, balance: float) -> None:
        cached = self.parties.get_balance(party_id)
        if cached is None:
            self.parties.reset_balance(party_id, balance)
        elif cached != balance:
            self.parties.set_balance(party_id, balance, expected=cached)

    def _post(
        self,
        party: Party,
        date: str,
        transaction_type: str,
        debit: float,
        credit: float,
        reference: str | None,
        notes: str | None,
        cancels_entry_id: int | None = None,
    ) -> int:
        prev = self.entries.latest_at_or_before(party.party_id, date)
        previous = float(prev.balance_after) if prev else party.signed_opening
        balance = round_money(previous + debit - credit)
        entry_id = self.entries.insert(
            party_id=party.party_id,
            date=date,
            transaction_type=transaction_type,
            debit=debit,
            credit=credit,
            balance_after=balance,
            reference=reference,
            notes=notes,
            cancels_entry_id=cancels_entry_id,
        )
        last, changed = self._cascade(party.party_id, date, entry_id, balance)
        self._refresh_cache(party.party_id, last)
        if changed:
            self._log.info(
                "back-dated %s on party #%s (%s): %d later balance(s) recomputed",
                transaction_type, party.party_id, date, changed,
            )
        return entry_id

    def append_entry(
        self,
        party_id: int,
        date: Any,
        debit: float,
        credit: float,
        transaction_type: str,
        reference: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntry:
        day = _iso(date)
        dr = round_money(require_non_negative(debit, "Debit"))
        cr = round_money(require_non_negative(credit, "Credit"))
        if dr == 0 and cr == 0:
            raise ValidationError("An entry needs a debit or a credit amount.")
        require_choice(transaction_type, LEDGER_TRANSACTION_TYPES, "Transaction type")
        if transaction_type.startswith(CANCEL_PREFIX):
            raise ValidationError("Cancellations are posted with cancel_entry().")

        def work() -> LedgerEntry:
            with immediate_tx(self.conn):
                party = self.get_party(party_id)
                entry_id = self._post(party, day, transaction_type, dr, cr, reference, notes)
            return self.entries.get(entry_id)

        entry = retry_on_conflict(work, logger=self._log, label=f"post to party {party_id}")
        self._log.info(
            "entry #%s %s party #%s %s dr %.2f cr %.2f -> %.2f",
            entry.entry_id, transaction_type, party_id, day, dr, cr, entry.balance_after,
        )
        return entry

    def cancel_entry(self, entry_id: int, date: Any = None, notes: str | None = None) -> LedgerEntry:
        """
        Post the compensating `cancel_<type>` entry (debit and credit swapped).
        The original is never touched. Dated today unless `date` is given.
        """
        day = _iso(date) if date is not None else today_str()

        def work() -> LedgerEntry:
            with immediate_tx(self.conn):
                original = self.entries.get(entry_id)
                if original is None:
                    raise NotFound(f"Ledger entry {entry_id} does not exist.")
                if original.transaction_type not in CANCELLABLE_TRANSACTION_TYPES:
                    raise ValidationError(
                        f"Entries of type {original.transaction_type} cannot be cancelled."
                    )
                if self.entries.find_cancellation(entry_id) is not None:
                    raise ValidationError(f"Ledger entry {entry_id} is already cancelled.")
                party = self.get_party(original.party_id)
                new_id = self._post(
                    party,
                    day,
                    CANCEL_PREFIX + original.transaction_type,
                    float(original.credit),
                    float(original.debit),
                    original.reference,
                    notes or f"Cancellation of entry #{entry_id}",
                    cancels_entry_id=entry_id,
                )
            return self.entries.get(new_id)

        entry = retry_on_conflict(work, logger=self._log, label=f"cancel entry {entry_id}")
        self._log.info("entry #%s cancelled by #%s", entry_id, entry.entry_id)
        return entry

    def append_many(
        self,
        entries: Iterable[Mapping[str, Any]],
        mode: BatchMode | str = BatchMode.ALL_OR_NOTHING,
    ) -> BatchReport:
        """Each record is a mapping of append_entry keyword arguments."""
        return run_batch(
            self.conn, entries, lambda e: self.append_entry(**e), mode, logger=self._log
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def _rebuild(self, party: Party) -> int:
        running = party.signed_opening
        changed = 0
        for entry in self.entries.list_entries(party.party_id):
            running = round_money(running + entry.net)
            if running != float(entry.balance_after):
                self.entries.update_balance_after(entry.entry_id, running, expected=entry.balance_after)
                changed += 1
        self.parties.reset_balance(party.party_id, running)
        return changed

    def rebuild_balances(self, party_id: int) -> int:
        """Recompute the whole chain from the opening balance; returns rows changed."""
        def work() -> int:
            with immediate_tx(self.conn):
                return self._rebuild(self.get_party(party_id))

        changed = retry_on_conflict(work, logger=self._log, label=f"rebuild party {party_id}")
        if changed:
            self._log.warning("party #%s: %d stored balance(s) repaired", party_id, changed)
        return changed

    def update_opening_balance(self, party_id: int, amount: float, balance_type: str) -> float:
        """Change the opening balance and re-chain every entry; returns the new current balance."""
        amt = round_money(require_non_negative(amount, "Opening balance"))
        require_choice(balance_type, BALANCE_TYPES, "Balance type")

        def work() -> float:
            with immediate_tx(self.conn):
                self.get_party(party_id)
                self.parties.update_opening(party_id, amt, balance_type)
                self._rebuild(self.get_party(party_id))
                return float(self.parties.get_balance(party_id))

        balance = retry_on_conflict(work, logger=self._log, label=f"opening balance of party {party_id}")
        self._log.info("party #%s opening set to %.2f %s; balance now %.2f", party_id, amt, balance_type, balance)
        return balance

    def verify_party(self, party_id: int) -> list[dict]:
        """
        Rows whose stored balance_after breaks the running-balance invariant,
        plus a `cache` row when the cached party balance disagrees.
        """
        party = self.get_party(party_id)
        running = party.signed_opening
        problems: list[dict] = []
        for entry in self.entries.list_entries(party_id):
            running = round_money(running + entry.net)
            if running != float(entry.balance_after):
                problems.append({
                    "entry_id": entry.entry_id,
                    "expected": running,
                    "stored": float(entry.balance_after),
                })
        cached = self.parties.get_balance(party_id)
        if cached is not None and round_money(cached) != running:
            problems.append({"entry_id": None, "expected": running, "stored": float(cached)})
        return problems
