"""
modules/ledger/statements.py

Read-only reports over the party ledger.

- generate_account_statement: one party, one period
- generate_statements: every party (optionally one party type) for a period
- general_ledger: parties with activity in a period, grouped, with a summary
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Optional

from ...constants import PARTY_TYPES
from ...database.errors import NotFound, ValidationError
from ...database.repositories.ledger_repo import LedgerEntry, LedgerRepo
from ...database.repositories.parties_repo import PartiesRepo, Party
from ...utils.helpers import normalize_date, round_money
from ...utils.validators import require_choice


def _period(date_from: Any, date_to: Any) -> tuple[str, str]:
    try:
        start = normalize_date(date_from)
        end = normalize_date(date_to)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Statement dates must be ISO dates YYYY-MM-DD: {e}") from e
    if start > end:
        raise ValidationError(f"Period start {start} is after its end {end}.")
    return start, end


def _row(entry: LedgerEntry) -> dict:
    return {
        "entry_id": entry.entry_id,
        "date": entry.date,
        "transaction_type": entry.transaction_type,
        "reference": entry.reference,
        "notes": entry.notes,
        "debit": float(entry.debit),
        "credit": float(entry.credit),
        "balance_after": float(entry.balance_after),
        "cancels_entry_id": entry.cancels_entry_id,
    }


class AccountStatements:
    def __init__(
        self,
        conn: sqlite3.Connection,
        parties: PartiesRepo | None = None,
        entries: LedgerRepo | None = None,
    ):
        self.conn = conn
        self.parties = parties or PartiesRepo(conn)
        self.entries = entries or LedgerRepo(conn)

    def _statement(self, party: Party, start: str, end: str) -> dict:
        before = self.entries.last_before(party.party_id, start)
        opening = float(before.balance_after) if before else party.signed_opening
        rows = [_row(e) for e in self.entries.list_entries(party.party_id, start, end)]
        total_debit = round_money(sum(r["debit"] for r in rows))
        total_credit = round_money(sum(r["credit"] for r in rows))
        net = round_money(total_debit - total_credit)
        return {
            "party_id": party.party_id,
            "party_name": party.name,
            "party_type": party.party_type,
            "period": {"from": start, "to": end},
            "opening_balance": round_money(opening),
            "rows": rows,
            "totals": {"debit": total_debit, "credit": total_credit, "net": net},
            "closing_balance": round_money(opening + net),
        }

    def generate_account_statement(self, party_id: int, date_from: Any, date_to: Any) -> dict:
        """
        Opening balance is the balance after the last entry strictly before
        `date_from` (the party's signed opening balance when there is none);
        closing = opening + total debit - total credit over the period.
        """
        start, end = _period(date_from, date_to)
        party = self.parties.get(party_id)
        if party is None:
            raise NotFound(f"Party {party_id} does not exist.")
        return self._statement(party, start, end)

    def generate_statements(
        self,
        date_from: Any,
        date_to: Any,
        party_type: Optional[str] = None,
    ) -> dict:
        start, end = _period(date_from, date_to)
        if party_type is not None:
            require_choice(party_type, PARTY_TYPES, "Party type")
        statements = [
            self._statement(p, start, end)
            for p in self.parties.list_parties(party_type)
        ]
        return {
            "generated_at": datetime.now().isoformat(timespec="seconds"),
            "period": {"from": start, "to": end},
            "party_type": party_type,
            "statements": statements,
        }

    def general_ledger(self, date_from: Any, date_to: Any) -> dict:
        start, end = _period(date_from, date_to)
        groups: list[dict] = []
        for party_id in self.entries.party_ids_with_entries(start, end):
            party = self.parties.get(party_id)
            st = self._statement(party, start, end)
            groups.append({
                "party_id": party_id,
                "party_name": party.name,
                "party_type": party.party_type,
                "opening_balance": st["opening_balance"],
                "total_debit": st["totals"]["debit"],
                "total_credit": st["totals"]["credit"],
                "closing_balance": st["closing_balance"],
                "entries": st["rows"],
            })
        total_debit = round_money(sum(g["total_debit"] for g in groups))
        total_credit = round_money(sum(g["total_credit"] for g in groups))
        return {
            "period": {"from": start, "to": end},
            "parties": groups,
            "summary": {
                "party_count": len(groups),
                "entry_count": sum(len(g["entries"]) for g in groups),
                "total_debit": total_debit,
                "total_credit": total_credit,
                "net": round_money(total_debit - total_credit),
            },
        }
