# Overview: Service-layer operations for balances; recomputed from source records on every call.

"""
Balance Aggregator

    owing = sum of the user's own unconfirmed splits
    owed  = sum of other people's unconfirmed splits on bills the user created

over approved/settled bills that are eligible for the user. Nothing is
cached; every call walks the current splits so the figures cannot drift
from the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..models import Bill
from . import bill_service, eligibility_service


@dataclass(frozen=True)
class Balances:
    owed_cents: int = 0
    owing_cents: int = 0

    @property
    def net_cents(self) -> int:
        return self.owed_cents - self.owing_cents

    def to_dict(self) -> dict:
        return {
            "owed_cents": self.owed_cents,
            "owing_cents": self.owing_cents,
            "net_cents": self.net_cents,
        }


def _bill_contribution(bill: Bill, user_id: int) -> tuple[int, int]:
    owed = owing = 0
    for split in bill.splits:
        if split.payment_status == "confirmed":
            continue
        if split.user_id == user_id:
            owing += split.amount_cents
        elif bill.created_by_user_id == user_id:
            owed += split.amount_cents
    return owed, owing


def _countable_bills(user_id: int, group_id: int | None = None) -> list[Bill]:
    return eligibility_service.list_bills_for_user(
        user_id,
        group_id,
        status=bill_service.COUNTABLE_STATUSES,
    )


def compute_balances(user_id: int) -> Balances:
    """(owed to me, I owe) across every group the user belongs to."""
    owed = owing = 0
    for bill in _countable_bills(user_id):
        bill_owed, bill_owing = _bill_contribution(bill, user_id)
        owed += bill_owed
        owing += bill_owing
    return Balances(owed_cents=owed, owing_cents=owing)


def compute_group_balances(user_id: int) -> dict[int, Balances]:
    """Per-group breakdown for dashboards; groups with nothing outstanding are omitted."""
    totals: dict[int, list[int]] = {}
    for bill in _countable_bills(user_id):
        bill_owed, bill_owing = _bill_contribution(bill, user_id)
        if not bill_owed and not bill_owing:
            continue
        entry = totals.setdefault(bill.group_id, [0, 0])
        entry[0] += bill_owed
        entry[1] += bill_owing
    return {gid: Balances(owed_cents=o, owing_cents=w) for gid, (o, w) in totals.items()}
