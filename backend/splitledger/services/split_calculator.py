# Overview: Pure share calculation for bill splits (equal, by item, custom).

"""
Split calculation.

Turns a bill's total into per-participant integer-cent shares. Pure: no
database access, so the same function backs both the submit preflight
and the materialization on approval.

ROUNDING RULE:
Shares are computed exactly (fractions) and rounded half-up to the
nearest cent. The signed residual goes to one anchor participant: the
bill creator when they participate, otherwise the first participant in
recorded order. If a negative residual would push the anchor below zero,
the remainder is taken one cent at a time from participants whose share
was rounded up. The result always sums to the bill total exactly.
"""

from __future__ import annotations

from fractions import Fraction
from math import floor

from ..errors import InvalidAmount, InvalidSplit


SPLIT_EQUAL = "equal"
SPLIT_BY_ITEM = "by_item"
SPLIT_CUSTOM = "custom"
VALID_SPLIT_METHODS = {SPLIT_EQUAL, SPLIT_BY_ITEM, SPLIT_CUSTOM}


def validate_split_method(method: str) -> None:
    if method not in VALID_SPLIT_METHODS:
        raise InvalidSplit(
            f"Invalid split method '{method}'. Must be one of: {', '.join(sorted(VALID_SPLIT_METHODS))}"
        )


def residual_anchor(participant_ids: list[int], creator_id: int) -> int:
    if not participant_ids:
        raise InvalidSplit("A split needs at least one participant")
    if creator_id in participant_ids:
        return creator_id
    return participant_ids[0]


def _round_half_up(value: Fraction) -> int:
    return floor(value + Fraction(1, 2))


def _round_with_residual(
    exact: dict[int, Fraction],
    total_cents: int,
    participant_ids: list[int],
    creator_id: int,
) -> dict[int, int]:
    exact = {uid: exact.get(uid, Fraction(0)) for uid in participant_ids}
    shares = {uid: _round_half_up(exact[uid]) for uid in participant_ids}
    anchor = residual_anchor(participant_ids, creator_id)

    shares[anchor] += total_cents - sum(shares.values())
    if shares[anchor] >= 0:
        return shares

    # Anchor cannot go negative; claw the deficit back from rounded-up shares
    deficit = -shares[anchor]
    shares[anchor] = 0
    for uid in participant_ids:
        if deficit == 0:
            break
        if uid != anchor and shares[uid] > exact[uid]:
            shares[uid] -= 1
            deficit -= 1
    if deficit:
        raise InvalidSplit("Share calculation exceeded the bill total")
    return shares


def equal_shares(total_cents: int, participant_ids: list[int], creator_id: int) -> dict[int, int]:
    """Everyone pays total / n rounded to the cent; the anchor absorbs the difference."""
    if not participant_ids:
        raise InvalidSplit("A split needs at least one participant")
    exact = {uid: Fraction(total_cents, len(participant_ids)) for uid in participant_ids}
    return _round_with_residual(exact, total_cents, participant_ids, creator_id)


def item_shares(
    items,
    tax_cents: int,
    tip_cents: int,
    participant_ids: list[int],
    creator_id: int,
) -> dict[int, int]:
    """
    Each item is divided equally among its assigned users. Tax and tip are
    divided equally among all participants. Every item must be assigned
    to at least one participant.
    """
    if not participant_ids:
        raise InvalidSplit("A split needs at least one participant")

    exact: dict[int, Fraction] = {uid: Fraction(0) for uid in participant_ids}

    for item in items:
        assignees = list(item.assigned_user_ids or [])
        if not assignees:
            raise InvalidSplit(f"Item '{item.name}' is not assigned to anyone")
        strangers = [uid for uid in assignees if uid not in exact]
        if strangers:
            raise InvalidSplit(
                f"Item '{item.name}' is assigned to non-participants: {', '.join(map(str, strangers))}"
            )
        portion = Fraction(item.price_cents, len(assignees))
        for uid in assignees:
            exact[uid] += portion

    extras = (tax_cents or 0) + (tip_cents or 0)
    if extras:
        portion = Fraction(extras, len(participant_ids))
        for uid in participant_ids:
            exact[uid] += portion

    total_cents = sum(item.price_cents for item in items) + extras
    return _round_with_residual(exact, total_cents, participant_ids, creator_id)


def normalize_custom_amounts(custom_amounts) -> dict[int, int]:
    """Accept {user_id: cents} with int or str keys (JSON round-trips keys as str)."""
    if not isinstance(custom_amounts, dict) or not custom_amounts:
        raise InvalidSplit("Custom split requires a non-empty mapping of user id to amount")

    normalized = {}
    for raw_uid, raw_amount in custom_amounts.items():
        try:
            uid = int(raw_uid)
        except (TypeError, ValueError):
            raise InvalidSplit(f"Invalid participant id: {raw_uid!r}")
        if isinstance(raw_amount, bool) or not isinstance(raw_amount, int):
            raise InvalidAmount(f"Amount for user {uid} must be an integer number of cents")
        if raw_amount < 0:
            raise InvalidAmount(f"Amount for user {uid} cannot be negative")
        normalized[uid] = raw_amount
    return normalized


def custom_shares(total_cents: int, custom_amounts, participant_ids: list[int]) -> dict[int, int]:
    """Caller-specified shares; must cover exactly the participants and sum to the total."""
    amounts = normalize_custom_amounts(custom_amounts)

    if set(amounts) != set(participant_ids):
        raise InvalidSplit("Custom amounts must list exactly the bill participants")

    allocated = sum(amounts.values())
    if allocated != total_cents:
        raise InvalidAmount(
            f"Custom amounts sum to {allocated} cents but the bill total is {total_cents} cents"
        )
    return {uid: amounts[uid] for uid in participant_ids}


def calculate_shares(bill) -> dict[int, int]:
    """
    Shares for a bill according to its recorded split method.

    Returns an ordered {user_id: amount_cents} following the bill's
    participant order. sum(values) == bill.total_cents always holds.
    """
    validate_split_method(bill.split_method)
    participants = list(bill.participant_user_ids or [])

    if bill.split_method == SPLIT_EQUAL:
        shares = equal_shares(bill.total_cents, participants, bill.created_by_user_id)
    elif bill.split_method == SPLIT_BY_ITEM:
        shares = item_shares(
            bill.items,
            bill.tax_cents,
            bill.tip_cents,
            participants,
            bill.created_by_user_id,
        )
    else:
        shares = custom_shares(bill.total_cents, bill.custom_amounts, participants)

    if sum(shares.values()) != bill.total_cents:
        raise InvalidSplit("Split amounts do not add up to the bill total")
    return shares
