"""
Split calculation.

Pure functions turning an expense amount and a member roster into per-member
amounts due. Nothing here touches the database; callers persist the result
inside their own transaction.

Equal splits round each share independently to two places, so the shares may
drift from the total by up to ``member_count * 0.005``. The
``SPLIT_REMAINDER_POLICY`` setting selects a strict alternative:

- ``none``: independent rounding, drift accepted (default)
- ``payer``: the payer absorbs the rounding remainder
- ``distribute``: integer-cent division, leftover cents go one each to the
  first members in roster order

Example::

    >>> compute_equal_splits(Decimal('50.00'), [alice.id, bob.id, carol.id])
    [(alice.id, Decimal('16.67')), (bob.id, Decimal('16.67')), (carol.id, Decimal('16.67'))]
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Optional, Sequence
from uuid import UUID

from django.conf import settings

from apps.expenses.models import SplitType

from .exceptions import InvalidSplitError

CENT = Decimal('0.01')
HUNDRED = Decimal('100')
PERCENTAGE_TOLERANCE = Decimal('0.1')

REMAINDER_NONE = 'none'
REMAINDER_PAYER = 'payer'
REMAINDER_DISTRIBUTE = 'distribute'
REMAINDER_POLICIES = (REMAINDER_NONE, REMAINDER_PAYER, REMAINDER_DISTRIBUTE)

Split = tuple[UUID, Decimal]


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _unique(member_ids: Iterable[UUID]) -> list[UUID]:
    seen = set()
    ordered = []
    for member_id in member_ids:
        if member_id not in seen:
            seen.add(member_id)
            ordered.append(member_id)
    return ordered


def _distribute_cents(amount: Decimal, members: Sequence[UUID]) -> list[Split]:
    total_cents = int(quantize_money(amount) * 100)
    base_cents, remainder = divmod(total_cents, len(members))

    splits = []
    for i, member_id in enumerate(members):
        cents = base_cents + 1 if i < remainder else base_cents
        splits.append((member_id, Decimal(cents) / HUNDRED))
    return splits


def compute_equal_splits(
    amount: Decimal,
    member_ids: Iterable[UUID],
    *,
    payer_id: Optional[UUID] = None,
    remainder_policy: Optional[str] = None
) -> list[Split]:
    """
    Divide ``amount`` evenly across ``member_ids`` in roster order.

    An empty roster yields an empty list: an expense may exist before the
    group has any joined members to share it.

    Raises:
        InvalidSplitError: For an unknown remainder policy
    """
    policy = remainder_policy or settings.SPLIT_REMAINDER_POLICY
    if policy not in REMAINDER_POLICIES:
        raise InvalidSplitError(f"Unknown remainder policy: {policy!r}")

    members = _unique(member_ids)
    if not members:
        return []

    if policy == REMAINDER_DISTRIBUTE:
        return _distribute_cents(amount, members)

    share = quantize_money(amount / len(members))
    splits = [(member_id, share) for member_id in members]

    if policy == REMAINDER_PAYER:
        remainder = quantize_money(amount) - share * len(members)
        if remainder:
            absorber = payer_id if payer_id in members else members[0]
            splits = [
                (member_id, value + remainder if member_id == absorber else value)
                for member_id, value in splits
            ]

    return splits


def validate_percentages(
    allocations: Sequence[tuple[UUID, Decimal]],
    member_ids: Iterable[UUID]
) -> None:
    """
    Check caller-supplied percentage allocations against the active roster.

    Raises:
        InvalidSplitError: If there are no allocations, a member appears twice,
            a percentage is negative, a member is outside the roster, or the
            percentages do not sum to 100 within 0.1
    """
    if not allocations:
        raise InvalidSplitError("Percentage split requires at least one allocation")

    roster = set(member_ids)
    seen = set()
    total = Decimal('0')

    for member_id, percentage in allocations:
        if member_id in seen:
            raise InvalidSplitError(f"Member {member_id} appears more than once")
        seen.add(member_id)

        if member_id not in roster:
            raise InvalidSplitError(f"User {member_id} is not an active member of this group")

        try:
            percentage = Decimal(percentage)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidSplitError(f"Invalid percentage for member {member_id}")

        if not percentage.is_finite() or percentage < 0:
            raise InvalidSplitError(f"Percentage for member {member_id} must be >= 0")

        total += percentage

    if abs(total - HUNDRED) > PERCENTAGE_TOLERANCE:
        raise InvalidSplitError(f"Percentages must sum to 100 (got {total})")


def compute_percentage_splits(
    amount: Decimal,
    allocations: Sequence[tuple[UUID, Decimal]],
    member_ids: Iterable[UUID]
) -> list[Split]:
    """Validate ``allocations`` and compute round(amount * pct / 100, 2) each."""
    validate_percentages(allocations, member_ids)
    return [
        (member_id, quantize_money(amount * Decimal(percentage) / HUNDRED))
        for member_id, percentage in allocations
    ]


def compute_splits(
    *,
    amount: Decimal,
    split_type: str,
    member_ids: Iterable[UUID],
    allocations: Optional[Sequence[tuple[UUID, Decimal]]] = None,
    payer_id: Optional[UUID] = None,
    remainder_policy: Optional[str] = None
) -> list[Split]:
    """
    Compute amounts due for an expense.

    Args:
        amount: Settlement-currency amount to split
        split_type: One of SplitType
        member_ids: Active (non-pending) roster in join order
        allocations: (member_id, percentage) pairs for percentage splits
        payer_id: Payer, used by the ``payer`` remainder policy
        remainder_policy: Overrides SPLIT_REMAINDER_POLICY

    Returns:
        List of (member_id, amount_due) tuples

    Raises:
        InvalidSplitError: If the split is invalid for its type
    """
    member_ids = list(member_ids)

    if split_type == SplitType.EQUAL:
        return compute_equal_splits(
            amount,
            member_ids,
            payer_id=payer_id,
            remainder_policy=remainder_policy
        )

    if split_type == SplitType.PERCENTAGE:
        return compute_percentage_splits(amount, allocations or [], member_ids)

    raise InvalidSplitError(f"Unknown split type: {split_type!r}")
