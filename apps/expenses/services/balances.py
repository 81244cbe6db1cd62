"""
Balance aggregation.

Balances are never stored: every call recomputes them from the expense and
split rows. For each active member::

    total_paid  = sum of settlement amounts of expenses they paid
    total_share = sum of their split amounts due
    net_balance = total_paid - total_share

A positive net balance means the group owes the member.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from django.db.models import Sum

from apps.expenses.models import Expense, ExpenseSplit
from apps.groups.models import ACTIVE_ROLES, Group, GroupMembership

from .exceptions import GroupNotFoundError

ZERO = Decimal('0.00')


@dataclass(frozen=True)
class MemberBalance:
    user_id: UUID
    display_name: str
    total_paid: Decimal
    total_share: Decimal
    net_balance: Decimal


def aggregate_balances(
    members: Iterable[tuple[UUID, str]],
    paid: dict[UUID, Decimal],
    shares: dict[UUID, Decimal]
) -> list[MemberBalance]:
    """
    Combine per-user paid and share totals into balances.

    Args:
        members: (user_id, display_name) of active members, in output order
        paid: Settlement amount paid per user
        shares: Amount due per user

    Users absent from ``members`` (pending slots, removed members) are
    ignored.
    """
    balances = []
    for user_id, display_name in members:
        total_paid = paid.get(user_id) or ZERO
        total_share = shares.get(user_id) or ZERO
        balances.append(MemberBalance(
            user_id=user_id,
            display_name=display_name,
            total_paid=total_paid,
            total_share=total_share,
            net_balance=total_paid - total_share,
        ))
    return balances


def compute_balances(*, group_id: UUID) -> list[MemberBalance]:
    """
    Compute balances for all active members of a group.

    Raises:
        GroupNotFoundError: If the group doesn't exist
    """
    if not Group.objects.filter(id=group_id).exists():
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    memberships = (
        GroupMembership.objects
        .filter(group_id=group_id, role__in=ACTIVE_ROLES)
        .select_related('user')
        .order_by('joined_at', 'id')
    )
    members = [(m.user_id, m.user.get_display_name()) for m in memberships]

    paid = {}
    for expense in Expense.objects.filter(group_id=group_id).only(
        'paid_by', 'amount', 'settlement_amount'
    ):
        paid[expense.paid_by_id] = paid.get(expense.paid_by_id, ZERO) + expense.get_settlement_amount()

    shares = {
        row['user_id']: row['total']
        for row in (
            ExpenseSplit.objects
            .filter(expense__group_id=group_id)
            .values('user_id')
            .annotate(total=Sum('amount_due'))
        )
    }

    return aggregate_balances(members, paid, shares)


def balance_summary(*, group_id: UUID) -> dict:
    """
    Balances plus group totals for API responses.

    ``imbalance`` is the sum of net balances; it is zero up to rounding drift
    when every expense is fully split among active members.
    """
    balances = compute_balances(group_id=group_id)

    total_spent = sum(
        (e.get_settlement_amount() for e in Expense.objects.filter(group_id=group_id).only(
            'amount', 'settlement_amount'
        )),
        ZERO
    )
    imbalance = sum((b.net_balance for b in balances), ZERO)

    return {
        'balances': balances,
        'total_spent': total_spent,
        'imbalance': imbalance,
    }
