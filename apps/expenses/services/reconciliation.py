"""
Membership-change reconciliation.

Equal splits are defined against the current roster, so every roster change
rewrites the split rows of the group's equal-split expenses. Percentage
splits carry caller-chosen allocations and are left as they are; their ids
are reported back so the caller can warn that they may no longer cover the
whole group.
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID

from django.db import transaction

from apps.expenses.models import Expense, ExpenseSplit, SplitType
from apps.groups.models import Group

from .split_calculation import compute_equal_splits

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    recomputed_expense_ids: list[UUID] = field(default_factory=list)
    untouched_percentage_expense_ids: list[UUID] = field(default_factory=list)

    @property
    def has_untouched_percentage_expenses(self) -> bool:
        return bool(self.untouched_percentage_expense_ids)


def get_active_member_ids(group: Group) -> list[UUID]:
    """Non-pending members of ``group`` in join order."""
    return list(
        group.active_memberships()
        .order_by('joined_at', 'id')
        .values_list('user_id', flat=True)
    )


@transaction.atomic
def reconcile_equal_splits(*, group: Group) -> ReconciliationResult:
    """
    Recompute the splits of every equal-split expense in ``group``.

    Must be called with the group row locked (``select_for_update``) by the
    service that changed the roster, after the change is written. Runs in
    that service's transaction: a failure here rolls back the roster change
    too.

    Returns:
        ReconciliationResult with recomputed and untouched expense ids
    """
    member_ids = get_active_member_ids(group)
    result = ReconciliationResult()

    expenses = (
        Expense.objects
        .filter(group=group)
        .only('id', 'amount', 'settlement_amount', 'split_type', 'paid_by')
        .order_by('created_at', 'id')
    )

    for expense in expenses:
        if expense.split_type != SplitType.EQUAL:
            result.untouched_percentage_expense_ids.append(expense.id)
            continue

        ExpenseSplit.objects.filter(expense=expense).delete()

        splits = compute_equal_splits(
            expense.get_settlement_amount(),
            member_ids,
            payer_id=expense.paid_by_id
        )
        ExpenseSplit.objects.bulk_create([
            ExpenseSplit(expense=expense, user_id=user_id, amount_due=amount_due)
            for user_id, amount_due in splits
        ])
        result.recomputed_expense_ids.append(expense.id)

    logger.info(
        "Reconciled group %s: %d equal expenses recomputed over %d members, %d percentage expenses untouched",
        group.id,
        len(result.recomputed_expense_ids),
        len(member_ids),
        len(result.untouched_percentage_expense_ids)
    )
    return result
