"""
Expense management service.

Creates, edits and deletes expenses together with their splits. Every write
locks the group row first, so expense writes and roster changes in the same
group are serialized and splits are always computed against one roster.
"""

import datetime
import logging
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

from django.db import transaction
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.expenses.currencies import is_supported_currency, normalize_currency
from apps.expenses.models import Expense, ExpenseSplit, SplitType
from apps.groups.events import GroupEvent, GroupEventType
from apps.groups.models import Group, GroupRole

from .currency_conversion import ExchangeRateResolver, get_rate_resolver
from .exceptions import (
    ExpenseNotFoundError,
    GroupNotFoundError,
    InsufficientPermissionsError,
    InvalidCurrencyError,
    InvalidExpenseError,
    InvalidSplitError,
)
from .reconciliation import get_active_member_ids
from .split_calculation import compute_splits

logger = logging.getLogger(__name__)

Allocations = Sequence[tuple[UUID, Decimal]]

# Largest value the 12-digit, 2-place money columns hold
MAX_MONEY_AMOUNT = Decimal('9999999999.99')


def _lock_group_for_member(group_id: UUID, user: User) -> Group:
    try:
        group = (
            Group.objects
            .select_for_update()
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.has_member(user):
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    return group


def _validated_amount(amount) -> Decimal:
    try:
        amount = Decimal(amount)
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidExpenseError("Amount must be a number")
    if not amount.is_finite() or amount <= 0:
        raise InvalidExpenseError("Amount must be greater than zero")
    if amount > MAX_MONEY_AMOUNT:
        raise InvalidExpenseError(f"Amount must not exceed {MAX_MONEY_AMOUNT}")
    return amount


def _validated_currency(currency: str) -> str:
    code = normalize_currency(currency)
    if not is_supported_currency(code):
        raise InvalidCurrencyError(f"Unsupported currency code: {currency!r}")
    return code


def _convert(
    resolver: ExchangeRateResolver,
    amount: Decimal,
    currency: str,
    group: Group
) -> tuple[Decimal, Decimal]:
    settlement_amount, rate = resolver.convert(amount, currency, group.currency)
    if settlement_amount > MAX_MONEY_AMOUNT:
        raise InvalidExpenseError(
            f"Amount converts to {settlement_amount} {group.currency}, "
            f"above the limit of {MAX_MONEY_AMOUNT}"
        )
    return settlement_amount, rate


def _build_splits(
    expense: Expense,
    member_ids: list[UUID],
    allocations: Optional[Allocations]
) -> list[ExpenseSplit]:
    """Compute split rows for ``expense`` without saving them."""
    splits = compute_splits(
        amount=expense.get_settlement_amount(),
        split_type=expense.split_type,
        member_ids=member_ids,
        allocations=allocations,
        payer_id=expense.paid_by_id,
    )

    percentages = dict(allocations or []) if expense.split_type == SplitType.PERCENTAGE else {}
    return [
        ExpenseSplit(
            expense=expense,
            user_id=user_id,
            amount_due=amount_due,
            percentage=percentages.get(user_id),
        )
        for user_id, amount_due in splits
    ]


@transaction.atomic
def create_expense(
    *,
    group_id: UUID,
    user: User,
    title: str,
    amount: Decimal,
    expense_date: datetime.date,
    currency: Optional[str] = None,
    split_type: str = SplitType.EQUAL,
    paid_by_id: Optional[UUID] = None,
    allocations: Optional[Allocations] = None,
    receipt_reference: str = '',
    resolver: Optional[ExchangeRateResolver] = None
) -> tuple[Expense, GroupEvent]:
    """
    Record an expense and its splits.

    The amount is converted to the group's settlement currency, then split
    across the active roster (equal) or the given allocations (percentage).
    All validation happens before the first write.

    Args:
        group_id: UUID of the group
        user: Member recording the expense
        title: Short description
        amount: Positive amount in ``currency``
        expense_date: Date the expense happened
        currency: Native currency, defaults to the group's currency
        split_type: SplitType value
        paid_by_id: Payer, defaults to ``user``
        allocations: (user_id, percentage) pairs for percentage splits
        receipt_reference: Stored reference to an uploaded receipt
        resolver: Exchange rate resolver, the process-wide one by default

    Returns:
        Tuple of (Expense, GroupEvent)

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
        InvalidExpenseError: If the amount is out of range before or after
            conversion. Also raised when the payer is not an active member
        InvalidCurrencyError: If the currency is not supported
        InvalidSplitError: If the split is invalid
    """
    group = _lock_group_for_member(group_id, user)

    amount = _validated_amount(amount)
    currency = _validated_currency(currency or group.currency)

    if split_type not in SplitType.values:
        raise InvalidSplitError(f"Unknown split type: {split_type!r}")

    member_ids = get_active_member_ids(group)
    paid_by_id = paid_by_id or user.id
    if paid_by_id not in member_ids:
        raise InvalidExpenseError("Payer must be an active member of the group")

    resolver = resolver or get_rate_resolver()
    settlement_amount, rate = _convert(resolver, amount, currency, group)

    expense = Expense(
        group=group,
        paid_by_id=paid_by_id,
        created_by=user,
        title=title,
        amount=amount,
        currency=currency,
        settlement_amount=settlement_amount,
        exchange_rate=rate,
        split_type=split_type,
        expense_date=expense_date,
        receipt_reference=receipt_reference or '',
    )
    splits = _build_splits(expense, member_ids, allocations)

    expense.save()
    ExpenseSplit.objects.bulk_create(splits)

    logger.info(
        "Expense %s created in group %s: %s %s (%s split, %d rows)",
        expense.id, group.id, amount, currency, split_type, len(splits)
    )
    return expense, GroupEvent(GroupEventType.EXPENSE_CREATED, group.id)


def _get_group_expense(group: Group, expense_id: UUID) -> Expense:
    try:
        return (
            Expense.objects
            .select_for_update()
            .get(id=expense_id, group=group)
        )
    except Expense.DoesNotExist:
        raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")


def _require_owner(group: Group, user: User, action: str) -> None:
    if group.get_user_role(user) != GroupRole.OWNER:
        raise InsufficientPermissionsError(f"Only the group owner can {action} expenses")


@transaction.atomic
def update_expense(
    *,
    group_id: UUID,
    expense_id: UUID,
    user: User,
    title: Optional[str] = None,
    amount: Optional[Decimal] = None,
    currency: Optional[str] = None,
    split_type: Optional[str] = None,
    paid_by_id: Optional[UUID] = None,
    expense_date: Optional[datetime.date] = None,
    allocations: Optional[Allocations] = None,
    receipt_reference: Optional[str] = None,
    resolver: Optional[ExchangeRateResolver] = None
) -> tuple[Expense, GroupEvent]:
    """
    Edit an expense (group owner only).

    Omitted fields keep their current values. When the amount, currency,
    split type, payer or allocations change, the settlement amount is
    recomputed and the splits are replaced wholesale. Edits to the title,
    date or receipt leave the splits alone. A percentage expense edited
    without new allocations keeps its current percentages.

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
        ExpenseNotFoundError: If the expense is not in the group
        InsufficientPermissionsError: If user is not the group owner
        InvalidExpenseError, InvalidCurrencyError, InvalidSplitError:
            On invalid input
    """
    group = _lock_group_for_member(group_id, user)
    expense = _get_group_expense(group, expense_id)
    _require_owner(group, user, 'update')

    previous_split_type = expense.split_type

    if title is not None:
        expense.title = title
    if amount is not None:
        expense.amount = _validated_amount(amount)
    if currency is not None:
        expense.currency = _validated_currency(currency)
    if split_type is not None:
        if split_type not in SplitType.values:
            raise InvalidSplitError(f"Unknown split type: {split_type!r}")
        expense.split_type = split_type
    if expense_date is not None:
        expense.expense_date = expense_date
    if receipt_reference is not None:
        expense.receipt_reference = receipt_reference

    member_ids = get_active_member_ids(group)
    if paid_by_id is not None:
        if paid_by_id not in member_ids:
            raise InvalidExpenseError("Payer must be an active member of the group")
        expense.paid_by_id = paid_by_id

    resplit = any(
        value is not None
        for value in (amount, currency, split_type, paid_by_id, allocations)
    )
    if not resplit:
        expense.save()
        logger.info("Expense %s details updated in group %s by %s", expense.id, group.id, user.id)
        return expense, GroupEvent(GroupEventType.EXPENSE_UPDATED, group.id)

    if (
        allocations is None
        and expense.split_type == SplitType.PERCENTAGE
        and previous_split_type == SplitType.PERCENTAGE
    ):
        allocations = [
            (split.user_id, split.percentage)
            for split in expense.splits.exclude(percentage__isnull=True)
        ]

    resolver = resolver or get_rate_resolver()
    expense.settlement_amount, expense.exchange_rate = _convert(
        resolver, expense.amount, expense.currency, group
    )

    splits = _build_splits(expense, member_ids, allocations)

    expense.save()
    ExpenseSplit.objects.filter(expense=expense).delete()
    ExpenseSplit.objects.bulk_create(splits)

    logger.info("Expense %s updated in group %s by %s", expense.id, group.id, user.id)
    return expense, GroupEvent(GroupEventType.EXPENSE_UPDATED, group.id)


@transaction.atomic
def delete_expense(*, group_id: UUID, expense_id: UUID, user: User) -> GroupEvent:
    """
    Delete an expense and its splits (group owner only).

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
        ExpenseNotFoundError: If the expense is not in the group
        InsufficientPermissionsError: If user is not the group owner
    """
    group = _lock_group_for_member(group_id, user)
    expense = _get_group_expense(group, expense_id)
    _require_owner(group, user, 'delete')

    expense.delete()

    logger.info("Expense %s deleted from group %s by %s", expense_id, group.id, user.id)
    return GroupEvent(GroupEventType.EXPENSE_DELETED, group.id)


def get_expense(*, group_id: UUID, expense_id: UUID, user: User) -> Expense:
    """
    Get an expense with its splits.

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
        ExpenseNotFoundError: If the expense is not in the group
    """
    try:
        group = Group.objects.get(id=group_id)
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.has_member(user):
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    try:
        return (
            Expense.objects
            .select_related('paid_by', 'created_by')
            .prefetch_related('splits__user')
            .get(id=expense_id, group=group)
        )
    except Expense.DoesNotExist:
        raise ExpenseNotFoundError(f"Expense with ID {expense_id} not found")


def list_group_expenses(*, group_id: UUID, user: User) -> QuerySet[Expense]:
    """
    Expenses of a group, newest first.

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
    """
    try:
        group = Group.objects.get(id=group_id)
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.has_member(user):
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    return (
        Expense.objects
        .filter(group=group)
        .select_related('paid_by', 'created_by')
        .prefetch_related('splits__user')
        .order_by('-expense_date', '-created_at')
    )
