"""
Group management service.

Handles group CRUD operations with proper transaction safety.
"""

import logging
from typing import Optional
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.db.models import Prefetch

from apps.accounts.models import User
from apps.expenses.currencies import is_supported_currency, normalize_currency
from apps.expenses.models import Expense
from apps.groups.events import GroupEvent, GroupEventType
from apps.groups.models import Group, GroupMembership, GroupRole

from .exceptions import (
    CurrencyLockedError,
    GroupNotFoundError,
    InsufficientPermissionsError,
    InvalidCurrencyError,
)

logger = logging.getLogger(__name__)


def _validated_currency(currency: str) -> str:
    code = normalize_currency(currency)
    if not is_supported_currency(code):
        raise InvalidCurrencyError(f"Unsupported currency code: {currency!r}")
    return code


@transaction.atomic
def create_group(
    *,
    name: str,
    owner: User,
    description: str = '',
    currency: Optional[str] = None
) -> Group:
    """
    Create a new group and add the creator as owner.

    Both rows are written in one transaction so a group never exists
    without its owner membership.

    Args:
        name: Group name
        owner: User who will own the group
        description: Optional group description
        currency: Settlement currency (defaults to DEFAULT_SETTLEMENT_CURRENCY)

    Returns:
        Created Group instance

    Raises:
        InvalidCurrencyError: If the currency code is not supported
    """
    currency = _validated_currency(currency or settings.DEFAULT_SETTLEMENT_CURRENCY)

    group = Group.objects.create(
        name=name,
        owner=owner,
        description=description,
        currency=currency,
    )

    GroupMembership.objects.create(
        user=owner,
        group=group,
        role=GroupRole.OWNER
    )

    logger.info("Group %s created by %s (%s)", group.id, owner.id, currency)
    return group


def get_group_by_id(*, group_id: UUID) -> Group:
    """
    Get a group by ID with optimized queries.

    Args:
        group_id: UUID of the group

    Returns:
        Group instance

    Raises:
        GroupNotFoundError: If group doesn't exist
    """
    try:
        return (
            Group.objects
            .select_related('owner')
            .prefetch_related(
                Prefetch(
                    'memberships',
                    queryset=GroupMembership.objects.select_related('user')
                )
            )
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")


def get_group_for_member(*, group_id: UUID, user: User) -> Group:
    """
    Get a group the user is an active member of.

    Non-members get the same GroupNotFoundError as for a missing group, so
    group ids cannot be probed.
    """
    group = get_group_by_id(group_id=group_id)
    if not group.has_member(user):
        raise GroupNotFoundError(f"Group with ID {group_id} not found")
    return group


@transaction.atomic
def update_group(
    *,
    group_id: UUID,
    user: User,
    name: Optional[str] = None,
    description: Optional[str] = None,
    currency: Optional[str] = None
) -> tuple[Group, GroupEvent]:
    """
    Update group details (admin only).

    Uses select_for_update to prevent concurrent modifications. The
    settlement currency can only change while the group has no expenses,
    since stored settlement amounts are expressed in it.

    Returns:
        Tuple of (updated Group, GroupEvent)

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
        InsufficientPermissionsError: If user is not admin
        InvalidCurrencyError: If the currency code is not supported
        CurrencyLockedError: If the group already has expenses
    """
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

    if not group.is_admin(user):
        raise InsufficientPermissionsError("Only group admins can update the group")

    update_fields = ['updated_at']

    if name is not None:
        group.name = name
        update_fields.append('name')

    if description is not None:
        group.description = description
        update_fields.append('description')

    if currency is not None:
        code = _validated_currency(currency)
        if code != group.currency:
            if Expense.objects.filter(group=group).exists():
                raise CurrencyLockedError(
                    "Settlement currency cannot change once the group has expenses"
                )
            group.currency = code
            update_fields.append('currency')

    group.save(update_fields=update_fields)

    return group, GroupEvent(GroupEventType.GROUP_UPDATED, group.id)


@transaction.atomic
def delete_group(*, group_id: UUID, user: User) -> None:
    """
    Delete a group (owner only).

    Cascading deletes will automatically remove:
    - All memberships
    - All expenses and their splits

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
        InsufficientPermissionsError: If user is not the owner
    """
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

    # Only owner can delete
    if group.owner_id != user.id:
        raise InsufficientPermissionsError("Only the group owner can delete the group")

    logger.info("Group %s deleted by %s", group.id, user.id)
    group.delete()
