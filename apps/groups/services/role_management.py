"""
Role management service.

Handles member role updates with concurrency protection.
"""

from uuid import UUID

from django.db import transaction

from apps.accounts.models import User
from apps.groups.events import GroupEvent, GroupEventType
from apps.groups.models import Group, GroupMembership, GroupRole

from .exceptions import (
    GroupNotFoundError,
    NotMemberError,
    CannotChangeOwnerRoleError,
    InsufficientPermissionsError,
    InvalidRoleError,
)


@transaction.atomic
def update_member_role(
    *,
    group_id: UUID,
    user_id: UUID,
    new_role: str,
    updated_by: User
) -> tuple[GroupMembership, GroupEvent]:
    """
    Update a member's role (admin only).

    Only admin and member can be assigned. The owner role can neither be
    granted nor taken away, and pending invitation slots keep their role
    until accepted.

    Args:
        group_id: UUID of the group
        user_id: UUID of the user whose role to update
        new_role: New role ('admin' or 'member')
        updated_by: User performing the update (must be admin)

    Returns:
        Tuple of (updated GroupMembership, GroupEvent)

    Raises:
        InvalidRoleError: If new_role is not assignable
        GroupNotFoundError: If group doesn't exist or updated_by is not a member
        InsufficientPermissionsError: If updated_by is not admin
        NotMemberError: If target user is not an active member
        CannotChangeOwnerRoleError: If trying to change owner's role
    """
    valid_roles = [GroupRole.ADMIN, GroupRole.MEMBER]
    if new_role not in valid_roles:
        raise InvalidRoleError(f"Invalid role. Must be one of: {[r.value for r in valid_roles]}")

    try:
        group = (
            Group.objects
            .select_for_update()
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.has_member(updated_by):
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.is_admin(updated_by):
        raise InsufficientPermissionsError("Only group admins can update member roles")

    # Row lock prevents concurrent updates
    try:
        membership = (
            GroupMembership.objects
            .select_for_update()
            .get(group=group, user_id=user_id)
        )
    except GroupMembership.DoesNotExist:
        raise NotMemberError("User is not a member of this group")

    if membership.role == GroupRole.OWNER:
        raise CannotChangeOwnerRoleError("Cannot change the owner's role")

    if membership.is_pending:
        raise NotMemberError("User has not joined this group yet")

    membership.role = new_role
    membership.save(update_fields=['role'])

    return membership, GroupEvent(GroupEventType.MEMBER_ROLE_UPDATED, group.id)
