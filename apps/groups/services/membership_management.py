"""
Membership management service.

Handles group membership operations with concurrency protection.

Every roster change locks the group row and reconciles the group's
equal-split expenses in the same transaction, so a failure anywhere rolls
back the membership change as well.
"""

import logging
from typing import Optional
from uuid import UUID

from django.db import transaction, IntegrityError
from django.db.models import QuerySet

from apps.accounts.models import User
from apps.expenses.models import Expense, ExpenseSplit, SplitType
from apps.expenses.services.reconciliation import (
    ReconciliationResult,
    reconcile_equal_splits,
)
from apps.groups.events import GroupEvent, GroupEventType
from apps.groups.models import ACTIVE_ROLES, Group, GroupMembership, GroupRole

from .exceptions import (
    GroupNotFoundError,
    UserNotFoundError,
    AlreadyMemberError,
    NotMemberError,
    InvitationNotFoundError,
    OwnerCannotLeaveError,
    CannotRemoveOwnerError,
    InsufficientPermissionsError,
    MemberHasExpensesError,
)

logger = logging.getLogger(__name__)


def _lock_group(group_id: UUID) -> Group:
    try:
        return (
            Group.objects
            .select_for_update()
            .get(id=group_id)
        )
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")


def _lock_group_for_admin(group_id: UUID, user: User, action: str) -> Group:
    group = _lock_group(group_id)

    if not group.has_member(user):
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.is_admin(user):
        raise InsufficientPermissionsError(f"Only group admins can {action}")

    return group


def _ensure_no_expense_history(group: Group, user_id: UUID) -> None:
    # Equal shares are recomputed on departure, payments and percentage rows are not
    paid = Expense.objects.filter(group=group, paid_by_id=user_id).exists()
    holds_percentage_share = ExpenseSplit.objects.filter(
        expense__group=group,
        expense__split_type=SplitType.PERCENTAGE,
        user_id=user_id
    ).exists()

    if paid or holds_percentage_share:
        raise MemberHasExpensesError(
            "Member has paid for or holds a percentage share of an expense. "
            "Reassign or delete those expenses first."
        )


def _resolve_user(*, user_id: Optional[UUID], email: Optional[str]) -> User:
    try:
        if user_id is not None:
            return User.objects.get(id=user_id, is_active=True)
        return User.objects.get(email__iexact=(email or '').strip(), is_active=True)
    except User.DoesNotExist:
        raise UserNotFoundError("User not found")


@transaction.atomic
def add_member(
    *,
    group_id: UUID,
    added_by: User,
    user_id: Optional[UUID] = None,
    email: Optional[str] = None
) -> tuple[GroupMembership, ReconciliationResult, GroupEvent]:
    """
    Add an existing user to a group (admin only).

    The user is identified by ``user_id`` or ``email``. A pending invitation
    slot for the user is promoted instead of creating a second row. Equal
    splits of the group are recomputed over the new roster.

    Args:
        group_id: UUID of the group
        added_by: User performing the addition (must be admin)
        user_id: UUID of the user to add
        email: Email of the user to add, when user_id is not given

    Returns:
        Tuple of (GroupMembership, ReconciliationResult, GroupEvent)

    Raises:
        GroupNotFoundError: If group doesn't exist or added_by is not a member
        InsufficientPermissionsError: If added_by is not admin
        UserNotFoundError: If no active user matches
        AlreadyMemberError: If the user is already an active member
    """
    group = _lock_group_for_admin(group_id, added_by, 'add members')
    user = _resolve_user(user_id=user_id, email=email)

    if group.has_member(user):
        raise AlreadyMemberError(f"User is already a member of {group.name}")

    pending = _find_pending_slot(group, user)
    if pending is not None:
        membership = _activate(pending, user)
    else:
        try:
            # Savepoint keeps the outer transaction usable after a constraint error
            with transaction.atomic():
                membership = GroupMembership.objects.create(
                    user=user,
                    group=group,
                    role=GroupRole.MEMBER,
                    invited_by=added_by
                )
        except IntegrityError:
            raise AlreadyMemberError(f"User is already a member of {group.name}")

    reconciliation = reconcile_equal_splits(group=group)

    logger.info("User %s added to group %s by %s", user.id, group.id, added_by.id)
    return membership, reconciliation, GroupEvent(GroupEventType.MEMBER_ADDED, group.id)


def _find_pending_slot(group: Group, user: User) -> Optional[GroupMembership]:
    return (
        GroupMembership.objects
        .select_for_update()
        .filter(group=group, role=GroupRole.PENDING)
        .filter(user=user)
        .first()
    ) or (
        GroupMembership.objects
        .select_for_update()
        .filter(group=group, role=GroupRole.PENDING, invited_email__iexact=user.email)
        .first()
    )


def _activate(membership: GroupMembership, user: User) -> GroupMembership:
    membership.user = user
    membership.role = GroupRole.MEMBER
    membership.save(update_fields=['user', 'role'])
    return membership


@transaction.atomic
def invite_member(
    *,
    group_id: UUID,
    email: str,
    invited_by: User
) -> tuple[GroupMembership, GroupEvent]:
    """
    Reserve a pending slot for an email address (admin only).

    The slot takes no part in splits or balances until it is accepted. When
    an account with the email already exists it is linked to the slot.
    Sending the invitation email is left to the caller.

    Raises:
        GroupNotFoundError: If group doesn't exist or invited_by is not a member
        InsufficientPermissionsError: If invited_by is not admin
        AlreadyMemberError: If the email is already a member or invited
    """
    group = _lock_group_for_admin(group_id, invited_by, 'invite members')
    email = (email or '').strip().lower()

    existing_user = User.objects.filter(email__iexact=email).first()
    if existing_user is not None and group.memberships.filter(user=existing_user).exists():
        raise AlreadyMemberError(f"{email} is already a member of {group.name}")

    if group.memberships.filter(invited_email__iexact=email).exists():
        raise AlreadyMemberError(f"{email} has already been invited to {group.name}")

    try:
        with transaction.atomic():
            membership = GroupMembership.objects.create(
                user=existing_user,
                group=group,
                role=GroupRole.PENDING,
                invited_email=email,
                invited_by=invited_by
            )
    except IntegrityError:
        raise AlreadyMemberError(f"{email} has already been invited to {group.name}")

    logger.info("Invitation for %s created in group %s by %s", email, group.id, invited_by.id)
    return membership, GroupEvent(GroupEventType.MEMBER_INVITED, group.id)


@transaction.atomic
def accept_invitation(
    *,
    group_id: UUID,
    user: User
) -> tuple[GroupMembership, ReconciliationResult, GroupEvent]:
    """
    Turn the user's pending slot into an active membership.

    Raises:
        GroupNotFoundError: If group doesn't exist
        AlreadyMemberError: If the user is already an active member
        InvitationNotFoundError: If there is no pending slot for the user
    """
    group = _lock_group(group_id)

    if group.has_member(user):
        raise AlreadyMemberError(f"User is already a member of {group.name}")

    pending = _find_pending_slot(group, user)
    if pending is None:
        raise InvitationNotFoundError("No pending invitation for this group")

    membership = _activate(pending, user)
    reconciliation = reconcile_equal_splits(group=group)

    logger.info("User %s accepted invitation to group %s", user.id, group.id)
    return membership, reconciliation, GroupEvent(GroupEventType.MEMBER_JOINED, group.id)


@transaction.atomic
def revoke_invitation(
    *,
    group_id: UUID,
    invitation_id: UUID,
    revoked_by: User
) -> GroupEvent:
    """
    Delete a pending invitation slot (admin only).

    Works for email-only invitations that have no linked user.

    Raises:
        GroupNotFoundError: If group doesn't exist or revoked_by is not a member
        InsufficientPermissionsError: If revoked_by is not admin
        InvitationNotFoundError: If no pending slot with that id exists in the group
    """
    group = _lock_group_for_admin(group_id, revoked_by, 'revoke invitations')

    try:
        invitation = (
            GroupMembership.objects
            .select_for_update()
            .get(id=invitation_id, group=group, role=GroupRole.PENDING)
        )
    except GroupMembership.DoesNotExist:
        raise InvitationNotFoundError("Invitation not found")

    invitation.delete()

    logger.info(
        "Invitation %s for %s revoked in group %s by %s",
        invitation_id, invitation.invited_email, group.id, revoked_by.id
    )
    return GroupEvent(GroupEventType.INVITATION_REVOKED, group.id)


@transaction.atomic
def leave_group(*, group_id: UUID, user: User) -> tuple[ReconciliationResult, GroupEvent]:
    """
    Leave a group.

    Owner cannot leave their own group - they must delete it instead.
    Equal splits are recomputed over the remaining members.

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
        OwnerCannotLeaveError: If user is the owner
        MemberHasExpensesError: If user paid an expense or holds a percentage share
    """
    group = _lock_group(group_id)

    if not group.has_member(user):
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    # Owner cannot leave
    if group.owner_id == user.id:
        raise OwnerCannotLeaveError(
            "Group owner cannot leave. Delete the group instead."
        )

    _ensure_no_expense_history(group, user.id)

    GroupMembership.objects.filter(group=group, user=user).delete()
    reconciliation = reconcile_equal_splits(group=group)

    logger.info("User %s left group %s", user.id, group.id)
    return reconciliation, GroupEvent(GroupEventType.MEMBER_LEFT, group.id)


@transaction.atomic
def remove_member(
    *,
    group_id: UUID,
    user_id: UUID,
    removed_by: User
) -> tuple[ReconciliationResult, GroupEvent]:
    """
    Remove a member from a group (admin only).

    Cannot remove the group owner. Equal splits are recomputed over the
    remaining members.

    Raises:
        GroupNotFoundError: If group doesn't exist or removed_by is not a member
        InsufficientPermissionsError: If removed_by is not admin
        CannotRemoveOwnerError: If trying to remove the owner
        NotMemberError: If target user is not in the group
        MemberHasExpensesError: If the user paid an expense or holds a percentage share
    """
    group = _lock_group_for_admin(group_id, removed_by, 'remove members')

    # Cannot remove owner
    if str(group.owner_id) == str(user_id):
        raise CannotRemoveOwnerError("Cannot remove the group owner")

    try:
        membership = (
            GroupMembership.objects
            .select_for_update()
            .get(group=group, user_id=user_id)
        )
    except GroupMembership.DoesNotExist:
        raise NotMemberError("User is not a member of this group")

    _ensure_no_expense_history(group, membership.user_id)

    membership.delete()
    reconciliation = reconcile_equal_splits(group=group)

    logger.info("User %s removed from group %s by %s", user_id, group.id, removed_by.id)
    return reconciliation, GroupEvent(GroupEventType.MEMBER_REMOVED, group.id)


def get_group_members(
    *,
    group_id: UUID,
    user: User,
    include_pending: bool = True
) -> QuerySet[GroupMembership]:
    """
    Get the members of a group the user belongs to.

    Raises:
        GroupNotFoundError: If group doesn't exist or user is not a member
    """
    try:
        group = Group.objects.get(id=group_id)
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.has_member(user):
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    memberships = (
        GroupMembership.objects
        .filter(group=group)
        .select_related('user', 'invited_by')
        .order_by('joined_at')
    )
    if not include_pending:
        memberships = memberships.filter(role__in=ACTIVE_ROLES)
    return memberships
