"""
Groups app services layer.

Services contain business logic and orchestrate operations across models.
All state-changing operations use transactions and concurrency protection.
"""

from .exceptions import (
    GroupsServiceError,
    GroupNotFoundError,
    UserNotFoundError,
    AlreadyMemberError,
    NotMemberError,
    InvitationNotFoundError,
    OwnerCannotLeaveError,
    CannotChangeOwnerRoleError,
    CannotRemoveOwnerError,
    InvalidRoleError,
    InvalidCurrencyError,
    CurrencyLockedError,
    InsufficientPermissionsError,
    MemberHasExpensesError,
)

from .group_management import (
    create_group,
    update_group,
    delete_group,
    get_group_by_id,
    get_group_for_member,
)

from .membership_management import (
    add_member,
    invite_member,
    accept_invitation,
    revoke_invitation,
    leave_group,
    remove_member,
    get_group_members,
)

from .role_management import (
    update_member_role,
)


__all__ = [
    # Exceptions
    'GroupsServiceError',
    'GroupNotFoundError',
    'UserNotFoundError',
    'AlreadyMemberError',
    'NotMemberError',
    'InvitationNotFoundError',
    'OwnerCannotLeaveError',
    'CannotChangeOwnerRoleError',
    'CannotRemoveOwnerError',
    'InvalidRoleError',
    'InvalidCurrencyError',
    'CurrencyLockedError',
    'InsufficientPermissionsError',
    'MemberHasExpensesError',

    # Group Management
    'create_group',
    'update_group',
    'delete_group',
    'get_group_by_id',
    'get_group_for_member',

    # Membership Management
    'add_member',
    'invite_member',
    'accept_invitation',
    'revoke_invitation',
    'leave_group',
    'remove_member',
    'get_group_members',

    # Role Management
    'update_member_role',
]
