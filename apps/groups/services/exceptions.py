"""
Domain-specific exceptions for groups app.

These exceptions represent business rule violations and should be
caught in views and converted to appropriate HTTP responses.
"""


class GroupsServiceError(Exception):
    """Base exception for all groups service errors."""
    pass


class GroupNotFoundError(GroupsServiceError):
    """Raised when a group does not exist or is inaccessible."""
    pass


class UserNotFoundError(GroupsServiceError):
    """Raised when the user to add does not exist."""
    pass


class AlreadyMemberError(GroupsServiceError):
    """Raised when a user is already in the group (or already invited)."""
    pass


class NotMemberError(GroupsServiceError):
    """Raised when a user tries to perform an action requiring membership."""
    pass


class InvitationNotFoundError(GroupsServiceError):
    """Raised when there is no pending invitation for the user's email."""
    pass


class OwnerCannotLeaveError(GroupsServiceError):
    """Raised when a group owner tries to leave their group."""
    pass


class CannotChangeOwnerRoleError(GroupsServiceError):
    """Raised when attempting to change the owner's role."""
    pass


class CannotRemoveOwnerError(GroupsServiceError):
    """Raised when attempting to remove the group owner."""
    pass


class InvalidRoleError(GroupsServiceError):
    """Raised when a role outside the assignable set is requested."""
    pass


class InvalidCurrencyError(GroupsServiceError):
    """Raised for an unsupported settlement currency code."""
    pass


class CurrencyLockedError(GroupsServiceError):
    """Raised when changing the settlement currency of a group with expenses."""
    pass


class InsufficientPermissionsError(GroupsServiceError):
    """Raised when a user lacks required permissions for an action."""
    pass


class MemberHasExpensesError(GroupsServiceError):
    """Raised when a member who paid an expense or holds a percentage share would leave."""
    pass
