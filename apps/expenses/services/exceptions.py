"""
Domain exceptions for the expenses app.

Validation errors are raised before anything is written; views map the
hierarchy to HTTP responses.
"""


class ExpensesServiceError(Exception):
    """Base exception for expense service errors."""
    pass


class InvalidSplitError(ExpensesServiceError):
    """Raised when split allocations break the rules for their split type."""
    pass


class InvalidExpenseError(ExpensesServiceError):
    """Raised for an invalid expense (non-positive amount, payer outside the group)."""
    pass


class InvalidCurrencyError(ExpensesServiceError):
    """Raised for a currency code outside the supported set."""
    pass


class ExpenseNotFoundError(ExpensesServiceError):
    """Raised when an expense does not exist in the given group."""
    pass


class GroupNotFoundError(ExpensesServiceError):
    """Raised when the group does not exist or the caller is not an active member."""
    pass


class InsufficientPermissionsError(ExpensesServiceError):
    """Raised when a member may not modify an expense."""
    pass
