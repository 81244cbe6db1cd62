"""
Expenses app services layer.

Split calculation and balance aggregation are pure computations; expense
writes and reconciliation run inside transactions holding the group row lock.
"""

from .exceptions import (
    ExpensesServiceError,
    InvalidSplitError,
    InvalidExpenseError,
    InvalidCurrencyError,
    ExpenseNotFoundError,
    GroupNotFoundError,
    InsufficientPermissionsError,
)

from .split_calculation import (
    compute_splits,
    compute_equal_splits,
    compute_percentage_splits,
    validate_percentages,
)

from .currency_conversion import (
    ExchangeRateResolver,
    OpenExchangeRatesClient,
    RateCache,
    get_rate_resolver,
)

from .reconciliation import (
    ReconciliationResult,
    reconcile_equal_splits,
    get_active_member_ids,
)

from .balances import (
    MemberBalance,
    aggregate_balances,
    compute_balances,
    balance_summary,
)

from .expense_management import (
    create_expense,
    update_expense,
    delete_expense,
    get_expense,
    list_group_expenses,
)


__all__ = [
    # Exceptions
    'ExpensesServiceError',
    'InvalidSplitError',
    'InvalidExpenseError',
    'InvalidCurrencyError',
    'ExpenseNotFoundError',
    'GroupNotFoundError',
    'InsufficientPermissionsError',

    # Split Calculation
    'compute_splits',
    'compute_equal_splits',
    'compute_percentage_splits',
    'validate_percentages',

    # Currency Conversion
    'ExchangeRateResolver',
    'OpenExchangeRatesClient',
    'RateCache',
    'get_rate_resolver',

    # Reconciliation
    'ReconciliationResult',
    'reconcile_equal_splits',
    'get_active_member_ids',

    # Balances
    'MemberBalance',
    'aggregate_balances',
    'compute_balances',
    'balance_summary',

    # Expense Management
    'create_expense',
    'update_expense',
    'delete_expense',
    'get_expense',
    'list_group_expenses',
]
