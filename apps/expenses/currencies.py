"""
ISO 4217 currency codes accepted for group settlement and expense amounts.

The list mirrors the currencies offered by the rate provider's free tier that
the clients expose in their currency pickers.
"""

SUPPORTED_CURRENCIES = (
    'AED', 'ARS', 'AUD', 'BGN', 'BRL', 'CAD', 'CHF', 'CLP', 'CNY', 'COP',
    'CZK', 'DKK', 'EGP', 'EUR', 'GBP', 'HKD', 'HUF', 'IDR', 'ILS', 'INR',
    'ISK', 'JPY', 'KES', 'KRW', 'MAD', 'MXN', 'MYR', 'NGN', 'NOK', 'NZD',
    'PEN', 'PHP', 'PKR', 'PLN', 'RON', 'RUB', 'SAR', 'SEK', 'SGD', 'THB',
    'TRY', 'TWD', 'UAH', 'USD', 'VND', 'ZAR',
)

CURRENCY_CHOICES = [(code, code) for code in SUPPORTED_CURRENCIES]


def normalize_currency(code):
    """Upper-case and strip a currency code; returns '' for empty input."""
    return (code or '').strip().upper()


def is_supported_currency(code):
    return normalize_currency(code) in SUPPORTED_CURRENCIES
