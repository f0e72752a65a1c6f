from typing import Optional
from decimal import Decimal, ROUND_HALF_UP


CENT = Decimal("0.01")


class FormattingUtils:
    """
    Display formatting for prices and identifiers

    Features:
    - Money formatting with per-currency symbols
    - Price ranges
    - Percentage formatting
    - Token masking for logs
    """

    CURRENCY_SYMBOLS = {
        'MXN': '$',
        'USD': '$',
        'EUR': '€',
    }
    DEFAULT_SYMBOL = '$'

    MASKED_TOKEN_LENGTH = 12

    @classmethod
    def symbol_for(cls, currency: str) -> str:
        return cls.CURRENCY_SYMBOLS.get((currency or '').upper(), cls.DEFAULT_SYMBOL)

    @classmethod
    def round_money(cls, amount: Decimal) -> Decimal:
        """Round to cents, halves away from zero"""
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)

    @classmethod
    def zero_price(cls, currency: str) -> str:
        return f"{cls.symbol_for(currency)}0.00"

    @classmethod
    def format_money(
        cls,
        amount: Decimal,
        currency: str = 'MXN',
        include_currency_code: bool = False
    ) -> str:
        """
        Format an amount for display

        Examples:
            format_money(Decimal("15"), 'MXN') -> "$15.00"
            format_money(Decimal("9.5"), 'EUR', include_currency_code=True) -> "€9.50 EUR"
        """
        if amount is None or amount <= 0:
            result = cls.zero_price(currency)
        else:
            result = f"{cls.symbol_for(currency)}{cls.round_money(amount):.2f}"

        if include_currency_code:
            result = f"{result} {currency.upper()}"

        return result

    @classmethod
    def format_price_range(cls, low: Decimal, high: Decimal, currency: str = 'MXN') -> str:
        """
        Format a min-max range, collapsing to one price when both ends match

        Examples:
            format_price_range(Decimal("10"), Decimal("12"), 'USD') -> "$10.00 - $12.00"
        """
        if cls.round_money(low) == cls.round_money(high):
            return cls.format_money(low, currency)
        return f"{cls.format_money(low, currency)} - {cls.format_money(high, currency)}"

    @classmethod
    def format_percentage(cls, percentage: Decimal, decimal_places: int = 0) -> str:
        """
        Format a 0-100 percentage

        Examples:
            format_percentage(Decimal("25")) -> "25%"
            format_percentage(Decimal("12.5"), 1) -> "12.5%"
        """
        return f"{percentage:.{decimal_places}f}%"

    @classmethod
    def mask_token(cls, token: Optional[str]) -> str:
        """Shorten a token for logs"""
        if not token:
            return "none"
        if len(token) <= cls.MASKED_TOKEN_LENGTH:
            return token
        return token[:cls.MASKED_TOKEN_LENGTH] + "..."
