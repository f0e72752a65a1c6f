import re
from typing import Any, Optional, Sequence
from decimal import Decimal, InvalidOperation


class ValidationUtils:
    """
    Input validation for cart and pricing operations

    Features:
    - Identifier and quantity checks
    - Lenient price parsing (numbers or numeric strings)
    - Currency code validation
    """

    PATTERNS = {
        'currency': re.compile(r'^[A-Z]{3}$'),
    }

    MAX_QUANTITY = 99

    @classmethod
    def validate_identifier(cls, value: Any) -> bool:
        """Positive integer identifiers (product, variant, size)"""
        return isinstance(value, int) and not isinstance(value, bool) and value > 0

    @classmethod
    def validate_quantity(cls, quantity: Any, max_quantity: int = MAX_QUANTITY) -> bool:
        """Validate item quantity"""
        return cls.validate_identifier(quantity) and quantity <= max_quantity

    @classmethod
    def parse_price(cls, value: Any) -> Optional[Decimal]:
        """
        Parse a price given as number or string

        Returns None for missing or unparseable values rather than raising,
        so callers can render the zero value.
        """
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, Decimal):
            parsed = value
        else:
            try:
                parsed = Decimal(str(value).strip())
            except (InvalidOperation, ValueError):
                return None
        if not parsed.is_finite():
            return None
        return parsed

    @classmethod
    def normalize_currency(cls, code: Optional[str], supported: Sequence[str]) -> str:
        """Upper-case a currency code and check it is supported"""
        normalized = (code or '').strip().upper()
        if not cls.PATTERNS['currency'].match(normalized):
            raise ValueError(f"Invalid currency code: {code!r}")
        if normalized not in supported:
            raise ValueError(f"Unsupported currency: {normalized}")
        return normalized
