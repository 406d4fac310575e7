"""Integer arithmetic utilities for minor-unit amounts.

All amounts and balances use int (cents). No float, no Decimal.
"""

from src.pw_common.errors import InvalidAmountError

# Ledger amount columns are BIGINT
MAX_AMOUNT_CENTS = 2**63 - 1


def is_valid_amount(amount: object) -> bool:
    """A strictly positive int (not bool) that fits an amount column."""
    return (
        isinstance(amount, int)
        and not isinstance(amount, bool)
        and 0 < amount <= MAX_AMOUNT_CENTS
    )


def validate_amount(amount: int) -> None:
    """Validate that amount is a positive integer number of cents within range."""
    if not is_valid_amount(amount):
        raise InvalidAmountError(amount)


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 6500 -> '$65.00', -1200 -> '-$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"${cents // 100:,}.{cents % 100:02d}"
