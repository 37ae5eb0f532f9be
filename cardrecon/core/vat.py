# cardrecon/core/vat.py

"""
VAT helpers for VAT-inclusive amounts in integer minor units.

Rounding is half-up on the magnitude (0.5 minor units always rounds away
from zero). Both helpers work on the absolute value of the total.
"""

from decimal import Decimal, ROUND_HALF_UP


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def vat_from_inclusive_total(total_minor: int, rate_percent: float) -> int:
    """
    VAT component of a VAT-inclusive total.

    VAT = |total| * rate / (100 + rate). Returns 0 for a rate <= 0.
    """
    if not rate_percent or rate_percent <= 0:
        return 0
    rate = Decimal(str(rate_percent))
    return _round_half_up(Decimal(abs(total_minor)) * rate / (Decimal(100) + rate))


def net_from_inclusive_total(total_minor: int, rate_percent: float) -> int:
    """
    Net (pre-VAT) component of a VAT-inclusive total.

    NET = |total| * 100 / (100 + rate). Returns the input unchanged for a
    rate <= 0.
    """
    if not rate_percent or rate_percent <= 0:
        return total_minor
    rate = Decimal(str(rate_percent))
    return _round_half_up(Decimal(abs(total_minor)) * Decimal(100) / (Decimal(100) + rate))
