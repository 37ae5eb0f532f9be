# cardrecon/core/normalizers.py

"""
Normalization utilities for imported statement rows.

Ensures card identifiers and bank charge flags look the same regardless of
which bank or card issuer produced the file.
"""

from typing import Optional
import re

# Keywords that mark a bank line as a credit-card aggregate charge
CARD_CHARGE_KEYWORDS = [
    "כרטיס",           # card
    "ויזא",            # Visa
    "ויזה",            # Visa (alternative spelling)
    "visa",
    "מאסטרקארד",       # Mastercard
    "mastercard",
    "אמריקן אקספרס",   # American Express
    "amex",
    "ישראכרט",         # Isracard
    "לאומי קארד",      # Leumi Card
    "מקס",             # Max
    "כאל",             # Cal
    "חיוב לכרטיס",     # charge to card
]

_FOUR_DIGITS = re.compile(r'\d{4}')
_NON_DIGITS = re.compile(r'\D')


def normalize_card_identifier(card: Optional[str]) -> Optional[str]:
    """
    Reduce a card number or masked card ("**** 1234", "4580-1234") to its
    last four digits. Values with fewer than four digits are kept stripped.
    """
    if card is None:
        return None

    digits = _NON_DIGITS.sub("", card)
    if len(digits) >= 4:
        return digits[-4:]

    stripped = card.strip()
    return stripped or None


def is_card_charge_description(description: Optional[str]) -> bool:
    """True when a bank description names a card issuer."""
    if not description:
        return False

    lowered = description.lower()
    return any(keyword in lowered for keyword in CARD_CHARGE_KEYWORDS)


def detect_card_last_four(description: Optional[str]) -> Optional[str]:
    """
    Card last four digits of a bank card-charge line.

    Returns None when the description is not a card charge or carries no
    four-digit run. The last run wins ("ויזה 4580 1234" -> "1234").
    """
    if not is_card_charge_description(description):
        return None

    runs = _FOUR_DIGITS.findall(description)
    return runs[-1] if runs else None


def normalize_string(s: Optional[str]) -> str:
    """
    Normalize free text for comparison.

    - Trim
    - Collapse whitespace
    """
    if not s:
        return ""

    return re.sub(r'\s+', ' ', s).strip()
