# cardrecon/core/merchants.py

"""
Merchant name normalization.

Turns raw statement descriptions ("FACEBK *94ED4BD5F2", "Uber -878873220XYZ",
"הו"ק נטפליקס") into a canonical merchant key so that superficially different
descriptions of the same vendor group together. Per-owner aliases take
precedence over the built-in abbreviation table.
"""

from collections import OrderedDict
from typing import Iterable, Optional
import re

from cardrecon.models import MerchantAlias, MerchantGroup, PurchaseRecord


# Common merchant abbreviations and their full names
MERCHANT_ABBREVIATIONS: dict[str, str] = {
    "facebk": "Facebook",
    "fb": "Facebook",
    "amzn": "Amazon",
    "amazn": "Amazon",
    "google": "Google",
    "googl": "Google",
    "msft": "Microsoft",
    "spotify": "Spotify",
    "netflix": "Netflix",
    "nflx": "Netflix",
    "uber": "Uber",
    "lyft": "Lyft",
    "paypal": "PayPal",
    "pp": "PayPal",
    "dropbox": "Dropbox",
    "slack": "Slack",
    "zoom": "Zoom",
    "adobe": "Adobe",
    "canva": "Canva",
    "shopify": "Shopify",
    "wix": "Wix",
    "godaddy": "GoDaddy",
    "namecheap": "Namecheap",
    "cloudflare": "Cloudflare",
    "digitalocean": "DigitalOcean",
    "heroku": "Heroku",
    "github": "GitHub",
    "gitlab": "GitLab",
    "notion": "Notion",
    "figma": "Figma",
    "linkedin": "LinkedIn",
    "twitter": "Twitter",
    "x": "X (Twitter)",
    "tiktok": "TikTok",
    "upwork": "Upwork",
    "fiverr": "Fiverr",
    "stripe": "Stripe",
    "square": "Square",
    "intuit": "Intuit",
    "quickbooks": "QuickBooks",
    "xero": "Xero",
    "mailchimp": "Mailchimp",
    "sendgrid": "SendGrid",
    "twilio": "Twilio",
    "aws": "Amazon Web Services",
    "gcp": "Google Cloud",
    "azure": "Microsoft Azure",
}

# Lowercased canonical forms, keyed by themselves and by every abbreviation
_CANONICAL_KEYS: dict[str, str] = {}
for _abbrev, _full in MERCHANT_ABBREVIATIONS.items():
    _CANONICAL_KEYS[_abbrev] = _full.lower()
    _CANONICAL_KEYS[_full.lower()] = _full.lower()

# Leading bank phrases, tried in order
PREFIX_PATTERNS = [
    re.compile(r'^העברה\s+ל-?\s*'),        # transfer to
    re.compile(r'^תשלום\s+ל-?\s*'),        # payment to
    re.compile(r'^הו"ק\s*'),               # standing order
    re.compile(r"^הו''ק\s*"),              # standing order, doubled quotes
    re.compile(r'^הפקדה\s*-?\s*'),         # deposit
    re.compile(r'^משיכת מזומן\s*-?\s*'),   # cash withdrawal
    re.compile(r'^כרטיס אשראי\s*-?\s*'),   # credit card
    re.compile(r'^ת\. זכות\s*'),           # credit note
    re.compile(r'^ת\. חובה\s*'),           # debit note
    re.compile(r'^העברת\s*'),              # transfer
    re.compile(r'^חיוב\s*'),               # charge
    re.compile(r'^זיכוי\s*'),              # credit
]

_STAR_REFERENCE = re.compile(r'\s*\*[A-Z0-9]+$', re.IGNORECASE)
_DASH_REFERENCE = re.compile(r'\s*-[A-Z0-9]{6,}$', re.IGNORECASE)
_DASH_DIGIT_SPLIT = re.compile(r'\s*[-–]\s*\d')
_WIDE_GAP_SPLIT = re.compile(r'\s{2,}')
_TRAILING_PAREN_NUMBER = re.compile(r'\s*\([^)]*\d+[^)]*\)\s*$')
_TRAILING_STARS = re.compile(r'\s*\*+\s*\d*\s*$')
_KEY_PUNCTUATION = re.compile(r'[\'"״׳\-_.]')
_WHITESPACE = re.compile(r'\s+')


# ============================================
# Aliases
# ============================================

def matches_alias(description: str, alias: MerchantAlias) -> bool:
    """Case-insensitive check of a raw description against one alias."""
    if not description or not alias.alias_pattern:
        return False

    text = description.upper().strip()
    pattern = alias.alias_pattern.upper().strip()
    if not pattern:
        return False

    if alias.match_type == "exact":
        return text == pattern
    if alias.match_type == "prefix":
        return text.startswith(pattern)
    if alias.match_type == "suffix":
        return text.endswith(pattern)
    return pattern in text


def resolve_alias(
    description: str,
    aliases: Optional[Iterable[MerchantAlias]],
) -> Optional[MerchantAlias]:
    """Highest-priority alias matching the description, if any."""
    if not description or not aliases:
        return None

    ranked = sorted(aliases, key=lambda a: a.priority, reverse=True)
    for alias in ranked:
        if matches_alias(description, alias):
            return alias
    return None


# ============================================
# Parsing and keys
# ============================================

def _strip_description(description: str) -> str:
    merchant = description.strip()

    for prefix in PREFIX_PATTERNS:
        merchant = prefix.sub("", merchant)

    # Reference codes: "FACEBK *94ED4BD5F2", "Upwork -878873220REF"
    merchant = _STAR_REFERENCE.sub("", merchant)
    merchant = _DASH_REFERENCE.sub("", merchant)

    # Trailing metadata after "- 123" or a wide gap
    merchant = _DASH_DIGIT_SPLIT.split(merchant)[0]
    merchant = _WIDE_GAP_SPLIT.split(merchant)[0]

    merchant = _TRAILING_PAREN_NUMBER.sub("", merchant)
    merchant = _TRAILING_STARS.sub("", merchant)

    return merchant.strip()


def parse_merchant_name(
    description: str,
    aliases: Optional[Iterable[MerchantAlias]] = None,
) -> str:
    """
    Clean a raw description down to a display merchant name.

    An owner alias wins outright; otherwise prefixes, reference codes and
    trailing metadata are stripped and known abbreviations expanded.
    """
    if not description:
        return ""

    alias = resolve_alias(description, aliases)
    if alias:
        return alias.canonical_name

    merchant = _strip_description(description)

    lower = merchant.lower()
    if lower in MERCHANT_ABBREVIATIONS:
        return MERCHANT_ABBREVIATIONS[lower]

    words = lower.split()
    if words and words[0] in MERCHANT_ABBREVIATIONS:
        return MERCHANT_ABBREVIATIONS[words[0]]

    return merchant or description.strip()


def _clean_key(name: str) -> str:
    key = _KEY_PUNCTUATION.sub("", name.lower())
    return _WHITESPACE.sub(" ", key).strip()


def merchant_key(
    description: str,
    aliases: Optional[Iterable[MerchantAlias]] = None,
) -> str:
    """
    Grouping key for a description. Equal keys mean the same merchant.

    Known abbreviations and their expansions collapse onto the expansion.
    """
    if not description:
        return ""

    aliases = list(aliases or [])
    alias = resolve_alias(description, aliases)
    if alias:
        return _clean_key(alias.canonical_name)

    parsed = parse_merchant_name(description)
    canonical = _CANONICAL_KEYS.get(parsed.lower())
    if canonical:
        return canonical

    return _clean_key(parsed)


def is_same_merchant(
    first: str,
    second: str,
    aliases: Optional[Iterable[MerchantAlias]] = None,
) -> bool:
    aliases = list(aliases or [])
    return merchant_key(first, aliases) == merchant_key(second, aliases)


# ============================================
# Grouping
# ============================================

def group_by_merchant(
    purchases: list[PurchaseRecord],
    aliases: Optional[Iterable[MerchantAlias]] = None,
) -> list[MerchantGroup]:
    """
    Bucket purchases by merchant key.

    Groups are ordered by total amount (largest first), then key.
    """
    aliases = list(aliases or [])
    buckets: "OrderedDict[str, list[PurchaseRecord]]" = OrderedDict()
    names: dict[str, str] = {}

    for purchase in purchases:
        key = merchant_key(purchase.merchant_name, aliases)
        buckets.setdefault(key, []).append(purchase)
        names.setdefault(key, parse_merchant_name(purchase.merchant_name, aliases))

    groups = [
        MerchantGroup(
            merchant_key=key,
            display_name=names[key],
            purchase_count=len(members),
            total_minor=sum(p.effective_amount for p in members),
            purchase_ids=[p.id for p in members],
        )
        for key, members in buckets.items()
    ]
    groups.sort(key=lambda g: (-g.total_minor, g.merchant_key))
    return groups
