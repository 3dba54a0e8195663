import re
from decimal import Decimal
from urllib.parse import urlencode, quote

from app.config import VPA_PATTERN, VPA_MIN_LENGTH, VPA_MAX_LENGTH
from app.utils.currency import format_amount

_VPA_RE = re.compile(VPA_PATTERN)


def validate_vpa(vpa: str) -> bool:
    """Check a Virtual Payment Address such as ``name@bank``."""
    if not isinstance(vpa, str):
        return False
    if not VPA_MIN_LENGTH <= len(vpa) <= VPA_MAX_LENGTH:
        return False
    return _VPA_RE.match(vpa) is not None


def build_upi_uri(
    payee_vpa: str,
    payee_name: str,
    reference: str,
    amount: Decimal,
    currency: str,
) -> str:
    """Build the upi://pay deep link that QR codes and intents carry."""
    query = urlencode(
        {
            "pa": payee_vpa,
            "pn": payee_name,
            "tr": reference,
            "am": format_amount(amount),
            "cu": currency,
        },
        quote_via=quote,
        safe="@",
    )
    return f"upi://pay?{query}"
