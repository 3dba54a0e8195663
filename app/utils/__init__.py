from app.utils.currency import to_minor_units, from_minor_units, quantize_amount
from app.utils.date_utils import utcnow, ensure_aware, is_expired, minutes_from_now
from app.utils.upi import validate_vpa, build_upi_uri

__all__ = [
    "to_minor_units", "from_minor_units", "quantize_amount",
    "utcnow", "ensure_aware", "is_expired", "minutes_from_now",
    "validate_vpa", "build_upi_uri",
]
