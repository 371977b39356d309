from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

COUNTRY_CURRENCY: Dict[str, str] = {
    "US": "usd",
    "CA": "cad",
    "GB": "gbp",
    "AU": "aud",
    "DE": "eur",
    "FR": "eur",
    "IT": "eur",
    "ES": "eur",
    "NL": "eur",
    "BE": "eur",
    "AT": "eur",
    "FI": "eur",
    "IE": "eur",
    "PT": "eur",
    "JP": "jpy",
    "CN": "cny",
    "IN": "inr",
    "BR": "brl",
    "MX": "mxn",
}


def to_minor_units(amount: float) -> int:
    """Dollars -> cents, rounding half up (12.345 -> 1235)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def currency_for_country(country: str) -> str:
    return COUNTRY_CURRENCY.get(country.upper(), "usd")


def stripe_id(value: Any) -> Optional[str]:
    """Expandable Stripe fields are either an id string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return value.get("id")
