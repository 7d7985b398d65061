"""
Mobile number canonicalization.

Every phone target is stored and compared as "+<country code><number>", so
"98765 43210", "098765-43210" and "+919876543210" all resolve to the same
OTP record.
"""
import re

DEFAULT_COUNTRY_CODE = "91"
DEFAULT_LEADING_DIGITS = "6789"
NATIONAL_LENGTH = 10

_SEPARATORS = re.compile(r"[\s\-()]+")


def normalize(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    digits = _SEPARATORS.sub("", raw or "")

    if digits.startswith("+"):
        return digits

    # Bare country code only when the remainder is a full national number,
    # otherwise a local number that happens to start with "91" would be eaten.
    if digits.startswith(country_code) and len(digits) == len(country_code) + NATIONAL_LENGTH:
        return "+" + digits

    if digits.startswith("0"):
        digits = digits[1:]

    return f"+{country_code}{digits}"


def is_valid_mobile(
    raw: str,
    country_code: str = DEFAULT_COUNTRY_CODE,
    leading_digits: str = DEFAULT_LEADING_DIGITS,
) -> bool:
    if not isinstance(raw, str):
        return False
    canonical = normalize(raw, country_code)
    pattern = rf"\+{re.escape(country_code)}[{re.escape(leading_digits)}]\d{{{NATIONAL_LENGTH - 1}}}"
    return re.fullmatch(pattern, canonical) is not None


def format_for_display(canonical: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    Mask a canonical number for UI and logs: "+919876543210" -> "+91 98*******0".
    Keeps the first two national digits and the last one.
    """
    prefix = "+" + country_code
    if not canonical or not canonical.startswith(prefix):
        return "***"

    national = canonical[len(prefix):]
    if len(national) <= 3:
        return f"{prefix} {'*' * len(national)}"

    return f"{prefix} {national[:2]}{'*' * (len(national) - 3)}{national[-1]}"
