import re

DEFAULT_COUNTRY_CODE = "62"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Bring a locally typed phone number into E.164 form.

    ``0812-3456-789`` -> ``+628123456789``; ``812...`` gets the country code
    prepended; numbers already carrying the country code are kept.
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if not digits:
        raise ValueError("Phone number contains no digits")
    if digits.startswith("0"):
        digits = country_code + digits[1:]
    elif not digits.startswith(country_code):
        digits = country_code + digits
    return f"+{digits}"


def mask_phone(phone: str) -> str:
    return f"***{phone[-4:]}" if len(phone) > 4 else "***"


def format_rupiah(amount) -> str:
    # id-ID groups thousands with dots: Rp 150.000
    return "Rp " + f"{float(amount or 0):,.0f}".replace(",", ".")
