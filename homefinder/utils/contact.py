import re
from urllib.parse import quote


def format_price(price: float) -> str:
    """Format a listing price the way the site shows it, e.g. ``RM1,250,000``."""
    return f"RM{price:,.0f}"


def whatsapp_url(number: str | None, title: str, price: float) -> str | None:
    """wa.me deep link with a prefilled enquiry. Non-digits are stripped from the number."""
    digits = re.sub(r"[^0-9]", "", number or "")
    if not digits:
        return None
    message = quote(f"Hi, I'm interested in {title} listed at {format_price(price)}", safe="")
    return f"https://wa.me/{digits}?text={message}"


def phone_url(number: str | None) -> str | None:
    if not number:
        return None
    return f"tel:{number}"
