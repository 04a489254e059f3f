"""Short customer codes, e.g. ``ACMEMALTAL`` for "Acme Malta Ltd"."""
import re
import secrets
import string
from typing import Iterable

MAX_CODE_LENGTH = 10
DEFAULT_CODE = "CUST"

_NOT_CODE_CHARS = re.compile(r"[^A-Z0-9]")


def sanitize_customer_code(value: str) -> str:
    """Uppercase alphanumerics only, at most 10 characters."""
    return _NOT_CODE_CHARS.sub("", (value or "").upper())[:MAX_CODE_LENGTH]


def generate_customer_code(name: str, business_name: str | None = None) -> str:
    """Code from the business name when given, otherwise the person's name."""
    source = (business_name or "").strip() or (name or "").strip()
    return sanitize_customer_code(source) or DEFAULT_CODE


def make_code_unique(base: str, existing: Iterable[str]) -> str:
    """Return ``base``, or a numbered variant of it not in ``existing``.

    The numeric suffix replaces trailing characters so the code stays within
    10 characters. After 99 a random three-character suffix is used.
    """
    taken = set(existing)
    if base not in taken:
        return base

    for n in range(2, 100):
        suffix = str(n)
        candidate = base[:MAX_CODE_LENGTH - len(suffix)] + suffix
        if candidate not in taken:
            return candidate

    alphabet = string.ascii_uppercase + string.digits
    return base[:MAX_CODE_LENGTH - 3] + "".join(secrets.choice(alphabet) for _ in range(3))
