"""
Input validators shared by services.
"""
import re
import secrets

from parley.core.errors import SecurityViolationError

_BASE64_RE = re.compile(r"[A-Za-z0-9+/]*={0,2}")
_FRIEND_CODE_BASE_LEN = 12
_FRIEND_CODE_DIGITS = 4


def is_base64(value: str | None) -> bool:
    """True for non-empty standard base64 (padded, length multiple of 4)."""
    if not value:
        return False
    return len(value) % 4 == 0 and bool(_BASE64_RE.fullmatch(value))


def validate_signal_payload(content: str | None) -> None:
    """
    Reject ciphertext that is not base64.

    Raises:
        SecurityViolationError: if content is not valid base64
    """
    if not is_base64(content):
        raise SecurityViolationError("Encrypted content must be a valid Base64 string")


def generate_friend_code(username: str) -> str:
    """
    Build a friend code from a username: lowercase alphanumerics (max 12)
    followed by '#' and four random digits.

    Example:
        >>> generate_friend_code("Alice.Smith")  # doctest: +SKIP
        'alicesmith#0423'
    """
    if not username or not isinstance(username, str):
        raise ValueError("Invalid username for friend code generation")

    base = re.sub(r"[^a-z0-9]", "", username.lower())[:_FRIEND_CODE_BASE_LEN] or "user"
    suffix = "".join(secrets.choice("0123456789") for _ in range(_FRIEND_CODE_DIGITS))
    return f"{base}#{suffix}"
