"""Certificate identifier generation.

Provides:
- Certificate numbers: "{prefix}-{base36 ms timestamp}-{6 random chars}"
- Verification codes: 12 uppercase hex characters

Both are random; global uniqueness is enforced by storage reservations, not
here.
"""

import secrets
import string
import time


BASE36_ALPHABET = string.digits + string.ascii_uppercase

CERTIFICATE_SUFFIX_LENGTH = 6
VERIFICATION_CODE_LENGTH = 12


def to_base36(value: int) -> str:
    """Encode a non-negative integer in uppercase base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"

    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def generate_certificate_number(prefix: str, timestamp_ms: int | None = None) -> str:
    """Generate a human-readable certificate number.

    Args:
        prefix: Leading label, e.g. "CG-CERT"
        timestamp_ms: Milliseconds since the epoch (default: now)

    Returns:
        Certificate number (e.g., "CG-CERT-LZ3K9Q1A-7XK2QD")
    """
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    suffix = "".join(
        secrets.choice(BASE36_ALPHABET) for _ in range(CERTIFICATE_SUFFIX_LENGTH)
    )
    return f"{prefix}-{to_base36(timestamp_ms)}-{suffix}"


def generate_verification_code() -> str:
    """Generate a 12-character uppercase hex verification code."""
    return secrets.token_hex(VERIFICATION_CODE_LENGTH // 2).upper()


def normalize_verification_code(code: str) -> str:
    """Normalize user-typed codes before lookup."""
    return code.strip().upper()
