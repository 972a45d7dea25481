"""
Time-based one-time passwords (RFC 6238) for two-factor login.

Codes are 6-digit HMAC-SHA1 HOTP values over 30 second steps; verification
accepts the previous, current and next step to absorb clock drift.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import struct
import time
from urllib.parse import quote

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
DEFAULT_DIGITS = 6
DEFAULT_STEP = 30
DEFAULT_ISSUER = "Shader House"


def generate_secret(num_bytes: int = 20) -> str:
    return base64.b32encode(secrets.token_bytes(num_bytes)).decode("ascii").rstrip("=")


def _decode_secret(secret: str) -> bytes:
    # Unknown characters (spaces, dashes, padding) are skipped.
    cleaned = "".join(ch for ch in (secret or "").upper() if ch in BASE32_ALPHABET)
    bits = "".join(format(BASE32_ALPHABET.index(ch), "05b") for ch in cleaned)
    if not bits:
        return b""
    n_bytes = (len(bits) + 7) // 8
    bits = bits.ljust(n_bytes * 8, "0")
    return bytes(int(bits[i : i + 8], 2) for i in range(0, len(bits), 8))


def generate_totp(secret: str, counter: int, digits: int = DEFAULT_DIGITS) -> str:
    key = _decode_secret(secret)
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    code = struct.unpack(">I", digest[offset : offset + 4])[0] & 0x7FFFFFFF
    return str(code % (10**digits)).zfill(digits)


def time_counter(for_time: float | None = None, step: int = DEFAULT_STEP) -> int:
    now = time.time() if for_time is None else for_time
    return int(now // step)


def totp_now(secret: str, for_time: float | None = None, step: int = DEFAULT_STEP) -> str:
    return generate_totp(secret, time_counter(for_time, step))


def match_totp_counter(
    secret: str,
    code: str,
    *,
    for_time: float | None = None,
    window: int = 1,
    step: int = DEFAULT_STEP,
) -> int | None:
    """Return the time step `code` belongs to, or None when it matches no step in the window."""
    if not secret or not isinstance(code, str):
        return None
    code = code.strip()
    if len(code) != DEFAULT_DIGITS or not code.isdigit():
        return None
    counter = time_counter(for_time, step)
    matched = None
    for delta in range(-window, window + 1):
        if counter + delta < 0:
            continue
        if hmac.compare_digest(generate_totp(secret, counter + delta), code):
            matched = counter + delta
    return matched


def verify_totp(
    secret: str,
    code: str,
    *,
    for_time: float | None = None,
    window: int = 1,
    step: int = DEFAULT_STEP,
) -> bool:
    return match_totp_counter(secret, code, for_time=for_time, window=window, step=step) is not None


def provisioning_uri(secret: str, account: str, issuer: str = DEFAULT_ISSUER) -> str:
    issuer_q = quote(issuer, safe="")
    account_q = quote(account, safe="")
    return (
        f"otpauth://totp/{issuer_q}:{account_q}"
        f"?secret={secret}&issuer={issuer_q}&algorithm=SHA1&digits={DEFAULT_DIGITS}&period={DEFAULT_STEP}"
    )


def generate_backup_codes(count: int = 10) -> list[str]:
    codes = []
    for _ in range(count):
        raw = secrets.token_hex(4).upper()
        codes.append(f"{raw[:4]}-{raw[4:]}")
    return codes


def normalize_backup_code(code: str) -> str:
    raw = "".join(ch for ch in (code or "").upper() if ch.isalnum())
    if len(raw) != 8:
        return ""
    return f"{raw[:4]}-{raw[4:]}"
