from __future__ import annotations

import base64
import binascii
import hmac


SANDBOX_USERNAME = "sandbox"
SANDBOX_REALM = "sandbox"


def parse_basic_auth(header: str | None) -> tuple[str, str] | None:
    raw = (header or "").strip()
    if not raw:
        return None
    parts = raw.split(None, 1)
    if len(parts) != 2 or parts[0].strip().lower() != "basic":
        return None
    try:
        decoded = base64.b64decode(parts[1].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


def basic_auth_ok(header: str | None, *, username: str, password: str) -> bool:
    creds = parse_basic_auth(header)
    if creds is None:
        return False
    user_ok = hmac.compare_digest(creds[0].encode("utf-8"), username.encode("utf-8"))
    password_ok = hmac.compare_digest(creds[1].encode("utf-8"), password.encode("utf-8"))
    return user_ok and password_ok
