# utils.py
import os
import secrets
from datetime import datetime, timezone


def utcnow():
    # naive UTC, what the sqlite DateTime columns hold
    return datetime.now(timezone.utc).replace(tzinfo=None)


def log(msg):
    ts = utcnow().isoformat(sep=" ", timespec="seconds")
    line = f"[{ts}] {msg}\n"
    log_file = os.environ.get("STOREFRONT_LOG", "storefront.log")
    with open(log_file, "a", encoding="utf-8") as f:
        f.write(line)


def new_token(nbytes=32):
    return secrets.token_urlsafe(nbytes)


def format_money(x):
    try:
        return f"Rp{float(x):,.2f}"
    except (TypeError, ValueError):
        return str(x)


def ack(ok, message, **extra):
    """Response envelope shared by the admin facade and the routes."""
    data = {"ok": ok, "message": message}
    data.update(extra)
    return data


def digits_only(value):
    return "".join(ch for ch in (value or "") if ch.isdigit())
