from __future__ import annotations

import os
import re


class PacError(Exception):
    """Base class for PAC subsystem failures."""


class InitializationError(PacError):
    """The PAC template could not be compiled; the subsystem cannot start."""


class RenderError(PacError):
    """Rendering a PAC document for one request failed."""


class AddressDerivationError(PacError):
    """The proxy address to advertise could not be derived from the socket."""


def expose_internal_errors() -> bool:
    return (os.environ.get("EXPOSE_INTERNAL_ERRORS") or "").strip().lower() in (
        "1",
        "true",
        "yes",
        "on",
    )


def clean_text(text: str, *, max_len: int = 200) -> str:
    s = (text or "").replace("\r", " ").replace("\n", " ").strip()
    # Remove other control chars.
    s = "".join(ch if (ch >= " " and ch != "\x7f") else " " for ch in s)
    s = re.sub(r"\s+", " ", s).strip()
    if max_len and len(s) > max_len:
        s = s[: max_len - 3].rstrip() + "..."
    return s


def public_error_message(
    e: Exception,
    *,
    default: str = "Operation failed. Check server logs for details.",
    max_len: int = 200,
) -> str:
    """Return a message that is safe to hand to an HTTP client.

    - PAC failures and other internals are hidden behind `default`.
    - ValueError messages are returned (they describe bad client input).
    - EXPOSE_INTERNAL_ERRORS=1 returns the exception type + message.
    """
    if expose_internal_errors():
        detail = clean_text(f"{type(e).__name__}: {e}", max_len=max_len)
        return detail or default

    if isinstance(e, ValueError):
        msg = clean_text(str(e), max_len=max_len)
        return msg or default

    return default
