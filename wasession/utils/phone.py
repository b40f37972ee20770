from __future__ import annotations

import re

S_WHATSAPP_NET = "s.whatsapp.net"
_WA_SUFFIX = f"@{S_WHATSAPP_NET}"
_WA_ID_RE = re.compile(r"^\d{6,20}$")
_SEPARATORS_RE = re.compile(r"[\s\-().]")


def normalize_wa_id(raw: str) -> str:
    """Digits-only phone number for pairing requests."""
    candidate = (raw or "").strip()
    if candidate.endswith(_WA_SUFFIX):
        candidate = candidate[: -len(_WA_SUFFIX)]
    candidate = _SEPARATORS_RE.sub("", candidate)
    if candidate.startswith("+"):
        candidate = candidate[1:]
    if not _WA_ID_RE.fullmatch(candidate):
        raise ValueError("Invalid phone number. Use digits only with optional '+' prefix.")
    return candidate
