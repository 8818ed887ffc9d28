from __future__ import annotations
import re
from typing import Iterable, Mapping

SENSITIVE_TAGS = frozenset({"Password", "LoginPass", "AccessToken", "Token", "Secret"})

def redact(value: str) -> str:
    if not value:
        return value
    if len(value) <= 6:
        return "******"
    return value[:3] + "****" + value[-2:]

def sanitize_headers(headers: Mapping[str, str]) -> dict:
    out = {}
    for k, v in headers.items():
        if any(s.lower() in k.lower() for s in ("Authorization", "Cookie", "Set-Cookie")):
            out[k] = "<redacted>"
        else:
            out[k] = v
    return out

def scrub_xml(xml: str | bytes, tags: Iterable[str] = SENSITIVE_TAGS) -> str:
    """Mask the text of sensitive elements, matching by local name with any prefix."""
    out = xml.decode("utf-8", errors="replace") if isinstance(xml, bytes) else xml
    for tag in tags:
        pattern = re.compile(rf"(<(?:[\w.\-]+:)?{re.escape(tag)}(?:\s[^>]*)?>)([^<]*)(</)")
        out = pattern.sub(lambda m: m.group(1) + redact(m.group(2)) + m.group(3), out)
    return out
