"""
Scan payload codec.

Coupons are presented as a QR code whose content is a compact JSON object
``{"t": <redemption token>, "m": <member user id>}``. Codes printed before
the JSON format existed carry the bare token only; those still scan.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass

TOKEN_BYTES = 32
TOKEN_RE = re.compile(r"[0-9a-f]{%d}" % (TOKEN_BYTES * 2))


@dataclass(frozen=True)
class ScanPayload:
    token: str
    member_id: int | None
    legacy: bool


def is_valid_token(token: str) -> bool:
    return bool(TOKEN_RE.fullmatch(token or ""))


def encode_scan_payload(*, token: str, member_id: int) -> str:
    return json.dumps({"t": token, "m": member_id}, separators=(",", ":"))


def _structured(raw: str) -> dict | None:
    if not raw.startswith("{"):
        return None
    try:
        doc = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(doc, dict) or not isinstance(doc.get("t"), str):
        return None
    return doc


def parse_scan_payload(raw: str) -> ScanPayload:
    """
    Normalise a scanned string into a ScanPayload.

    Anything that is not a JSON object with a string ``t`` is treated as a
    legacy bare token. The token is lowercased but not validated here; callers
    check it with ``is_valid_token`` before touching storage.
    """
    text = (raw or "").strip()
    doc = _structured(text)
    if doc is None:
        return ScanPayload(token=text.lower(), member_id=None, legacy=True)

    member_id = doc.get("m")
    try:
        member_id = int(member_id) if member_id is not None else None
    except (TypeError, ValueError):
        member_id = None

    return ScanPayload(token=doc["t"].strip().lower(), member_id=member_id, legacy=False)
