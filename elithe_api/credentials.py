from __future__ import annotations

"""
Check-in credentials: unguessable tokens wrapped in a small JSON envelope and
rendered as a QR code image.

Envelope shapes (what a scanner reads back, key names are a fixed contract):

    {"type": "elithe_checkin", "confirmationId": <id>, "token": "<uuid>", "timestamp": <epoch millis>}
    {"type": "elithe_member", "userId": "<uuid>", "timestamp": <epoch millis>}

``decode_envelope`` never raises; anything that is not one of those shapes comes
back as ``UnrecognizedEnvelope``.
"""

import base64
import io
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

import qrcode
from qrcode.constants import ERROR_CORRECT_H

from .config import get_settings
from .errors import CredentialIssuanceError


logger = logging.getLogger(__name__)

CHECKIN_TYPE = "elithe_checkin"
MEMBER_TYPE = "elithe_member"


@dataclass(frozen=True)
class CheckinEnvelope:
    confirmation_id: Any
    token: str
    timestamp: int

    def to_json(self) -> str:
        return json.dumps(
            {
                "type": CHECKIN_TYPE,
                "confirmationId": self.confirmation_id,
                "token": self.token,
                "timestamp": self.timestamp,
            },
            separators=(",", ":"),
        )


@dataclass(frozen=True)
class MemberBadgeEnvelope:
    user_id: str
    timestamp: Optional[int] = None

    def to_json(self) -> str:
        return json.dumps(
            {"type": MEMBER_TYPE, "userId": self.user_id, "timestamp": self.timestamp},
            separators=(",", ":"),
        )


@dataclass(frozen=True)
class UnrecognizedEnvelope:
    reason: str
    kind: Optional[str] = None


Envelope = Union[CheckinEnvelope, MemberBadgeEnvelope, UnrecognizedEnvelope]


@dataclass(frozen=True)
class IssuedCredential:
    token: Optional[str]
    image_png: bytes
    payload: str

    @property
    def data_url(self) -> str:
        return "data:image/png;base64," + base64.b64encode(self.image_png).decode("ascii")


def _now_millis() -> int:
    return int(time.time() * 1000)


def render_qr_png(data: str) -> bytes:
    settings = get_settings()
    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECT_H,
            box_size=settings.qr_box_size,
            border=settings.qr_border,
        )
        qr.add_data(data)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
    except Exception as exc:
        logger.error("QR code rendering failed: %s", exc)
        raise CredentialIssuanceError("Failed to generate QR code") from exc


def new_token() -> str:
    return str(uuid.uuid4())


def issue(confirmation_id: Any) -> IssuedCredential:
    """Mint a fresh check-in token for a confirmation and render its QR image."""
    envelope = CheckinEnvelope(confirmation_id=confirmation_id, token=new_token(), timestamp=_now_millis())
    payload = envelope.to_json()
    return IssuedCredential(token=envelope.token, image_png=render_qr_png(payload), payload=payload)


def issue_member_badge(member_id: str) -> IssuedCredential:
    """Render the member's badge QR (bound to the member, not to a confirmation)."""
    payload = MemberBadgeEnvelope(user_id=member_id, timestamp=_now_millis()).to_json()
    return IssuedCredential(token=None, image_png=render_qr_png(payload), payload=payload)


def _present(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return isinstance(value, int) and value > 0


def decode_envelope(raw: Optional[str]) -> Envelope:
    if not isinstance(raw, str) or not raw.strip():
        return UnrecognizedEnvelope("empty payload")
    try:
        parsed = json.loads(raw)
    except (ValueError, RecursionError):
        return UnrecognizedEnvelope("payload is not JSON")
    if not isinstance(parsed, dict):
        return UnrecognizedEnvelope("payload is not a JSON object")

    kind = parsed.get("type")
    if kind == CHECKIN_TYPE:
        confirmation_id = parsed.get("confirmationId")
        token = parsed.get("token")
        timestamp = parsed.get("timestamp")
        if not (_present(confirmation_id) and isinstance(token, str) and token.strip()):
            return UnrecognizedEnvelope("check-in payload missing fields", kind=CHECKIN_TYPE)
        if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp <= 0:
            return UnrecognizedEnvelope("check-in payload missing timestamp", kind=CHECKIN_TYPE)
        return CheckinEnvelope(confirmation_id=confirmation_id, token=token.strip(), timestamp=timestamp)
    if kind == MEMBER_TYPE:
        user_id = parsed.get("userId")
        if not isinstance(user_id, str) or not user_id.strip():
            return UnrecognizedEnvelope("member badge missing userId", kind=MEMBER_TYPE)
        timestamp = parsed.get("timestamp")
        return MemberBadgeEnvelope(
            user_id=user_id.strip(),
            timestamp=timestamp if isinstance(timestamp, int) and not isinstance(timestamp, bool) else None,
        )
    return UnrecognizedEnvelope(f"unknown credential type: {kind!r}")
