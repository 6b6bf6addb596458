"""Signed, short-lived session tokens rendered as QR codes."""
import base64
import hashlib
import hmac
import io
import json
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, Union

import qrcode
from flask import current_app

from attendance import db
from attendance.models.attendance_session import AttendanceSession
from attendance.services.token_store import SecretRecord
from attendance.utils.errors import AttendanceError, ErrorKind
from attendance.utils.helpers import utcnow, to_epoch_ms


@dataclass(frozen=True)
class SessionToken:
    """Payload shown in the QR code plus its signature."""
    session_id: int
    issued_at: int
    secret: str
    expires_at: int
    signature: str = ''

    def payload(self) -> Dict:
        return {
            'sessionId': self.session_id,
            'issuedAt': self.issued_at,
            'secret': self.secret,
            'expiresAt': self.expires_at,
        }

    def to_dict(self) -> Dict:
        data = self.payload()
        data['signature'] = self.signature
        return data

    def to_qr_string(self) -> str:
        return json.dumps(self.to_dict(), separators=(',', ':'))


def canonical_json(payload: Dict) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(',', ':')).encode()


class SessionTokenService:
    """Issues and verifies QR session tokens.

    The signature only protects the payload fields in transit. Freshness is
    decided by comparing the token secret with the single secret stored for
    the session, so issuing a new token makes every earlier one unusable.
    """

    def __init__(self, signing_key: str, store, ttl_seconds: int = 30,
                 clock: Callable[[], datetime] = utcnow):
        if not signing_key:
            raise ValueError("SESSION_TOKEN_SIGNING_KEY is not configured")
        self.signing_key = signing_key.encode()
        self.store = store
        self.ttl_ms = ttl_seconds * 1000
        self.clock = clock

    @classmethod
    def from_app(cls, clock: Callable[[], datetime] = None) -> 'SessionTokenService':
        """Build the service from the current application's config."""
        config = current_app.config
        return cls(
            signing_key=config.get('SESSION_TOKEN_SIGNING_KEY'),
            store=current_app.extensions['session_secret_store'],
            ttl_seconds=config.get('SESSION_TOKEN_TTL_SECONDS', 30),
            clock=clock or utcnow,
        )

    def sign(self, payload: Dict) -> str:
        digest = hmac.new(self.signing_key, canonical_json(payload), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def issue(self, session_id: int, caller) -> SessionToken:
        """Issue a fresh token for a session owned by the calling professor."""
        session = db.session.get(AttendanceSession, session_id)
        if session is None:
            raise AttendanceError(ErrorKind.NOT_FOUND, "Session not found")

        if not session.course.is_taught_by(caller):
            raise AttendanceError(ErrorKind.FORBIDDEN, "Not authorized for this session")

        now = self.clock()
        if not session.is_live(now):
            raise AttendanceError(ErrorKind.SESSION_CLOSED, "Session is not active")

        issued_at = to_epoch_ms(now)
        token = SessionToken(
            session_id=session.id,
            issued_at=issued_at,
            secret=str(uuid.uuid4()),
            expires_at=issued_at + self.ttl_ms,
        )
        signed = replace(token, signature=self.sign(token.payload()))

        self.store.replace(SecretRecord(
            session_id=signed.session_id,
            secret=signed.secret,
            issued_at_ms=signed.issued_at,
            expires_at_ms=signed.expires_at,
        ))

        current_app.logger.info(f"QR token issued for session {session.id} by user {caller.id}")
        return signed

    @staticmethod
    def parse(raw: Union[str, Dict]) -> SessionToken:
        """Read a scanned QR payload; anything malformed is Invalid."""
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError:
                raise AttendanceError(ErrorKind.INVALID, "Invalid QR code format")

        if not isinstance(raw, dict):
            raise AttendanceError(ErrorKind.INVALID, "Invalid QR code format")

        fields = {
            'sessionId': int,
            'issuedAt': int,
            'secret': str,
            'expiresAt': int,
            'signature': str,
        }
        for field, expected in fields.items():
            value = raw.get(field)
            if not isinstance(value, expected) or isinstance(value, bool):
                raise AttendanceError(ErrorKind.INVALID, "Invalid QR code format")

        return SessionToken(
            session_id=raw['sessionId'],
            issued_at=raw['issuedAt'],
            secret=raw['secret'],
            expires_at=raw['expiresAt'],
            signature=raw['signature'],
        )

    def verify(self, raw: Union[str, Dict, SessionToken]) -> AttendanceSession:
        """Check expiry, signature, session state and secret, in that order.

        Returns the session the token belongs to. Does not record attendance.
        """
        token = raw if isinstance(raw, SessionToken) else self.parse(raw)

        if to_epoch_ms(self.clock()) > token.expires_at:
            raise AttendanceError(ErrorKind.EXPIRED, "QR code has expired")

        expected = self.sign(token.payload())
        if not hmac.compare_digest(expected.encode(), token.signature.encode()):
            raise AttendanceError(ErrorKind.INVALID, "Invalid QR code")

        session = db.session.get(AttendanceSession, token.session_id)
        if session is None:
            raise AttendanceError(ErrorKind.NOT_FOUND, "Session not found")
        if not session.is_live(self.clock()):
            raise AttendanceError(ErrorKind.SESSION_INACTIVE, "Session is not active")

        stored = self.store.get(token.session_id)
        if stored is None or not hmac.compare_digest(stored.secret.encode(), token.secret.encode()):
            raise AttendanceError(ErrorKind.INVALID, "QR code is no longer valid")

        return session

    @staticmethod
    def render_qr(token: SessionToken) -> str:
        """Render the token as a base64 PNG data URI."""
        qr = qrcode.QRCode(
            version=None,  # Auto-determine size
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=10,
            border=4,
        )
        qr.add_data(token.to_qr_string())
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffered = io.BytesIO()
        img.save(buffered, format="PNG")
        img_str = base64.b64encode(buffered.getvalue()).decode()

        return f"data:image/png;base64,{img_str}"
