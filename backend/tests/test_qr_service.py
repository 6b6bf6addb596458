"""Tests for QR session token issuance and verification."""
import json
from datetime import datetime

import pytest

from attendance import db
from attendance.models.session_secret import SessionSecret
from attendance.services.qr_service import SessionTokenService, canonical_json
from attendance.services.token_store import DatabaseSecretStore
from attendance.utils.errors import AttendanceError, ErrorKind
from attendance.utils.helpers import to_epoch_ms

ISSUED_AT = datetime(2025, 3, 10, 9, 4, 50)


@pytest.fixture
def service(app, clock):
    clock.set(ISSUED_AT)
    return SessionTokenService('test-session-token-key', DatabaseSecretStore(), ttl_seconds=30, clock=clock)


def _kind(exc_info):
    return exc_info.value.kind


def test_issue_returns_signed_token(service, session, professor):
    token = service.issue(session.id, professor)

    assert token.session_id == session.id
    assert token.issued_at == to_epoch_ms(ISSUED_AT)
    assert token.expires_at == token.issued_at + 30000
    assert token.signature == service.sign(token.payload())

    stored = SessionSecret.query.filter_by(session_id=session.id).one()
    assert stored.qr_secret == token.secret


def test_qr_string_uses_camel_case_fields(service, session, professor):
    token = service.issue(session.id, professor)

    assert set(json.loads(token.to_qr_string())) == {'sessionId', 'issuedAt', 'secret', 'expiresAt', 'signature'}


def test_signature_covers_canonical_payload(service):
    payload = {'sessionId': 1, 'secret': 's', 'issuedAt': 10, 'expiresAt': 20}
    reordered = {'expiresAt': 20, 'issuedAt': 10, 'secret': 's', 'sessionId': 1}

    assert canonical_json(payload) == canonical_json(reordered)
    assert service.sign(payload) == service.sign(reordered)


def test_issue_rejects_other_professor(service, session, other_professor):
    with pytest.raises(AttendanceError) as exc:
        service.issue(session.id, other_professor)
    assert _kind(exc) == ErrorKind.FORBIDDEN


def test_issue_unknown_session(service, professor):
    with pytest.raises(AttendanceError) as exc:
        service.issue(9999, professor)
    assert _kind(exc) == ErrorKind.NOT_FOUND


def test_issue_ended_session(service, session, professor):
    session.end(ISSUED_AT)
    db.session.commit()

    with pytest.raises(AttendanceError) as exc:
        service.issue(session.id, professor)
    assert _kind(exc) == ErrorKind.SESSION_CLOSED


def test_verify_within_window(service, session, professor, clock):
    token = service.issue(session.id, professor)

    clock.advance(seconds=29)
    assert service.verify(token.to_qr_string()).id == session.id


def test_verify_after_window_expired(service, session, professor, clock):
    token = service.issue(session.id, professor)

    clock.advance(seconds=31)
    with pytest.raises(AttendanceError) as exc:
        service.verify(token.to_qr_string())
    assert _kind(exc) == ErrorKind.EXPIRED


def test_reissue_invalidates_previous_token(service, session, professor, clock):
    first = service.issue(session.id, professor)
    clock.advance(seconds=1)
    second = service.issue(session.id, professor)

    with pytest.raises(AttendanceError) as exc:
        service.verify(first.to_qr_string())
    assert _kind(exc) == ErrorKind.INVALID

    assert service.verify(second.to_qr_string()).id == session.id
    assert SessionSecret.query.filter_by(session_id=session.id).count() == 1


def test_tampered_secret_fails_signature(service, session, professor):
    token = service.issue(session.id, professor)
    data = token.to_dict()
    data['secret'] = 'guessed-secret'

    with pytest.raises(AttendanceError) as exc:
        service.verify(json.dumps(data))
    assert _kind(exc) == ErrorKind.INVALID


def test_token_for_other_session_fails_signature(service, session, professor):
    token = service.issue(session.id, professor)
    data = token.to_dict()
    data['sessionId'] = session.id + 1

    with pytest.raises(AttendanceError) as exc:
        service.verify(data)
    assert _kind(exc) == ErrorKind.INVALID


def test_expiry_checked_before_signature(service, session, professor, clock):
    token = service.issue(session.id, professor)
    data = token.to_dict()
    data['signature'] = 'AAAA'

    clock.advance(minutes=5)
    with pytest.raises(AttendanceError) as exc:
        service.verify(data)
    assert _kind(exc) == ErrorKind.EXPIRED


def test_verify_ended_session(service, session, professor):
    token = service.issue(session.id, professor)
    session.end(ISSUED_AT)
    db.session.commit()

    with pytest.raises(AttendanceError) as exc:
        service.verify(token.to_qr_string())
    assert _kind(exc) == ErrorKind.SESSION_INACTIVE


def test_wrong_signing_key_rejected(service, session, professor, clock):
    token = service.issue(session.id, professor)
    other = SessionTokenService('another-key', DatabaseSecretStore(), clock=clock)

    with pytest.raises(AttendanceError) as exc:
        other.verify(token.to_qr_string())
    assert _kind(exc) == ErrorKind.INVALID


@pytest.mark.parametrize('raw', [
    'not json',
    '[1, 2, 3]',
    '{"sessionId": 1}',
    '{"sessionId": "1", "issuedAt": 1, "secret": "s", "expiresAt": 2, "signature": "x"}',
    '{"sessionId": true, "issuedAt": 1, "secret": "s", "expiresAt": 2, "signature": "x"}',
    42,
])
def test_parse_malformed_payload(raw):
    with pytest.raises(AttendanceError) as exc:
        SessionTokenService.parse(raw)
    assert _kind(exc) == ErrorKind.INVALID
    assert exc.value.message == "Invalid QR code format"


def test_render_qr_png_data_uri(service, session, professor):
    token = service.issue(session.id, professor)

    image = SessionTokenService.render_qr(token)

    assert image.startswith('data:image/png;base64,')
    assert len(image) > 100


def test_missing_signing_key():
    with pytest.raises(ValueError):
        SessionTokenService('', DatabaseSecretStore())
