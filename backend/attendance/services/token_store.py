"""Keyed store holding the current QR secret of each attendance session.

Only the latest secret is kept. Writing a new one replaces the old value in
a single operation, so a verifier reads either the old or the new secret,
never a partial state.
"""
import json
from dataclasses import dataclass, asdict
from typing import Optional

import redis
from sqlalchemy.exc import IntegrityError

from attendance import db
from attendance.models.session_secret import SessionSecret


@dataclass(frozen=True)
class SecretRecord:
    """Current secret of a session and the window it was issued for."""
    session_id: int
    secret: str
    issued_at_ms: int
    expires_at_ms: int


class DatabaseSecretStore:
    """Secrets in the session_secrets table, unique per session."""

    def replace(self, record: SecretRecord) -> None:
        values = {
            'qr_secret': record.secret,
            'issued_at_ms': record.issued_at_ms,
            'expires_at_ms': record.expires_at_ms,
        }
        updated = SessionSecret.query.filter_by(session_id=record.session_id).update(values)
        if updated:
            db.session.commit()
            return

        try:
            db.session.add(SessionSecret(session_id=record.session_id, **values))
            db.session.commit()
        except IntegrityError:
            # Another issuer inserted first; last writer wins.
            db.session.rollback()
            SessionSecret.query.filter_by(session_id=record.session_id).update(values)
            db.session.commit()

    def get(self, session_id: int) -> Optional[SecretRecord]:
        row = SessionSecret.query.filter_by(session_id=session_id).first()
        if row is None:
            return None
        return SecretRecord(
            session_id=row.session_id,
            secret=row.qr_secret,
            issued_at_ms=row.issued_at_ms,
            expires_at_ms=row.expires_at_ms,
        )


class RedisSecretStore:
    """Secrets as Redis keys with a TTL slightly longer than the token."""

    KEY_PREFIX = 'attendance:session-secret:'

    def __init__(self, client: 'redis.Redis', ttl_seconds: int):
        self.client = client
        self.ttl_seconds = ttl_seconds

    def _key(self, session_id: int) -> str:
        return f'{self.KEY_PREFIX}{session_id}'

    def replace(self, record: SecretRecord) -> None:
        self.client.set(self._key(record.session_id), json.dumps(asdict(record)), ex=self.ttl_seconds)

    def get(self, session_id: int) -> Optional[SecretRecord]:
        raw = self.client.get(self._key(session_id))
        if raw is None:
            return None
        return SecretRecord(**json.loads(raw))


def build_secret_store(config):
    """Create the store named by SESSION_SECRET_BACKEND."""
    backend = config.get('SESSION_SECRET_BACKEND', 'database')

    if backend == 'database':
        return DatabaseSecretStore()

    if backend == 'redis':
        redis_url = config.get('REDIS_URL')
        if not redis_url:
            raise ValueError("REDIS_URL is required when SESSION_SECRET_BACKEND is 'redis'")
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        return RedisSecretStore(client, ttl_seconds=config.get('SESSION_TOKEN_TTL_SECONDS', 30) * 2)

    raise ValueError(f"Unknown SESSION_SECRET_BACKEND: {backend}")
