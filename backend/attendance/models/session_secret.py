"""Current QR secret per attendance session."""
from attendance import db
from attendance.models.base import BaseModel


class SessionSecret(BaseModel):
    """Holds only the latest secret; reissuing replaces the row."""

    __tablename__ = 'session_secrets'

    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id', ondelete='CASCADE'),
                           unique=True, nullable=False)
    qr_secret = db.Column(db.String(64), nullable=False)
    issued_at_ms = db.Column(db.BigInteger, nullable=False)
    expires_at_ms = db.Column(db.BigInteger, nullable=False)

    def __repr__(self):
        return f'<SessionSecret session={self.session_id}>'
