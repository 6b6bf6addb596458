"""Multi-angle face registration with liveness and duplicate checks.

A reference is stored only when all five captures show one real face of
good quality at the requested pose, and the combined reference does not
match a face already registered to another account. The duplicate check
fails closed: when the oracle cannot answer, nothing is stored.
"""
from datetime import datetime
from typing import Callable, Dict, List

from flask import current_app

from attendance.models.user import User
from attendance.services.face_service import CAPTURE_ANGLES, FaceCapture
from attendance.utils.errors import AttendanceError, ErrorKind
from attendance.utils.helpers import app_clock, utcnow

MIN_CAPTURE_QUALITY = 60
DUPLICATE_SIMILARITY = 85

ANGLE_MESSAGES = {
    'front': 'Front view capture does not show a front-facing face',
    'left': 'Left turn capture does not show face turned left',
    'right': 'Right turn capture does not show face turned right',
    'up': 'Look up capture does not show face tilted up',
}

# Poses whose features make up the stored reference
REFERENCE_ANGLES = ('front', 'left', 'right', 'up')


class FaceRegistrationService:
    """Validates registration captures and stores the encrypted reference."""

    def __init__(self, oracle, cipher, min_quality: float = MIN_CAPTURE_QUALITY,
                 duplicate_similarity: float = DUPLICATE_SIMILARITY,
                 clock: Callable[[], datetime] = utcnow):
        self.oracle = oracle
        self.cipher = cipher
        self.min_quality = min_quality
        self.duplicate_similarity = duplicate_similarity
        self.clock = clock

    @classmethod
    def from_app(cls) -> 'FaceRegistrationService':
        config = current_app.config
        return cls(
            oracle=current_app.extensions.get('face_oracle'),
            cipher=current_app.extensions.get('face_cipher'),
            min_quality=config.get('FACE_MIN_CAPTURE_QUALITY', MIN_CAPTURE_QUALITY),
            duplicate_similarity=config.get('FACE_DUPLICATE_SIMILARITY', DUPLICATE_SIMILARITY),
            clock=app_clock(),
        )

    def register(self, student: User, captures) -> Dict:
        """Analyze every capture, reject duplicates, then store the reference."""
        if not isinstance(captures, dict) or not all(
                isinstance(captures.get(angle), str) and captures.get(angle)
                for angle in CAPTURE_ANGLES):
            raise AttendanceError(
                ErrorKind.VALIDATION_ERROR,
                "All capture angles are required for secure registration"
            )

        if self.oracle is None or self.cipher is None:
            raise AttendanceError(ErrorKind.VERIFICATION_UNAVAILABLE, "Face registration is not configured")

        analyses = {angle: self.oracle.analyze_capture(captures[angle], angle) for angle in CAPTURE_ANGLES}
        self._validate(analyses)

        reference = self._build_reference(analyses)
        self._reject_duplicate(student, reference)

        now = self.clock()
        student.face_reference = self.cipher.encrypt(reference)
        student.face_registered_at = now
        student.save()

        quality = sum(a.face_quality for a in analyses.values()) / len(analyses)
        current_app.logger.info(f"Face registered for student {student.id} (quality {quality:.0f})")
        return {
            'face_registered': True,
            'registered_at': now.isoformat(),
            'quality_score': round(quality),
            'captures_verified': len(analyses),
        }

    def _validate(self, analyses: Dict[str, FaceCapture]) -> None:
        errors: List[str] = []
        no_face = False

        for angle, analysis in analyses.items():
            if not analysis.face_detected:
                no_face = True
                errors.append(f"No face detected in {angle} capture")
            elif not analysis.single_face:
                errors.append(f"Multiple faces detected in {angle} capture. Only one face allowed.")
            if analysis.face_detected and not analysis.is_real_person:
                indicators = ', '.join(analysis.spoof_indicators) or 'no live face'
                errors.append(f"Anti-spoofing check failed for {angle} capture: {indicators}")
            if analysis.face_quality < self.min_quality:
                errors.append(
                    f"Low quality image in {angle} capture ({analysis.face_quality:.0f}%). "
                    f"Please ensure good lighting and focus."
                )

        for angle, message in ANGLE_MESSAGES.items():
            if analyses[angle].face_detected and not analyses[angle].angle_matches:
                errors.append(message)

        if errors:
            kind = ErrorKind.FACE_NOT_DETECTED if no_face else ErrorKind.VALIDATION_ERROR
            raise AttendanceError(kind, errors[0], all_errors=errors)

    @staticmethod
    def _build_reference(analyses: Dict[str, FaceCapture]) -> Dict:
        reference = {f'{angle}_features': analyses[angle].face_features for angle in REFERENCE_ANGLES}
        reference['signatures'] = [analyses[angle].embedding_signature for angle in REFERENCE_ANGLES]
        reference['quality_scores'] = {angle: a.face_quality for angle, a in analyses.items()}
        reference['registration_method'] = 'multi_angle_secure'
        return reference

    def _reject_duplicate(self, student: User, reference: Dict) -> None:
        others = User.query.filter(User.id != student.id, User.face_reference.isnot(None)).all()
        if not others:
            return

        existing = [self.cipher.decrypt(user.face_reference) for user in others]
        verdict = self.oracle.find_duplicate(reference, existing)

        if verdict.is_duplicate and verdict.matched_index is not None \
                and verdict.highest_similarity > self.duplicate_similarity:
            current_app.logger.warning(
                f"Duplicate face registration by student {student.id} "
                f"matches user {others[verdict.matched_index].id} ({verdict.highest_similarity:.0f}%)"
            )
            raise AttendanceError(
                ErrorKind.FORBIDDEN,
                "This face appears to be already registered with another account. "
                "Please contact support if you believe this is an error."
            )
