"""Check-in front controller: method-specific gates, then the recorder.

Which proofs a method needs is declared once in a PolicyTable built from
configuration at startup:

    qr         token [+ location, geofence when QR_REQUIRES_GEOFENCE]
    face       location, geofence, face
    proximity  location, geofence

Gates run in the declared order and the first failure ends the attempt
without touching storage. Proximity-only is the weakest proof and is
flagged as low assurance on every result it produces.
"""
import math
from dataclasses import dataclass, asdict, field
from datetime import datetime
from enum import Enum
from numbers import Real
from typing import Callable, Dict, FrozenSet, Optional, Tuple, Union

from flask import current_app

from attendance import db
from attendance.models.attendance import AttendanceMethod
from attendance.models.attendance_session import AttendanceSession
from attendance.services.attendance_recorder import AttendanceRecorder
from attendance.services.geo import validate_coordinates
from attendance.services.proximity_service import ProximityService, ProximityResult
from attendance.services.qr_service import SessionTokenService
from attendance.utils.errors import AttendanceError, ErrorKind
from attendance.utils.helpers import app_clock

FACE_MATCH_THRESHOLD = 0.75


def _is_accuracy(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) \
        and math.isfinite(value) and value >= 0


class Gate(Enum):
    """A proof a check-in method must present."""
    TOKEN = 'token'
    LOCATION = 'location'
    GEOFENCE = 'geofence'
    FACE = 'face'


@dataclass(frozen=True)
class PolicyTable:
    """Ordered gates per check-in method."""
    gates: Dict[AttendanceMethod, Tuple[Gate, ...]]
    face_match_threshold: float = FACE_MATCH_THRESHOLD
    low_assurance: FrozenSet[AttendanceMethod] = frozenset({AttendanceMethod.PROXIMITY})

    @classmethod
    def from_config(cls, config) -> 'PolicyTable':
        if config.get('QR_REQUIRES_GEOFENCE', True):
            qr_gates = (Gate.TOKEN, Gate.LOCATION, Gate.GEOFENCE)
        else:
            qr_gates = (Gate.TOKEN,)

        return cls(
            gates={
                AttendanceMethod.QR: qr_gates,
                AttendanceMethod.FACE: (Gate.LOCATION, Gate.GEOFENCE, Gate.FACE),
                AttendanceMethod.PROXIMITY: (Gate.LOCATION, Gate.GEOFENCE),
            },
            face_match_threshold=config.get('FACE_MATCH_THRESHOLD', FACE_MATCH_THRESHOLD),
        )

    def gates_for(self, method: AttendanceMethod) -> Tuple[Gate, ...]:
        if method not in self.gates:
            raise AttendanceError(
                ErrorKind.VALIDATION_ERROR,
                f"Check-in method '{method.value}' is not available"
            )
        return self.gates[method]


@dataclass
class CheckInEvidence:
    """Proof submitted by the student for exactly one method."""
    session_id: Optional[int] = None
    class_id: Optional[int] = None
    qr_data: Optional[Union[str, Dict]] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    image_base64: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict) -> 'CheckInEvidence':
        return cls(
            session_id=data.get('session_id'),
            class_id=data.get('class_id'),
            qr_data=data.get('qr_data'),
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
            accuracy=data.get('accuracy'),
            image_base64=data.get('image_base64'),
        )


@dataclass
class CheckInResult:
    """Uniform answer for every method and outcome."""
    success: bool
    method: str
    message: str
    status: Optional[str] = None
    reason: Optional[str] = None
    already_checked_in: bool = False
    session_id: Optional[int] = None
    distance_meters: Optional[int] = None
    allowed_radius: Optional[float] = None
    room: Optional[str] = None
    match_score: Optional[float] = None
    verification_score: Optional[float] = None
    low_assurance: bool = False
    status_code: int = field(default=200, repr=False)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data.pop('status_code')
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class _Attempt:
    """Facts gathered while gates run."""
    session: Optional[AttendanceSession] = None
    proximity: Optional[ProximityResult] = None
    match_score: Optional[float] = None


class CheckInOrchestrator:
    """Sequences verification gates and hands off to the recorder."""

    def __init__(self, policy: PolicyTable, token_service: SessionTokenService,
                 recorder: AttendanceRecorder, face_oracle=None, face_cipher=None,
                 clock: Callable[[], datetime] = None):
        self.policy = policy
        self.token_service = token_service
        self.recorder = recorder
        self.face_oracle = face_oracle
        self.face_cipher = face_cipher
        self.clock = clock or recorder.clock

    @classmethod
    def from_app(cls) -> 'CheckInOrchestrator':
        clock = app_clock()
        extensions = current_app.extensions
        return cls(
            policy=extensions['checkin_policy'],
            token_service=SessionTokenService.from_app(clock=clock),
            recorder=AttendanceRecorder.from_app(clock=clock),
            face_oracle=extensions.get('face_oracle'),
            face_cipher=extensions.get('face_cipher'),
            clock=clock,
        )

    def check_in(self, student, method: Union[str, AttendanceMethod],
                 evidence: CheckInEvidence) -> CheckInResult:
        """Verify the evidence for one method and record attendance."""
        method_name = method.value if isinstance(method, AttendanceMethod) else str(method)
        attempt = _Attempt()

        try:
            method = self._resolve_method(method)
            gates = self.policy.gates_for(method)

            if Gate.TOKEN in gates:
                if not evidence.qr_data:
                    raise AttendanceError(ErrorKind.VALIDATION_ERROR, "QR data is required")
                attempt.session = self.token_service.verify(evidence.qr_data)
            else:
                attempt.session = self._load_session(evidence.session_id)

            for gate in gates:
                self._run_gate(gate, student, evidence, attempt)

            # Location is stored only once the location gate has validated it
            located = Gate.LOCATION in gates
            result = self.recorder.record(
                session_id=attempt.session.id,
                student_id=student.id,
                class_id=evidence.class_id if evidence.class_id is not None else attempt.session.class_id,
                method=method,
                evidence_score=self._evidence_score(method, attempt),
                latitude=evidence.latitude if located else None,
                longitude=evidence.longitude if located else None,
                accuracy=evidence.accuracy if located else None,
            )
        except AttendanceError as e:
            return self._failure(method_name, e, attempt)

        low_assurance = method in self.policy.low_assurance
        if low_assurance:
            current_app.logger.warning(
                f"Low-assurance {method.value} check-in for session {attempt.session.id} "
                f"by student {student.id}"
            )

        proximity = attempt.proximity
        if result.already_recorded:
            return CheckInResult(
                success=True,
                method=method.value,
                message="Your attendance was already recorded for this session",
                status=result.status.value if result.status else None,
                reason=ErrorKind.ALREADY_RECORDED.value,
                already_checked_in=True,
                session_id=attempt.session.id,
                low_assurance=low_assurance,
            )

        message = "Check-in successful!"
        if proximity is not None and proximity.configured:
            message = f"Check-in successful! You are {proximity.rounded_distance}m from {proximity.room or 'the classroom'}"

        return CheckInResult(
            success=True,
            method=method.value,
            message=message,
            status=result.status.value,
            session_id=attempt.session.id,
            distance_meters=proximity.rounded_distance if proximity else None,
            allowed_radius=proximity.allowed_radius if proximity else None,
            room=proximity.room if proximity else None,
            match_score=attempt.match_score,
            verification_score=result.verification_score,
            low_assurance=low_assurance,
            status_code=201,
        )

    @staticmethod
    def _resolve_method(method) -> AttendanceMethod:
        if isinstance(method, AttendanceMethod):
            return method
        try:
            return AttendanceMethod(method)
        except ValueError:
            raise AttendanceError(ErrorKind.VALIDATION_ERROR, f"Unknown check-in method: {method}")

    def _load_session(self, session_id) -> AttendanceSession:
        if not isinstance(session_id, int) or isinstance(session_id, bool):
            raise AttendanceError(ErrorKind.VALIDATION_ERROR, "Session ID is required")

        session = db.session.get(AttendanceSession, session_id)
        if session is None:
            raise AttendanceError(ErrorKind.NOT_FOUND, "Session not found")
        if not session.is_live(self.clock()):
            raise AttendanceError(ErrorKind.SESSION_CLOSED, "Session is not active")
        return session

    def _run_gate(self, gate: Gate, student, evidence: CheckInEvidence, attempt: _Attempt) -> None:
        if gate == Gate.TOKEN:
            return  # verified before the session is known

        if gate == Gate.LOCATION:
            if evidence.latitude is None or evidence.longitude is None:
                raise AttendanceError(
                    ErrorKind.LOCATION_REQUIRED,
                    "Location required: please enable GPS to check in."
                )
            validate_coordinates(evidence.latitude, evidence.longitude)
            if evidence.accuracy is not None and not _is_accuracy(evidence.accuracy):
                raise AttendanceError(
                    ErrorKind.VALIDATION_ERROR,
                    "GPS accuracy must be a non-negative number of meters"
                )
            return

        if gate == Gate.GEOFENCE:
            geofence = attempt.session.course.geofence
            proximity = ProximityService.check(evidence.latitude, evidence.longitude, geofence)
            attempt.proximity = proximity

            if not proximity.configured:
                raise AttendanceError(
                    ErrorKind.CONFIGURATION_ERROR,
                    "Classroom location is not configured. Please contact your instructor.",
                    room=proximity.room,
                )
            if not proximity.admitted:
                raise AttendanceError(
                    ErrorKind.TOO_FAR,
                    f"You are {proximity.rounded_distance}m away; you need to be within "
                    f"{proximity.allowed_radius}m of {proximity.room or 'the classroom'}.",
                    distance_meters=proximity.rounded_distance,
                    allowed_radius=proximity.allowed_radius,
                    room=proximity.room,
                )
            return

        if gate == Gate.FACE:
            attempt.match_score = self._verify_face(student, evidence)

    def _verify_face(self, student, evidence: CheckInEvidence) -> float:
        if not evidence.image_base64 or not isinstance(evidence.image_base64, str):
            raise AttendanceError(ErrorKind.VALIDATION_ERROR, "Image data is required")
        if not student.face_registered:
            raise AttendanceError(
                ErrorKind.FACE_NOT_REGISTERED,
                "Face not registered. Please register your face first."
            )
        if self.face_oracle is None or self.face_cipher is None:
            raise AttendanceError(ErrorKind.VERIFICATION_UNAVAILABLE, "Face verification is not configured")

        reference = self.face_cipher.decrypt(student.face_reference)
        match = self.face_oracle.compare(evidence.image_base64, reference)

        if not match.face_detected:
            raise AttendanceError(
                ErrorKind.FACE_NOT_DETECTED,
                "No face detected in the image. Please ensure your face is clearly visible."
            )

        if not match.is_same_person or match.match_score < self.policy.face_match_threshold:
            raise AttendanceError(
                ErrorKind.LOW_MATCH_SCORE,
                f"Face verification failed. Match score: {match.match_score * 100:.0f}%. "
                f"Please try again or use QR check-in.",
                match_score=match.match_score,
            )

        return match.match_score

    @staticmethod
    def _evidence_score(method: AttendanceMethod, attempt: _Attempt) -> Optional[float]:
        if method == AttendanceMethod.FACE:
            return attempt.match_score
        if method == AttendanceMethod.PROXIMITY and attempt.proximity is not None:
            return attempt.proximity.confidence()
        return None

    @staticmethod
    def _failure(method_name: str, error: AttendanceError, attempt: _Attempt) -> CheckInResult:
        if error.kind == ErrorKind.INTERNAL_ERROR:
            current_app.logger.error(f"Check-in failed internally: {error.message}")
        else:
            current_app.logger.info(f"Check-in rejected ({method_name}): {error.kind.value}")

        details = error.details if error.kind != ErrorKind.INTERNAL_ERROR else {}
        return CheckInResult(
            success=False,
            method=method_name,
            message=error.public_message,
            reason=error.kind.value,
            session_id=attempt.session.id if attempt.session is not None else None,
            distance_meters=details.get('distance_meters'),
            allowed_radius=details.get('allowed_radius'),
            room=details.get('room'),
            match_score=details.get('match_score'),
            status_code=error.status_code,
        )
