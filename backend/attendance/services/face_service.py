"""Client for the external face-match oracle and storage of face references.

The oracle is a multimodal model behind an OpenAI-compatible chat
completions endpoint. Its verdict is trusted once received, but any
transport failure or unreadable answer is reported as
VerificationUnavailable and never treated as a pass or a fail.
"""
import json
import re
from dataclasses import dataclass, asdict, field
from numbers import Real
from typing import Dict, List, Optional, Sequence

import requests
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app

from attendance.utils.errors import AttendanceError, ErrorKind

COMPARE_PROMPT = """You are a face verification system. Compare the face in the provided image against stored facial features and determine if they match the same person.

STORED FACIAL FEATURES:
{features}

Analyze the provided image and return a JSON object with:
- face_detected: boolean
- match_score: number between 0 and 1 (similarity score)
- matching_features: array of features that match
- differing_features: array of features that differ
- is_same_person: boolean
- confidence: string (high/medium/low)
- reason: string (brief explanation)

Return ONLY valid JSON, no markdown or explanation."""

ANALYZE_PROMPT = """You are a secure biometric face analysis system. Analyze the provided face image with extreme scrutiny.

Check that exactly one clear human face is visible, look for signs of a printed, screen-displayed or otherwise fake face (reflections, paper or screen edges, moire patterns, missing depth cues, unnatural skin texture), rate image quality from 0 to 100, and verify the face matches the expected angle: "{expected}".

Return ONLY valid JSON with this structure:
{{
  "face_detected": boolean,
  "single_face": boolean,
  "face_count": number,
  "is_real_person": boolean,
  "spoof_indicators": [string],
  "face_quality": number (0-100),
  "face_features": {{face_shape, forehead, eyebrows, eyes, nose, mouth, chin, cheekbones, jawline, skin_tone, distinctive_features}},
  "angle_verification": {{"is_front": boolean, "is_left_turn": boolean, "is_right_turn": boolean, "is_looking_up": boolean}},
  "embedding_signature": "64-character hash of all facial features combined"
}}"""

DUPLICATE_PROMPT = """You are a face embedding comparison system. Compare the new face data against existing face data to detect duplicates.

Return ONLY valid JSON: {"is_duplicate": boolean, "highest_similarity": number (0-100), "matched_index": number or null}"""

# Capture name -> (expected pose, angle_verification flag that must be true)
CAPTURE_ANGLES = {
    'front': ('front facing', 'is_front'),
    'left': ('turned slightly left', 'is_left_turn'),
    'right': ('turned slightly right', 'is_right_turn'),
    'up': ('looking up', 'is_looking_up'),
    'blink': ('front facing with natural expression', None),
}

CODE_FENCE = re.compile(r'```(?:json)?\n?')


@dataclass
class FaceMatch:
    """Oracle verdict for one check-in image."""
    face_detected: bool
    match_score: float
    is_same_person: bool
    confidence: str = 'low'
    reason: str = ''

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class FaceCapture:
    """Oracle analysis of one registration capture."""
    angle: str
    face_detected: bool
    single_face: bool
    is_real_person: bool
    face_quality: float
    angle_matches: bool
    face_features: Dict = field(default_factory=dict)
    spoof_indicators: List[str] = field(default_factory=list)
    embedding_signature: str = ''


@dataclass
class DuplicateVerdict:
    is_duplicate: bool
    highest_similarity: float
    matched_index: Optional[int] = None


def _unavailable(message: str) -> AttendanceError:
    return AttendanceError(ErrorKind.VERIFICATION_UNAVAILABLE, message)


def _flag(result: Dict, key: str) -> bool:
    """A missing or non-boolean flag counts as a failed check."""
    return result.get(key) is True


def _number(value) -> Optional[float]:
    if isinstance(value, Real) and not isinstance(value, bool):
        return float(value)
    return None


def as_data_uri(image_base64: str) -> str:
    if image_base64.startswith('data:'):
        return image_base64
    return f'data:image/jpeg;base64,{image_base64}'


class FaceOracleClient:
    """HTTP client for the face-match oracle."""

    def __init__(self, url: str, api_key: Optional[str], model: str,
                 timeout: float = 20, session: requests.Session = None):
        self.url = url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.http = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> 'FaceOracleClient':
        return cls(
            url=config.get('FACE_ORACLE_URL'),
            api_key=config.get('FACE_ORACLE_API_KEY'),
            model=config.get('FACE_ORACLE_MODEL'),
            timeout=config.get('FACE_ORACLE_TIMEOUT_SECONDS', 20),
        )

    def compare(self, image_base64: str, reference_features: Dict) -> FaceMatch:
        """Compare a check-in image with stored reference features."""
        system = COMPARE_PROMPT.format(features=json.dumps(reference_features, indent=2))
        result = self._complete(
            system,
            'Analyze this face and compare it with the stored facial features to verify identity.',
            image_base64,
        )

        face_detected = result.get('face_detected')
        is_same_person = result.get('is_same_person', False)
        match_score = result.get('match_score', 0)

        if not isinstance(face_detected, bool) or not isinstance(is_same_person, bool):
            raise _unavailable("Face verification returned an unreadable answer")
        if not isinstance(match_score, Real) or isinstance(match_score, bool) or not 0 <= match_score <= 1:
            raise _unavailable("Face verification returned an unreadable answer")

        return FaceMatch(
            face_detected=face_detected,
            match_score=float(match_score),
            is_same_person=is_same_person,
            confidence=str(result.get('confidence', 'low')),
            reason=str(result.get('reason', '')),
        )

    def analyze_capture(self, image_base64: str, angle: str) -> FaceCapture:
        """Liveness, quality and pose analysis of one registration capture."""
        expected, angle_flag = CAPTURE_ANGLES[angle]
        result = self._complete(
            ANALYZE_PROMPT.format(expected=expected),
            f'Analyze this face image. Expected angle: {expected}. Perform thorough anti-spoofing checks.',
            image_base64,
        )

        quality = _number(result.get('face_quality'))
        if quality is None:
            raise _unavailable("Face analysis returned an unreadable answer")

        angles = result.get('angle_verification')
        angles = angles if isinstance(angles, dict) else {}
        features = result.get('face_features')
        indicators = result.get('spoof_indicators')

        return FaceCapture(
            angle=angle,
            face_detected=_flag(result, 'face_detected'),
            single_face=_flag(result, 'single_face'),
            is_real_person=_flag(result, 'is_real_person'),
            face_quality=quality,
            angle_matches=angle_flag is None or _flag(angles, angle_flag),
            face_features=features if isinstance(features, dict) else {},
            spoof_indicators=[str(i) for i in indicators] if isinstance(indicators, list) else [],
            embedding_signature=str(result.get('embedding_signature', '')),
        )

    def find_duplicate(self, reference: Dict, existing: Sequence[Dict]) -> DuplicateVerdict:
        """Ask whether a new reference belongs to a face stored for someone else."""
        candidates = [{'index': i, 'embedding': item} for i, item in enumerate(existing)]
        result = self._complete(
            DUPLICATE_PROMPT,
            f'New face data:\n{json.dumps(reference)}\n\n'
            f'Existing face data (array):\n{json.dumps(candidates)}',
        )

        similarity = _number(result.get('highest_similarity'))
        matched_index = result.get('matched_index')
        if similarity is None or not isinstance(result.get('is_duplicate'), bool):
            raise _unavailable("Duplicate face check returned an unreadable answer")
        if not isinstance(matched_index, int) or isinstance(matched_index, bool) \
                or not 0 <= matched_index < len(existing):
            matched_index = None

        return DuplicateVerdict(
            is_duplicate=result['is_duplicate'],
            highest_similarity=similarity,
            matched_index=matched_index,
        )

    def _complete(self, system_prompt: str, user_text: str, image_base64: str = None) -> Dict:
        """Send one chat completion and return the parsed JSON answer."""
        if not self.api_key:
            raise _unavailable("Face verification is not configured")

        if image_base64 is None:
            user_content = user_text
        else:
            user_content = [
                {'type': 'text', 'text': user_text},
                {'type': 'image_url', 'image_url': {'url': as_data_uri(image_base64)}},
            ]

        body = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_content},
            ],
        }

        try:
            response = self.http.post(
                self.url,
                json=body,
                headers={'Authorization': f'Bearer {self.api_key}'},
                timeout=self.timeout,
            )
        except requests.Timeout:
            current_app.logger.warning("Face oracle timed out")
            raise _unavailable("Face verification timed out. Please try again.")
        except requests.RequestException as e:
            current_app.logger.warning(f"Face oracle request failed: {e}")
            raise _unavailable("Face verification is unavailable. Please try again.")

        if not response.ok:
            current_app.logger.warning(f"Face oracle error: {response.status_code}")
            raise _unavailable("Face verification is unavailable. Please try again.")

        try:
            content = response.json()['choices'][0]['message']['content']
            parsed = json.loads(CODE_FENCE.sub('', content).strip())
        except (ValueError, KeyError, IndexError, TypeError, AttributeError):
            current_app.logger.warning("Face oracle returned malformed content")
            raise _unavailable("Face verification returned an unreadable answer")

        if not isinstance(parsed, dict):
            raise _unavailable("Face verification returned an unreadable answer")

        return parsed


class FaceTemplateCipher:
    """Encrypts reference features before they are stored on the user."""

    def __init__(self, key: str):
        if not key:
            raise ValueError("FACE_TEMPLATE_KEY is not configured")
        self.fernet = Fernet(key.encode() if isinstance(key, str) else key)

    @classmethod
    def from_config(cls, config) -> Optional['FaceTemplateCipher']:
        """None when no key is configured; face check-in then reports unavailable."""
        key = config.get('FACE_TEMPLATE_KEY')
        return cls(key) if key else None

    def encrypt(self, features: Dict) -> str:
        return self.fernet.encrypt(json.dumps(features).encode()).decode()

    def decrypt(self, token: str) -> Dict:
        try:
            return json.loads(self.fernet.decrypt(token.encode()))
        except (InvalidToken, ValueError):
            raise AttendanceError(ErrorKind.INTERNAL_ERROR, "Stored face reference could not be read")
