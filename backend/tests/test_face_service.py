"""Tests for the face-match oracle client and reference encryption."""
import json
from unittest.mock import MagicMock

import pytest
import requests
from cryptography.fernet import Fernet

from attendance.services.face_service import FaceOracleClient, FaceTemplateCipher, as_data_uri
from attendance.utils.errors import AttendanceError, ErrorKind


def _response(content, status_code=200):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.json.return_value = {'choices': [{'message': {'content': content}}]}
    return response


@pytest.fixture
def oracle(app):
    return FaceOracleClient('https://oracle.test/v1/chat/completions', 'key-123', 'vision-model',
                            timeout=5, session=MagicMock())


def test_compare_parses_verdict(oracle):
    oracle.http.post.return_value = _response(json.dumps({
        'face_detected': True,
        'match_score': 0.82,
        'is_same_person': True,
        'confidence': 'high',
        'reason': 'Consistent features',
    }))

    match = oracle.compare('aGVsbG8=', {'face_shape': 'oval'})

    assert match.face_detected
    assert match.match_score == 0.82
    assert match.is_same_person
    assert match.confidence == 'high'

    _, kwargs = oracle.http.post.call_args
    assert kwargs['headers'] == {'Authorization': 'Bearer key-123'}
    assert kwargs['timeout'] == 5
    assert kwargs['json']['model'] == 'vision-model'
    image_part = kwargs['json']['messages'][1]['content'][1]
    assert image_part['image_url']['url'] == 'data:image/jpeg;base64,aGVsbG8='
    assert '"face_shape": "oval"' in kwargs['json']['messages'][0]['content']


def test_compare_accepts_fenced_json(oracle):
    oracle.http.post.return_value = _response(
        '```json\n{"face_detected": true, "match_score": 0.7, "is_same_person": false}\n```'
    )

    match = oracle.compare('aGVsbG8=', {})

    assert match.match_score == 0.7
    assert not match.is_same_person


def test_compare_missing_score_defaults_to_zero(oracle):
    oracle.http.post.return_value = _response('{"face_detected": true, "is_same_person": false}')

    assert oracle.compare('aGVsbG8=', {}).match_score == 0.0


@pytest.mark.parametrize('side_effect', [requests.Timeout(), requests.ConnectionError()])
def test_transport_failure_is_unavailable(oracle, side_effect):
    oracle.http.post.side_effect = side_effect

    with pytest.raises(AttendanceError) as exc:
        oracle.compare('aGVsbG8=', {})
    assert exc.value.kind == ErrorKind.VERIFICATION_UNAVAILABLE
    assert exc.value.status_code == 503


def test_error_status_is_unavailable(oracle):
    oracle.http.post.return_value = _response('', status_code=500)

    with pytest.raises(AttendanceError) as exc:
        oracle.compare('aGVsbG8=', {})
    assert exc.value.kind == ErrorKind.VERIFICATION_UNAVAILABLE


@pytest.mark.parametrize('content', [
    'I think it is the same person',
    '["face_detected"]',
    '{"face_detected": "yes", "match_score": 0.9, "is_same_person": true}',
    '{"face_detected": true, "match_score": 1.7, "is_same_person": true}',
])
def test_unreadable_answer_is_unavailable(oracle, content):
    oracle.http.post.return_value = _response(content)

    with pytest.raises(AttendanceError) as exc:
        oracle.compare('aGVsbG8=', {})
    assert exc.value.kind == ErrorKind.VERIFICATION_UNAVAILABLE


def test_missing_api_key_is_unavailable(app):
    client = FaceOracleClient('https://oracle.test', None, 'vision-model', session=MagicMock())

    with pytest.raises(AttendanceError) as exc:
        client.compare('aGVsbG8=', {})
    assert exc.value.kind == ErrorKind.VERIFICATION_UNAVAILABLE
    client.http.post.assert_not_called()


def test_analyze_capture(oracle):
    oracle.http.post.return_value = _response(json.dumps({
        'face_detected': True,
        'single_face': True,
        'face_count': 1,
        'is_real_person': True,
        'spoof_indicators': [],
        'face_quality': 82,
        'face_features': {'face_shape': 'round', 'eyes': 'dark brown'},
        'angle_verification': {'is_front': False, 'is_left_turn': True},
        'embedding_signature': 'a1b2c3',
    }))

    capture = oracle.analyze_capture('aGVsbG8=', 'left')

    assert capture.face_detected and capture.single_face and capture.is_real_person
    assert capture.face_quality == 82
    assert capture.angle_matches
    assert capture.face_features == {'face_shape': 'round', 'eyes': 'dark brown'}
    assert capture.embedding_signature == 'a1b2c3'

    _, kwargs = oracle.http.post.call_args
    assert 'turned slightly left' in kwargs['json']['messages'][0]['content']


def test_analyze_capture_missing_flags_fail_closed(oracle):
    oracle.http.post.return_value = _response('{"face_detected": true, "face_quality": 90}')

    capture = oracle.analyze_capture('aGVsbG8=', 'up')

    assert not capture.single_face
    assert not capture.is_real_person
    assert not capture.angle_matches


def test_analyze_blink_needs_no_pose_flag(oracle):
    oracle.http.post.return_value = _response(
        '{"face_detected": true, "single_face": true, "is_real_person": true, "face_quality": 75}'
    )

    assert oracle.analyze_capture('aGVsbG8=', 'blink').angle_matches


def test_analyze_capture_without_quality_is_unavailable(oracle):
    oracle.http.post.return_value = _response('{"face_detected": true, "face_quality": "high"}')

    with pytest.raises(AttendanceError) as exc:
        oracle.analyze_capture('aGVsbG8=', 'front')
    assert exc.value.kind == ErrorKind.VERIFICATION_UNAVAILABLE


def test_find_duplicate(oracle):
    oracle.http.post.return_value = _response(
        '{"is_duplicate": true, "highest_similarity": 93, "matched_index": 1}'
    )

    verdict = oracle.find_duplicate({'signatures': ['new']}, [{'signatures': ['a']}, {'signatures': ['b']}])

    assert verdict.is_duplicate
    assert verdict.highest_similarity == 93
    assert verdict.matched_index == 1

    _, kwargs = oracle.http.post.call_args
    user_content = kwargs['json']['messages'][1]['content']
    assert isinstance(user_content, str)
    assert '"index": 1' in user_content


@pytest.mark.parametrize('matched_index', [5, -1, True, '0', None])
def test_find_duplicate_ignores_unknown_index(oracle, matched_index):
    oracle.http.post.return_value = _response(json.dumps(
        {'is_duplicate': True, 'highest_similarity': 99, 'matched_index': matched_index}
    ))

    assert oracle.find_duplicate({}, [{}, {}]).matched_index is None


def test_find_duplicate_unreadable_is_unavailable(oracle):
    oracle.http.post.return_value = _response('{"is_duplicate": "maybe"}')

    with pytest.raises(AttendanceError) as exc:
        oracle.find_duplicate({}, [{}])
    assert exc.value.kind == ErrorKind.VERIFICATION_UNAVAILABLE

def test_data_uri_kept_as_is():
    assert as_data_uri('data:image/png;base64,abc') == 'data:image/png;base64,abc'


def test_cipher_round_trip_is_opaque():
    cipher = FaceTemplateCipher(Fernet.generate_key().decode())

    token = cipher.encrypt({'face_shape': 'oval'})

    assert 'oval' not in token
    assert cipher.decrypt(token) == {'face_shape': 'oval'}


def test_cipher_rejects_foreign_token():
    cipher = FaceTemplateCipher(Fernet.generate_key().decode())
    other = FaceTemplateCipher(Fernet.generate_key().decode())

    with pytest.raises(AttendanceError) as exc:
        cipher.decrypt(other.encrypt({'face_shape': 'oval'}))
    assert exc.value.kind == ErrorKind.INTERNAL_ERROR


def test_cipher_from_config_without_key():
    assert FaceTemplateCipher.from_config({}) is None
