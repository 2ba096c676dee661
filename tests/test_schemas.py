"""Tests for the serving request/response schemas."""

import pytest
from pydantic import ValidationError

from src.serving.config import SERVING_CONFIG
from src.serving.schemas import (
    SMS_CLASSES,
    APIStatus,
    Prediction,
    PredictionRequest,
    SessionMessage,
    SmsLabel,
)


def test_prediction_request_accepts_messages():
    request = PredictionRequest(messages=["Michal, beer tonight in MV?"])
    assert request.messages == ["Michal, beer tonight in MV?"]
    assert request.session_id is None


def test_prediction_request_rejects_empty_batch():
    with pytest.raises(ValidationError):
        PredictionRequest(messages=[])


def test_prediction_request_rejects_blank_message():
    with pytest.raises(ValidationError, match="Message 1 is blank"):
        PredictionRequest(messages=["hello there", "   "])


def test_prediction_request_rejects_long_message():
    too_long = "x" * (SERVING_CONFIG.message_max_chars + 1)
    with pytest.raises(ValidationError, match="maximum is"):
        PredictionRequest(messages=[too_long])


def test_prediction_request_rejects_huge_batch():
    messages = ["hi there"] * (SERVING_CONFIG.request_max_length + 1)
    with pytest.raises(ValidationError):
        PredictionRequest(messages=messages)


def test_prediction_probability_bounds():
    with pytest.raises(ValidationError):
        Prediction(message="m", label="spam", spam_probability=1.5, is_spam=True)


def test_labels_match_classes():
    assert [label.value for label in SmsLabel] == SMS_CLASSES
    assert Prediction(
        message="m", label="ham", spam_probability=0.1, is_spam=False
    ).label is SmsLabel.HAM


def test_api_status_values():
    assert APIStatus.HEALTHY == "healthy"
    assert APIStatus.NOT_READY == "not_ready"


def test_session_message_fields():
    message = SessionMessage(session_id=3)
    assert message.msg is None

    props = SessionMessage.model_json_schema()["properties"]
    assert props["session_id"]["direction"] == "input"
    assert props["msg"]["direction"] == "output"


def test_session_message_has_two_fields_and_nullable_msg():
    assert set(SessionMessage.model_fields) == {"session_id", "msg"}
    assert SessionMessage(session_id=3).model_dump() == {"session_id": 3, "msg": None}
    assert SessionMessage(session_id=3, msg="bye").msg == "bye"


def test_session_message_requires_id():
    with pytest.raises(ValidationError):
        SessionMessage(msg="hello")
