"""Tests for the in-memory scoring session registry."""

import pytest

from src.serving.schemas import Prediction
from src.serving.sessions import (
    SessionLimitError,
    SessionNotFoundError,
    SessionRegistry,
)


def _prediction(is_spam: bool) -> Prediction:
    return Prediction(
        message="msg",
        label="spam" if is_spam else "ham",
        spam_probability=0.9 if is_spam else 0.1,
        is_spam=is_spam,
    )


def test_open_assigns_increasing_ids():
    registry = SessionRegistry()

    first, second = registry.open(), registry.open()

    assert (first.session_id, second.session_id) == (1, 2)
    assert len(registry) == 2
    assert 1 in registry


def test_record_updates_tallies():
    registry = SessionRegistry()
    session = registry.open()

    registry.record(session.session_id, [_prediction(True), _prediction(False)])
    registry.record(session.session_id, [_prediction(True)])

    info = registry.get(session.session_id)
    assert info.messages_scored == 3
    assert info.spam_count == 2


def test_close_returns_summary_and_forgets_session():
    registry = SessionRegistry()
    session = registry.open()
    registry.record(session.session_id, [_prediction(True), _prediction(False)])

    reply = registry.close(session.session_id)

    assert reply.session_id == session.session_id
    assert reply.msg == "Session 1 closed after scoring 2 messages (1 spam)"
    assert session.session_id not in registry


def test_ids_are_not_reused_after_close():
    registry = SessionRegistry()
    registry.close(registry.open().session_id)
    assert registry.open().session_id == 2


@pytest.mark.parametrize("action", ["get", "close"])
def test_unknown_session(action):
    registry = SessionRegistry()
    with pytest.raises(SessionNotFoundError, match="Session 7 not found"):
        getattr(registry, action)(7)


def test_record_unknown_session():
    with pytest.raises(SessionNotFoundError):
        SessionRegistry().record(1, [_prediction(False)])


def test_limit():
    registry = SessionRegistry(max_sessions=1)
    registry.open()
    with pytest.raises(SessionLimitError):
        registry.open()
