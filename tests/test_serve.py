"""Tests for the SpamClassifier deployment handlers, called without Ray Serve."""

import asyncio
from types import SimpleNamespace

import mlflow
import mlflow.pytorch
import pytest
import torch
from fastapi import HTTPException
from mlflow.exceptions import MlflowException

import src.serving.serve as serve_module
from src.serving.schemas import (
    APIStatus,
    ModelInfo,
    PredictionRequest,
    SessionMessage,
)
from src.serving.serve import SpamClassifier
from src.serving.sessions import SessionRegistry
from src.training.evaluate import DEMO_MESSAGES
from src.training.features import SpamFeatureModel
from src.training.model import HamSpamClassifier

MODEL_URI = "models:/dev.ham-or-spam-classifier/1"
NEW_MODEL_URI = "models:/dev.ham-or-spam-classifier/2"

TRAIN_MESSAGES = [
    "Free entry in 2 a wkly comp to win FA Cup final tkts",
    "WINNER!! You have been selected to receive a prize reward",
    "Ok lar... Joking wif u oni...",
    "I'm gonna be home soon, see you later",
]


def run(coro):
    return asyncio.run(coro)


def _classifier(num_features: int) -> HamSpamClassifier:
    torch.manual_seed(0)
    return HamSpamClassifier(num_features=num_features, hidden=(8,))


def _model_info(feature_model: SpamFeatureModel, model_uri=MODEL_URI, run_id="run-a"):
    return ModelInfo(
        model_uri=model_uri,
        model_uuid=f"uuid-{run_id}",
        run_id=run_id,
        num_features=feature_model.num_features,
        min_doc_freq=feature_model.min_doc_freq,
        hash_seed=feature_model.seed,
        spam_threshold=0.5,
    )


@pytest.fixture
def feature_model():
    return SpamFeatureModel.fit(TRAIN_MESSAGES, num_features=16, min_doc_freq=1)


@pytest.fixture
def service(feature_model):
    """Replica state as after a successful model load."""
    deployment_cls = SpamClassifier.func_or_class
    # Skip the ASGI wrapper set up by serve.ingress, only run our __init__
    impl = next(c for c in deployment_cls.__mro__ if "_load_model" in vars(c))
    svc = object.__new__(deployment_cls)
    impl.__init__(svc)

    svc.feature_model = feature_model
    svc.model = _classifier(feature_model.num_features).eval()
    svc.model_info = _model_info(feature_model)
    svc.status = APIStatus.HEALTHY
    return svc


@pytest.fixture
def mlflow_run_b(monkeypatch):
    """MLflow lookups for a second registered model version (run-b)."""
    info = SimpleNamespace(run_id="run-b", model_uuid="uuid-run-b", signature=None)
    mlflow_run = SimpleNamespace(
        data=SimpleNamespace(tags={"dvc_data_version": "sms-v2.0.0"}),
        info=SimpleNamespace(start_time=1_700_000_000_000),
    )

    class FakeClient:
        def get_run(self, run_id):
            assert run_id == "run-b"
            return mlflow_run

    feature_model_b = SpamFeatureModel.fit(TRAIN_MESSAGES, num_features=8, min_doc_freq=1)

    monkeypatch.setattr(mlflow.models, "get_model_info", lambda uri: info)
    monkeypatch.setattr(mlflow.tracking, "MlflowClient", FakeClient)
    monkeypatch.setattr(serve_module, "load_feature_model", lambda run_id: feature_model_b)
    return feature_model_b


def _raises_http(coro, status_code):
    with pytest.raises(HTTPException) as exc_info:
        run(coro)
    assert exc_info.value.status_code == status_code
    return exc_info.value


# ============================================== #
# 🔹 SECTION: Predictions
# ============================================== #
def test_predict_scores_messages(service):
    response = run(service.predict(PredictionRequest(messages=list(DEMO_MESSAGES))))

    assert [p.message for p in response.predictions] == list(DEMO_MESSAGES)
    for p in response.predictions:
        assert p.is_spam == (p.spam_probability > 0.5)
        assert p.label == ("spam" if p.is_spam else "ham")
    assert response.model_uri == MODEL_URI
    assert response.session_id is None
    assert response.processing_time_ms >= 0


def test_predict_records_results_in_session(service):
    session_id = run(service.open_session()).session_id

    response = run(
        service.predict(
            PredictionRequest(messages=TRAIN_MESSAGES[:2], session_id=session_id)
        )
    )

    info = run(service.get_session(session_id))
    assert response.session_id == session_id
    assert info.messages_scored == 2
    assert info.spam_count == sum(p.is_spam for p in response.predictions)


def test_predict_unknown_session_is_404(service):
    error = _raises_http(
        service.predict(PredictionRequest(messages=["hello there"], session_id=42)), 404
    )
    assert error.detail == "Session 42 not found"


def test_predict_without_model_is_503(service):
    service.model = None
    _raises_http(service.predict(PredictionRequest(messages=["hello there"])), 503)


@pytest.mark.parametrize("state", [APIStatus.UNHEALTHY, APIStatus.LOADING])
def test_predict_when_not_healthy_is_503(service, state):
    service.status = state
    _raises_http(service.predict(PredictionRequest(messages=["hello there"])), 503)


def test_predict_value_error_is_400(service, monkeypatch):
    def bad_input(*args, **kwargs):
        raise ValueError("cannot weigh message")

    monkeypatch.setattr(serve_module, "classify_messages", bad_input)

    error = _raises_http(service.predict(PredictionRequest(messages=["hello there"])), 400)
    assert "cannot weigh message" in error.detail


def test_predict_unexpected_error_is_500(service, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("shape mismatch")

    monkeypatch.setattr(serve_module, "classify_messages", broken)

    _raises_http(service.predict(PredictionRequest(messages=["hello there"])), 500)


# ============================================== #
# 🔹 SECTION: Sessions
# ============================================== #
def test_close_session_replies_with_session_message(service):
    session_id = run(service.open_session()).session_id
    run(service.predict(PredictionRequest(messages=["hello there"], session_id=session_id)))

    reply = run(service.close_session(session_id))

    assert isinstance(reply, SessionMessage)
    assert set(reply.model_dump()) == {"session_id", "msg"}
    assert reply.session_id == session_id
    assert reply.msg.startswith(f"Session {session_id} closed after scoring 1 messages")
    _raises_http(service.get_session(session_id), 404)
    _raises_http(service.close_session(session_id), 404)


def test_open_session_limit_is_429(service):
    service.sessions = SessionRegistry(max_sessions=1)
    run(service.open_session())

    _raises_http(service.open_session(), 429)


# ============================================== #
# 🔹 SECTION: Health and Info
# ============================================== #
def test_health_when_healthy(service):
    run(service.open_session())

    response = run(service.health())

    assert response.status == APIStatus.HEALTHY
    assert response.model_loaded
    assert response.model_uri == MODEL_URI
    assert response.open_sessions == 1


def test_health_not_ready_is_503(service):
    service.status = APIStatus.NOT_READY
    service.model = None
    service.model_info = None

    error = _raises_http(service.health(), 503)

    assert error.detail["status"] == "not_ready"
    assert error.detail["model_loaded"] is False


def test_info(service, feature_model):
    info = run(service.info())
    assert info.num_features == feature_model.num_features
    assert info.output_classes == ["ham", "spam"]


def test_info_without_model_is_503(service):
    service.model_info = None
    _raises_http(service.info(), 503)


# ============================================== #
# 🔹 SECTION: Model Reload
# ============================================== #
def test_failed_reload_keeps_previous_models(service, mlflow_run_b, monkeypatch):
    old_feature_model, old_model = service.feature_model, service.model

    def missing_model(*args, **kwargs):
        raise MlflowException("model version 2 not found")

    monkeypatch.setattr(mlflow.pytorch, "load_model", missing_model)

    with pytest.raises(HTTPException) as exc_info:
        service.reconfigure({"model_uri": NEW_MODEL_URI})

    assert exc_info.value.status_code == 503
    assert service.status == APIStatus.UNHEALTHY
    assert service.feature_model is old_feature_model
    assert service.model is old_model
    assert service.model_info.run_id == "run-a"
    _raises_http(service.predict(PredictionRequest(messages=["hello there"])), 503)


def test_reload_swaps_models_together(service, mlflow_run_b, monkeypatch):
    new_model = _classifier(mlflow_run_b.num_features)
    monkeypatch.setattr(mlflow.pytorch, "load_model", lambda uri, map_location: new_model)

    service.reconfigure({"model_uri": NEW_MODEL_URI})

    assert service.status == APIStatus.HEALTHY
    assert service.feature_model is mlflow_run_b
    assert service.model is new_model
    assert service.model_info.run_id == "run-b"
    assert service.model_info.num_features == 8
    assert service.model_info.data_version == "sms-v2.0.0"

    response = run(service.predict(PredictionRequest(messages=["hello there"])))
    assert response.model_uri == NEW_MODEL_URI


def test_reconfigure_same_uri_skips_reload(service, monkeypatch):
    def unexpected(uri):
        raise AssertionError("model should not be reloaded")

    monkeypatch.setattr(mlflow.models, "get_model_info", unexpected)

    service.reconfigure({"model_uri": MODEL_URI})

    assert service.status == APIStatus.HEALTHY
