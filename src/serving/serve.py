"""Ham or Spam serving application using Ray Serve + MLflow."""

from datetime import datetime, timezone

import mlflow
import torch
from fastapi import FastAPI, HTTPException, status
from pydantic import BaseModel, Field
from ray import serve
from ray.serve import Application

from src._utils.logging import get_logger
from src.serving.config import SERVING_CONFIG
from src.serving.schemas import (
    APIStatus,
    ErrorResponse,
    HealthResponse,
    ModelInfo,
    Prediction,
    PredictionRequest,
    PredictionResponse,
    RootResponse,
    SessionInfo,
    SessionMessage,
)
from src.serving.sessions import SessionLimitError, SessionNotFoundError, SessionRegistry
from src.training.evaluate import classify_messages
from src.training.features import FEATURE_MODEL_ARTIFACT, SpamFeatureModel

logger = get_logger(__name__)

app = FastAPI(
    title="📱 Ham or Spam Classifier API",
    description="SMS spam detection using Ray Serve + MLflow + PyTorch Lightning",
    version="1.0.0",
)


def load_feature_model(run_id: str) -> SpamFeatureModel:
    """Fetch the feature model logged next to the classifier."""
    data = mlflow.artifacts.load_dict(f"runs:/{run_id}/{FEATURE_MODEL_ARTIFACT}")
    return SpamFeatureModel.from_dict(data)


@serve.deployment(
    ray_actor_options={"num_cpus": 1},
)
@serve.ingress(app)
class SpamClassifier:
    def __init__(self, model_uri: str | None = None) -> None:
        """Initialize the classifier, optionally with a model URI."""
        logger.info("📱 Initializing Ham or Spam Classifier Service")
        self.status = APIStatus.NOT_READY
        self.device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
        self.model = None
        self.feature_model: SpamFeatureModel | None = None
        self.model_info: ModelInfo | None = None
        self.sessions = SessionRegistry(max_sessions=SERVING_CONFIG.max_sessions)
        self.start_time = datetime.now(timezone.utc)

        if model_uri:
            try:
                self._load_model(model_uri)
            except Exception as e:
                logger.error(f"Failed to load model during initialization: {e}")
                self.status = APIStatus.UNHEALTHY

    def _load_model(self, model_uri: str) -> None:
        """Internal method to load model and its feature model."""
        logger.info(f"📦 Loading model from: {model_uri}")
        self.status = APIStatus.LOADING

        try:
            info = mlflow.models.get_model_info(model_uri)

            client = mlflow.tracking.MlflowClient()
            run = client.get_run(info.run_id)
            data_version = run.data.tags.get("dvc_data_version")

            # The feature model must come from the same training run
            feature_model = load_feature_model(info.run_id)
            logger.info(
                f"📊 Feature model: {feature_model.num_features} buckets, "
                f"seed {feature_model.seed}"
            )

            model = mlflow.pytorch.load_model(model_uri, map_location=self.device)
            model.eval()

            training_timestamp = datetime.fromtimestamp(
                run.info.start_time / 1000.0, tz=timezone.utc
            )

            model_info = ModelInfo(
                model_uri=model_uri,
                model_uuid=info.model_uuid,
                run_id=info.run_id,
                model_signature=info.signature.to_dict() if info.signature else None,
                data_version=data_version,
                training_timestamp=training_timestamp,
                num_features=feature_model.num_features,
                min_doc_freq=feature_model.min_doc_freq,
                hash_seed=feature_model.seed,
                spam_threshold=SERVING_CONFIG.spam_threshold,
            )

            # Swap all three only once everything loaded
            self.feature_model, self.model, self.model_info = (
                feature_model,
                model,
                model_info,
            )

            self.status = APIStatus.HEALTHY
            logger.success("✅ Model loaded successfully")
            logger.info(f"   Device: {self.device}")
            logger.info(f"   Model UUID: {self.model_info.model_uuid}")
            logger.info(f"   Run ID: {self.model_info.run_id}")
            logger.info(f"   Data version: {data_version}")

        except mlflow.exceptions.MlflowException as e:
            self.status = APIStatus.UNHEALTHY
            logger.error(f"❌ MLflow error loading model: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Failed to load model from MLflow: {str(e)}",
            )
        except Exception as e:
            self.status = APIStatus.UNHEALTHY
            logger.error(f"❌ Unexpected error loading model: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Unexpected error loading model: {str(e)}",
            )

    def reconfigure(self, config: dict) -> None:
        """Handle model updates without restarting the deployment.

        Update via: serve.run(..., user_config={"model_uri": "new_uri"})
        """
        new_model_uri = config.get("model_uri")

        if not new_model_uri:
            logger.warning("⚠️ No model_uri provided in config")
            return

        if self.model_info is None:
            logger.info("🆕 Initial model load via reconfigure")
            self._load_model(new_model_uri)
            return

        if self.model_info.model_uri != new_model_uri:
            logger.info(
                f"🔄 Updating model from {self.model_info.model_uri} to {new_model_uri}"
            )
            self._load_model(new_model_uri)
        else:
            logger.info("ℹ️ Model URI unchanged, skipping reload")

    def _session_or_404(self, session_id: int) -> SessionInfo:
        try:
            return self.sessions.get(session_id)
        except SessionNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get(
        "/",
        response_model=RootResponse,
        summary="Root endpoint",
        responses={
            200: {"description": "Service information"},
            503: {"description": "Service not healthy"},
        },
    )
    async def root(self):
        """Root endpoint with basic info."""
        return RootResponse(
            service="Ham or Spam Classifier API",
            version="1.0.0",
            status=self.status.value,
            docs="/docs",
            health="/health",
        )

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health Check",
        responses={
            200: {"description": "Service is healthy"},
            503: {"description": "Service is not ready or unhealthy"},
        },
    )
    async def health(self):
        """Health check endpoint."""
        uptime = (datetime.now(timezone.utc) - self.start_time).total_seconds()

        response = HealthResponse(
            status=self.status,
            model_loaded=self.model is not None,
            model_uri=self.model_info.model_uri if self.model_info else None,
            uptime_seconds=int(uptime),
            open_sessions=len(self.sessions),
        )

        if self.status != APIStatus.HEALTHY:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=response.model_dump(mode="json"),
            )
        return response

    @app.get(
        "/info",
        response_model=ModelInfo,
        summary="Model Information",
        responses={
            200: {"description": "Model information"},
            503: {"description": "Model not loaded", "model": ErrorResponse},
        },
    )
    async def info(self):
        """Get detailed model information including feature hashing parameters."""
        if self.model_info is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Model not loaded. Please configure the deployment with a model_uri.",
            )
        return self.model_info

    @app.post(
        "/predict",
        response_model=PredictionResponse,
        summary="Classify SMS Messages",
        responses={
            200: {"description": "Successful prediction"},
            400: {"description": "Invalid input", "model": ErrorResponse},
            404: {"description": "Unknown session", "model": ErrorResponse},
            503: {"description": "Model not loaded", "model": ErrorResponse},
            500: {"description": "Internal server error", "model": ErrorResponse},
        },
    )
    async def predict(self, request: PredictionRequest):
        """
        Classify SMS messages as ham or spam.

        **Input Format:**
        - Raw message texts, tokenized and hashed with the training feature model
        - Optional `session_id` of an open scoring session

        **Output:**
        - label: 'ham' or 'spam'
        - spam_probability: Softmax probability of the spam class (0-1)
        - is_spam: spam_probability above the configured threshold
        """
        if self.model is None or self.feature_model is None or self.model_info is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Model not loaded. Configure the deployment with a model_uri.",
            )
        if self.status != APIStatus.HEALTHY:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Service is {self.status.value}, not accepting predictions.",
            )

        if request.session_id is not None:
            self._session_or_404(request.session_id)

        start_time = datetime.now(timezone.utc)

        try:
            results = classify_messages(
                self.feature_model,
                self.model,
                request.messages,
                threshold=SERVING_CONFIG.spam_threshold,
            )
            predictions = [Prediction(**result) for result in results]

            if request.session_id is not None:
                self.sessions.record(request.session_id, predictions)

            processing_time = (
                datetime.now(timezone.utc) - start_time
            ).total_seconds() * 1000

            return PredictionResponse(
                predictions=predictions,
                model_uri=self.model_info.model_uri,
                session_id=request.session_id,
                timestamp=datetime.now(timezone.utc),
                processing_time_ms=processing_time,
            )

        except HTTPException:
            raise
        except ValueError as e:
            logger.error(f"❌ Validation error: {e}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid input: {str(e)}",
            )
        except Exception as e:
            logger.error(f"❌ Prediction error: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Prediction failed: {str(e)}",
            )

    @app.post(
        "/sessions",
        response_model=SessionInfo,
        status_code=status.HTTP_201_CREATED,
        summary="Open Scoring Session",
        responses={
            429: {"description": "Too many open sessions", "model": ErrorResponse},
        },
    )
    async def open_session(self):
        """Open a session that accumulates prediction tallies."""
        try:
            return self.sessions.open()
        except SessionLimitError as e:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=str(e)
            )

    @app.get(
        "/sessions/{session_id}",
        response_model=SessionInfo,
        summary="Session Information",
        responses={404: {"description": "Unknown session", "model": ErrorResponse}},
    )
    async def get_session(self, session_id: int):
        return self._session_or_404(session_id)

    @app.delete(
        "/sessions/{session_id}",
        response_model=SessionMessage,
        summary="Close Scoring Session",
        responses={404: {"description": "Unknown session", "model": ErrorResponse}},
    )
    async def close_session(self, session_id: int):
        """Close a session, the reply carries a summary message."""
        try:
            return self.sessions.close(session_id)
        except SessionNotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


class AppBuilderArgs(BaseModel):
    """Arguments for building the Ray Serve application."""

    model_uri: str | None = Field(
        None,
        description="MLflow model URI to load (e.g., models:/dev.ham-or-spam-classifier/1 or runs:/run_id/model)",
    )


def app_builder(args: AppBuilderArgs) -> Application:
    """Helper function to build the deployment with optional model URI.

    Examples:
        Basic usage:
        >>> serve run src.serving.serve:app_builder model_uri="models:/dev.ham-or-spam-classifier/1"

        With hot reload for development:
        >>> serve run src.serving.serve:app_builder model_uri="models:/dev.ham-or-spam-classifier/1" --reload

    Args:
        args: Configuration arguments including model URI

    Returns:
        Ray Serve Application ready to deploy
    """
    return SpamClassifier.bind(model_uri=args.model_uri)
