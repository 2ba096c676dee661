# ==============================================================================
# Serving API Schemas
# ==============================================================================
#
# Pydantic models for Ham or Spam API request/response validation.
#
# Schema Overview:
#   - PredictionRequest: Input validation for batch SMS predictions
#   - PredictionResponse: Structured output with predictions and metadata
#   - ModelInfo: Model metadata including feature hashing parameters
#   - HealthResponse: Health check status information
#   - SessionMessage: Session id in, service message out (DELETE reply)
#   - SessionInfo: Running tallies of a scoring session
#
# Input Format:
#   - List of raw SMS texts, scored with the training feature model
#
# Output Classes:
#   0: ham, 1: spam
#
# Validation:
#   - Batch size limited to REQUEST_MAX_LENGTH (default: 1000)
#   - Each message must be non-blank and at most MESSAGE_MAX_CHARS long
#
# ==============================================================================

"""Schema definitions for the Ham or Spam serving module."""

from datetime import datetime
from enum import StrEnum, auto
from typing import Annotated, List

from pydantic import AfterValidator, BaseModel, Field

from src.serving.config import SERVING_CONFIG

SMS_CLASSES = ["ham", "spam"]


def validate_messages(messages: List[str]) -> List[str]:
    """Validate input messages."""
    for i, msg in enumerate(messages):
        if not msg.strip():
            raise ValueError(f"Message {i} is blank")
        if len(msg) > SERVING_CONFIG.message_max_chars:
            raise ValueError(
                f"Message {i} has {len(msg)} characters, "
                f"maximum is {SERVING_CONFIG.message_max_chars}"
            )
    return messages


class SmsLabel(StrEnum):
    """Predicted message class."""

    HAM = auto()
    SPAM = auto()


class PredictionRequest(BaseModel):
    """Input model for predictions with validation."""

    messages: Annotated[
        List[str],
        AfterValidator(validate_messages),
        Field(
            min_length=1,
            max_length=SERVING_CONFIG.request_max_length,  # Prevent DOS attacks with huge batches
            description="List of raw SMS texts to classify.",
            examples=[
                ["Michal, beer tonight in MV?", "WINNER!! Claim your prize now"],
            ],
        ),
    ]
    session_id: int | None = Field(
        None, description="Optional scoring session to record the results in"
    )


class Prediction(BaseModel):
    """Single prediction result."""

    message: str = Field(..., description="The scored message")
    label: SmsLabel = Field(..., description="Predicted class ('ham' or 'spam')")
    spam_probability: float = Field(
        ..., description="Probability that the message is spam (0-1)", ge=0.0, le=1.0
    )
    is_spam: bool = Field(..., description="Whether the message is spam")


class PredictionResponse(BaseModel):
    """Response model for predictions."""

    predictions: List[Prediction] = Field(
        ..., description="List of predictions for each input message"
    )
    model_uri: str = Field(..., description="URI of the model used")
    session_id: int | None = Field(None, description="Session the results were recorded in")
    timestamp: datetime = Field(..., description="Prediction timestamp UTC")
    processing_time_ms: float = Field(
        ..., description="Time taken to process request in milliseconds"
    )


class ModelInfo(BaseModel):
    """Model metadata information."""

    model_uri: str = Field(..., description="URI of the model used")
    model_uuid: str = Field(..., description="MLflow model UUID")
    run_id: str = Field(..., description="MLflow run ID associated with the model")
    model_signature: dict | None = Field(None, description="MLflow model signature")
    data_version: str | None = Field(
        None, description="DVC data version used for training"
    )
    training_timestamp: datetime | None = Field(
        None, description="When the model was trained"
    )
    num_features: int = Field(..., description="Number of hashed feature buckets")
    min_doc_freq: int = Field(..., description="Minimum document frequency for IDF")
    hash_seed: int = Field(..., description="MurmurHash3 seed")
    spam_threshold: float = Field(..., description="Spam probability cut-off")
    output_classes: List[str] = Field(
        default_factory=lambda: list(SMS_CLASSES),
        description="List of output class names",
    )


class APIStatus(StrEnum):
    """API status enumeration."""

    LOADING = auto()
    HEALTHY = auto()
    UNHEALTHY = auto()
    NOT_READY = auto()


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: APIStatus = Field(..., description="API health status")
    model_loaded: bool = Field(..., description="Whether a model is loaded")
    model_uri: str | None = Field(None, description="Current model URI")
    uptime_seconds: int | None = Field(None, description="Service uptime in seconds")
    open_sessions: int = Field(0, description="Number of open scoring sessions")


class RootResponse(BaseModel):
    """Response model for root endpoint."""

    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    status: str = Field(..., description="Service status")
    docs: str = Field(..., description="URL to API documentation")
    health: str = Field(..., description="URL to health check endpoint")


class SessionMessage(BaseModel):
    """Schema used for representing arbitrary text messages.

    So far used as the reply to a DELETE request.
    """

    session_id: int = Field(
        ...,
        description="Session id identifying the correct scoring session",
        json_schema_extra={"direction": "input"},
    )
    msg: str | None = Field(
        None,
        description="Message from the service",
        json_schema_extra={"direction": "output"},
    )


class SessionInfo(BaseModel):
    """Running tallies of a scoring session."""

    session_id: int = Field(..., description="Session id")
    created_at: datetime = Field(..., description="Session creation time UTC")
    messages_scored: int = Field(0, description="Number of messages scored", ge=0)
    spam_count: int = Field(0, description="Number of messages classified as spam", ge=0)


class ErrorDetail(BaseModel):
    """Error detail model."""

    error_type: str = Field(..., description="Type of error")
    message: str = Field(..., description="Error message")
    details: dict | None = Field(None, description="Additional error details")


class ErrorResponse(BaseModel):
    """Error response model."""

    detail: str | ErrorDetail = Field(..., description="Error details")
