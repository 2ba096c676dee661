# ==============================================================================
# Training Configuration
# ==============================================================================
#
# Centralized configuration for the training pipeline using pydantic-settings.
#
# All settings can be overridden via environment variables (uppercase with
# underscores, e.g., MLFLOW_TRACKING_URI, RAY_NUM_WORKERS, NUM_FEATURES).
#
# Configuration Categories:
#   - MLflow: Tracking URI, experiment name, model registry name
#   - Ray: Storage endpoint, checkpoint path, worker count
#   - Data: SMS corpus path and encoding, optional DVC repository
#   - Features: Hash buckets, minimum document frequency, hash seed
#
# Usage:
#   from src.training.config import TRAINING_CONFIG
#   print(TRAINING_CONFIG.mlflow_experiment_name)
#
# ==============================================================================

from pydantic_settings import BaseSettings


class WorkflowTags(BaseSettings):
    """⚠️ Data Contract for CI/CD Workflows:
    ============================================================
    When running in Argo Workflows, the following environment variables MUST be set:

    - ARGO_WORKFLOW_UID: Unique identifier for the Argo workflow run
    - DOCKER_IMAGE_TAG: Docker image tag used for training (for reproducibility)
    - DVC_DATA_VERSION: Data version from DVC (takes precedence over --data-version arg)

    For local development, set the first two to "DEV" in your .env file and
    leave DVC_DATA_VERSION unset to read the corpus from the local file.
    """

    argo_workflow_uid: str
    docker_image_tag: str
    dvc_data_version: str | None = None


class TrainingConfig(BaseSettings):
    """Training configuration loaded from environment variables."""

    # For experiment tracking
    mlflow_tracking_uri: str
    mlflow_experiment_name: str = "ham-or-spam"
    mlflow_registered_model_name: str = "dev.ham-or-spam-classifier"

    # Ray options
    ray_storage_endpoint: str | None = None  # S3/MinIO endpoint, local disk if unset
    ray_storage_scheme: str = "http"
    ray_storage_path: str = "/tmp/ray_results"
    ray_num_workers: int = 1

    # SMS corpus, one "<label>\t<message>" per line
    sms_data_path: str = "examples/smalldata/smsData.txt"
    sms_data_encoding: str = "ISO-8859-1"
    dvc_repo: str | None = None

    # Feature hashing
    num_features: int = 1024
    min_doc_freq: int = 4
    hash_seed: int = 42
    train_fraction: float = 0.8


# Singleton instances
TRAINING_CONFIG = TrainingConfig()
WORKFLOW_TAGS = WorkflowTags()
