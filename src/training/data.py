# ==============================================================================
# SMS Data Loading Module
# ==============================================================================
#
# Loads the labelled SMS corpus and turns it into training frames.
#
# Key Features:
#   - Reads "<label>\t<message>" lines (ISO-8859-1) from a local file or a
#     versioned DVC repository
#   - Fits the hashing TF-IDF feature model on the whole corpus
#   - Splits rows deterministically (first 80% train, rest validation)
#   - Returns plain rows, converted to Ray Datasets by the trainer
#
# Data Flow:
#   1. Read samples, drop lines without a label
#   2. SpamFeatureModel.fit_transform() over all messages
#   3. Build rows {"features": float32[num_features], "target": 0|1}
#   4. Split into train/val rows
#
# Usage:
#   train_rows, val_rows, feature_model, metadata = load_data(
#       path="examples/smalldata/smsData.txt",
#       version=None,  # or a DVC tag, e.g. 'sms-v1.0.0'
#   )
#
# See Also:
#   - src/training/features.py (tokenizer, hashing, IDF)
#   - src/training/train.py (uses to_dataset for Ray Train)
#
# ==============================================================================

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import dvc.api
import numpy as np
import ray
from numpy import ndarray
from ray.data import Dataset

from src._utils.logging import get_logger, log_section
from src.training.config import TRAINING_CONFIG
from src.training.features import SpamFeatureModel
from src.training.model import CAT_DOMAIN

logger = get_logger(__name__)

TARGET_COLUMN = "target"
FEATURES_COLUMN = "features"


def feature_names(num_features: int) -> List[str]:
    """Frame column names of the feature vector: fv0 .. fv{n-1}."""
    return [f"fv{i}" for i in range(num_features)]


def frame_column_names(num_features: int) -> List[str]:
    return [TARGET_COLUMN] + feature_names(num_features)


def read_samples(lines: Iterable[str]) -> List[Tuple[str, str]]:
    """Parse "<label>\\t<message>" lines.

    Lines with an empty label are skipped silently, lines without a
    message part are skipped with a warning.
    """
    samples = []
    for lineno, line in enumerate(lines, start=1):
        parts = line.rstrip("\r\n").split("\t", 1)
        if not parts[0]:
            continue
        if len(parts) < 2:
            logger.warning(f"⚠️ Line {lineno} has no message, skipping")
            continue
        samples.append((parts[0], parts[1]))
    return samples


def load_samples(
    path: str, version: Optional[str] = None, encoding: Optional[str] = None
) -> List[Tuple[str, str]]:
    """Read the SMS corpus from disk, or from DVC when a version is given."""
    encoding = encoding or TRAINING_CONFIG.sms_data_encoding

    if version:
        if not TRAINING_CONFIG.dvc_repo:
            raise ValueError(
                f"Data version '{version}' requested but DVC_REPO is not configured"
            )
        logger.info(
            f"Reading [cyan]{path}[/cyan] at [green]{version}[/green] "
            f"from DVC repo {TRAINING_CONFIG.dvc_repo}"
        )
        with dvc.api.open(
            path, repo=TRAINING_CONFIG.dvc_repo, rev=version, encoding=encoding
        ) as f:
            return read_samples(f)

    logger.info(f"Reading [cyan]{path}[/cyan]")
    with Path(path).open(encoding=encoding) as f:
        return read_samples(f)


def target_index(label: str) -> int:
    try:
        return CAT_DOMAIN.index(label)
    except ValueError:
        raise ValueError(
            f"Unknown label '{label}', expected one of {list(CAT_DOMAIN)}"
        ) from None


def build_rows(labels: Sequence[str], weights: ndarray) -> List[Dict]:
    """Pair each label with its TF-IDF vector."""
    if len(labels) != len(weights):
        raise ValueError(
            f"Got {len(labels)} labels but {len(weights)} feature vectors"
        )
    return [
        {
            FEATURES_COLUMN: np.asarray(fv, dtype=np.float32),
            TARGET_COLUMN: target_index(label),
        }
        for label, fv in zip(labels, weights)
    ]


def split_rows(rows: Sequence[Dict], train_fraction: float = 0.8):
    """Order preserving split, first part is for training."""
    if not 0.0 < train_fraction < 1.0:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")
    cutoff = int(len(rows) * train_fraction)
    return list(rows[:cutoff]), list(rows[cutoff:])


def stack_rows(rows: Sequence[Dict]) -> Tuple[ndarray, ndarray]:
    """Rows as (X, y) matrices for local evaluation."""
    if not rows:
        raise ValueError("Cannot stack an empty list of rows")
    x = np.stack([row[FEATURES_COLUMN] for row in rows]).astype(np.float32)
    y = np.array([row[TARGET_COLUMN] for row in rows], dtype=np.int64)
    return x, y


def to_dataset(rows: Sequence[Dict]) -> Dataset:
    """Distributed frame for Ray Train."""
    return ray.data.from_items(list(rows))


def load_data(
    path: Optional[str] = None,
    version: Optional[str] = None,
    limit: Optional[int] = None,
) -> Tuple[List[Dict], List[Dict], SpamFeatureModel, dict]:
    """Load the corpus and build train/val rows.

    Args:
        path: Corpus path (local or inside the DVC repo)
        version: Optional DVC version tag
        limit: Optional limit on the number of samples

    Returns:
        Tuple of (train_rows, val_rows, feature_model, metadata)
    """
    path = path or TRAINING_CONFIG.sms_data_path
    log_section(f"Loading SMS Data {version or 'local'}", "📦")

    samples = load_samples(path, version=version)
    if limit:
        samples = samples[:limit]
    if not samples:
        raise ValueError(f"No samples found in {path}")

    labels = [label for label, _ in samples]
    messages = [msg for _, msg in samples]

    feature_model, weights = SpamFeatureModel.fit_transform(
        messages,
        num_features=TRAINING_CONFIG.num_features,
        min_doc_freq=TRAINING_CONFIG.min_doc_freq,
        seed=TRAINING_CONFIG.hash_seed,
    )
    logger.info(
        f"Feature model: [yellow]{feature_model.active_features}[/yellow] of "
        f"{feature_model.num_features} buckets above min doc freq "
        f"{feature_model.min_doc_freq}"
    )

    rows = build_rows(labels, weights)
    train_rows, val_rows = split_rows(rows, TRAINING_CONFIG.train_fraction)

    def spam_ratio(part):
        return sum(row[TARGET_COLUMN] for row in part) / len(part) if part else 0.0

    metadata = {
        "dataset": {"name": Path(path).name, "version": version, "path": path},
        "metrics": {
            "samples": len(rows),
            "train": {"samples": len(train_rows), "spam_ratio": spam_ratio(train_rows)},
            "val": {"samples": len(val_rows), "spam_ratio": spam_ratio(val_rows)},
        },
    }

    logger.info(
        f"Loaded [bold]{len(rows)}[/bold] messages: "
        f"{len(train_rows)} train / {len(val_rows)} val"
    )
    logger.success("✨ Data loaded")

    return train_rows, val_rows, feature_model, metadata
