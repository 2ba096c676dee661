# ==============================================================================
# Model Evaluation and Scoring
# ==============================================================================
#
# Binomial metrics and message scoring shared by training and serving.
#
# Functions:
#   - spam_probabilities(): P(spam) for a feature matrix
#   - model_metrics(): AUC, accuracy and F1 on a labelled split
#   - classify_messages(): raw SMS text -> probability and label
#   - make_spam_detector(): msg -> bool closure used by the training demo
#
# ==============================================================================

from typing import Callable, Dict, List, Sequence

import numpy as np
import torch
from numpy import ndarray
from torchmetrics.functional.classification import (
    binary_accuracy,
    binary_auroc,
    binary_f1_score,
)

from src.training.features import SpamFeatureModel
from src.training.model import CAT_DOMAIN, HamSpamClassifier

DEFAULT_THRESHOLD = 0.5

DEMO_MESSAGES = (
    "Michal, beer tonight in MV?",
    "penis extension, our exclusive offer of penis extension",
    "We tried to contact you re your reply to our offer of a Video Handset? "
    "750 anytime any networks mins? UNLIMITED TEXT?",
)


def spam_probabilities(model: HamSpamClassifier, features: ndarray) -> ndarray:
    """Score a (n, num_features) matrix, returns (n,) spam probabilities."""
    x = torch.as_tensor(np.asarray(features, dtype=np.float32))
    if x.ndim == 1:
        x = x.unsqueeze(0)
    x = x.to(model.device)
    model.eval()
    with torch.no_grad():
        probs = model.spam_probability(x)
    return probs.cpu().numpy()


def model_metrics(
    model: HamSpamClassifier, features: ndarray, targets: ndarray
) -> Dict[str, float]:
    probs = torch.as_tensor(spam_probabilities(model, features))
    y = torch.as_tensor(np.asarray(targets, dtype=np.int64))
    return {
        "auc": float(binary_auroc(probs, y)),
        "accuracy": float(binary_accuracy(probs, y, threshold=DEFAULT_THRESHOLD)),
        "f1": float(binary_f1_score(probs, y, threshold=DEFAULT_THRESHOLD)),
    }


def classify_messages(
    feature_model: SpamFeatureModel,
    model: HamSpamClassifier,
    messages: Sequence[str],
    threshold: float = DEFAULT_THRESHOLD,
) -> List[Dict]:
    """Score raw messages with the training transform."""
    if not messages:
        return []
    probs = spam_probabilities(model, feature_model.transform(messages))
    results = []
    for msg, prob in zip(messages, probs):
        is_spam = bool(prob > threshold)
        results.append(
            {
                "message": msg,
                "spam_probability": float(prob),
                "is_spam": is_spam,
                "label": CAT_DOMAIN[int(is_spam)],
            }
        )
    return results


def make_spam_detector(
    feature_model: SpamFeatureModel,
    model: HamSpamClassifier,
    threshold: float = DEFAULT_THRESHOLD,
) -> Callable[[str], bool]:
    """Spam detector closing over the fitted feature model and classifier."""

    def is_spam(msg: str) -> bool:
        prob = spam_probabilities(model, feature_model.weigh(msg))[0]
        return bool(prob > threshold)

    return is_spam
