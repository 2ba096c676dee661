# ==============================================================================
# Training Module
# ==============================================================================
#
# Ham or Spam distributed training pipeline.
#
# Components:
#   - train.py: Main training script (Ray Train + MLflow)
#   - model.py: PyTorch Lightning model (feed-forward classifier)
#   - features.py: Tokenizer, MurmurHash3 feature hashing, IDF
#   - data.py: SMS corpus loading and train/val split
#   - evaluate.py: AUC metrics and message scoring
#   - config.py: Configuration settings
#
# Entry Point:
#   python -m src.training.train --help
#
# ==============================================================================
"""Training module for the Ham or Spam classifier."""
