# ==============================================================================
# Utilities Module
# ==============================================================================
#
# Shared utilities for training and serving.
#
# Components:
#   - logging.py: Rich-based logging configuration
#
# Usage:
#   from src._utils.logging import get_logger, log_section
#
# ==============================================================================
"""Shared utilities for the Ham or Spam project."""
