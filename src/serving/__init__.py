# ==============================================================================
# Serving Module
# ==============================================================================
#
# Ham or Spam model serving with Ray Serve + FastAPI.
#
# Components:
#   - serve.py: Ray Serve deployment with FastAPI
#   - schemas.py: Pydantic request/response models
#   - sessions.py: In-memory scoring sessions
#   - config.py: Serving configuration
#
# Entry Point:
#   serve run src.serving.serve:app_builder model_uri="models:/model/1"
#
# ==============================================================================
"""Serving module for the Ham or Spam classifier."""
