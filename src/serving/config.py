# ==============================================================================
# Serving Configuration
# ==============================================================================
#
# Configuration settings for the serving application.
#
# Settings:
#   - REQUEST_MAX_LENGTH: Maximum batch size for predictions (prevent DOS)
#   - MESSAGE_MAX_CHARS: Maximum length of a single SMS
#   - SPAM_THRESHOLD: Spam probability above which a message is SPAM
#   - MAX_SESSIONS: Maximum number of open scoring sessions
#
# Usage:
#   from src.serving.config import SERVING_CONFIG
#   max_batch = SERVING_CONFIG.request_max_length
#
# ==============================================================================

from pydantic_settings import BaseSettings


class ServingConfig(BaseSettings):
    request_max_length: int = 1000
    message_max_chars: int = 2000
    spam_threshold: float = 0.5
    max_sessions: int = 1000


SERVING_CONFIG = ServingConfig()
