# ==============================================================================
# Rich Logging
# ==============================================================================
#
# Rich-based logging shared by training and serving.
#
# Provides:
#   - get_logger(name): stdlib logger with an extra `success` level
#   - log_section(title, emoji): horizontal rule to separate pipeline stages
#
# Rich markup (e.g. "[cyan]text[/cyan]") is rendered in log messages.
#
# ==============================================================================

import logging

from rich.console import Console
from rich.logging import RichHandler

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

console = Console()

_configured = False


class RichLogger(logging.Logger):
    """Logger with a `success` level between INFO and WARNING."""

    def success(self, msg, *args, **kwargs):
        if self.isEnabledFor(SUCCESS):
            self._log(SUCCESS, msg, args, **kwargs)


def setup_logging(level=logging.INFO) -> None:
    """Configure the root logger with a rich handler.

    Safe to call in Ray workers, the handler is installed once per process.
    """
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=console,
                markup=True,
                rich_tracebacks=True,
                show_path=False,
            )
        ],
        force=True,  # Reconfigure even if Ray already did
    )

    logging.getLogger("ray.data").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> RichLogger:
    setup_logging()

    previous = logging.getLoggerClass()
    logging.setLoggerClass(RichLogger)
    try:
        logger = logging.getLogger(name)
    finally:
        logging.setLoggerClass(previous)
    return logger


def log_section(title: str, emoji: str = "") -> None:
    """Print a section divider."""
    heading = f"{emoji} {title}" if emoji else title
    console.rule(f"[bold]{heading}[/bold]")
