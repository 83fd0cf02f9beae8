import logging
import os
import sys
import time
from typing import Optional, TextIO

DEFAULT_FORMAT = "[%(asctime)s.%(msecs)03d] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


class BarrierLogFormatter(logging.Formatter):
    """Formatter for console output with level color coding."""

    colors = {
        'DEBUG': '\033[96m',     # Cyan
        'INFO': '\033[92m',      # Green
        'WARNING': '\033[93m',   # Yellow
        'ERROR': '\033[91m',     # Red
        'CRITICAL': '\033[95m',  # Magenta
    }
    reset_color = '\033[0m'

    def __init__(self, use_color: bool = True) -> None:
        """Initialize the formatter.

        Args:
            use_color: Wrap each record in the ANSI color of its level
        """
        super().__init__(DEFAULT_FORMAT, datefmt=DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        if not self.use_color:
            return line
        color = self.colors.get(record.levelname, '')
        return f"{color}{line}{self.reset_color}"


def _wants_color(stream: TextIO) -> bool:
    if os.getenv("NO_COLOR") == "1":
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Install console (and optional file) handlers on the root logger.

    Args:
        level: Root log level name
        log_file: Optional path that receives an uncolored copy of every record
        stream: Console stream (defaults to stderr, keeping stdout for the
            READY marker)

    Returns:
        The configured root logger.
    """
    stream = stream or sys.stderr
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(stream)
    console.setFormatter(BarrierLogFormatter(use_color=_wants_color(stream)))
    root.addHandler(console)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as e:
            root.warning("Could not open log file %s: %s", log_file, e)
        else:
            file_handler.setFormatter(BarrierLogFormatter(use_color=False))
            root.addHandler(file_handler)
            file_handler.stream.write(f"=== hostbarrier started at {time.strftime('%Y-%m-%d %H:%M:%S')} ===\n")

    root.setLevel(level.upper())
    return root
