"""
Library-wide defaults and logger setup.

Values here are process-wide defaults. The log level and shader path can be set
through the environment variables below; the program names can also be
overridden per context through the TextureOps constructor.
"""

import logging
import os
import sys

# --- Environment overrides ---
LOG_LEVEL_ENV = "TEXTURE_OPS_LOG_LEVEL"
SHADER_PATH_ENV = "TEXTURE_OPS_SHADER_PATH"

# --- Dispatch defaults ---
# Work-group size assumed for kernels that do not declare one
DEFAULT_WORK_GROUP_SIZE = (8, 8)

# --- Histogram ---
HISTOGRAM_BINS = 256
HISTOGRAM_CHANNELS = 4

# --- Images ---
# Name of the ImageFormat member used when the caller does not pick one
DEFAULT_FORMAT = "RGBA8"

# Kernel program names per operator family
PROGRAM_NAMES = {
    "math": "TextureMath",
    "ip": "TextureIP",
    "draw": "TextureDraw",
}

# Directories searched by the ModernGL device for "<program>.comp" sources
GL_SHADER_PATHS = [p for p in os.environ.get(SHADER_PATH_ENV, "").split(os.pathsep) if p]

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

LOG_LEVEL = LOG_LEVEL_MAP.get(os.environ.get(LOG_LEVEL_ENV, "WARNING").upper(), logging.WARNING)

_log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
_console_handler = logging.StreamHandler(sys.stderr)
_console_handler.setFormatter(_log_formatter)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger configured with the library log level.

    Handlers are attached once to the package root logger, so module loggers
    obtained here propagate to it and the host can still reconfigure logging.

    Args:
        name: Logger name, normally the calling module's __name__

    Returns:
        Configured logger instance
    """
    root = logging.getLogger("texture_ops")
    if not root.handlers:
        root.setLevel(LOG_LEVEL)
        root.addHandler(_console_handler)
    return logging.getLogger(name)
