"""Core utilities, configuration and errors."""

from .config import Config, Credentials, load_config
from .errors import (
    DeliveryError,
    NotFoundError,
    NotifierError,
    TransientQueryError,
    ValidationError,
)
from .utils import get_logger, setup_logging

__all__ = [
    "Config",
    "Credentials",
    "DeliveryError",
    "NotFoundError",
    "NotifierError",
    "TransientQueryError",
    "ValidationError",
    "get_logger",
    "load_config",
    "setup_logging",
]
