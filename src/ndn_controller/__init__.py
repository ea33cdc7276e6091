"""NDN operator runtime helpers."""

from .config import OperatorConfig, load_config  # noqa: F401
from .registry import ControllerRegistry  # noqa: F401

__all__ = [
    "OperatorConfig",
    "ControllerRegistry",
    "load_config",
]
