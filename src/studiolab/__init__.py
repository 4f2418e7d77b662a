"""Studio Prompt Lab - multi-step image prompt chains with review and rating."""

__version__ = "0.1.0"

from studiolab.core.config import StudioConfig, config

__all__ = [
    "StudioConfig",
    "config",
]
