"""LocalLens - AR landmark lens with recognition, stories, radar and narration."""

__version__ = "0.1.0"
__author__ = "LocalLens Team"

from locallens.config import Config, load_config

__all__ = ["Config", "load_config", "__version__"]
