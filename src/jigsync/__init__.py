"""Collaborative real-time jigsaw puzzle rooms."""

import importlib.metadata

try:
    __version__ = importlib.metadata.version("jigsync")
except importlib.metadata.PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = ["__version__"]
