"""Turn status and transcript tracking for coding-agent session logs."""

__version__ = "0.1.0"

__all__ = ["__version__"]
