"""I/O helper subpackage."""
from . import checkpoint, writer

__all__ = ["checkpoint", "writer"]
