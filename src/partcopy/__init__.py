"""partcopy: copy large objects between stores as independently queued parts."""

__version__ = "0.1.0"
