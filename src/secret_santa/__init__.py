"""Secret Santa Stage: gift exchange groups, the draw, and anonymous chat."""

__version__ = "0.1.0"
