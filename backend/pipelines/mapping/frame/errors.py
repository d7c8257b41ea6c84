"""
Errors raised across the frame normalization engine.
"""


class ProjectionError(Exception):
    """A coordinate reference identifier could not be built into a transformation."""


class SequenceSuperseded(Exception):
    """A newer load sequence became current while this one was suspended."""

    def __init__(self, token: int = 0):
        super().__init__(f"load sequence {token} superseded")
        self.token = token
