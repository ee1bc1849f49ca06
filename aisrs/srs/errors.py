"""
Error taxonomy for the scheduling engine.
"""


class SrsError(Exception):
    """Base class for scheduling errors."""


class NotFoundError(SrsError):
    """A facet, fact or question does not exist or belongs to another owner."""


class ConflictError(SrsError):
    """Transaction contention could not be resolved within the retry budget."""


class UpstreamGenerationError(SrsError):
    """The AI collaborator failed or returned something unusable."""
