"""
Exception hierarchy for the pointing controller.

None of these are fatal: each one is raised to the caller, which decides
how to report it, and the state it was raised from is left untouched.
"""


class PointingError(Exception):
    """Base exception for all pointing controller errors."""

    pass


class AdvisoryRejection(PointingError):
    """
    A motion command was refused because the mount is parked.

    Recoverable: the mount state is unchanged and the caller only needs to
    unpark before retrying.
    """

    pass


class InvalidStatusCode(PointingError, ValueError):
    """
    A status value read from the mount is outside the known vocabulary.

    The previous motion state is kept so the caller may simply retry the read.
    """

    def __init__(self, raw):
        self.raw = raw
        super().__init__(f"Invalid mount status code: {raw!r}")


class MalformedTransformInput(PointingError, ValueError):
    """Raised when an out-of-range location or coordinate reaches the transform."""

    pass
