"""Exceptions raised by the AMI retention engine."""

from typing import List, Optional


class AmiCleanupError(Exception):
    """Base class for every error raised by ami_cleanup."""


class DurationError(AmiCleanupError, ValueError):
    """A relative duration expression could not be parsed."""


class InvalidUnit(DurationError):
    def __init__(self, expression: str):
        super().__init__(f"invalid duration format: {expression}")
        self.expression = expression


class InvalidValue(DurationError):
    def __init__(self, value: str):
        super().__init__(f"invalid duration value: {value}")
        self.value = value


class PolicyError(AmiCleanupError, ValueError):
    """The retention policy inputs are missing or inconsistent."""


class PatternError(AmiCleanupError, ValueError):
    """The AMI name pattern is not usable as an EC2 name filter."""


class RegionEnumerationError(AmiCleanupError):
    """The list of regions could not be obtained. Nothing else can run."""


class RegionConfigError(AmiCleanupError):
    """
    One or more regions failed while building their EC2 client.

    Raised only after every region task has finished, so ``partial_images``
    holds whatever the other regions returned.
    """

    def __init__(self, message: str, failed_regions: List[str],
                 cause: Optional[BaseException] = None, partial_images=None):
        super().__init__(message)
        self.failed_regions = failed_regions
        self.cause = cause
        self.partial_images = list(partial_images or [])
