from __future__ import annotations


class AlignmentError(Exception):
    """Base class for recoverable alignment failures."""


class InvalidMeasurement(AlignmentError, ValueError):
    """A measurement or scale input is non-positive or not a finite number."""


class InsufficientData(AlignmentError, ValueError):
    """Not enough (or too degenerate) ground points to define a plane."""


class BlockedByLock(UserWarning):
    """
    Pitch/roll mutation attempted while tilt is locked.

    Issued with ``warnings.warn``; the mutation is skipped, nothing is raised.
    """
