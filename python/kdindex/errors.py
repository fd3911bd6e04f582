from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Kind of failure reported by the kd-tree and its tools."""

    MalformedInput = 1
    BuildFailure = 2
    NotBuilt = 3
    DimensionMismatch = 4
    ValidationMismatch = 5
    DistanceOverflow = 6


class KdTreeError(Exception):
    """Base class for all errors raised in this package.

    Args:
        message: Diagnostic message.
    """

    kind: ErrorKind = ErrorKind.BuildFailure

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MalformedInputError(KdTreeError):
    """Empty or inconsistent point data."""

    kind = ErrorKind.MalformedInput


class CodecError(MalformedInputError):
    """Serialized tree text that can't be decoded."""


class BuildFailureError(KdTreeError):
    kind = ErrorKind.BuildFailure


class NotBuiltError(KdTreeError):
    kind = ErrorKind.NotBuilt


class DimensionMismatchError(KdTreeError):
    kind = ErrorKind.DimensionMismatch


class ValidationMismatchError(KdTreeError):
    """Tree result disagrees with the brute-force result."""

    kind = ErrorKind.ValidationMismatch


class DistanceOverflowError(KdTreeError):
    """Squared distance to every point is too large for float64."""

    kind = ErrorKind.DistanceOverflow
