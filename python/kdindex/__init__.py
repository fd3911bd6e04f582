from __future__ import annotations

import logging

from kdindex.codec import dump, dumps, load, loads
from kdindex.errors import (
    BuildFailureError,
    CodecError,
    DimensionMismatchError,
    DistanceOverflowError,
    ErrorKind,
    KdTreeError,
    MalformedInputError,
    NotBuiltError,
    ValidationMismatchError,
)
from kdindex.indexed_point import IndexedPoint, squared_distance
from kdindex.kdtree import KdTree
from kdindex.kdtree_node import KdTreeNode

__all__ = [
    "BuildFailureError",
    "CodecError",
    "DimensionMismatchError",
    "DistanceOverflowError",
    "ErrorKind",
    "IndexedPoint",
    "KdTree",
    "KdTreeError",
    "KdTreeNode",
    "MalformedInputError",
    "NotBuiltError",
    "ValidationMismatchError",
    "configure_logging",
    "dump",
    "dumps",
    "load",
    "loads",
    "squared_distance",
]


def configure_logging(verbose: bool):
    """Configure logging for command line tools.

    Args:
        verbose: If True, debug messages are shown too.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(name)s: %(message)s",
    )
