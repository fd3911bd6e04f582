"""Text serialization of KD trees.

Nodes are written in pre-order (node, left, right). Each node is

    axis
    index
    coordinates separated by a space
    <left child or -1>
    <right child or -1>

A lone -1 stands for a node which doesn't exist, and an empty tree is just
"-1". When reading, end of input in place of an axis is treated as -1 too, so
files cut at a node boundary still decode into a (partial) tree.
"""

from __future__ import annotations

import io
import logging
from typing import IO, Iterator

import numpy as np

from kdindex.errors import CodecError
from kdindex.indexed_point import IndexedPoint
from kdindex.kdtree import KdTree
from kdindex.kdtree_node import KdTreeNode

logger = logging.getLogger(__name__)

# We use 'axis == -1' as an indicator for a node that doesn't exist.
NULL_NODE_MARKER = -1


def format_coordinates(point: np.ndarray) -> str:
    # repr of python float is the shortest string which round-trips exactly.
    return " ".join(repr(float(x)) for x in point)


def dump(tree: KdTree, fp: IO[str]):
    """Serialize tree to text stream.

    Args:
        tree: Tree to be serialized.
        fp: Writable text stream.
    """
    if tree.root is None:
        fp.write(f"{NULL_NODE_MARKER}\n")
        return

    # Entries are either node to write or None which means a child doesn't exist.
    stack: list[KdTreeNode | None] = [tree.root]
    while stack:
        node = stack.pop()
        if node is None:
            fp.write(f"{NULL_NODE_MARKER}\n")
            continue

        fp.write(f"{node.axis}\n")
        fp.write(f"{node.location.index}\n")
        fp.write(f"{format_coordinates(node.location.point)}\n")

        stack.append(node.right_child)
        stack.append(node.left_child)


def dumps(tree: KdTree) -> str:
    """Serialize tree to string."""
    buffer = io.StringIO()
    dump(tree, buffer)
    return buffer.getvalue()


class _LineReader:
    """Reads serialized tree line by line, tracking line number for diagnostics."""

    def __init__(self, lines: Iterator[str]):
        self._lines = lines
        self.line_number = 0

    def next_line(self) -> str | None:
        line = next(self._lines, None)
        if line is not None:
            self.line_number += 1
        return line

    def read_int(self, what: str) -> int:
        """Read a line as int. End of input is read as -1."""
        line = self.next_line()
        if line is None or not line.strip():
            return NULL_NODE_MARKER

        try:
            return int(line.strip())
        except ValueError as err:
            raise CodecError(
                f"Line {self.line_number}: expected {what}, got {line.strip()!r}"
            ) from err

    def read_point(self) -> np.ndarray:
        line = self.next_line()
        if line is None:
            return np.empty(0, dtype=np.float64)

        try:
            return np.array([float(token) for token in line.split()], dtype=np.float64)
        except ValueError as err:
            raise CodecError(
                f"Line {self.line_number}: invalid coordinates {line.strip()!r}"
            ) from err


def load(fp: IO[str]) -> KdTree:
    """Deserialize tree from text stream.

    Args:
        fp: Readable text stream.

    Returns:
        Deserialized tree. If the stream has no node, returns the empty tree.
    """
    reader = _LineReader(iter(fp))
    tree = KdTree()

    axis = reader.read_int("axis")
    if axis == NULL_NODE_MARKER:
        # A root node doesn't exist or we've reached the end of the file.
        return tree

    tree.root = _read_node(reader, axis)
    tree.dimension = tree.root.location.dimension

    # Pending children are pushed as (parent, is_left).
    # Right is pushed first so left is read first.
    stack: list[tuple[KdTreeNode, bool]] = [(tree.root, False), (tree.root, True)]
    while stack:
        parent, is_left = stack.pop()

        axis = reader.read_int("axis")
        if axis == NULL_NODE_MARKER:
            continue

        node = _read_node(reader, axis)
        if node.location.dimension != tree.dimension:
            raise CodecError(
                f"Line {reader.line_number}: point has "
                f"{node.location.dimension} coordinates, "
                f"expected {tree.dimension}"
            )

        if is_left:
            parent.left_child = node
        else:
            parent.right_child = node

        stack.append((node, False))
        stack.append((node, True))

    logger.debug(
        f"Deserialized KD tree of dimension {tree.dimension} "
        f"from {reader.line_number} lines"
    )
    return tree


def _read_node(reader: _LineReader, axis: int) -> KdTreeNode:
    axis_line = reader.line_number
    index = reader.read_int("index")
    point = reader.read_point()

    if index < 0:
        raise CodecError(f"Line {axis_line}: node has no index")

    if len(point) == 0:
        raise CodecError(f"Line {reader.line_number}: node has no coordinates")

    if not 0 <= axis < len(point):
        raise CodecError(
            f"Line {axis_line}: axis {axis} is out of range "
            f"for dimension {len(point)}"
        )

    return KdTreeNode(axis=axis, location=IndexedPoint(index=index, point=point))


def loads(text: str) -> KdTree:
    """Deserialize tree from string."""
    return load(io.StringIO(text))
