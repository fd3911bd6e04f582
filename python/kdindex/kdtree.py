from __future__ import annotations

import logging
import math
from typing import Iterator, Sequence

import numpy as np
import numpy.typing as npt

from kdindex.errors import (
    BuildFailureError,
    DimensionMismatchError,
    DistanceOverflowError,
    KdTreeError,
    MalformedInputError,
    NotBuiltError,
)
from kdindex.indexed_point import IndexedPoint, squared_distance
from kdindex.kdtree_node import KdTreeNode

logger = logging.getLogger(__name__)

# Initial best distance for nearest neighbor search.
MAX_SQR_DISTANCE = float(np.finfo(np.float64).max)


class KdTree:
    """Balanced KD tree over a set of same-dimension points.

    The tree is built once by `build` and is read-only afterwards. Neither
    `build` nor `nearest_neighbor` raise for bad input. They report failure
    by their return value and keep the error in `last_error`.
    """

    def __init__(self):
        self.root: KdTreeNode | None = None
        self.dimension: int = 0
        self.last_error: KdTreeError | None = None

    @property
    def is_built(self) -> bool:
        return self.root is not None

    def build(
        self, points: Sequence[npt.ArrayLike], duplicate_median: bool = False
    ) -> bool:
        """Build a balanced KD tree from points.

        Args:
            points: Points to build from. All points must have the same number of
                coordinates as the first one. This is never modified.
            duplicate_median: If True, the median element is kept in the right range
                when splitting. It means the median point is stored twice.

        Returns:
            If the tree is built, returns True. Otherwise, returns False and the
            reason is stored in last_error.
        """
        self.root = None
        self.dimension = 0

        try:
            data = KdTree.copy_points(points)
            order = np.arange(len(data))
            root = KdTree.create(data, order, 0, len(data), -1, duplicate_median)
        except KdTreeError as err:
            logger.error(f"Failed to build the KD tree: {err}")
            self.last_error = err
            return False

        self.root = root
        self.dimension = data.shape[1]
        self.last_error = None
        logger.debug(
            f"Built KD tree of {len(self)} nodes from {len(data)} points "
            f"of dimension {self.dimension}"
        )
        return True

    @staticmethod
    def copy_points(points: Sequence[npt.ArrayLike]) -> npt.NDArray[np.float64]:
        """Copy points into 2D array after checking they are consistently dimensioned.

        Args:
            points: Points to be copied.

        Returns:
            Array whose shape is (number of points, dimension).
        """
        if points is None or len(points) == 0:
            raise MalformedInputError("No points to build the tree from")

        rows = []
        dimension = -1
        for i, point in enumerate(points):
            try:
                row = np.array(point, dtype=np.float64)
            except (TypeError, ValueError) as err:
                raise MalformedInputError(f"Point {i} is not numeric: {err}") from err

            if row.ndim != 1:
                raise MalformedInputError(
                    f"Point {i} is not a flat sequence of coordinates"
                )

            # The first point decides the dimension.
            if dimension < 0:
                dimension = len(row)
                if dimension == 0:
                    raise MalformedInputError("Point 0 has no coordinates")
            elif len(row) != dimension:
                raise MalformedInputError(
                    f"Point {i} has {len(row)} coordinates, expected {dimension}"
                )

            rows.append(row)

        return np.vstack(rows)

    @staticmethod
    def create(
        data: npt.NDArray[np.float64],
        order: npt.NDArray[np.intp],
        start: int,
        end: int,
        parent_axis: int,
        duplicate_median: bool,
    ) -> KdTreeNode:
        """Create the node for the range [start, end) of order.

        order is partitioned in place so that data indexed by order[start:median] is
        less than or equal to the median, and data indexed by order[median:end] is
        greater than or equal to it, along the axis of the node.

        Args:
            data: Copied points.
            order: Indices into data, the working copy to be partitioned.
            start: Start of the range.
            end: End of the range, exclusive.
            parent_axis: Axis of the parent node. -1 for the root.
            duplicate_median: Whether to keep the median in the right range.

        Returns:
            Created node.
        """
        size = end - start
        if size < 1:
            raise BuildFailureError(
                f"Empty range [{start}, {end}) reached while building"
            )

        if data.shape[1] < 1:
            raise BuildFailureError("Points have no coordinates")

        # Axis cycles by depth, regardless of data.
        axis = (parent_axis + 1) % data.shape[1]

        if size < 2:
            return KdTreeNode(
                axis=axis, location=KdTree.make_indexed_point(data, order[start])
            )

        # Select median along the axis without sorting the whole range.
        half = size // 2
        span = order[start:end]
        order[start:end] = span[np.argpartition(data[span, axis], half)]
        median = start + half

        node = KdTreeNode(
            axis=axis, location=KdTree.make_indexed_point(data, order[median])
        )

        if start < median:
            node.left_child = KdTree.create(
                data, order, start, median, axis, duplicate_median
            )

        if duplicate_median:
            # Range which has only the median itself is not worth another node.
            if end - median > 1:
                node.right_child = KdTree.create(
                    data, order, median, end, axis, duplicate_median
                )
        elif median + 1 < end:
            node.right_child = KdTree.create(
                data, order, median + 1, end, axis, duplicate_median
            )

        return node

    @staticmethod
    def make_indexed_point(data: npt.NDArray[np.float64], index: int) -> IndexedPoint:
        # Copy, so the working data can be discarded after construction.
        return IndexedPoint(index=int(index), point=data[index].copy())

    def nearest_neighbor(self, query: npt.ArrayLike) -> IndexedPoint:
        """Returns the closest point (Euclidean distance) to the query point.

        Args:
            query: Query point.

        Returns:
            Closest point with its index into the original points. If no point is
            found, returns the sentinel whose index is -1 and the reason is stored
            in last_error.
        """
        best, _ = self.nearest_neighbor_with_distance(query)
        return best

    def nearest_neighbor_with_distance(
        self, query: npt.ArrayLike
    ) -> tuple[IndexedPoint, float]:
        """Returns the closest point to the query point and its squared distance.

        Args:
            query: Query point.

        Returns:
            Tuple of closest point and squared distance to it. If no point is found,
            returns the sentinel and inf, and the reason is stored in last_error.
        """
        if self.root is None:
            return self._fail_query(NotBuiltError("No tree has been constructed"))

        try:
            query_point = np.asarray(query, dtype=np.float64)
        except (TypeError, ValueError) as err:
            return self._fail_query(
                DimensionMismatchError(f"Query point is not numeric: {err}")
            )

        if query_point.ndim != 1 or len(query_point) != self.dimension:
            return self._fail_query(
                DimensionMismatchError(
                    f"Query point has shape {query_point.shape}, "
                    f"tree dimension is {self.dimension}"
                )
            )

        best, best_sqr_distance = KdTree.search_nearest_neighbor(
            query_point, self.root
        )
        if not best.is_valid:
            # Every squared distance exceeded the largest float.
            return self._fail_query(
                DistanceOverflowError(
                    f"Squared distance from {query_point.tolist()} to every point "
                    "overflows"
                )
            )

        self.last_error = None
        result = IndexedPoint(index=best.index, point=best.point.copy())
        return result, best_sqr_distance

    def _fail_query(self, err: KdTreeError) -> tuple[IndexedPoint, float]:
        self.last_error = err
        logger.warning(err.message)
        return IndexedPoint(), math.inf

    @staticmethod
    def search_nearest_neighbor(
        query: npt.NDArray[np.float64],
        root: KdTreeNode,
    ) -> tuple[IndexedPoint, float]:
        """Search the nearest neighbor under the root.

        Nodes are visited in the same order as recursive descent with backtracking,
        but with explicit stack. Each entry is a pair of node and its child still to
        be examined. If the child is None, the node is to be visited. Otherwise, the
        child is the far side of the node's splitting plane, which is examined after
        everything on the near side.

        Args:
            query: Query point.
            root: Node to start search.

        Returns:
            Tuple of the closest indexed point and squared distance to it.
        """
        best = IndexedPoint()
        best_sqr_distance = MAX_SQR_DISTANCE

        stack: list[tuple[KdTreeNode, KdTreeNode | None]] = [(root, None)]
        while stack:
            node, far_child = stack.pop()
            axis = node.axis

            if far_child is not None:
                # If this node's splitting plane is within the best distance
                # hypersphere, the other side of plane might have closer point.
                delta = query[axis] - node.location.point[axis]
                if delta * delta <= best_sqr_distance:
                    stack.append((far_child, None))
                continue

            dist2 = squared_distance(node.location.point, query)
            if dist2 < best_sqr_distance:
                best = node.location
                best_sqr_distance = dist2

            if query[axis] <= node.location.point[axis]:
                near_child, far_child = node.left_child, node.right_child
            else:
                near_child, far_child = node.right_child, node.left_child

            # If near side doesn't exist, go to the other side directly.
            if near_child is None:
                near_child, far_child = far_child, None

            if far_child is not None:
                stack.append((node, far_child))
            if near_child is not None:
                stack.append((near_child, None))

        return best, best_sqr_distance

    def iter_nodes(self) -> Iterator[KdTreeNode]:
        """Yields nodes in pre-order (node, left, right)."""
        stack = [self.root] if self.root is not None else []
        while stack:
            node = stack.pop()
            yield node
            if node.right_child is not None:
                stack.append(node.right_child)
            if node.left_child is not None:
                stack.append(node.left_child)

    def height(self) -> int:
        """Returns number of nodes on the longest path from the root. 0 if empty."""
        height = 0
        stack = [(self.root, 1)] if self.root is not None else []
        while stack:
            node, depth = stack.pop()
            height = max(height, depth)
            for child in node.children():
                stack.append((child, depth + 1))
        return height

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_nodes())
