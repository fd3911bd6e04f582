from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from kdindex.indexed_point import IndexedPoint


@dataclass
class KdTreeNode:
    axis: int = -1
    location: IndexedPoint = field(default_factory=IndexedPoint)
    left_child: KdTreeNode | None = None
    right_child: KdTreeNode | None = None

    @property
    def is_leaf(self) -> bool:
        return self.left_child is None and self.right_child is None

    def children(self) -> Iterator[KdTreeNode]:
        """Yields existing children, left first."""
        if self.left_child is not None:
            yield self.left_child
        if self.right_child is not None:
            yield self.right_child
