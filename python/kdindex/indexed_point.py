from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt


def _empty_point() -> npt.NDArray[np.float64]:
    return np.empty(0, dtype=np.float64)


@dataclass
class IndexedPoint:
    """Point with the index referring back to the original dataset.

    Index -1 with an empty point is the sentinel for "no result".
    """

    index: int = -1
    point: npt.NDArray[np.float64] = field(default_factory=_empty_point)

    @property
    def is_valid(self) -> bool:
        return self.index >= 0

    @property
    def dimension(self) -> int:
        return len(self.point)


def squared_distance(a: npt.ArrayLike, b: npt.ArrayLike) -> float:
    """Returns the squared Euclidean distance between two equal-sized points.

    Args:
        a: Point.
        b: Point with the same number of coordinates as a.

    Returns:
        Squared distance as python float.
    """
    delta = np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)
    return float(np.dot(delta, delta))
