from __future__ import annotations

import logging
import re
from typing import IO, Iterable, Sequence

import numpy as np
import numpy.typing as npt

from kdindex.errors import DimensionMismatchError, MalformedInputError

logger = logging.getLogger(__name__)

# Coordinates are separated by whitespace and/or commas.
SEPARATOR_PATTERN = re.compile(r"[,\s]+")


def parse_point_line(line: str, line_number: int) -> list[float]:
    """Parse coordinates in a line.

    Args:
        line: Line to be parsed.
        line_number: Line number for diagnostics.

    Returns:
        List of coordinates. If the line is blank, returns empty list.
    """
    tokens = [token for token in SEPARATOR_PATTERN.split(line.strip()) if token]

    try:
        return [float(token) for token in tokens]
    except ValueError as err:
        raise MalformedInputError(f"Line {line_number}: {err}") from err


def parse_points(
    lines: Iterable[str], source: str = "<input>"
) -> npt.NDArray[np.float64]:
    """Parse consistently dimensioned points, one per line.

    Blank lines are skipped. The first point decides the dimension.

    Args:
        lines: Lines to be parsed.
        source: Name of input for diagnostics.

    Returns:
        Array whose shape is (number of points, dimension).
    """
    points: list[list[float]] = []
    dimension = 0

    for line_number, line in enumerate(lines, start=1):
        coords = parse_point_line(line, line_number)
        if not coords:
            continue

        if dimension == 0:
            dimension = len(coords)
        elif len(coords) != dimension:
            raise MalformedInputError(
                f"{source}: line {line_number} has {len(coords)} coordinates, "
                f"expected {dimension}"
            )

        points.append(coords)

    if not points:
        raise MalformedInputError(f"{source} is improperly formatted or empty")

    logger.debug(f"Parsed {len(points)} points of dimension {dimension} from {source}")
    return np.array(points, dtype=np.float64)


def read_points(filename: str) -> npt.NDArray[np.float64]:
    """Read points from file.

    Args:
        filename: Path to file with one point per line.

    Returns:
        Array whose shape is (number of points, dimension).
    """
    try:
        with open(filename, mode="r") as f:
            return parse_points(f, source=filename)
    except OSError as err:
        raise MalformedInputError(f"Can't read {filename}: {err.strerror}") from err


def squared_distances(
    data: npt.ArrayLike, query: npt.ArrayLike
) -> npt.NDArray[np.float64]:
    """Returns squared Euclidean distances from every point to the query point.

    Args:
        data: Points whose shape is (number of points, dimension).
        query: Query point.

    Returns:
        Array of squared distances, one per point.
    """
    data = np.asarray(data, dtype=np.float64)
    query = np.asarray(query, dtype=np.float64)

    if data.ndim != 2 or len(data) == 0:
        raise MalformedInputError("No points to search")

    if query.shape != (data.shape[1],):
        raise DimensionMismatchError(
            f"Query point has shape {query.shape}, "
            f"points have dimension {data.shape[1]}"
        )

    delta = data - query
    return np.einsum("ij,ij->i", delta, delta)


def brute_force_closest(data: npt.ArrayLike, query: npt.ArrayLike) -> tuple[int, float]:
    """Find the closest point by checking all points, as a ground truth for testing.

    Args:
        data: Points whose shape is (number of points, dimension).
        query: Query point.

    Returns:
        Tuple of index of the closest point and squared distance to it. If
        multiple points are equally close, the one with the smallest index wins.
    """
    distances = squared_distances(data, query)

    # argmin returns the first occurrence of the minimum.
    best_index = int(np.argmin(distances))
    return best_index, float(distances[best_index])


def write_results(fp: IO[str], indices: Sequence[int]):
    """Write result indices, one per line.

    Args:
        fp: Writable text stream.
        indices: Indices of nearest neighbors in the same order as queries.
    """
    for index in indices:
        fp.write(f"{index}\n")
