from __future__ import annotations

import argparse
import os
import sys
from typing import List, Optional

import numpy as np
import numpy.typing as npt

from kdindex import codec, configure_logging
from kdindex.errors import KdTreeError, MalformedInputError, ValidationMismatchError
from kdindex.indexed_point import IndexedPoint
from kdindex.kdtree import KdTree
from kdindex.point_io import brute_force_closest, read_points, write_results


def validate_result(
    best: IndexedPoint,
    original_points: npt.NDArray[np.float64],
    query: npt.NDArray[np.float64],
    strict_index: bool,
):
    """Check the tree result against brute force search.

    Args:
        best: Result from the tree.
        original_points: Points which the tree was built from.
        query: Query point.
        strict_index: If True, index must be the same as brute force one even if
            other points are equally close.
    """
    brute_force_index, brute_force_dist2 = brute_force_closest(original_points, query)

    if not 0 <= best.index < len(original_points):
        raise ValidationMismatchError(
            f"Result index {best.index} is out of range of the original points"
        )

    # Check the actual points, in case the tree doesn't match the original points.
    diff = float(np.sum(np.abs(best.point - original_points[best.index])))
    if diff > 0:
        raise ValidationMismatchError(
            "Deserialized tree results don't match brute force results, "
            f"with total L1 error {diff}"
        )

    if best.index == brute_force_index:
        return

    if not strict_index:
        # Distance of the tree result, computed the same way as brute force.
        _, dist2 = brute_force_closest(original_points[[best.index]], query)
        if dist2 == brute_force_dist2:
            return

    raise ValidationMismatchError(
        f"Result indices don't match: tree {best.index}, "
        f"brute force {brute_force_index}"
    )


def query_and_validate(
    tree: KdTree,
    original_points: npt.NDArray[np.float64],
    queries: npt.NDArray[np.float64],
    strict_index: bool,
) -> List[int]:
    """Query all points, checking every result against brute force search.

    Args:
        tree: Tree to be queried.
        original_points: Points which the tree was built from.
        queries: Query points.
        strict_index: Whether index must be the same as brute force one.

    Returns:
        Indices of nearest neighbors in the same order as queries.
    """
    results = []
    for query in queries:
        best = tree.nearest_neighbor(query)
        if not best.is_valid:
            raise tree.last_error

        validate_result(best, original_points, query, strict_index)
        results.append(best.index)
    return results


def run(
    tree_file: str,
    data_file: str,
    query_file: str,
    output_file: str,
    strict_index: bool,
):
    """Deserialize tree, query it, and write validated results.

    Args:
        tree_file: Serialized tree file.
        data_file: File with points which the tree was built from.
        query_file: File with query points.
        output_file: File to write results. Removed if anything fails.
        strict_index: Whether index must be the same as brute force one.
    """
    print(f"Deserializing {tree_file}")
    try:
        with open(tree_file, mode="r") as f:
            tree = codec.load(f)
    except OSError as err:
        raise MalformedInputError(f"Can't read {tree_file}: {err.strerror}") from err

    print(f"Reading original points from {data_file}")
    original_points = read_points(data_file)
    print(
        f"Read {original_points.shape[0]} vectors of size {original_points.shape[1]}"
    )

    print(f"Reading query points from {query_file}")
    queries = read_points(query_file)
    print(f"Read {queries.shape[0]} vectors of size {queries.shape[1]}")

    succeeded = False
    try:
        with open(output_file, mode="w") as f:
            results = query_and_validate(tree, original_points, queries, strict_index)
            write_results(f, results)
        succeeded = True
    finally:
        # Partial results must not be left.
        if not succeeded and os.path.exists(output_file):
            os.remove(output_file)


def main(argv: Optional[List[str]] = None):
    # NOTE:
    # e.g.
    # query-kdtree sample_data.csv.kdtree sample_data.csv query_data.csv -> query_data.csv.results  # noqa: E501
    parser = argparse.ArgumentParser(
        description="Query serialized KD tree and check results against brute force",
    )
    parser.add_argument("tree", type=str, help="Serialized KD tree file")
    parser.add_argument(
        "data", type=str, help="Original data set the tree was built from"
    )
    parser.add_argument("queries", type=str, help="File with query points")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        help="File to output. If not specified, '.results' is appended to queries",
        default=None,
    )
    parser.add_argument(
        "--strict-index",
        action="store_true",
        help="Fail if index differs from brute force one, even for equal distance",
        default=False,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug log", default=False
    )
    args = parser.parse_args(argv)

    configure_logging(args.verbose)

    if args.output is not None:
        output_file = args.output
    else:
        output_file = f"{args.queries}.results"

    try:
        run(args.tree, args.data, args.queries, output_file, args.strict_index)
    except KdTreeError as err:
        print(f"**ERROR** {err}", file=sys.stderr)
        sys.exit(1)
    except OSError as err:
        print(f"**ERROR** Failed to write {output_file}: {err}", file=sys.stderr)
        sys.exit(1)

    print("Success!")


if __name__ == "__main__":
    main()
