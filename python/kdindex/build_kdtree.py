from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from kdindex import codec, configure_logging
from kdindex.errors import KdTreeError
from kdindex.kdtree import KdTree
from kdindex.point_io import read_points


def build_and_serialize(data_file: str, output_file: str, duplicate_median: bool):
    """Build KD tree from data file and serialize it to output file.

    Args:
        data_file: File with one point per line.
        output_file: File to write serialized tree.
        duplicate_median: Whether to keep the median in the right range when splitting.
    """
    print(f"Reading data from {data_file}")
    points = read_points(data_file)
    print(f"Read {points.shape[0]} vectors of size {points.shape[1]}")

    tree = KdTree()
    if not tree.build(points, duplicate_median=duplicate_median):
        raise tree.last_error

    print(f"Serializing KD tree to {output_file}")
    with open(output_file, mode="w") as f:
        codec.dump(tree, f)


def main(argv: Optional[List[str]] = None):
    # NOTE:
    # e.g.
    # build-kdtree sample_data.csv -> sample_data.csv.kdtree
    parser = argparse.ArgumentParser(
        description="Build KD tree from points and serialize it to disk",
    )
    parser.add_argument("data", type=str, help="File with one point per line")
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        help="File to output. If not specified, '.kdtree' is appended to data",
        default=None,
    )
    parser.add_argument(
        "--duplicate-median",
        action="store_true",
        help="Keep the median in the right subtree too, storing the median point twice",
        default=False,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug log", default=False
    )
    args = parser.parse_args(argv)

    configure_logging(args.verbose)

    output_file = args.output if args.output is not None else f"{args.data}.kdtree"

    try:
        build_and_serialize(args.data, output_file, args.duplicate_median)
    except KdTreeError as err:
        print(f"Failed to successfully build the KD tree: {err}", file=sys.stderr)
        sys.exit(1)
    except OSError as err:
        print(f"Failed to write {output_file}: {err}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
