from __future__ import annotations

import argparse
from typing import List, Optional

import matplotlib.patches as patches
import matplotlib.pyplot as plt
import numpy as np
import numpy.typing as npt
from matplotlib.axes import Axes

from kdindex import configure_logging
from kdindex.errors import DimensionMismatchError
from kdindex.kdtree import KdTree


def draw_kdtree(
    ax: Axes,
    tree: KdTree,
    query: Optional[npt.ArrayLike] = None,
    margin: float = 0.1,
) -> int:
    """Draw points of 2D tree and its splitting lines.

    Each splitting line is clipped to the cell of its node.

    Args:
        ax: Axes to draw.
        tree: 2D tree to be drawn.
        query: If specified, query point and its nearest neighbor are drawn too.
        margin: Margin around points.

    Returns:
        Number of drawn splitting lines.
    """
    if tree.root is None:
        return 0

    if tree.dimension != 2:
        raise DimensionMismatchError(
            f"Only 2D tree can be drawn, but tree dimension is {tree.dimension}"
        )

    points = np.array([node.location.point for node in tree.iter_nodes()])
    lower = points.min(axis=0) - margin
    upper = points.max(axis=0) + margin

    ax.scatter(points[:, 0], points[:, 1], s=12, color="tab:blue")

    num_lines = 0

    # Each entry is a node and its cell as (xmin, xmax, ymin, ymax).
    stack = [(tree.root, (lower[0], upper[0], lower[1], upper[1]))]
    while stack:
        node, (xmin, xmax, ymin, ymax) = stack.pop()
        split = node.location.point[node.axis]

        if node.axis == 0:
            ax.plot([split, split], [ymin, ymax], color="gray", linewidth=1)
            left_cell = (xmin, split, ymin, ymax)
            right_cell = (split, xmax, ymin, ymax)
        else:
            ax.plot([xmin, xmax], [split, split], color="gray", linewidth=1)
            left_cell = (xmin, xmax, ymin, split)
            right_cell = (xmin, xmax, split, ymax)
        num_lines += 1

        if node.left_child is not None:
            stack.append((node.left_child, left_cell))
        if node.right_child is not None:
            stack.append((node.right_child, right_cell))

    if query is not None:
        target = np.asarray(query, dtype=np.float64)
        best, dist2 = tree.nearest_neighbor_with_distance(target)
        ax.scatter(target[0], target[1], color="tab:orange")
        if best.is_valid:
            ax.scatter(best.point[0], best.point[1], color="tab:red")
            c = patches.Circle(
                (target[0], target[1]),
                radius=np.sqrt(dist2),
                edgecolor="green",
                facecolor="none",
                linewidth=1,
            )
            ax.add_patch(c)

    ax.set_xlim(lower[0], upper[0])
    ax.set_ylim(lower[1], upper[1])
    ax.set_aspect("equal")
    return num_lines


def main(argv: Optional[List[str]] = None):
    # NOTE:
    # e.g.
    # kdindex-demo -n 30 -q 0.5 0.5 -o kdtree.png
    parser = argparse.ArgumentParser(
        description="Draw KD tree of random 2D points and nearest neighbor"
    )
    parser.add_argument("-s", "--seed", type=int, help="Random seed", default=19)
    parser.add_argument(
        "-n", "--num_points", type=int, help="Number of random points", default=10
    )
    parser.add_argument(
        "-q",
        "--query",
        nargs=2,
        type=float,
        help="Query point",
        default=[0.5, 0.5],
    )
    parser.add_argument(
        "-o",
        "--output",
        type=str,
        help="Image file to save instead of showing",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Show debug log", default=False
    )
    args = parser.parse_args(argv)

    configure_logging(args.verbose)

    rng = np.random.default_rng(args.seed)
    points = rng.random((args.num_points, 2))

    tree = KdTree()
    if not tree.build(points):
        parser.error(f"Failed to build the KD tree: {tree.last_error}")

    best = tree.nearest_neighbor(args.query)
    print(
        f"Nearest neighbor of {args.query} is point {best.index} "
        f"{best.point.tolist()}"
    )

    fig, ax = plt.subplots()
    draw_kdtree(ax, tree, query=args.query)

    if args.output is not None:
        fig.savefig(args.output)
        plt.close(fig)
    else:
        plt.show()


if __name__ == "__main__":
    main()
