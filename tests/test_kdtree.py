import math

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from kdindex import ErrorKind, IndexedPoint, KdTree, KdTreeNode
from kdindex.point_io import squared_distances


def build(points, **kwargs):
    tree = KdTree()
    assert tree.build(points, **kwargs)
    return tree


def collect_points(node):
    stack = [node] if node is not None else []
    while stack:
        node = stack.pop()
        yield node.location.point
        stack.extend(node.children())


def test_diagonal_query(diagonal_points):
    tree = build(diagonal_points)
    best, dist2 = tree.nearest_neighbor_with_distance([2.1, 2.1])
    assert best.index == 2
    assert_array_equal(best.point, [2, 2])
    assert dist2 == pytest.approx(0.02)


def test_empty_input_fails():
    tree = KdTree()
    assert not tree.build([])
    assert tree.root is None
    assert not tree.is_built
    assert tree.last_error.kind == ErrorKind.MalformedInput


def test_inconsistent_dimension_fails():
    tree = KdTree()
    assert not tree.build([[0, 0], [1, 1, 1], [2, 2]])
    assert tree.root is None
    assert tree.last_error.kind == ErrorKind.MalformedInput


@pytest.mark.parametrize("points", [[[]], [[1, 2], ["a", 2]], [[[1, 2]], [[3, 4]]]])
def test_unusable_points_fail(points):
    tree = KdTree()
    assert not tree.build(points)
    assert tree.last_error.kind == ErrorKind.MalformedInput


def test_failed_build_discards_previous_tree(diagonal_points):
    tree = build(diagonal_points)
    assert not tree.build([[0], [1, 2]])
    assert tree.root is None
    assert tree.nearest_neighbor([0]).index == -1


def test_rebuild_replaces_tree(diagonal_points):
    tree = build(diagonal_points)
    assert tree.build([[5, 5, 5]])
    assert tree.last_error is None
    assert tree.dimension == 3
    assert len(tree) == 1
    assert tree.nearest_neighbor([0, 0, 0]).index == 0


def test_single_point():
    tree = build([[4.0, -2.0]])
    assert tree.root.is_leaf
    assert tree.root.axis == 0
    for query in ([0, 0], [4, -2], [1e6, -1e6]):
        assert tree.nearest_neighbor(query).index == 0


def test_not_built_returns_sentinel():
    tree = KdTree()
    best, dist2 = tree.nearest_neighbor_with_distance([1.0, 2.0])
    assert best.index == -1
    assert not best.is_valid
    assert dist2 == math.inf
    assert tree.last_error.kind == ErrorKind.NotBuilt


@pytest.mark.parametrize("query", [[1.0], [1.0, 2.0, 3.0], [[1.0, 2.0]], ["x", "y"]])
def test_query_dimension_mismatch(diagonal_points, query):
    tree = build(diagonal_points)
    assert tree.nearest_neighbor(query).index == -1
    assert tree.last_error.kind == ErrorKind.DimensionMismatch


@pytest.mark.filterwarnings("ignore:overflow encountered")
def test_distance_overflow_sets_error():
    tree = build([[1e200, 1e200], [2e200, 2e200]])
    best, dist2 = tree.nearest_neighbor_with_distance([-1e200, -1e200])
    assert best.index == -1
    assert dist2 == math.inf
    assert tree.last_error.kind == ErrorKind.DistanceOverflow

    # Near query still works on the same tree.
    assert tree.nearest_neighbor([1e200, 1e200]).index == 0
    assert tree.last_error is None


def test_success_clears_previous_query_error(diagonal_points):
    tree = build(diagonal_points)
    assert tree.nearest_neighbor([1.0]).index == -1
    assert tree.last_error.kind == ErrorKind.DimensionMismatch

    assert tree.nearest_neighbor([2.1, 2.1]).index == 2
    assert tree.last_error is None


def test_input_is_not_modified(rng):
    data = rng.random((50, 3))
    original = data.copy()
    as_list = data.tolist()
    build(data)
    build(as_list)
    assert_array_equal(data, original)
    assert as_list == original.tolist()


def test_result_does_not_alias_tree(diagonal_points):
    tree = build(diagonal_points)
    best = tree.nearest_neighbor([0, 0])
    best.point[:] = 100
    assert tree.nearest_neighbor([0, 0]).point.tolist() == [0, 0]


@pytest.mark.parametrize("duplicate_median", [False, True])
@pytest.mark.parametrize("dimension", [1, 2, 3, 5])
def test_matches_brute_force(rng, dimension, duplicate_median):
    data = rng.normal(size=(300, dimension))
    tree = build(data, duplicate_median=duplicate_median)

    for query in rng.normal(scale=1.5, size=(100, dimension)):
        best, dist2 = tree.nearest_neighbor_with_distance(query)
        distances = squared_distances(data, query)
        assert distances[best.index] == distances.min()
        assert dist2 == pytest.approx(distances.min(), rel=1e-12, abs=1e-300)
        assert_array_equal(best.point, data[best.index])


@pytest.mark.parametrize("duplicate_median", [False, True])
def test_duplicated_points(duplicate_median):
    data = [[1.0, 1.0]] * 6 + [[0.0, 0.0], [3.0, 1.0]]
    tree = build(data, duplicate_median=duplicate_median)

    best, dist2 = tree.nearest_neighbor_with_distance([1.0, 1.0])
    assert dist2 == 0
    assert best.index in range(6)
    assert tree.nearest_neighbor([-1, 0]).index == 6


def test_integer_grid_ties():
    # Every query is equally close to several grid points.
    data = [[x, y] for x in range(5) for y in range(5)]
    tree = build(data)
    for query in ([0.5, 0.5], [2.5, 1.5], [4.5, 4.5]):
        best, dist2 = tree.nearest_neighbor_with_distance(query)
        assert dist2 == pytest.approx(0.5)
        assert squared_distances(data, query)[best.index] == pytest.approx(0.5)


@pytest.mark.parametrize("duplicate_median", [False, True])
def test_axes_cycle_by_depth(rng, duplicate_median):
    tree = build(rng.random((64, 3)), duplicate_median=duplicate_median)
    stack = [(tree.root, 0)]
    while stack:
        node, depth = stack.pop()
        assert node.axis == depth % 3
        stack.extend((child, depth + 1) for child in node.children())


@pytest.mark.parametrize("duplicate_median", [False, True])
def test_partition_invariant(rng, duplicate_median):
    # Many equal coordinates along each axis.
    data = rng.integers(0, 4, size=(200, 2)).astype(float)
    tree = build(data, duplicate_median=duplicate_median)

    for node in tree.iter_nodes():
        split = node.location.point[node.axis]
        for point in collect_points(node.left_child):
            assert point[node.axis] <= split
        for point in collect_points(node.right_child):
            assert point[node.axis] >= split


def test_balanced_height(rng):
    tree = build(rng.random((100, 2)))
    assert len(tree) == 100
    assert tree.height() == math.floor(math.log2(100)) + 1


def test_balanced_height_with_equal_coordinates():
    tree = build([[7.0, 7.0]] * 1000)
    assert tree.height() == math.floor(math.log2(1000)) + 1


def test_every_point_stored_once(rng):
    tree = build(rng.random((37, 2)))
    indices = sorted(node.location.index for node in tree.iter_nodes())
    assert indices == list(range(37))


def test_duplicate_median_policy(rng):
    data = rng.random((10, 2))
    tree = build(data, duplicate_median=True)
    indices = [node.location.index for node in tree.iter_nodes()]
    assert len(indices) > 10
    assert set(indices) == set(range(10))

    # Two points produce no duplicate. A range of only the median is not split.
    assert len(build(data[:2], duplicate_median=True)) == 2
    assert len(build(data[:3], duplicate_median=True)) == 4


def test_iter_nodes_is_pre_order(diagonal_points):
    tree = build(diagonal_points)
    nodes = list(tree.iter_nodes())
    assert nodes[0] is tree.root
    if tree.root.left_child is not None:
        assert nodes[1] is tree.root.left_child


def test_empty_tree_introspection():
    tree = KdTree()
    assert len(tree) == 0
    assert tree.height() == 0
    assert list(tree.iter_nodes()) == []


def test_search_deep_chain():
    # Hand made chain, much deeper than the recursion limit.
    n = 5000
    root = None
    for i in reversed(range(n)):
        root = KdTreeNode(
            axis=0,
            location=IndexedPoint(index=i, point=np.array([float(i)])),
            right_child=root,
        )

    tree = KdTree()
    tree.root = root
    tree.dimension = 1
    assert tree.height() == n
    assert tree.nearest_neighbor([n - 1.2]).index == n - 1
    assert tree.nearest_neighbor([-3.0]).index == 0
