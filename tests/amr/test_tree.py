"""Tests for treedg/amr/tree.py"""
import sys
sys.path.insert(0, '.')

import numpy as np
import pytest

from treedg.amr.tree import NO_CELL, Tree, opposite_direction


def assert_links_consistent(tree):
    """Every same-level neighbor link must point back and stay on one level."""
    for cell in range(tree.length):
        if tree.levels[cell] < 0:
            continue
        for direction in range(tree.n_directions):
            neighbor = tree.neighbor_ids[direction, cell]
            if neighbor == NO_CELL:
                continue
            assert tree.levels[neighbor] == tree.levels[cell]
            assert tree.neighbor_ids[opposite_direction(direction), neighbor] == cell


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def ring():
    """Periodic 1D ring with 4 leaves at level 2 (cells 3, 4, 5, 6)."""
    return Tree.from_box([-1.0], [1.0], initial_refinement_level=2, n_cells_max=100)


@pytest.fixture
def square():
    """Non-periodic 2D unit square with 4 leaves at level 1."""
    return Tree.from_box([0.0, 0.0], [1.0, 1.0], initial_refinement_level=1,
                         n_cells_max=100, periodicity=False)


# ============================================================================
# Construction
# ============================================================================

class TestConstruction:
    def test_root_only(self):
        tree = Tree(1, 10, [0.0], 2.0, periodicity=True)
        assert tree.n_cells == 1
        assert list(tree.leaf_cell_ids()) == [tree.root]
        # Periodic root is its own neighbor
        assert tree.neighbor(tree.root, 0) == tree.root
        assert tree.neighbor(tree.root, 1) == tree.root

    def test_non_periodic_root_has_no_neighbors(self):
        tree = Tree(2, 10, [0.5, 0.5], 1.0, periodicity=False)
        for direction in range(4):
            assert tree.neighbor(tree.root, direction) is None

    def test_from_box_uniform_levels(self, ring):
        leaves = ring.leaf_cell_ids()
        assert len(leaves) == 4
        assert np.all(ring.levels[leaves] == 2)
        assert ring.length_at_cell(leaves[0]) == pytest.approx(0.5)

    def test_from_box_rejects_non_square(self):
        with pytest.raises(ValueError):
            Tree.from_box([0.0, 0.0], [1.0, 2.0])

    def test_invalid_dimension(self):
        with pytest.raises(ValueError):
            Tree(4, 10, [0.0] * 4, 1.0)

    def test_periodicity_per_axis(self):
        tree = Tree(2, 10, [0.0, 0.0], 1.0, periodicity=(True, False))
        assert tree.neighbor(tree.root, 0) == tree.root
        assert tree.neighbor(tree.root, 2) is None


# ============================================================================
# Leaf query
# ============================================================================

class TestLeafCellIds:
    def test_leaf_order_follows_space(self, ring):
        leaves = ring.leaf_cell_ids()
        centers = ring.coordinates[0, leaves]
        assert np.all(np.diff(centers) > 0)
        assert np.allclose(centers, [-0.75, -0.25, 0.25, 0.75])

    def test_leaf_order_after_refinement(self, ring):
        first = ring.leaf_cell_ids()[0]
        children = ring.refine([first])
        leaves = ring.leaf_cell_ids()
        assert list(leaves[:2]) == list(children)
        assert np.all(np.diff(ring.coordinates[0, leaves]) > 0)

    def test_morton_order_2d(self, square):
        leaves = square.leaf_cell_ids()
        centers = square.coordinates[:, leaves].T
        assert np.allclose(centers, [[0.25, 0.25], [0.75, 0.25], [0.25, 0.75], [0.75, 0.75]])

    def test_repeated_query_is_deterministic(self, ring):
        ring.refine([ring.leaf_cell_ids()[2]])
        assert np.array_equal(ring.leaf_cell_ids(), ring.leaf_cell_ids())


# ============================================================================
# Neighbors
# ============================================================================

class TestNeighbors:
    def test_ring_wraps(self, ring):
        leaves = ring.leaf_cell_ids()
        assert ring.neighbor(leaves[0], 0) == leaves[-1]
        assert ring.neighbor(leaves[-1], 1) == leaves[0]
        for a, b in zip(leaves[:-1], leaves[1:]):
            assert ring.neighbor(a, 1) == b
            assert ring.neighbor(b, 0) == a

    def test_links_consistent_after_mixed_refinement(self, square):
        leaves = square.leaf_cell_ids()
        square.refine([leaves[0], leaves[3]])
        square.refine([square.leaf_cell_ids()[3]])
        assert_links_consistent(square)

    def test_children_link_to_refined_neighbor(self, ring):
        leaves = ring.leaf_cell_ids()
        left_children = ring.refine([leaves[0]])
        right_children = ring.refine([leaves[1]])
        # Right child of the first cell faces the left child of the second
        assert ring.neighbor(left_children[1], 1) == right_children[0]
        assert ring.neighbor(right_children[0], 0) == left_children[1]
        assert_links_consistent(ring)

    def test_coarse_neighbor(self, ring):
        leaves = ring.leaf_cell_ids()
        children = ring.refine([leaves[0]])
        assert ring.neighbor(children[0], 0) is None
        assert ring.has_coarse_neighbor(children[0], 0)
        assert ring.coarse_level_difference(children[0], 0) == 1
        assert ring.coarse_level_difference(children[0], 1) == 0

    def test_exterior_face(self, square):
        first = square.leaf_cell_ids()[0]
        assert square.coarse_level_difference(first, 0) is None
        assert square.coarse_level_difference(first, 2) is None
        assert square.coarse_level_difference(first, 1) == 0

    def test_face_children(self, square):
        first = square.leaf_cell_ids()[0]
        children = square.refine([first])
        # Positive x face: children 1 and 3; positive y face: children 2 and 3
        assert square.face_children(first, 1) == [children[1], children[3]]
        assert square.face_children(first, 3) == [children[2], children[3]]
        assert square.face_children(first, 0) == [children[0], children[2]]


# ============================================================================
# Refine / coarsen
# ============================================================================

class TestRefineCoarsen:
    def test_refine_creates_children(self, ring):
        cell = ring.leaf_cell_ids()[1]
        children = ring.refine([cell])
        assert len(children) == 2
        assert ring.children(cell) == list(children)
        for child in children:
            assert ring.parent(child) == cell
            assert ring.level(child) == ring.level(cell) + 1
        assert np.allclose(ring.coordinates[0, children], [-0.375, -0.125])

    def test_refine_non_leaf_raises(self, ring):
        with pytest.raises(ValueError):
            ring.refine([ring.root])

    def test_capacity_exceeded(self):
        tree = Tree.from_box([0.0], [1.0], initial_refinement_level=1, n_cells_max=4)
        with pytest.raises(ValueError):
            tree.refine(tree.leaf_cell_ids())
        # Nothing was changed by the failed request
        assert tree.n_leaves() == 2

    def test_coarsen_restores_leaves(self, ring):
        before = ring.leaf_cell_ids()
        cell = before[2]
        ring.refine([cell])
        ring.coarsen([cell])
        assert np.array_equal(ring.leaf_cell_ids(), before)
        assert_links_consistent(ring)

    def test_coarsen_unlinks_neighbors(self, ring):
        leaves = ring.leaf_cell_ids()
        left_children = ring.refine([leaves[0]])
        ring.refine([leaves[1]])
        ring.coarsen([leaves[1]])
        assert ring.neighbor(left_children[1], 1) is None
        assert ring.has_coarse_neighbor(left_children[1], 1)
        assert ring.coarse_level_difference(left_children[1], 1) == 1

    def test_coarsen_leaf_raises(self, ring):
        with pytest.raises(ValueError):
            ring.coarsen([ring.leaf_cell_ids()[0]])

    def test_coarsen_with_refined_child_raises(self, ring):
        cell = ring.leaf_cell_ids()[0]
        children = ring.refine([cell])
        ring.refine([children[0]])
        with pytest.raises(ValueError):
            ring.coarsen([cell])

    def test_ids_are_recycled(self, ring):
        cell = ring.leaf_cell_ids()[0]
        children = ring.refine([cell])
        ring.coarsen([cell])
        again = ring.refine([cell])
        assert sorted(again) == sorted(children)

    def test_coarsen_duplicate_ids_raises(self, ring):
        cell = ring.leaf_cell_ids()[0]
        ring.refine([cell])
        n_cells = ring.n_cells
        with pytest.raises(ValueError):
            ring.coarsen([cell, cell])
        # Arena untouched: no cells released, no invalid ids recycled
        assert ring.n_cells == n_cells
        assert NO_CELL not in ring._free_ids
        assert ring.n_leaves() == 5
        ring.coarsen([cell])
        assert ring.n_cells == n_cells - 2
        assert min(ring.refine([cell])) >= 0

    def test_refine_duplicate_ids_raises(self, ring):
        cell = ring.leaf_cell_ids()[0]
        with pytest.raises(ValueError):
            ring.refine([cell, cell])
        assert ring.n_leaves() == 4

    def test_check_requests_do_not_mutate(self, ring):
        leaves = ring.leaf_cell_ids()
        assert ring.check_refine(leaves[:2]) == [int(leaves[0]), int(leaves[1])]
        assert ring.n_leaves() == 4
        with pytest.raises(ValueError):
            ring.check_coarsen([leaves[0]])
        parent = ring.parent(leaves[0])
        assert ring.check_coarsen([parent]) == [parent]
        assert ring.n_leaves() == 4


class TestReplicate:
    def test_replica_is_independent(self, ring):
        replica = ring.replicate()
        assert np.array_equal(replica.leaf_cell_ids(), ring.leaf_cell_ids())
        replica.refine([replica.leaf_cell_ids()[0]])
        assert replica.n_leaves() == 5
        assert ring.n_leaves() == 4

    def test_same_requests_keep_replicas_identical(self, ring):
        replica = ring.replicate()
        cell = ring.leaf_cell_ids()[1]
        for tree in (ring, replica):
            tree.refine([cell])
        assert np.array_equal(replica.leaf_cell_ids(), ring.leaf_cell_ids())
        assert np.array_equal(replica.neighbor_ids, ring.neighbor_ids)


# ============================================================================
# Partitioning
# ============================================================================

class TestPartition:
    def test_even_split(self, ring):
        counts = ring.partition(2)
        assert list(counts) == [2, 2]
        leaves = ring.leaf_cell_ids()
        assert list(ring.local_leaf_cell_ids(0)) == list(leaves[:2])
        assert list(ring.local_leaf_cell_ids(1)) == list(leaves[2:])

    def test_uneven_split(self, ring):
        ring.refine([ring.leaf_cell_ids()[0]])
        counts = ring.partition(2)
        assert list(counts) == [3, 2]

    def test_children_inherit_partition(self, ring):
        ring.partition(2)
        cell = ring.local_leaf_cell_ids(1)[0]
        children = ring.refine([cell])
        assert np.all(ring.partitions[children] == 1)

    def test_too_many_partitions(self, ring):
        with pytest.raises(ValueError):
            ring.partition(5)
