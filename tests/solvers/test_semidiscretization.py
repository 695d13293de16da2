"""Tests for the TreeDGSemidiscretization driver.

Tests cover:
    - Initialization builds containers matching the tree
    - adapt: refinement, coarsening, max_level and balance handling
    - verify_state: element order checks
    - Distributed runs with one thread per partition
"""

import sys
sys.path.insert(0, '.')

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from treedg.amr.balance import check_balance
from treedg.amr.tree import Tree
from treedg.containers.errors import TopologyInvariantViolation
from treedg.dg.basis import LobattoLegendreBasis
from treedg.dg.equations import LinearScalarAdvectionEquation
from treedg.parallel.transport import InProcessNetwork
from treedg.solvers.semidiscretization import TreeDGSemidiscretization


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def ring():
    return Tree.from_box([-1.0], [1.0], initial_refinement_level=2, n_cells_max=200)


@pytest.fixture
def semi(ring):
    return TreeDGSemidiscretization(
        ring, LinearScalarAdvectionEquation(1.0), LobattoLegendreBasis(3), max_level=4
    )


# ============================================================================
# Tests
# ============================================================================

class TestInitialization:
    def test_containers(self, semi):
        assert semi.nelements == 4
        assert len(semi.cache.interfaces) == 4
        assert semi.rank is None
        semi.verify_state()

    def test_mortar_operators(self, semi):
        assert semi.mortar.forward_lower.shape == (4, 4)

    def test_transport_size_mismatch(self, ring):
        network = InProcessNetwork(2)
        with pytest.raises(ValueError):
            TreeDGSemidiscretization(ring, LinearScalarAdvectionEquation(1.0),
                                     LobattoLegendreBasis(3), transport=network.transport(0))


class TestAdapt:
    def test_refine_first_element(self, semi):
        semi.adapt(refine=[semi.cache.elements.cell_ids[0]])
        assert semi.nelements == 5
        assert len(semi.cache.mortars) == 2
        assert len(semi.cache.interfaces) == 3
        semi.verify_state()

    def test_refine_then_coarsen(self, semi):
        original = semi.cache.elements
        cell = semi.cache.elements.cell_ids[0]
        semi.adapt(refine=[cell])
        semi.adapt(coarsen=[cell])
        assert semi.cache.elements == original
        assert len(semi.cache.mortars) == 0

    def test_max_level_skips(self, ring):
        semi = TreeDGSemidiscretization(ring, LinearScalarAdvectionEquation(1.0),
                                        LobattoLegendreBasis(3), max_level=4, balance=True)
        cell = semi.cache.elements.cell_ids[0]
        for _ in range(2):
            semi.adapt(refine=[cell])
            cell = semi.cache.elements.cell_ids[0]
        assert semi.cache.elements.levels[0] == 4
        n_before = semi.nelements
        semi.adapt(refine=[cell])
        assert semi.nelements == n_before

    def test_unbalanced_refinement_rejected(self, semi):
        cell = semi.cache.elements.cell_ids[0]
        semi.adapt(refine=[cell])
        with pytest.raises(TopologyInvariantViolation):
            semi.adapt(refine=[semi.cache.elements.cell_ids[1]])

    def test_balance_repairs_refinement(self, semi):
        cell = semi.cache.elements.cell_ids[0]
        semi.adapt(refine=[cell])
        semi.adapt(refine=[semi.cache.elements.cell_ids[1]], balance=True)
        assert check_balance(semi.tree)
        assert semi.nelements == 7
        semi.verify_state()

    def test_rejected_coarsen_leaves_state_intact(self, semi):
        cells = semi.cache.elements.cell_ids.copy()
        with pytest.raises(ValueError):
            semi.adapt(refine=[cells[0]], coarsen=[cells[2]])
        assert semi.tree.n_leaves() == 4
        assert semi.nelements == 4
        semi.verify_state()

    def test_refine_child_of_coarsened_cell_rejected(self, semi):
        cell = semi.cache.elements.cell_ids[0]
        semi.adapt(refine=[cell])
        child = semi.cache.elements.cell_ids[0]
        with pytest.raises(ValueError):
            semi.adapt(refine=[child], coarsen=[cell])
        assert semi.nelements == 5
        semi.verify_state()

    def test_invalid_cell_rejected(self, semi):
        with pytest.raises(ValueError):
            semi.adapt(refine=[semi.cache.elements.cell_ids[0], 999])
        assert semi.nelements == 4
        semi.verify_state()

    def test_balance_mesh_noop(self, semi):
        assert semi.balance_mesh(balance=True) is False

    def test_verbose(self, ring, capsys):
        semi = TreeDGSemidiscretization(ring, LinearScalarAdvectionEquation(1.0),
                                        LobattoLegendreBasis(3), max_level=2, verbose=True)
        semi.adapt(refine=[semi.cache.elements.cell_ids[0]])
        out = capsys.readouterr().out
        assert "Skipping refinement of 1 cells at max level 2" in out


class TestVerifyState:
    def test_stale_containers(self, semi):
        semi.tree.refine([semi.cache.elements.cell_ids[2]])
        with pytest.raises(ValueError):
            semi.verify_state()


class TestSmoothIndicator:
    def test_smooth(self, semi):
        alpha = semi.smooth_indicator(np.array([0.0, 0.0, 0.8, 0.0]))
        assert np.allclose(alpha, [0.0, 0.4, 0.8, 0.4])

    def test_disabled(self, ring):
        semi = TreeDGSemidiscretization(ring, LinearScalarAdvectionEquation(1.0),
                                        LobattoLegendreBasis(3), alpha_smooth=False)
        alpha = semi.smooth_indicator(np.array([0.0, 0.0, 0.8, 0.0]))
        assert np.allclose(alpha, [0.0, 0.0, 0.8, 0.0])


class TestDistributed:
    """Every partition drives its own replica of the tree."""

    @pytest.fixture
    def partitioned(self):
        tree = Tree.from_box([-1.0], [1.0], initial_refinement_level=3, n_cells_max=200)
        tree.partition(2)
        network = InProcessNetwork(2)

        def build(transport):
            return TreeDGSemidiscretization(tree.replicate(), LinearScalarAdvectionEquation(1.0),
                                            LobattoLegendreBasis(3), transport=transport,
                                            exchange_timeout=5.0)

        # Construction already exchanges interface ids, so partitions start together
        with ThreadPoolExecutor(max_workers=2) as pool:
            semis = list(pool.map(build, network.transports()))
        return tree, semis

    def test_replicas_are_separate(self, partitioned):
        tree, semis = partitioned
        assert semis[0].tree is not semis[1].tree
        assert semis[0].tree is not tree

    def test_adapt_on_both_partitions(self, partitioned):
        """Refining partition-interior cells keeps both partitions consistent."""
        tree, semis = partitioned
        # Cells away from the partition boundaries
        interior = [tree.local_leaf_cell_ids(0)[1], tree.local_leaf_cell_ids(1)[2]]

        with ThreadPoolExecutor(max_workers=2) as pool:
            caches = list(pool.map(lambda semi: semi.adapt(refine=interior), semis))

        for semi, cache in zip(semis, caches):
            semi.verify_state()
            assert semi.rank in (0, 1)
            assert len(cache.elements) == 5
            assert len(cache.mortars) == 2
            assert len(cache.mpi_interfaces) == 2
        assert np.array_equal(semis[0].tree.leaf_cell_ids(), semis[1].tree.leaf_cell_ids())

    def test_adapt_and_coarsen_back(self, partitioned):
        tree, semis = partitioned
        interior = [tree.local_leaf_cell_ids(0)[1], tree.local_leaf_cell_ids(1)[2]]

        def refine_and_coarsen(semi):
            semi.adapt(refine=interior)
            return semi.adapt(coarsen=interior)

        with ThreadPoolExecutor(max_workers=2) as pool:
            caches = list(pool.map(refine_and_coarsen, semis))

        for semi, cache in zip(semis, caches):
            semi.verify_state()
            assert len(cache.elements) == 4
            assert len(cache.mortars) == 0
            assert len(cache.interfaces) == 3
