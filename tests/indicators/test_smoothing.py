"""Tests for smoothing.py blending-factor smoothing."""

import sys
sys.path.insert(0, '.')

import numpy as np
import pytest

from treedg.amr.tree import Tree
from treedg.containers.reinitialize import create_cache
from treedg.dg.basis import LobattoLegendreBasis
from treedg.dg.equations import LinearScalarAdvectionEquation
from treedg.indicators.smoothing import apply_smoothing, apply_smoothing_tree, smooth_indicator


@pytest.fixture
def ring_cache():
    tree = Tree.from_box([-1.0], [1.0], initial_refinement_level=2, n_cells_max=100)
    return tree, create_cache(tree, LinearScalarAdvectionEquation(1.0), LobattoLegendreBasis(3))


class TestApplySmoothing:
    def test_spike_on_ring(self, ring_cache):
        _, cache = ring_cache
        alpha = np.array([1.0, 0.0, 0.0, 0.0])
        apply_smoothing(alpha, np.empty(4), cache.elements.neighbor_ids[0])
        assert np.allclose(alpha, [1.0, 0.5, 0.0, 0.5])

    def test_missing_left_neighbor(self):
        alpha = np.array([0.0, 0.8, 0.0])
        apply_smoothing(alpha, np.empty(3), np.array([-1, 0, 1]))
        assert np.allclose(alpha, [0.4, 0.8, 0.4])

    def test_no_chaining(self):
        """Values spread by one neighbor only, independent of loop order."""
        alpha = np.array([0.0, 0.0, 1.0, 0.0, 0.0])
        apply_smoothing(alpha, np.empty(5), np.array([-1, 0, 1, 2, 3]))
        assert np.allclose(alpha, [0.0, 0.5, 1.0, 0.5, 0.0])

    def test_never_decreases(self):
        rng = np.random.default_rng(0)
        alpha = rng.random(6)
        before = alpha.copy()
        apply_smoothing(alpha, np.empty(6), np.array([5, 0, 1, 2, 3, 4]))
        assert np.all(alpha >= before)


class TestApplySmoothingTree:
    def test_matches_1d_variant(self, ring_cache):
        _, cache = ring_cache
        alpha = np.array([1.0, 0.0, 0.0, 0.0])
        apply_smoothing_tree(alpha, np.empty(4), cache.interfaces, cache.mortars)
        assert np.allclose(alpha, [1.0, 0.5, 0.0, 0.5])

    def test_across_mortars(self):
        tree = Tree.from_box([-1.0], [1.0], initial_refinement_level=2, n_cells_max=100)
        tree.refine([tree.leaf_cell_ids()[0]])
        cache = create_cache(tree, LinearScalarAdvectionEquation(1.0), LobattoLegendreBasis(3))
        # Coarse element right of the refined cell
        alpha = np.array([0.0, 0.0, 1.0, 0.0, 0.0])
        apply_smoothing_tree(alpha, np.empty(5), cache.interfaces, cache.mortars)
        assert np.allclose(alpha, [0.0, 0.5, 1.0, 0.5, 0.0])


class TestSmoothIndicator:
    def test_disabled(self, ring_cache):
        _, cache = ring_cache
        alpha = np.array([1.0, 0.0, 0.0, 0.0])
        result = smooth_indicator(alpha, cache, alpha_smooth=False)
        assert np.allclose(result, [1.0, 0.0, 0.0, 0.0])

    def test_length_mismatch(self, ring_cache):
        _, cache = ring_cache
        with pytest.raises(ValueError):
            smooth_indicator(np.zeros(3), cache)

    def test_float_array_smoothed_in_place(self, ring_cache):
        _, cache = ring_cache
        alpha = np.array([0.0, 0.0, 0.8, 0.0])
        result = smooth_indicator(alpha, cache)
        assert result is alpha
        assert np.allclose(alpha, [0.0, 0.4, 0.8, 0.4])

    def test_list_converted_to_new_array(self, ring_cache):
        _, cache = ring_cache
        alpha = [0.0, 0.0, 0.8, 0.0]
        result = smooth_indicator(alpha, cache)
        assert isinstance(result, np.ndarray)
        assert np.allclose(result, [0.0, 0.4, 0.8, 0.4])
        assert alpha == [0.0, 0.0, 0.8, 0.0]

    def test_integer_array_not_modified(self, ring_cache):
        _, cache = ring_cache
        alpha = np.array([0, 0, 1, 0])
        result = smooth_indicator(alpha, cache)
        assert result is not alpha
        assert list(alpha) == [0, 0, 1, 0]
        assert np.allclose(result, [0.0, 0.5, 1.0, 0.5])
