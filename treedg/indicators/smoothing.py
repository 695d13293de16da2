"""Smoothing of the shock-capturing blending factor.

An element whose neighbor is strongly activated should not switch to pure
high-order evaluation, so each element's alpha is raised to at least half of
its neighbors' alpha. The update reads only a snapshot of the input, which
makes the result independent of the order in which pairs are visited.

Key Functions:
    apply_smoothing: 1D variant over per-element left neighbors.
    apply_smoothing_tree: Any dimension, over interfaces and mortars.
    smooth_indicator: Apply the tree variant to a SolverCache.
"""
import numpy as np


def _smooth_pair(alpha, alpha_tmp, a, b):
    alpha[a] = max(alpha_tmp[a], 0.5 * alpha_tmp[b], alpha[a])
    alpha[b] = max(alpha_tmp[b], 0.5 * alpha_tmp[a], alpha[b])


def apply_smoothing(alpha, alpha_tmp, left_neighbors):
    """Smooth alpha over 1D element neighbors.

    Args:
        alpha: Per-element values, shape (nelements,). Updated in place.
        alpha_tmp: Work array of the same shape, overwritten with the
            original values.
        left_neighbors: Left neighbor element of each element, shape
            (nelements,). Negative entries mark elements without one.

    Returns:
        The smoothed `alpha`.
    """
    alpha_tmp[:] = alpha

    for element, left in enumerate(left_neighbors):
        if left < 0:
            continue
        _smooth_pair(alpha, alpha_tmp, left, element)

    return alpha


def apply_smoothing_tree(alpha, alpha_tmp, interfaces, mortars):
    """Smooth alpha over all conforming interfaces and mortars.

    Args:
        alpha: Per-element values, shape (nelements,). Updated in place.
        alpha_tmp: Work array of the same shape.
        interfaces: InterfaceContainer.
        mortars: MortarContainer. Each small element is paired with the
            large element.

    Returns:
        The smoothed `alpha`.
    """
    alpha_tmp[:] = alpha

    for interface in interfaces.eachindex():
        left, right = interfaces.neighbor_ids[:, interface]
        _smooth_pair(alpha, alpha_tmp, left, right)

    for mortar in mortars.eachindex():
        large = mortars.large_element(mortar)
        for small in mortars.small_elements(mortar):
            _smooth_pair(alpha, alpha_tmp, large, small)

    return alpha


def smooth_indicator(alpha, cache, alpha_smooth=True):
    """Smooth per-element alpha using the couplings of a SolverCache.

    Args:
        alpha: Per-element values, shape (len(cache.elements),).
        cache: SolverCache of this partition.
        alpha_smooth: If False, alpha is returned unchanged.

    Returns:
        The smoothed alpha. A float ndarray is modified in place and
        returned; any other input is converted to a new float array first.

    Note:
        Distributed interfaces are not used; the remote alpha is not known
        on this partition.
    """
    alpha = np.asarray(alpha, dtype=float)
    if len(alpha) != len(cache.elements):
        raise ValueError(
            f"alpha has {len(alpha)} entries for {len(cache.elements)} elements"
        )
    if not alpha_smooth:
        return alpha

    alpha_tmp = np.empty_like(alpha)
    return apply_smoothing_tree(alpha, alpha_tmp, cache.interfaces, cache.mortars)
