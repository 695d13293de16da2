"""Nodal Lobatto-Legendre basis for the tree-mesh DGSEM containers.

This module provides Legendre polynomial evaluation, Legendre-Gauss-Lobatto
(LGL) nodes and weights, Lagrange interpolation on those nodes and a small
basis object that bundles them for the containers.

Key Functions:
    leg_poly: Evaluate Legendre polynomial and derivatives at a point.
    lgl_gen: Generate LGL quadrature nodes and weights.
    lagrange_basis: Lagrange basis values and derivatives at given points.
    reference_mass_matrix: Mass matrix on [-1, 1] by quadrature.

Key Classes:
    LobattoLegendreBasis: Nodes, weights and sizes for a polynomial degree.

Note:
    All functions operate on the reference element [-1, 1].
"""
import numpy as np


def leg_poly(p: int, x: float):
    """Evaluate Legendre polynomial and its derivatives at a point.

    Uses the three-term recurrence relation to compute P_p(x) and its
    first two derivatives.

    Args:
        p: Polynomial degree. Must be non-negative.
        x: Evaluation point in [-1, 1].

    Returns:
        L0: Legendre polynomial value P_p(x).
        L0_1: First derivative dP_p/dx at x.
        L0_2: Second derivative d²P_p/dx² at x.
    """
    L1, L1_1, L1_2 = 0.0, 0.0, 0.0
    L0, L0_1, L0_2 = 1.0, 0.0, 0.0

    for i in range(1, p + 1):
        L2, L2_1, L2_2 = L1, L1_1, L1_2
        L1, L1_1, L1_2 = L0, L0_1, L0_2
        a = (2 * i - 1) / i
        b = (i - 1) / i
        L0 = a * x * L1 - b * L2
        L0_1 = a * (L1 + x * L1_1) - b * L2_1
        L0_2 = a * (2 * L1_1 + x * L1_2) - b * L2_2

    return L0, L0_1, L0_2


def lgl_gen(P: int):
    """Generate Legendre-Gauss-Lobatto quadrature nodes and weights.

    LGL nodes are the roots of (1-x²)P'_{P-1}(x), which always include
    the endpoints x = ±1.

    Args:
        P: Number of nodes (polynomial degree + 1). Must be >= 2.

    Returns:
        lgl_nodes: LGL node locations in [-1, 1], ascending, shape (P,).
        lgl_weights: Corresponding quadrature weights, shape (P,).

    Note:
        Nodes are computed via Newton iteration on the Legendre polynomial.
        The rule is exact for polynomials of degree ≤ 2P-3.
    """
    if P < 2:
        raise ValueError(f"LGL rule needs at least 2 nodes, got {P}")

    p = P - 1
    ph = (p + 1) // 2

    lgl_nodes = np.zeros(P)
    lgl_weights = np.zeros(P)

    for i in range(1, ph + 1):
        x = np.cos((2 * i - 1) * np.pi / (2 * p + 1))

        for _ in range(20):
            L0, L0_1, L0_2 = leg_poly(p, x)
            dx = -((1 - x**2) * L0_1) / (-2 * x * L0_1 + (1 - x**2) * L0_2)
            x = x + dx
            if abs(dx) < 1.0e-20:
                break

        L0, _, _ = leg_poly(p, x)
        lgl_nodes[p + 1 - i] = x
        lgl_weights[p + 1 - i] = 2 / (p * (p + 1) * L0**2)

    # Odd node count has a root at zero
    if p + 1 != 2 * ph:
        L0, _, _ = leg_poly(p, 0.0)
        lgl_nodes[ph] = 0.0
        lgl_weights[ph] = 2 / (p * (p + 1) * L0**2)

    # Remaining roots by symmetry
    for i in range(1, ph + 1):
        lgl_nodes[i - 1] = -lgl_nodes[p + 1 - i]
        lgl_weights[i - 1] = lgl_weights[p + 1 - i]

    return lgl_nodes, lgl_weights


def lagrange_basis(xlgl, xs):
    """Lagrange basis functions and derivatives evaluated at points.

    Args:
        xlgl: Interpolation nodes, shape (P,).
        xs: Evaluation points, shape (Q,).

    Returns:
        psi: Basis values, shape (P, Q). psi[i, l] = Lᵢ(xs[l]).
        dpsi: Basis derivatives, shape (P, Q). dpsi[i, l] = dLᵢ/dx(xs[l]).
    """
    xlgl = np.asarray(xlgl, dtype=float)
    xs = np.atleast_1d(np.asarray(xs, dtype=float))
    P, Q = len(xlgl), len(xs)

    psi = np.ones((P, Q))
    dpsi = np.zeros((P, Q))

    for i in range(P):
        for j in range(P):
            if i == j:
                continue
            psi[i] *= (xs - xlgl[j]) / (xlgl[i] - xlgl[j])

            ddpsi = np.ones(Q)
            for k in range(P):
                if k != i and k != j:
                    ddpsi *= (xs - xlgl[k]) / (xlgl[i] - xlgl[k])
            dpsi[i] += ddpsi / (xlgl[i] - xlgl[j])

    return psi, dpsi


def reference_mass_matrix(xlgl, xnq, wnq):
    """Mass matrix on the reference element, M_ij = ∫ Lᵢ Lⱼ dξ.

    Args:
        xlgl: Interpolation nodes, shape (P,).
        xnq: Quadrature nodes, shape (Q,).
        wnq: Quadrature weights, shape (Q,).

    Returns:
        Reference mass matrix, shape (P, P).
    """
    psi, _ = lagrange_basis(xlgl, xnq)
    return (psi * wnq) @ psi.T


class LobattoLegendreBasis:
    """LGL nodal basis of a given polynomial degree.

    Attributes:
        polydeg (int): Polynomial degree.
        nnodes (int): Nodes per direction (polydeg + 1).
        nodes (ndarray): LGL nodes on [-1, 1], shape (nnodes,).
        weights (ndarray): LGL weights, shape (nnodes,).
    """

    def __init__(self, polydeg: int):
        if polydeg < 1:
            raise ValueError(f"Polynomial degree must be at least 1, got {polydeg}")
        self.polydeg = int(polydeg)
        self.nnodes = self.polydeg + 1
        self.nodes, self.weights = lgl_gen(self.nnodes)

    def interpolation_matrix(self, xs):
        """Matrix mapping nodal values to values at `xs`, shape (len(xs), nnodes)."""
        psi, _ = lagrange_basis(self.nodes, xs)
        return psi.T

    def __repr__(self):
        return f"LobattoLegendreBasis(polydeg={self.polydeg})"
