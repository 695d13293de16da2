"""L2 mortar operators for non-conforming tree-mesh faces.

A mortar joins the face of a large element to the faces of the two (per
tangential direction) small elements on the other side. Data on the large
face is interpolated onto each half face ("forward") and data on the half
faces is projected back onto the large face ("reverse").

Key Functions:
    mortar_basis: Large-face basis evaluated at half-face quadrature points.
    create_S_matrices: Projection integral matrices for both halves.
    create_forward_operators: Large face → half faces.
    create_reverse_operators: Half faces → large face.

Key Classes:
    MortarL2: Bundles the four operators for one basis.

Mathematical Background:
    Forward:  u_half = M⁻¹ S u_large
    Reverse:  u_large = 0.5 * M⁻¹ (S_lowerᵀ u_lower + S_upperᵀ u_upper)

    The 0.5 factor accounts for each half face covering half of the large
    face in reference coordinates.

Note:
    All operators act on one tangential direction. The lower half maps to
    [-1, 0] and the upper half to [0, 1] of the large face. In 3D the face
    operators are tensor products of these 1D matrices.
"""
import numpy as np

from .basis import lagrange_basis, lgl_gen, reference_mass_matrix

LOWER = 0
UPPER = 1


def mortar_basis(xlgl, xs, half: int):
    """Evaluate large-face basis functions at half-face points.

    The mapping from half-face coordinate ξ to large-face coordinate ζ is
        lower: ζ = 0.5*ξ - 0.5  (maps [-1,1] → [-1,0])
        upper: ζ = 0.5*ξ + 0.5  (maps [-1,1] → [0,1])

    Args:
        xlgl: LGL nodes on [-1, 1], shape (P,).
        xs: Quadrature points on the half face, shape (Q,).
        half: LOWER or UPPER.

    Returns:
        Basis values, shape (P, Q). Entry [i, l] = Lᵢ(ζ(xs[l])).
    """
    if half == LOWER:
        zeta = 0.5 * np.asarray(xs) - 0.5
    elif half == UPPER:
        zeta = 0.5 * np.asarray(xs) + 0.5
    else:
        raise ValueError(f"half must be LOWER (0) or UPPER (1), got {half}")

    psi, _ = lagrange_basis(xlgl, zeta)
    return psi


def create_S_matrices(xlgl, xnq, wnq):
    """Projection integral matrices between large face and half faces.

        S[i, j] = Σₖ wₖ ψᵢ(xₖ) φⱼ(ζ(xₖ))

    where ψ is the half-face basis and φ the large-face basis.

    Args:
        xlgl: LGL nodes, shape (P,).
        xnq: Quadrature nodes, shape (Q,).
        wnq: Quadrature weights, shape (Q,).

    Returns:
        tuple: (S_lower, S_upper), each shape (P, P).
    """
    psi, _ = lagrange_basis(xlgl, xnq)
    weighted = psi * wnq
    S_lower = weighted @ mortar_basis(xlgl, xnq, LOWER).T
    S_upper = weighted @ mortar_basis(xlgl, xnq, UPPER).T
    return S_lower, S_upper


def create_forward_operators(M, S_lower, S_upper):
    """Operators from large-face values to half-face values, PS = M⁻¹ S."""
    Minv = np.linalg.inv(M)
    return Minv @ S_lower, Minv @ S_upper


def create_reverse_operators(M, S_lower, S_upper):
    """Operators from half-face values to large-face values, PG = 0.5 M⁻¹ Sᵀ."""
    Minv = np.linalg.inv(M)
    return 0.5 * Minv @ S_lower.T, 0.5 * Minv @ S_upper.T


class MortarL2:
    """L2 mortar operators for a LobattoLegendreBasis.

    Attributes:
        forward_lower, forward_upper: Large → half face, shape (nnodes, nnodes).
            Usage: u_lower = forward_lower @ u_large.
        reverse_lower, reverse_upper: Half → large face, shape (nnodes, nnodes).
            Usage: u_large = reverse_lower @ u_lower + reverse_upper @ u_upper.

    Note:
        Quadrature uses nnodes + 1 LGL points so that products of two
        basis polynomials are integrated exactly.
    """

    def __init__(self, basis):
        xlgl = basis.nodes
        xnq, wnq = lgl_gen(basis.nnodes + 1)

        M = reference_mass_matrix(xlgl, xnq, wnq)
        S_lower, S_upper = create_S_matrices(xlgl, xnq, wnq)

        self.forward_lower, self.forward_upper = create_forward_operators(M, S_lower, S_upper)
        self.reverse_lower, self.reverse_upper = create_reverse_operators(M, S_lower, S_upper)

    def prolong(self, u_large):
        """Split large-face data of shape (..., nnodes) into (lower, upper)."""
        return u_large @ self.forward_lower.T, u_large @ self.forward_upper.T

    def project(self, u_lower, u_upper):
        """Combine half-face data of shape (..., nnodes) onto the large face."""
        return u_lower @ self.reverse_lower.T + u_upper @ self.reverse_upper.T
