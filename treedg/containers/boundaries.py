"""Boundaries between element faces and the domain exterior.

Key Classes:
    BoundaryContainer: One entry per exterior element face.

Key Functions:
    count_required_boundaries: Number of boundaries for a leaf set.
    init_boundaries: Fill the container in element order.

Note:
    A face is a boundary only if no ancestor of the cell has a neighbor in
    that direction. Periodic faces always have a neighbor and never become
    boundaries.
"""
import numpy as np

from ..amr.tree import is_positive_direction
from ..grid.mesh import face_node_coordinates
from .base import Container
from .errors import TopologyInvariantViolation
from .topology import FaceKind, classify_face

BOUNDARY_TAGS = ("x_neg", "x_pos", "y_neg", "y_pos", "z_neg", "z_pos")


def boundary_tag(direction: int) -> str:
    return BOUNDARY_TAGS[direction]


class BoundaryContainer(Container):
    """Storage for domain boundaries.

    Attributes:
        neighbor_ids (ndarray): Element of each boundary, shape (n,).
        neighbor_sides (ndarray): 0 if the element lies on the negative side
            of the boundary (boundary on its positive face), 1 otherwise.
        orientations (ndarray): Axis normal to the boundary, shape (n,).
        faces (ndarray): Local face index of the element, shape (n,).
        tags (ndarray): Boundary-condition tag of each boundary, shape (n,).
        node_coordinates (ndarray): Face nodes, shape
            (ndims, nnodes, ..., nnodes, n) with ndims - 1 node axes.
        n_boundaries_per_direction (ndarray): Shape (2*ndims,).
        u (ndarray): Face values, shape (2, nvariables, nnodes, ..., n).
    """

    _array_fields = ("neighbor_ids", "neighbor_sides", "orientations", "faces", "tags",
                     "node_coordinates", "n_boundaries_per_direction", "u")

    def __init__(self, ndims, nvariables, nnodes, nboundaries=0):
        super().__init__(nboundaries)
        n = self._count
        self.neighbor_ids = np.full(n, -1, dtype=int)
        self.neighbor_sides = np.full(n, -1, dtype=int)
        self.orientations = np.full(n, -1, dtype=int)
        self.faces = np.full(n, -1, dtype=int)
        self.tags = np.full(n, "", dtype=object)
        self.node_coordinates = np.zeros((ndims,) + (nnodes,) * (ndims - 1) + (n,))
        self.n_boundaries_per_direction = np.zeros(2 * ndims, dtype=int)
        self.u = np.zeros((2, nvariables) + (nnodes,) * (ndims - 1) + (n,))

    def boundary_indices(self, tag):
        """Boundaries carrying `tag`, in container order."""
        return np.flatnonzero(self.tags == tag)


def count_required_boundaries(tree, cell_ids, rank=None):
    count = 0
    for cell in cell_ids:
        for direction in range(tree.n_directions):
            if classify_face(tree, cell, direction, rank) is FaceKind.BOUNDARY:
                count += 1
    return count


def init_boundaries(boundaries, elements, tree, basis, rank=None):
    """Record element, side, face, tag and face geometry of every boundary.

    Args:
        boundaries: BoundaryContainer sized by count_required_boundaries.
        elements: Initialized ElementContainer.
        tree: The Tree.
        basis: LobattoLegendreBasis for the face nodes.
        rank: Partition the caller owns, None when not distributed.
    """
    count = 0
    for element in elements.eachindex():
        cell = elements.cell_ids[element]
        for direction in range(tree.n_directions):
            if classify_face(tree, cell, direction, rank) is not FaceKind.BOUNDARY:
                continue
            if count >= len(boundaries):
                raise TopologyInvariantViolation(
                    f"More boundaries found than the {len(boundaries)} counted"
                )

            boundaries.neighbor_ids[count] = element
            boundaries.neighbor_sides[count] = 0 if is_positive_direction(direction) else 1
            boundaries.orientations[count] = direction // 2
            boundaries.faces[count] = direction
            boundaries.tags[count] = boundary_tag(direction)
            boundaries.node_coordinates[..., count] = face_node_coordinates(
                tree.center(cell), tree.length_at_cell(cell), basis.nodes, direction
            )
            boundaries.n_boundaries_per_direction[direction] += 1
            count += 1

    if count != len(boundaries):
        raise TopologyInvariantViolation(
            f"Found {count} boundaries, expected {len(boundaries)}"
        )
