"""Non-conforming mortars between a large element and its finer neighbors.

Key Classes:
    MortarContainer: One entry per large face with a refined neighbor.

Key Functions:
    count_required_mortars: Number of mortars for a leaf set.
    init_mortars: Fill the container in element order.

Note:
    A mortar is found from its large element, whose same-level neighbor has
    children. The small elements are the children of that neighbor touching
    the shared face, 2^(ndims-1) of them, in child order. Small elements
    never create a mortar from their side.
"""
import numpy as np

from ..amr.tree import is_positive_direction, opposite_direction
from .base import Container
from .elements import NO_ELEMENT
from .errors import TopologyInvariantViolation
from .topology import FaceKind, classify_face


class MortarContainer(Container):
    """Storage for L2 mortars.

    Attributes:
        n_small (int): Small elements per mortar, 2^(ndims-1).
        neighbor_ids (ndarray): Small elements followed by the large element,
            shape (n_small + 1, n).
        large_sides (ndarray): 0 if the large element lies on the negative
            side of the mortar, 1 otherwise. Shape (n,).
        orientations (ndarray): Axis normal to the mortar, shape (n,).
        u (ndarray): Mortar values of both sides for every small face, shape
            (2, nvariables, n_small, nnodes, ..., nnodes, n) with ndims - 1
            node axes.
    """

    _array_fields = ("neighbor_ids", "large_sides", "orientations", "u")

    def __init__(self, ndims, nvariables, nnodes, nmortars=0):
        super().__init__(nmortars)
        self.n_small = 2**(ndims - 1)
        n = self._count
        self.neighbor_ids = np.full((self.n_small + 1, n), -1, dtype=int)
        self.large_sides = np.full(n, -1, dtype=int)
        self.orientations = np.full(n, -1, dtype=int)
        self.u = np.zeros((2, nvariables, self.n_small) + (nnodes,) * (ndims - 1) + (n,))

    def large_element(self, mortar):
        self.check_index(mortar)
        return int(self.neighbor_ids[self.n_small, mortar])

    def small_elements(self, mortar):
        self.check_index(mortar)
        return [int(e) for e in self.neighbor_ids[:self.n_small, mortar]]

    def large_direction(self, mortar):
        """Face of the large element the mortar is attached to."""
        self.check_index(mortar)
        return 2 * int(self.orientations[mortar]) + (1 if self.large_sides[mortar] == 0 else 0)


def count_required_mortars(tree, cell_ids, rank=None):
    count = 0
    for cell in cell_ids:
        for direction in range(tree.n_directions):
            if classify_face(tree, cell, direction, rank) is FaceKind.MORTAR_LARGE:
                count += 1
    return count


def init_mortars(mortars, elements, tree, rank=None):
    """Record the small and large elements, side and orientation of every mortar.

    Args:
        mortars: MortarContainer sized by count_required_mortars.
        elements: Initialized ElementContainer.
        tree: The Tree.
        rank: Partition the caller owns, None when not distributed.

    Raises:
        TopologyInvariantViolation: If a small element is not exactly one
            level finer than the large element or is not a local element.
    """
    n_small = mortars.n_small
    count = 0
    for element in elements.eachindex():
        cell = elements.cell_ids[element]
        for direction in range(tree.n_directions):
            if classify_face(tree, cell, direction, rank) is not FaceKind.MORTAR_LARGE:
                continue
            if count >= len(mortars):
                raise TopologyInvariantViolation(
                    f"More mortars found than the {len(mortars)} counted"
                )

            neighbor = tree.neighbor_ids[direction, cell]
            small_cells = tree.face_children(neighbor, opposite_direction(direction))
            for position, small_cell in enumerate(small_cells):
                small = elements.element_id(small_cell)
                if small == NO_ELEMENT or elements.levels[small] != elements.levels[element] + 1:
                    raise TopologyInvariantViolation(
                        f"Mortar of element {element} (cell {cell}, level {elements.levels[element]}) "
                        f"in direction {direction} has invalid small cell {small_cell} "
                        f"(level {tree.levels[small_cell]})"
                    )
                mortars.neighbor_ids[position, count] = small

            mortars.neighbor_ids[n_small, count] = element
            mortars.large_sides[count] = 0 if is_positive_direction(direction) else 1
            mortars.orientations[count] = direction // 2
            count += 1

    if count != len(mortars):
        raise TopologyInvariantViolation(f"Found {count} mortars, expected {len(mortars)}")
