"""Conforming interfaces between same-level elements.

Key Classes:
    InterfaceContainer: Element pairs sharing a face at equal level.

Key Functions:
    count_required_interfaces: Number of interfaces for a leaf set.
    init_interfaces: Fill the container in element order.

Note:
    Each interface is found from the element on its negative side, looking
    in a positive direction, so it is never counted twice.
"""
import numpy as np

from ..amr.tree import opposite_direction
from .base import Container
from .errors import TopologyInvariantViolation
from .topology import FaceKind, classify_face

LEFT = 0
RIGHT = 1


class InterfaceContainer(Container):
    """Storage for conforming interfaces.

    Attributes:
        neighbor_ids (ndarray): [left, right] element of each interface,
            shape (2, n). The left element lies on the negative side.
        orientations (ndarray): Axis normal to the interface, shape (n,).
        faces (ndarray): Local face index of the left and right element,
            shape (2, n).
        u (ndarray): Face values of both sides, shape
            (2, nvariables, nnodes, ..., nnodes, n) with ndims - 1 node axes.
    """

    _array_fields = ("neighbor_ids", "orientations", "faces", "u")

    def __init__(self, ndims, nvariables, nnodes, ninterfaces=0):
        super().__init__(ninterfaces)
        n = self._count
        self.neighbor_ids = np.full((2, n), -1, dtype=int)
        self.orientations = np.full(n, -1, dtype=int)
        self.faces = np.full((2, n), -1, dtype=int)
        self.u = np.zeros((2, nvariables) + (nnodes,) * (ndims - 1) + (n,))

    def elements(self, interface):
        self.check_index(interface)
        return int(self.neighbor_ids[LEFT, interface]), int(self.neighbor_ids[RIGHT, interface])


def count_required_interfaces(tree, cell_ids, rank=None):
    count = 0
    for cell in cell_ids:
        for direction in range(tree.n_directions):
            if classify_face(tree, cell, direction, rank) is FaceKind.INTERFACE:
                count += 1
    return count


def init_interfaces(interfaces, elements, tree, rank=None):
    """Record both elements, the orientation and the faces of every interface.

    Args:
        interfaces: InterfaceContainer sized by count_required_interfaces.
        elements: Initialized ElementContainer.
        tree: The Tree.
        rank: Partition the caller owns, None when not distributed.
    """
    count = 0
    for element in elements.eachindex():
        cell = elements.cell_ids[element]
        for direction in range(1, tree.n_directions, 2):
            if classify_face(tree, cell, direction, rank) is not FaceKind.INTERFACE:
                continue
            if count >= len(interfaces):
                raise TopologyInvariantViolation(
                    f"More interfaces found than the {len(interfaces)} counted"
                )

            neighbor = tree.neighbor_ids[direction, cell]
            interfaces.neighbor_ids[LEFT, count] = element
            interfaces.neighbor_ids[RIGHT, count] = elements.element_id(neighbor)
            interfaces.orientations[count] = direction // 2
            interfaces.faces[LEFT, count] = direction
            interfaces.faces[RIGHT, count] = opposite_direction(direction)
            count += 1

    if count != len(interfaces):
        raise TopologyInvariantViolation(
            f"Found {count} interfaces, expected {len(interfaces)}"
        )
