"""Element container: one record per active leaf cell.

Key Classes:
    ElementContainer: Geometry and solution storage of all local elements.

Key Functions:
    init_elements: Fill a container from the tree's leaf cells.

Note:
    Element e owns the cell `cell_ids[e]`. The element order is the order of
    the leaf query and all downstream loops iterate in that order. Storage
    arrays keep the element index last so that per-element slices are views.
"""
import numpy as np

from ..amr.tree import NO_CELL
from ..grid.mesh import element_node_coordinates
from .base import Container

NO_ELEMENT = -1


class ElementContainer(Container):
    """Storage for the elements of a tree mesh.

    Attributes:
        cell_ids (ndarray): Owning cell of each element, shape (n,).
        levels (ndarray): Refinement level of each element, shape (n,).
        inverse_jacobian (ndarray): 2/dx per element, shape (n,).
        node_coordinates (ndarray): Shape (ndims, nnodes, ..., nnodes, n).
        neighbor_ids (ndarray): Same-level neighbor element per direction,
            shape (2*ndims, n). NO_ELEMENT where the neighbor is not a local
            same-level leaf.
        u (ndarray): Solution, shape (nvariables, nnodes, ..., nnodes, n).
        surface_flux_values (ndarray): Shape
            (nvariables, nnodes, ..., nnodes, 2*ndims, n) with ndims - 1 node axes.
    """

    _array_fields = ("cell_ids", "levels", "inverse_jacobian", "node_coordinates",
                     "neighbor_ids", "u", "surface_flux_values")

    def __init__(self, ndims, nvariables, nnodes, nelements=0):
        super().__init__(nelements)
        self.ndims = ndims
        self.nvariables = nvariables
        self.nnodes = nnodes

        n = self._count
        self.cell_ids = np.full(n, NO_CELL, dtype=int)
        self.levels = np.full(n, -1, dtype=int)
        self.inverse_jacobian = np.zeros(n)
        self.node_coordinates = np.zeros((ndims,) + (nnodes,) * ndims + (n,))
        self.neighbor_ids = np.full((2 * ndims, n), NO_ELEMENT, dtype=int)
        self.u = np.zeros((nvariables,) + (nnodes,) * ndims + (n,))
        self.surface_flux_values = np.zeros(
            (nvariables,) + (nnodes,) * (ndims - 1) + (2 * ndims, n)
        )
        self._element_ids = {}

    def cell_id(self, element):
        self.check_index(element)
        return int(self.cell_ids[element])

    def element_id(self, cell_id):
        """Element owning `cell_id`, or NO_ELEMENT if the cell is not local."""
        return self._element_ids.get(int(cell_id), NO_ELEMENT)

    def get_node_coords(self, element):
        self.check_index(element)
        return self.node_coordinates[..., element]

    def get_node_vars(self, element):
        self.check_index(element)
        return self.u[..., element]


def init_elements(elements, cell_ids, tree, basis):
    """Fill `elements` from the given leaf cells.

    Args:
        elements: ElementContainer with len(cell_ids) entries.
        cell_ids: Ordered leaf cell IDs.
        tree: The Tree the cells belong to.
        basis: LobattoLegendreBasis providing the reference nodes.
    """
    if len(elements) != len(cell_ids):
        raise ValueError(
            f"Element container holds {len(elements)} entries, got {len(cell_ids)} cells"
        )

    for element, cell in enumerate(cell_ids):
        dx = tree.length_at_cell(cell)
        elements.cell_ids[element] = cell
        elements.levels[element] = tree.levels[cell]
        elements.inverse_jacobian[element] = 2.0 / dx
        elements.node_coordinates[..., element] = element_node_coordinates(
            tree.center(cell), dx, basis.nodes
        )
        elements._element_ids[int(cell)] = element

    for element, cell in enumerate(cell_ids):
        for direction in range(tree.n_directions):
            neighbor = tree.neighbor_ids[direction, cell]
            if neighbor != NO_CELL and tree.is_leaf(neighbor):
                elements.neighbor_ids[direction, element] = elements.element_id(neighbor)
