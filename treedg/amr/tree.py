"""Hierarchical cell tree for Adaptive Mesh Refinement.

This module provides the arena that tracks cell relationships (parent,
children, same-level neighbors) and refinement levels of a Cartesian tree
mesh in one, two or three dimensions. The leaves of the tree are the active
cells; every container the DG solver works on is derived from them.

Key Data Structures:
    parent_ids: Parent of each cell, shape (capacity,). -1 for the root.
    child_ids: Children of each cell, shape (2^ndims, capacity).
    neighbor_ids: Same-level neighbor per direction, shape (2*ndims, capacity).
    levels: Refinement level of each cell, shape (capacity,).
    coordinates: Cell centers, shape (ndims, capacity).
    partitions: Owning partition (rank) of each cell, shape (capacity,).

Key Functions:
    Tree.from_box: Create a uniformly refined tree on a square/cubic domain.
    Tree.refine / Tree.coarsen: Mutate the leaf set.
    Tree.leaf_cell_ids: Ordered sequence of active cells.

Note:
    Cell IDs are 0-indexed and -1 means "no cell". Directions are numbered
    2*axis for the negative face and 2*axis + 1 for the positive face.
    Bit `axis` of a child index is set for the child lying in the positive
    half of its parent along that axis. Only same-level neighbors are stored;
    coarser neighbors are found through the parent.
"""
import copy
import heapq

import numpy as np

NO_CELL = -1


def opposite_direction(direction: int) -> int:
    """Direction pointing back across the same face."""
    return direction ^ 1


def direction_axis(direction: int) -> int:
    return direction // 2


def is_positive_direction(direction: int) -> bool:
    return direction % 2 == 1


class Tree:
    """Arena of tree cells addressed by dense integer IDs.

    Attributes:
        ndims (int): Spatial dimension (1, 2 or 3).
        capacity (int): Maximum number of cells the arena can hold.
        n_children (int): Children per refined cell (2^ndims).
        n_directions (int): Faces per cell (2*ndims).
        length_level_0 (float): Edge length of the root cell.
        periodicity (tuple): Periodic flag per axis.
        n_partitions (int): Number of partitions the leaves are split into.
    """

    def __init__(self, ndims, n_cells_max, center, length, periodicity=True):
        if ndims not in (1, 2, 3):
            raise ValueError(f"Tree dimension must be 1, 2 or 3, got {ndims}")
        if n_cells_max < 1:
            raise ValueError(f"n_cells_max must be positive, got {n_cells_max}")
        if length <= 0:
            raise ValueError(f"Root cell length must be positive, got {length}")

        center = np.atleast_1d(np.asarray(center, dtype=float))
        if center.shape != (ndims,):
            raise ValueError(f"Center must have {ndims} coordinates, got {center.shape[0]}")
        if isinstance(periodicity, (bool, np.bool_)):
            periodicity = (bool(periodicity),) * ndims
        if len(periodicity) != ndims:
            raise ValueError(f"Periodicity must have {ndims} entries, got {len(periodicity)}")

        self.ndims = ndims
        self.capacity = int(n_cells_max)
        self.n_children = 2**ndims
        self.n_directions = 2 * ndims
        self.length_level_0 = float(length)
        self.periodicity = tuple(bool(p) for p in periodicity)
        self.n_partitions = 1

        self.parent_ids = np.full(self.capacity, NO_CELL, dtype=int)
        self.child_ids = np.full((self.n_children, self.capacity), NO_CELL, dtype=int)
        self.neighbor_ids = np.full((self.n_directions, self.capacity), NO_CELL, dtype=int)
        self.levels = np.full(self.capacity, -1, dtype=int)
        self.coordinates = np.zeros((ndims, self.capacity))
        self.partitions = np.zeros(self.capacity, dtype=int)

        self.length = 0        # High-water mark of used IDs
        self.n_cells = 0       # Cells currently alive
        self._free_ids = []    # Min-heap of recycled IDs

        self.root = self._allocate()
        self.levels[self.root] = 0
        self.coordinates[:, self.root] = center
        # A periodic root is its own neighbor across the periodic faces
        for axis, periodic in enumerate(self.periodicity):
            if periodic:
                self.neighbor_ids[2 * axis, self.root] = self.root
                self.neighbor_ids[2 * axis + 1, self.root] = self.root

    @classmethod
    def from_box(cls, coordinates_min, coordinates_max, initial_refinement_level=0,
                 n_cells_max=10_000, periodicity=True):
        """Create a tree covering a square (cubic) box, uniformly refined.

        Args:
            coordinates_min: Lower corner of the domain, one entry per axis.
            coordinates_max: Upper corner of the domain, one entry per axis.
            initial_refinement_level: Level every leaf is refined to.
            n_cells_max: Arena capacity.
            periodicity: Single flag or one flag per axis.

        Returns:
            The refined Tree.

        Raises:
            ValueError: If the box is not a square/cube or is degenerate.
        """
        cmin = np.atleast_1d(np.asarray(coordinates_min, dtype=float))
        cmax = np.atleast_1d(np.asarray(coordinates_max, dtype=float))
        if cmin.shape != cmax.shape:
            raise ValueError("coordinates_min and coordinates_max must have the same length")
        extents = cmax - cmin
        if np.any(extents <= 0):
            raise ValueError(f"Domain extents must be positive, got {extents}")
        if not np.allclose(extents, extents[0]):
            raise ValueError(f"Tree domain must be a square/cube, got extents {extents}")

        tree = cls(len(cmin), n_cells_max, 0.5 * (cmin + cmax), extents[0], periodicity)
        tree.refine_uniformly(initial_refinement_level)
        return tree

    # =========================================================================
    # Arena management
    # =========================================================================

    def _allocate(self):
        if self._free_ids:
            cell = heapq.heappop(self._free_ids)
        elif self.length < self.capacity:
            cell = self.length
            self.length += 1
        else:
            raise ValueError(f"Tree capacity of {self.capacity} cells exceeded")
        self.n_cells += 1
        return cell

    def _release(self, cell):
        self.parent_ids[cell] = NO_CELL
        self.child_ids[:, cell] = NO_CELL
        self.neighbor_ids[:, cell] = NO_CELL
        self.levels[cell] = -1
        self.coordinates[:, cell] = 0.0
        self.partitions[cell] = 0
        heapq.heappush(self._free_ids, cell)
        self.n_cells -= 1

    def n_free(self):
        return len(self._free_ids) + (self.capacity - self.length)

    def _check_cell(self, cell):
        if not 0 <= cell < self.length or self.levels[cell] < 0:
            raise ValueError(f"Invalid cell id {cell}")

    # =========================================================================
    # Queries
    # =========================================================================

    def level(self, cell):
        return int(self.levels[cell])

    def parent(self, cell):
        parent = self.parent_ids[cell]
        return None if parent == NO_CELL else int(parent)

    def children(self, cell):
        if self.is_leaf(cell):
            return []
        return [int(c) for c in self.child_ids[:, cell]]

    def is_leaf(self, cell):
        # Children are created and removed all at once
        return self.child_ids[0, cell] == NO_CELL

    def has_children(self, cell):
        return not self.is_leaf(cell)

    def neighbor(self, cell, direction):
        """Same-level neighbor of `cell` across `direction`, or None."""
        neighbor = self.neighbor_ids[direction, cell]
        return None if neighbor == NO_CELL else int(neighbor)

    def has_neighbor(self, cell, direction):
        return self.neighbor_ids[direction, cell] != NO_CELL

    def has_coarse_neighbor(self, cell, direction):
        """True if the neighbor across `direction` is exactly one level coarser."""
        parent = self.parent_ids[cell]
        return (not self.has_neighbor(cell, direction)
                and parent != NO_CELL
                and self.neighbor_ids[direction, parent] != NO_CELL)

    def coarse_level_difference(self, cell, direction):
        """Number of levels above `cell` at which a neighbor exists.

        Returns 0 for a same-level neighbor, 1 for a coarse neighbor and so
        on; None if no ancestor has a neighbor, i.e. the face lies on the
        domain exterior.
        """
        current = cell
        difference = 0
        while current != NO_CELL:
            if self.neighbor_ids[direction, current] != NO_CELL:
                return difference
            current = self.parent_ids[current]
            difference += 1
        return None

    def face_children(self, cell, direction):
        """Children of `cell` that touch its face in `direction`, in child order."""
        axis = direction_axis(direction)
        side = direction % 2
        return [int(self.child_ids[i, cell]) for i in range(self.n_children)
                if (i >> axis) & 1 == side]

    def length_at_level(self, level):
        return self.length_level_0 / 2**level

    def length_at_cell(self, cell):
        return self.length_at_level(self.levels[cell])

    def center(self, cell):
        return self.coordinates[:, cell].copy()

    def leaf_cell_ids(self):
        """Active cells in depth-first (Morton) order.

        Returns:
            Leaf cell IDs, shape (n_leaves,). The order is deterministic for a
            given tree state and follows the space-filling curve.
        """
        leaves = []
        stack = [self.root]
        while stack:
            cell = stack.pop()
            if self.is_leaf(cell):
                leaves.append(cell)
            else:
                # Push in reverse so child 0 is visited first
                stack.extend(self.child_ids[::-1, cell].tolist())
        return np.array(leaves, dtype=int)

    def local_leaf_cell_ids(self, rank):
        leaves = self.leaf_cell_ids()
        return leaves[self.partitions[leaves] == rank]

    def n_leaves(self):
        return len(self.leaf_cell_ids())

    # =========================================================================
    # Mutation
    # =========================================================================

    def check_refine(self, cell_ids):
        """Validate a refinement request without changing the tree.

        Returns:
            The request as a list of int cell IDs.

        Raises:
            ValueError: If a cell is invalid, not a leaf or listed twice, or
                the arena has too few free cells.
        """
        cell_ids = [int(c) for c in np.atleast_1d(cell_ids)]
        for cell in cell_ids:
            self._check_cell(cell)
            if not self.is_leaf(cell):
                raise ValueError(f"Cell {cell} is not a leaf and cannot be refined")
        if len(set(cell_ids)) != len(cell_ids):
            raise ValueError("Duplicate cell ids in refinement request")
        if len(cell_ids) * self.n_children > self.n_free():
            raise ValueError(
                f"Refining {len(cell_ids)} cells needs {len(cell_ids) * self.n_children} "
                f"free cells, only {self.n_free()} available"
            )
        return cell_ids

    def check_coarsen(self, cell_ids):
        """Validate a coarsening request without changing the tree.

        Returns:
            The request as a list of int cell IDs.

        Raises:
            ValueError: If a cell is invalid, has no children, has a refined
                child or is listed twice.
        """
        cell_ids = [int(c) for c in np.atleast_1d(cell_ids)]
        for cell in cell_ids:
            self._check_cell(cell)
            if self.is_leaf(cell):
                raise ValueError(f"Cell {cell} has no children to coarsen")
            for child in self.child_ids[:, cell]:
                if not self.is_leaf(child):
                    raise ValueError(
                        f"Cell {cell} cannot be coarsened: child {child} has children"
                    )
        if len(set(cell_ids)) != len(cell_ids):
            raise ValueError("Duplicate cell ids in coarsening request")
        return cell_ids

    def refine(self, cell_ids):
        """Split each given leaf cell into 2^ndims children.

        Same-level neighbor links of the new children are wired in both
        directions, including across periodic faces.

        Args:
            cell_ids: Leaf cells to refine, processed in the given order.

        Returns:
            IDs of all created children, shape (len(cell_ids) * 2^ndims,).

        Raises:
            ValueError: If check_refine rejects the request. The tree is
                unchanged in that case.
        """
        cell_ids = self.check_refine(cell_ids)

        created = []
        for cell in cell_ids:
            created.extend(self._refine_cell(cell))
        return np.array(created, dtype=int)

    def _refine_cell(self, cell):
        child_length = self.length_at_cell(cell) / 2

        for i in range(self.n_children):
            child = self._allocate()
            self.parent_ids[child] = cell
            self.levels[child] = self.levels[cell] + 1
            self.partitions[child] = self.partitions[cell]
            for axis in range(self.ndims):
                sign = 1 if (i >> axis) & 1 else -1
                self.coordinates[axis, child] = self.coordinates[axis, cell] + sign * child_length / 2
            self.child_ids[i, cell] = child

        for i in range(self.n_children):
            child = self.child_ids[i, cell]
            for direction in range(self.n_directions):
                axis = direction_axis(direction)
                mirrored = i ^ (1 << axis)
                if (i >> axis) & 1 != direction % 2:
                    # Sibling on the other side of an inner face
                    self.neighbor_ids[direction, child] = self.child_ids[mirrored, cell]
                    continue

                parent_neighbor = self.neighbor_ids[direction, cell]
                if parent_neighbor == NO_CELL or self.is_leaf(parent_neighbor):
                    continue
                neighbor = self.child_ids[mirrored, parent_neighbor]
                self.neighbor_ids[direction, child] = neighbor
                self.neighbor_ids[opposite_direction(direction), neighbor] = child

        return self.child_ids[:, cell].tolist()

    def refine_uniformly(self, level):
        """Refine every leaf until all leaves are at least at `level`."""
        while True:
            leaves = self.leaf_cell_ids()
            coarse = leaves[self.levels[leaves] < level]
            if len(coarse) == 0:
                return
            self.refine(coarse)

    def coarsen(self, cell_ids):
        """Remove the children of each given cell, making it a leaf again.

        Args:
            cell_ids: Parent cells whose children are all leaves.

        Raises:
            ValueError: If check_coarsen rejects the request. The tree is
                unchanged in that case.
        """
        cell_ids = self.check_coarsen(cell_ids)

        for cell in cell_ids:
            self._coarsen_cell(cell)

    def _coarsen_cell(self, cell):
        children = self.child_ids[:, cell].tolist()
        for child in children:
            for direction in range(self.n_directions):
                neighbor = self.neighbor_ids[direction, child]
                if neighbor != NO_CELL and neighbor not in children:
                    self.neighbor_ids[opposite_direction(direction), neighbor] = NO_CELL

        self.partitions[cell] = self.partitions[children[0]]
        for child in children:
            self._release(child)
        self.child_ids[:, cell] = NO_CELL

    def partition(self, n_partitions):
        """Assign leaves to partitions in contiguous chunks of the leaf order.

        Args:
            n_partitions: Number of partitions.

        Returns:
            Number of leaves per partition, shape (n_partitions,).

        Raises:
            ValueError: If there are fewer leaves than partitions.
        """
        leaves = self.leaf_cell_ids()
        if n_partitions < 1 or n_partitions > len(leaves):
            raise ValueError(
                f"Cannot split {len(leaves)} leaves into {n_partitions} partitions"
            )

        counts = np.full(n_partitions, len(leaves) // n_partitions, dtype=int)
        counts[:len(leaves) % n_partitions] += 1
        offsets = np.concatenate(([0], np.cumsum(counts)))
        for rank in range(n_partitions):
            self.partitions[leaves[offsets[rank]:offsets[rank + 1]]] = rank

        self.n_partitions = n_partitions
        return counts

    def replicate(self):
        """Independent copy of the tree, e.g. for one partition of a run.

        Every partition holds its own replica and applies the same global
        refine/coarsen requests to it, so all replicas stay identical.
        """
        return copy.deepcopy(self)
