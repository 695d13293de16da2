"""Classification of leaf-cell faces into coupling kinds.

Every face of an active cell is coupled exactly one way: to a same-level
neighbor (interface), to the exterior (boundary), to finer or coarser
neighbors (mortar) or to a same-level neighbor owned by another partition
(distributed interface). The count and populate passes of every container
call `classify_face`, so counting and filling always agree.

Key Functions:
    classify_face: Decide the coupling kind of one face.
    global_interface_id: Partition-independent identifier of a face.
"""
from enum import Enum

from ..amr.tree import NO_CELL, is_positive_direction, opposite_direction
from .errors import DistributedConsistencyError, TopologyInvariantViolation


class FaceKind(Enum):
    INTERFACE = "interface"                  # Same-level neighbor, seen from the negative side
    INTERFACE_MIRROR = "interface_mirror"    # Same interface, seen from the positive side
    DISTRIBUTED_INTERFACE = "distributed_interface"
    BOUNDARY = "boundary"
    MORTAR_LARGE = "mortar_large"            # Neighbor is refined once more
    MORTAR_SMALL = "mortar_small"            # Neighbor is one level coarser


def classify_face(tree, cell_id, direction, rank=None):
    """Classify the face of leaf `cell_id` in `direction`.

    Args:
        tree: The Tree.
        cell_id: A leaf cell.
        direction: Face index in [0, 2*ndims).
        rank: Partition the caller owns. None when not distributed.

    Returns:
        The FaceKind of the face.

    Raises:
        TopologyInvariantViolation: If the neighbor across the face differs
            by more than one level.
        DistributedConsistencyError: If a non-conforming face crosses a
            partition boundary.
    """
    level = tree.levels[cell_id]
    neighbor = tree.neighbor_ids[direction, cell_id]

    if neighbor != NO_CELL:
        if tree.is_leaf(neighbor):
            if rank is not None and tree.partitions[neighbor] != rank:
                return FaceKind.DISTRIBUTED_INTERFACE
            if is_positive_direction(direction):
                return FaceKind.INTERFACE
            return FaceKind.INTERFACE_MIRROR

        for child in tree.face_children(neighbor, opposite_direction(direction)):
            if not tree.is_leaf(child):
                raise TopologyInvariantViolation(
                    f"Cell {cell_id} (level {level}) has refined neighbor {child} "
                    f"(level {level + 1}) with children across direction {direction}: "
                    f"level difference exceeds one"
                )
            if rank is not None and tree.partitions[child] != rank:
                raise DistributedConsistencyError(
                    f"Cell {cell_id} on partition {rank} has finer neighbor {child} on "
                    f"partition {tree.partitions[child]} across direction {direction}: "
                    f"non-conforming faces cannot cross partitions"
                )
        return FaceKind.MORTAR_LARGE

    difference = tree.coarse_level_difference(cell_id, direction)
    if difference is None:
        return FaceKind.BOUNDARY
    if difference > 1:
        raise TopologyInvariantViolation(
            f"Cell {cell_id} (level {level}) has a neighbor at level {level - difference} "
            f"across direction {direction}: level difference exceeds one"
        )

    if rank is not None:
        coarse = tree.neighbor_ids[direction, tree.parent_ids[cell_id]]
        if tree.partitions[coarse] != rank:
            raise DistributedConsistencyError(
                f"Cell {cell_id} on partition {rank} has coarser neighbor {coarse} on "
                f"partition {tree.partitions[coarse]} across direction {direction}: "
                f"non-conforming faces cannot cross partitions"
            )
    return FaceKind.MORTAR_SMALL


def global_interface_id(tree, cell_id, direction):
    """Identifier of a conforming face that both partitions compute alike.

    The face is named by the cell on its negative side and that cell's
    positive direction.
    """
    if is_positive_direction(direction):
        left, left_direction = cell_id, direction
    else:
        left, left_direction = tree.neighbor_ids[direction, cell_id], opposite_direction(direction)
    return int(tree.n_directions * left + left_direction)
