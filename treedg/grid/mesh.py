"""Node geometry for tree-mesh DG elements.

This module maps reference LGL nodes on [-1, 1]^ndims to the physical node
coordinates of a Cartesian tree cell and of its faces.

Key Functions:
    element_node_coordinates: Volume nodes of one cell.
    face_node_coordinates: Surface nodes of one cell face.

Note:
    Cells are axis-aligned cubes, so the mapping is x = center + (dx/2) * xi
    along every axis and the inverse Jacobian is the constant 2/dx.
"""
import numpy as np


def element_node_coordinates(center, dx: float, nodes):
    """Physical coordinates of the volume nodes of a cell.

    Args:
        center: Cell center, shape (ndims,).
        dx: Cell edge length.
        nodes: Reference nodes on [-1, 1], shape (nnodes,).

    Returns:
        Node coordinates, shape (ndims, nnodes, ..., nnodes) with ndims
        node axes. Entry [a, i, j, ...] is coordinate a of node (i, j, ...).
    """
    center = np.atleast_1d(center)
    axes = [center[axis] + 0.5 * dx * nodes for axis in range(len(center))]
    return np.stack(np.meshgrid(*axes, indexing='ij'))


def face_node_coordinates(center, dx: float, nodes, direction: int):
    """Physical coordinates of the surface nodes on one face of a cell.

    Args:
        center: Cell center, shape (ndims,).
        dx: Cell edge length.
        nodes: Reference nodes on [-1, 1], shape (nnodes,).
        direction: Face index, 2*axis (negative) or 2*axis + 1 (positive).

    Returns:
        Node coordinates, shape (ndims, nnodes, ..., nnodes) with ndims - 1
        node axes. In 1D the result has shape (1,).
    """
    center = np.atleast_1d(center)
    ndims = len(center)
    normal_axis = direction // 2
    sign = 1.0 if direction % 2 == 1 else -1.0

    tangential = [center[axis] + 0.5 * dx * nodes for axis in range(ndims) if axis != normal_axis]
    shape = (len(nodes),) * (ndims - 1)
    grids = np.meshgrid(*tangential, indexing='ij') if tangential else []

    coords = np.empty((ndims,) + shape)
    t = 0
    for axis in range(ndims):
        if axis == normal_axis:
            coords[axis] = center[axis] + sign * 0.5 * dx
        else:
            coords[axis] = grids[t]
            t += 1
    return coords
