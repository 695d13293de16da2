"""Rebuild all DG containers from the current tree leaf set.

Whenever cells are refined or coarsened, the element, interface, boundary,
mortar and (when distributed) distributed-interface containers are
recreated from scratch. There is no incremental path: every container is
counted, allocated and populated again in leaf order, so the result only
depends on the tree state.

Key Classes:
    SolverCache: Context object holding the containers of one partition.

Key Functions:
    create_cache: Build a SolverCache for a tree.
    reinitialize_containers: Refresh a SolverCache after the tree changed.
    verify_face_coverage: Check every element face is coupled exactly once.

Example:
    >>> tree = Tree.from_box([-1.0], [1.0], initial_refinement_level=2)
    >>> equations = LinearScalarAdvectionEquation(1.0)
    >>> basis = LobattoLegendreBasis(3)
    >>> cache = create_cache(tree, equations, basis)
    >>> tree.refine(cache.elements.cell_ids[0])
    >>> cache = reinitialize_containers(tree, equations, basis, cache)
"""
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..parallel.transport import is_parallel
from .boundaries import BoundaryContainer, count_required_boundaries, init_boundaries
from .distributed import (
    DEFAULT_EXCHANGE_TIMEOUT,
    DistributedCache,
    DistributedInterfaceContainer,
    count_required_distributed_interfaces,
    init_distributed_cache,
    init_distributed_interfaces,
)
from .elements import ElementContainer, init_elements
from .errors import TopologyInvariantViolation
from .interfaces import InterfaceContainer, count_required_interfaces, init_interfaces
from .mortars import MortarContainer, count_required_mortars, init_mortars


@dataclass
class SolverCache:
    """Containers of one partition, passed explicitly to every consumer."""

    elements: ElementContainer
    interfaces: InterfaceContainer
    boundaries: BoundaryContainer
    mortars: MortarContainer
    mpi_interfaces: Optional[DistributedInterfaceContainer] = None
    mpi_cache: Optional[DistributedCache] = None


def _empty_cache(ndims, nvariables, nnodes):
    return SolverCache(
        elements=ElementContainer(ndims, nvariables, nnodes),
        interfaces=InterfaceContainer(ndims, nvariables, nnodes),
        boundaries=BoundaryContainer(ndims, nvariables, nnodes),
        mortars=MortarContainer(ndims, nvariables, nnodes),
    )


def create_cache(tree, equations, basis, transport=None, verbose=False,
                 timeout=DEFAULT_EXCHANGE_TIMEOUT):
    """Create and fill a SolverCache for `tree`.

    Args:
        tree: The Tree.
        equations: AbstractEquations providing nvariables.
        basis: LobattoLegendreBasis providing nodes and nnodes.
        transport: Transport of this partition, None for a serial run.
        verbose: If True, print a summary of the container sizes.
        timeout: Seconds to wait for neighbor partitions.

    Returns:
        The filled SolverCache.
    """
    cache = _empty_cache(tree.ndims, equations.nvariables, basis.nnodes)
    return reinitialize_containers(tree, equations, basis, cache, transport=transport,
                                   verbose=verbose, timeout=timeout)


def reinitialize_containers(tree, equations, basis, cache, transport=None, verbose=False,
                            timeout=DEFAULT_EXCHANGE_TIMEOUT):
    """Recreate all containers of `cache` from the current leaf set of `tree`.

    Steps:
        1. Query the (local) leaf cells; their order becomes element order.
        2. Recreate the elements with node geometry.
        3-4. Count, allocate and fill conforming interfaces.
        5. Count, allocate and fill boundaries.
        6. Count, allocate and fill mortars.
        7. When distributed, fill distributed interfaces and rebuild the
           exchange cache, checking counts with every neighbor partition.
        8. Verify every element face is coupled exactly once.

    Args:
        tree: The Tree after refinement/coarsening.
        equations: AbstractEquations providing nvariables.
        basis: LobattoLegendreBasis providing nodes and nnodes.
        cache: SolverCache to refresh. Its containers are replaced only when
            the rebuild succeeds.
        transport: Transport of this partition, None for a serial run.
        verbose: If True, print a summary of the container sizes.
        timeout: Seconds to wait for neighbor partitions.

    Returns:
        The refreshed `cache`.

    Raises:
        TopologyInvariantViolation: If a face couples cells more than one
            level apart or a face is not coupled exactly once.
        DistributedConsistencyError: If partitions disagree on their shared
            interfaces or a non-conforming face crosses a partition boundary.
        ValueError: If tree and equations have different dimensions.
    """
    if equations.ndims != tree.ndims:
        raise ValueError(
            f"Equations are {equations.ndims}D but the tree is {tree.ndims}D"
        )

    ndims = tree.ndims
    nvariables = equations.nvariables
    nnodes = basis.nnodes

    parallel = is_parallel(transport)
    rank = transport.rank if parallel else None
    if parallel:
        leaf_cell_ids = tree.local_leaf_cell_ids(rank)
    else:
        leaf_cell_ids = tree.leaf_cell_ids()

    elements = ElementContainer(ndims, nvariables, nnodes, len(leaf_cell_ids))
    init_elements(elements, leaf_cell_ids, tree, basis)

    interfaces = InterfaceContainer(ndims, nvariables, nnodes,
                                    count_required_interfaces(tree, leaf_cell_ids, rank))
    init_interfaces(interfaces, elements, tree, rank)

    boundaries = BoundaryContainer(ndims, nvariables, nnodes,
                                   count_required_boundaries(tree, leaf_cell_ids, rank))
    init_boundaries(boundaries, elements, tree, basis, rank)

    mortars = MortarContainer(ndims, nvariables, nnodes,
                              count_required_mortars(tree, leaf_cell_ids, rank))
    init_mortars(mortars, elements, tree, rank)

    mpi_interfaces = None
    mpi_cache = None
    if parallel:
        mpi_interfaces = DistributedInterfaceContainer(
            ndims, nvariables, nnodes,
            count_required_distributed_interfaces(tree, leaf_cell_ids, rank)
        )
        init_distributed_interfaces(mpi_interfaces, elements, tree, rank)

    verify_face_coverage(tree, elements, interfaces, boundaries, mortars, mpi_interfaces)

    if parallel:
        mpi_cache = DistributedCache(transport, timeout=timeout)
        init_distributed_cache(mpi_cache, mpi_interfaces, nvariables, nnodes, ndims)

    cache.elements = elements
    cache.interfaces = interfaces
    cache.boundaries = boundaries
    cache.mortars = mortars
    cache.mpi_interfaces = mpi_interfaces
    cache.mpi_cache = mpi_cache

    if verbose:
        prefix = f"[partition {rank}] " if parallel else ""
        summary = (f"{prefix}Reinitialized containers: {len(elements)} elements, "
                   f"{len(interfaces)} interfaces, {len(boundaries)} boundaries, "
                   f"{len(mortars)} mortars")
        if parallel:
            summary += f", {len(mpi_interfaces)} distributed interfaces"
        print(summary)

    return cache


def verify_face_coverage(tree, elements, interfaces, boundaries, mortars, mpi_interfaces=None):
    """Check that every face of every element has exactly one coupling.

    Raises:
        TopologyInvariantViolation: Naming the first face with zero or
            several couplings.
    """
    coverage = np.zeros((tree.n_directions, len(elements)), dtype=int)

    for interface in interfaces.eachindex():
        for side in range(2):
            coverage[interfaces.faces[side, interface], interfaces.neighbor_ids[side, interface]] += 1

    for boundary in boundaries.eachindex():
        coverage[boundaries.faces[boundary], boundaries.neighbor_ids[boundary]] += 1

    for mortar in mortars.eachindex():
        direction = mortars.large_direction(mortar)
        coverage[direction, mortars.large_element(mortar)] += 1
        for small in mortars.small_elements(mortar):
            coverage[direction ^ 1, small] += 1

    if mpi_interfaces is not None:
        for interface in mpi_interfaces.eachindex():
            coverage[mpi_interfaces.faces[interface], mpi_interfaces.local_neighbor_ids[interface]] += 1

    bad = np.argwhere(coverage != 1)
    if len(bad) > 0:
        direction, element = bad[0]
        raise TopologyInvariantViolation(
            f"Face {direction} of element {element} (cell {elements.cell_ids[element]}, "
            f"level {elements.levels[element]}) has {coverage[direction, element]} couplings, "
            f"expected exactly one"
        )
