"""
Tree-mesh DG semidiscretization driver with adaptive mesh refinement.

This module ties the cell tree, the basis, the equations and the DG
containers together. It is the collaborator an adaptation controller talks
to: the controller decides which cells to refine or coarsen, the driver
applies the decision to the tree and rebuilds every container.

The driver maintains:
    - The hierarchical cell tree (this partition's replica)
    - The SolverCache with elements, interfaces, boundaries and mortars
    - Mortar L2 operators for non-conforming faces
    - Distributed interfaces and exchange buffers when a transport is given

In a distributed run every partition owns a replica of the same tree
(see Tree.replicate) and calls adapt() with the same global refine and
coarsen lists, so the replicas stay identical. Drivers must not share one
Tree object.

Example:
    >>> tree = Tree.from_box([-1.0], [1.0], initial_refinement_level=2)
    >>> semi = TreeDGSemidiscretization(
    ...     tree,
    ...     LinearScalarAdvectionEquation(1.0),
    ...     LobattoLegendreBasis(3),
    ...     max_level=4,
    ... )
    >>> semi.adapt(refine=[semi.cache.elements.cell_ids[0]])
    >>> len(semi.cache.mortars)
    2
"""

import numpy as np

from ..amr.balance import check_balance, enforce_balance
from ..containers.distributed import DEFAULT_EXCHANGE_TIMEOUT, exchange_interface_data
from ..containers.reinitialize import create_cache, reinitialize_containers
from ..dg.mortar import MortarL2
from ..indicators.smoothing import smooth_indicator
from ..parallel.transport import is_parallel


class TreeDGSemidiscretization:
    """
    Container management for a DGSEM discretization on a tree mesh.

    Attributes:
        tree (Tree): Cell hierarchy. Mutated by adapt().
        equations (AbstractEquations): Equation capability object.
        basis (LobattoLegendreBasis): Nodal basis.
        mortar (MortarL2): Mortar projection operators for the basis.
        cache (SolverCache): Current containers of this partition.
        transport (Transport): Messaging endpoint, None for serial runs.
        max_level (int): Maximum refinement level, None for no limit.
        balance (bool): Whether to enforce 2:1 balance after adaptation.
        alpha_smooth (bool): Whether smooth_indicator() smooths at all.
        verbose (bool): Whether to print diagnostic information.
    """

    def __init__(self, tree, equations, basis, transport=None, max_level=None,
                 balance=False, alpha_smooth=True, verbose=False,
                 exchange_timeout=DEFAULT_EXCHANGE_TIMEOUT):
        """
        Initialize the driver and build the first set of containers.

        Args:
            tree: The Tree, already refined to its initial level.
            equations: AbstractEquations of matching dimension.
            basis: LobattoLegendreBasis.
            transport: Transport of this partition. The tree must already be
                partitioned into transport.size partitions.
            max_level: Cells at this level are not refined further.
            balance: If True, enforce 2:1 balance after every adaptation.
            alpha_smooth: If False, smooth_indicator() is a no-op.
            verbose: If True, print container summaries after rebuilds.
            exchange_timeout: Seconds to wait for neighbor partitions.

        Raises:
            ValueError: If the tree is not partitioned for the transport.
        """
        self.tree = tree
        self.equations = equations
        self.basis = basis
        self.transport = transport
        self.max_level = max_level
        self.balance = balance
        self.alpha_smooth = alpha_smooth
        self.verbose = verbose
        self.exchange_timeout = exchange_timeout

        if is_parallel(transport) and tree.n_partitions != transport.size:
            raise ValueError(
                f"Tree has {tree.n_partitions} partitions, transport spans {transport.size}"
            )

        self.mortar = MortarL2(basis)
        self.cache = create_cache(tree, equations, basis, transport=transport,
                                  verbose=verbose, timeout=exchange_timeout)

    @property
    def nelements(self):
        return len(self.cache.elements)

    @property
    def rank(self):
        return self.transport.rank if is_parallel(self.transport) else None

    # =========================================================================
    # Mesh Adaptation Methods
    # =========================================================================

    def balance_mesh(self, balance=None):
        """
        Enforce 2:1 balance on the tree if requested.

        Args:
            balance: Whether to enforce balance. If None, uses instance setting.

        Returns:
            True if balancing refined any cells, False otherwise.
        """
        use_balance = self.balance if balance is None else balance
        if not use_balance or check_balance(self.tree):
            return False

        if self.verbose:
            print("Enforcing mesh balance...")
            print(f"Pre-balance leaf cells: {self.tree.n_leaves()}")
        n_refined = enforce_balance(self.tree, self.max_level, verbose=self.verbose)
        if self.verbose:
            print(f"Post-balance leaf cells: {self.tree.n_leaves()}")
        return n_refined > 0

    def adapt(self, refine=(), coarsen=(), balance=None):
        """
        Apply a refine/coarsen decision to the tree and rebuild the containers.

        Both requests are validated before the tree is touched. Refinement
        is applied before coarsening. Cells already at max_level are skipped.

        Args:
            refine: Leaf cell IDs to refine.
            coarsen: Parent cell IDs whose children are to be removed.
            balance: Whether to enforce 2:1 balance afterwards. If None,
                uses instance setting.

        Returns:
            The refreshed SolverCache.

        Raises:
            ValueError: If a cell cannot be refined or coarsened, or a cell
                is refined whose parent is coarsened. Tree and containers
                are unchanged in that case.
            TopologyInvariantViolation: If the resulting tree has a face
                with a level jump larger than one.
        """
        refine = self.tree.check_refine(refine)
        coarsen = self.tree.check_coarsen(coarsen)

        coarsened = set(coarsen)
        for cell in refine:
            if self.tree.parent_ids[cell] in coarsened:
                raise ValueError(
                    f"Cell {cell} is refined while its parent {self.tree.parent_ids[cell]} is coarsened"
                )

        if self.max_level is not None:
            allowed = [c for c in refine if self.tree.levels[c] < self.max_level]
            if self.verbose and len(allowed) < len(refine):
                print(f"Skipping refinement of {len(refine) - len(allowed)} cells at max level {self.max_level}")
            refine = allowed

        if refine:
            self.tree.refine(refine)
        if coarsen:
            self.tree.coarsen(coarsen)

        self.balance_mesh(balance)
        return self.reinitialize()

    def reinitialize(self):
        """Rebuild every container from the current tree."""
        return reinitialize_containers(self.tree, self.equations, self.basis, self.cache,
                                       transport=self.transport, verbose=self.verbose,
                                       timeout=self.exchange_timeout)

    # =========================================================================
    # Consumers
    # =========================================================================

    def smooth_indicator(self, alpha):
        """Smooth a per-element blending factor over the element couplings."""
        return smooth_indicator(alpha, self.cache, alpha_smooth=self.alpha_smooth)

    def exchange(self):
        """Exchange distributed interface values with neighbor partitions."""
        if self.cache.mpi_cache is None:
            return
        exchange_interface_data(self.cache.mpi_cache, self.cache.mpi_interfaces)

    def verify_state(self):
        """
        Verify the containers match the tree.

        Raises:
            ValueError: If the element count or order differs from the
                leaf cells this partition owns.
        """
        if is_parallel(self.transport):
            leaves = self.tree.local_leaf_cell_ids(self.transport.rank)
        else:
            leaves = self.tree.leaf_cell_ids()

        if len(leaves) != self.nelements:
            raise ValueError(
                f"Element count {self.nelements} does not match {len(leaves)} leaf cells"
            )
        if not np.array_equal(leaves, self.cache.elements.cell_ids):
            raise ValueError("Element order does not match leaf cell order")
