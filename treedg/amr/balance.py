"""2:1 balance checks for the cell tree.

The coupling model of the DG containers can only represent faces whose two
sides differ by at most one refinement level. These routines check that
constraint on a Tree and restore it by refining the coarser side.

Key Functions:
    check_balance: Verify the tree satisfies the 2:1 balance constraint.
    balance_mark: Find the coarse leaves that violate it.
    enforce_balance: Iteratively refine until the tree is balanced.

Note:
    Only faces are considered. Level jumps across corners and edges do not
    produce couplings and are not constrained.
"""
import numpy as np

from .tree import NO_CELL


def check_balance(tree):
    """Check if every leaf face has a level difference of at most one.

    Args:
        tree: The Tree to check.

    Returns:
        True if the tree is balanced, False otherwise.
    """
    for cell in tree.leaf_cell_ids():
        for direction in range(tree.n_directions):
            difference = tree.coarse_level_difference(cell, direction)
            if difference is not None and difference > 1:
                return False
    return True


def balance_mark(tree):
    """Find coarse leaves that must be refined to restore 2:1 balance.

    Each fine leaf looks up the ancestor at which its first neighbor in a
    direction exists. If that is more than one level up, the neighbor found
    there is a leaf that is too coarse.

    Args:
        tree: The Tree to inspect.

    Returns:
        Sorted unique IDs of leaves to refine, shape (n_marked,).
    """
    marked = set()
    for cell in tree.leaf_cell_ids():
        for direction in range(tree.n_directions):
            difference = tree.coarse_level_difference(cell, direction)
            if difference is None or difference <= 1:
                continue

            ancestor = cell
            for _ in range(difference):
                ancestor = tree.parent_ids[ancestor]
            coarse = tree.neighbor_ids[direction, ancestor]
            if coarse != NO_CELL and tree.is_leaf(coarse):
                marked.add(int(coarse))

    return np.array(sorted(marked), dtype=int)


def enforce_balance(tree, max_level=None, verbose=False):
    """Iteratively refine coarse leaves until the tree is balanced.

    Args:
        tree: The Tree to balance (mutated in place).
        max_level: Leaves at this level are never refined. None for no limit.
        verbose: If True, print the progress of each sweep.

    Returns:
        Total number of cells refined.

    Note:
        Refinement can cascade, so several sweeps may be needed.
    """
    n_refined = 0
    sweep = 0
    while True:
        marks = balance_mark(tree)
        if max_level is not None:
            marks = marks[tree.levels[marks] < max_level]
        if len(marks) == 0:
            break

        if verbose:
            print(f"Balance sweep {sweep}: refining {len(marks)} cells")
        tree.refine(marks)
        n_refined += len(marks)
        sweep += 1

    return n_refined
