"""YAML configuration for tree-mesh DG setups.

A configuration file describes the mesh, the polynomial basis, the
equations and the adaptation limits. Parameters are looked up with dot
notation so every value has a default.

Example config:
    mesh:
      coordinates_min: [-1.0]
      coordinates_max: [1.0]
      initial_refinement_level: 2
      n_cells_max: 10000
      periodicity: true
    solver:
      polydeg: 3
    equations:
      name: linear_advection
      parameters:
        advection_velocity: [1.0]
    adaptation:
      max_level: 4
      balance: true
      alpha_smooth: true

Key Functions:
    load_config: Read a YAML file.
    get_parameter: Dot-notation lookup with default.
    build_from_config: Create tree, equations and basis.
    semidiscretization_from_config: Create a TreeDGSemidiscretization.
"""
import os

import yaml

from .amr.tree import Tree
from .dg.basis import LobattoLegendreBasis
from .dg.equations import make_equations
from .solvers.semidiscretization import TreeDGSemidiscretization


def load_config(config_path):
    """Load configuration from YAML file"""
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    if not isinstance(config, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return config


def get_parameter(config, parameter_path, default=None):
    """
    Get a parameter from the config using dot notation.
    Example: get_parameter(config, "solver.polydeg", 3)
    """
    parts = parameter_path.split('.')
    current = config

    try:
        for part in parts:
            current = current[part]
        return current
    except (KeyError, TypeError):
        return default


def build_from_config(config):
    """Create the tree, equations and basis described by `config`.

    Args:
        config: Mapping as returned by load_config.

    Returns:
        dict with keys 'tree', 'equations', 'basis', 'max_level', 'balance',
        'alpha_smooth', 'n_partitions' and 'verbose'.

    Raises:
        ValueError: If the mesh section is missing its coordinates or the
            equations do not match the mesh dimension.
    """
    coordinates_min = get_parameter(config, "mesh.coordinates_min")
    coordinates_max = get_parameter(config, "mesh.coordinates_max")
    if coordinates_min is None or coordinates_max is None:
        raise ValueError("mesh.coordinates_min and mesh.coordinates_max are required")

    tree = Tree.from_box(
        coordinates_min,
        coordinates_max,
        initial_refinement_level=get_parameter(config, "mesh.initial_refinement_level", 0),
        n_cells_max=get_parameter(config, "mesh.n_cells_max", 10_000),
        periodicity=get_parameter(config, "mesh.periodicity", True),
    )

    basis = LobattoLegendreBasis(get_parameter(config, "solver.polydeg", 3))

    name = get_parameter(config, "equations.name", "linear_advection")
    parameters = get_parameter(config, "equations.parameters", None)
    if parameters is None:
        parameters = {"advection_velocity": [1.0] * tree.ndims} if name == "linear_advection" else {}
    equations = make_equations(name, **parameters)
    if equations.ndims != tree.ndims:
        raise ValueError(f"Equations '{name}' are {equations.ndims}D but the mesh is {tree.ndims}D")

    n_partitions = get_parameter(config, "parallel.n_partitions", 1)
    if n_partitions > 1:
        tree.partition(n_partitions)

    return {
        'tree': tree,
        'equations': equations,
        'basis': basis,
        'max_level': get_parameter(config, "adaptation.max_level", None),
        'balance': get_parameter(config, "adaptation.balance", False),
        'alpha_smooth': get_parameter(config, "adaptation.alpha_smooth", True),
        'n_partitions': n_partitions,
        'verbose': get_parameter(config, "output.verbose", False),
    }


def semidiscretization_from_config(config, transport=None):
    """Create a TreeDGSemidiscretization from a configuration mapping."""
    setup = build_from_config(config)
    return TreeDGSemidiscretization(
        setup['tree'],
        setup['equations'],
        setup['basis'],
        transport=transport,
        max_level=setup['max_level'],
        balance=setup['balance'],
        alpha_smooth=setup['alpha_smooth'],
        verbose=setup['verbose'],
    )
