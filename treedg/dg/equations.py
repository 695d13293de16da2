"""Equation capability interface for the DG containers.

The containers only need to know how many variables an equation carries so
that element and surface storage can be sized. Flux and wave-speed
operations are part of the interface for the solver kernels that consume
the containers.

Key Classes:
    AbstractEquations: Capability interface every equation implements.
    LinearScalarAdvectionEquation: ∂u/∂t + a · ∇u = 0 in 1D, 2D or 3D.
    InviscidBurgersEquation1D: ∂u/∂t + ∂(u²/2)/∂x = 0.

Key Functions:
    make_equations: Build an equation object from a configuration name.
"""
import numpy as np


class AbstractEquations:
    """Capability interface for hyperbolic conservation laws.

    Attributes:
        ndims (int): Spatial dimension.
    """

    def __init__(self, ndims: int):
        self.ndims = ndims

    @property
    def nvariables(self) -> int:
        return len(self.varnames())

    def varnames(self):
        raise NotImplementedError

    def flux(self, u, orientation: int):
        """Physical flux of state `u` along axis `orientation`."""
        raise NotImplementedError

    def max_abs_speed_naive(self, u_ll, u_rr, orientation: int) -> float:
        """Upper bound of the wave speed between two states."""
        raise NotImplementedError


class LinearScalarAdvectionEquation(AbstractEquations):
    """Linear scalar advection with a constant velocity.

    Args:
        advection_velocity: Velocity per axis. Its length sets ndims.
    """

    def __init__(self, advection_velocity):
        velocity = np.atleast_1d(np.asarray(advection_velocity, dtype=float))
        super().__init__(len(velocity))
        self.advection_velocity = velocity

    def varnames(self):
        return ("scalar",)

    def flux(self, u, orientation):
        return self.advection_velocity[orientation] * np.asarray(u)

    def max_abs_speed_naive(self, u_ll, u_rr, orientation):
        return abs(self.advection_velocity[orientation])


class InviscidBurgersEquation1D(AbstractEquations):
    def __init__(self):
        super().__init__(1)

    def varnames(self):
        return ("scalar",)

    def flux(self, u, orientation=0):
        return 0.5 * np.asarray(u)**2

    def max_abs_speed_naive(self, u_ll, u_rr, orientation=0):
        return float(max(np.max(np.abs(u_ll)), np.max(np.abs(u_rr))))


EQUATIONS = {
    "linear_advection": LinearScalarAdvectionEquation,
    "inviscid_burgers_1d": InviscidBurgersEquation1D,
}


def make_equations(name: str, **parameters):
    """Create an equation object by name.

    Args:
        name: Key in EQUATIONS.
        **parameters: Constructor arguments of the equation.

    Raises:
        ValueError: If the name is unknown.
    """
    if name not in EQUATIONS:
        raise ValueError(f"Unknown equations '{name}', available: {sorted(EQUATIONS)}")
    return EQUATIONS[name](**parameters)
