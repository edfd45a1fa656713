"""
Pressure Projection.

Makes the velocity field approximately divergence-free (Helmholtz-Hodge
decomposition):

1. Divergence of the forced velocity, zero initial pressure guess
2. Fixed number of Jacobi sweeps on ∇²p = ∇·u
3. Velocity correction u ← u - ∇p

The Jacobi sweeps ping-pong between two pressure buffers; a sweep never reads
values written during the same sweep. The solve is deliberately approximate:
quality is bounded by the sweep count, which is a configuration value.
"""

from __future__ import annotations
from typing import NamedTuple
import jax.numpy as jnp
from jax import lax

from .boundaries import enforce_bounds
from .fields import FieldBuffer, VELOCITY, central_difference, interior_mask, shift


class ProjectionResult(NamedTuple):
    """Output of one projection."""

    velocity: jnp.ndarray     # (ndim, *resolution) - corrected velocity
    pressure: jnp.ndarray     # (*resolution) - final Jacobi iterate
    divergence: jnp.ndarray   # (*resolution) - divergence before correction


def compute_divergence(velocity: jnp.ndarray) -> jnp.ndarray:
    """
    Central-difference divergence on interior cells.

    The outer shell is set to zero; its values are owned by the boundary
    rule, not by the solve.
    """
    ndim = velocity.shape[0]
    div = sum(central_difference(velocity[a], a) for a in range(ndim))
    return jnp.where(interior_mask(velocity.shape[1:]), div, 0.0)


def jacobi_sweep(pressure: jnp.ndarray, divergence: jnp.ndarray) -> jnp.ndarray:
    """
    One Jacobi relaxation sweep.

    p_new = (sum of axis neighbours - div) / (2 * ndim), with zero-gradient
    pressure at the grid edges.
    """
    ndim = pressure.ndim
    neighbours = sum(
        shift(pressure, 1, a) + shift(pressure, -1, a) for a in range(ndim)
    )
    return (neighbours - divergence) / (2.0 * ndim)


def solve_pressure(divergence: jnp.ndarray, iterations: int = 10) -> jnp.ndarray:
    """
    Approximate the pressure with a fixed number of Jacobi sweeps.

    Parameters
    ----------
    divergence : array (*resolution)
        Right-hand side
    iterations : int
        Number of sweeps (0 returns the zero guess)

    Returns
    -------
    pressure : array (*resolution)
    """
    seed = jnp.zeros_like(divergence)
    buffers = FieldBuffer(read=seed, write=jnp.zeros_like(divergence))

    def sweep(buffers, _):
        return buffers.commit(jacobi_sweep(buffers.read, divergence)), None

    buffers, _ = lax.scan(sweep, buffers, None, length=iterations)
    return buffers.read


def subtract_pressure_gradient(
    velocity: jnp.ndarray,
    pressure: jnp.ndarray,
) -> jnp.ndarray:
    """Velocity correction u - ∇p using the divergence's central difference."""
    gradient = jnp.stack(
        [central_difference(pressure, a) for a in range(velocity.shape[0])]
    )
    return velocity - gradient


def project(velocity: jnp.ndarray, iterations: int = 10) -> ProjectionResult:
    """
    Project velocity onto its (approximately) divergence-free part.

    Boundary enforcement runs after the divergence pass and again after the
    correction so the walls stay consistent on both sides of the solve.
    """
    divergence = compute_divergence(velocity)
    velocity = enforce_bounds(velocity, VELOCITY)

    pressure = solve_pressure(divergence, iterations)

    velocity = subtract_pressure_gradient(velocity, pressure)
    velocity = enforce_bounds(velocity, VELOCITY)

    return ProjectionResult(
        velocity=velocity,
        pressure=pressure,
        divergence=divergence,
    )
