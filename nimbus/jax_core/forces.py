"""
Body Forces on the Velocity Field.

Three additive accelerations, all evaluated on the same pre-force velocity:

1. Buoyancy - parcels warmer than the ambient layer accelerate upward
2. Vorticity confinement - re-injects small-scale rotation lost to the
   numerical dissipation of advection and projection (Fedkiw et al., 2001)
3. Wind - height-dependent horizontal wind following a power-law shear
   profile (3D only)

References
----------
- Fedkiw, R., Stam, J., Jensen, H.W. (2001). Visual simulation of smoke.
  SIGGRAPH.
- Steinhoff, J., Underhill, D. (1994). Modification of the Euler equations
  for "vorticity confinement". Physics of Fluids.
"""

from __future__ import annotations
from typing import Sequence, Tuple
import jax.numpy as jnp
import numpy as np

from .atmosphere import G, AtmosphereProfile, layer_lookup
from .fields import VERTICAL_AXIS, broadcast_layers, central_difference, normalized_altitude


KNOTS_TO_MS = 0.514444


# =============================================================================
# Buoyancy
# =============================================================================

def buoyancy_acceleration(
    thermo: jnp.ndarray,
    profile: AtmosphereProfile,
    strength: float = 1.0,
) -> jnp.ndarray:
    """
    Vertical acceleration from the temperature excess over the ambient layer.

    The parcel temperature excess is theta' * Π(p_amb); the acceleration is
    strength * g * ΔT / T_amb.

    Returns
    -------
    array (*resolution)
        Upward acceleration (cells/s²).
    """
    resolution = thermo.shape[1:]
    t_amb = layer_lookup(profile.temperature, resolution)
    pi = layer_lookup(profile.exner, resolution)
    delta_t = thermo[2] * pi
    return strength * G * delta_t / jnp.maximum(t_amb, 1.0)


# =============================================================================
# Vorticity Confinement
# =============================================================================

def curl(velocity: jnp.ndarray) -> jnp.ndarray:
    """
    Discrete curl.

    Returns
    -------
    array
        (*resolution) scalar vorticity in 2D, (3, *resolution) in 3D.
    """
    d = central_difference
    if velocity.shape[0] == 2:
        u, v = velocity
        return d(v, 0) - d(u, 1)
    u, v, w = velocity
    return jnp.stack([
        d(w, 1) - d(v, 2),
        d(u, 2) - d(w, 0),
        d(v, 0) - d(u, 1),
    ])


def vorticity_confinement(velocity: jnp.ndarray, strength: float) -> jnp.ndarray:
    """
    Confinement acceleration strength * (N x ω) with N = ∇|ω| / |∇|ω||.

    In 2D the scalar vorticity points out of the plane, so the force is N
    rotated by 90 degrees: (N_y ω, -N_x ω).
    """
    ndim = velocity.shape[0]
    omega = curl(velocity)
    magnitude = jnp.abs(omega) if ndim == 2 else jnp.sqrt(jnp.sum(omega ** 2, axis=0))

    eta = jnp.stack([central_difference(magnitude, a) for a in range(ndim)])
    norm = jnp.sqrt(jnp.sum(eta ** 2, axis=0)) + 1e-10
    n = eta / norm

    if ndim == 2:
        force = jnp.stack([n[1] * omega, -n[0] * omega])
    else:
        force = jnp.cross(n, omega, axis=0)

    return strength * force


# =============================================================================
# Wind
# =============================================================================

def wind_velocity_from_heading(
    speed_knots: float,
    direction_degrees: float,
    resolution: Sequence[int],
    volume_size: Sequence[float],
) -> Tuple[float, ...]:
    """
    Convert a wind speed and heading into grid cells per second.

    Direction follows the compass: 0 = +z (north), 90 = +x (east),
    180 = -z, 270 = -x. The vertical component is always zero.
    """
    speed = speed_knots * KNOTS_TO_MS
    radians = np.deg2rad(direction_degrees)
    cells_per_metre = [n / float(size) for n, size in zip(resolution, volume_size)]

    if len(resolution) == 2:
        return (float(np.sin(radians) * speed * cells_per_metre[0]), 0.0)
    return (
        float(np.sin(radians) * speed * cells_per_metre[0]),
        0.0,
        float(np.cos(radians) * speed * cells_per_metre[2]),
    )


def wind_forcing(
    resolution: Tuple[int, ...],
    wind_velocity: Sequence[float],
    shear_exponent: float,
) -> jnp.ndarray:
    """
    Power-law wind profile wind * (h / H)^shear_exponent.

    Only 3D grids carry wind; a 2D grid gets zeros.

    Returns
    -------
    array (ndim, *resolution)
    """
    ndim = len(resolution)
    if ndim != 3:
        return jnp.zeros((ndim,) + tuple(resolution))

    profile = broadcast_layers(normalized_altitude(resolution) ** shear_exponent, ndim)
    wind = jnp.asarray(wind_velocity, dtype=profile.dtype)
    wind = wind.at[VERTICAL_AXIS].set(0.0)
    return wind.reshape((ndim,) + (1,) * ndim) * jnp.broadcast_to(profile, resolution)


# =============================================================================
# Combined Forcing
# =============================================================================

def apply_forces(
    velocity: jnp.ndarray,
    thermo: jnp.ndarray,
    profile: AtmosphereProfile,
    dt: float,
    vorticity_strength: float = 0.0,
    buoyancy_strength: float = 1.0,
    wind_velocity: Sequence[float] = (0.0, 0.0, 0.0),
    wind_shear_exponent: float = 0.0,
) -> jnp.ndarray:
    """
    Add buoyancy, vorticity confinement and wind to the velocity.

    Parameters
    ----------
    velocity : array (ndim, *resolution)
        Advected velocity (cells/s)
    thermo : array (3, *resolution)
        Thermo field; channel 2 is theta'
    profile : AtmosphereProfile
        Ambient profile, one layer per vertical cell
    dt : float
        Time step (s)
    vorticity_strength : float
        Confinement coefficient
    buoyancy_strength : float
        Buoyancy coefficient
    wind_velocity : sequence of float
        Base wind (cells/s), used in 3D only
    wind_shear_exponent : float
        Power-law shear exponent

    Returns
    -------
    array (ndim, *resolution)
        Forced velocity.
    """
    ndim = velocity.shape[0]
    resolution = velocity.shape[1:]

    acceleration = jnp.zeros_like(velocity)
    acceleration = acceleration.at[VERTICAL_AXIS].add(
        buoyancy_acceleration(thermo, profile, buoyancy_strength)
    )
    if vorticity_strength != 0.0:
        acceleration = acceleration + vorticity_confinement(velocity, vorticity_strength)
    if ndim == 3:
        acceleration = acceleration + wind_forcing(
            resolution, wind_velocity, wind_shear_exponent
        )

    return velocity + dt * acceleration
