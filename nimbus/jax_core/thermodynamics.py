"""
Moist Thermodynamics Update.

A single local pass over the thermo channels (q_v, q_c, theta'):

- saturation adjustment: vapor above the saturation mixing ratio condenses
  into cloud water and releases latent heat into theta'
- optional evaporation of cloud water into subsaturated air
- precipitation: cloud water above a threshold falls out of the domain

No neighbour reads, so every cell is independent. Precipitated water is not
accumulated anywhere; it simply leaves the system.
"""

from __future__ import annotations
import jax.numpy as jnp

from .atmosphere import (
    CP,
    LATENT_HEAT,
    AtmosphereProfile,
    layer_lookup,
    saturation_mixing_ratio,
)
from .fields import broadcast_layers, normalized_altitude


def reference_temperature(
    parcel_temperature: jnp.ndarray,
    ambient_temperature: jnp.ndarray,
    resolution,
    boundary_layer_fraction: float = 0.3,
) -> jnp.ndarray:
    """
    Temperature used for the saturation test.

    Inside the boundary layer (normalized altitude below
    ``boundary_layer_fraction``) the parcel's own temperature decides how much
    vapor it holds. Above it the parcel is assumed to have equilibrated with
    the free atmosphere and the ambient temperature is used.
    """
    altitude = broadcast_layers(normalized_altitude(resolution), len(resolution))
    return jnp.where(
        altitude < boundary_layer_fraction,
        parcel_temperature,
        ambient_temperature,
    )


def update_thermo(
    thermo: jnp.ndarray,
    profile: AtmosphereProfile,
    dt: float,
    boundary_layer_fraction: float = 0.3,
    precipitation_threshold: float = 0.002,
    evaporation_rate: float = 0.0,
) -> jnp.ndarray:
    """
    Condensation, evaporation and precipitation for one time step.

    Parameters
    ----------
    thermo : array (3, *resolution)
        Advected thermo field (q_v, q_c, theta')
    profile : AtmosphereProfile
        Ambient profile
    dt : float
        Time step (s)
    boundary_layer_fraction : float
        Normalized altitude separating the two saturation regimes
    precipitation_threshold : float
        Cloud water above this mixing ratio is removed (kg/kg)
    evaporation_rate : float
        Relaxation rate of cloud water back to vapor in subsaturated air (1/s)

    Returns
    -------
    array (3, *resolution)
        Updated thermo field with q_v, q_c >= 0.
    """
    resolution = thermo.shape[1:]
    q_v = jnp.maximum(thermo[0], 0.0)
    q_c = jnp.maximum(thermo[1], 0.0)
    theta_p = thermo[2]

    t_amb = layer_lookup(profile.temperature, resolution)
    p_amb = layer_lookup(profile.pressure, resolution)
    pi = jnp.maximum(layer_lookup(profile.exner, resolution), 1e-6)

    t_parcel = t_amb + theta_p * pi
    t_ref = reference_temperature(t_parcel, t_amb, resolution, boundary_layer_fraction)
    q_sat = saturation_mixing_ratio(t_ref, p_amb)

    # Saturation adjustment
    condensed = jnp.maximum(q_v - q_sat, 0.0)

    if evaporation_rate > 0.0:
        deficit = jnp.maximum(q_sat - q_v, 0.0)
        fraction = jnp.minimum(evaporation_rate * dt, 1.0)
        evaporated = fraction * jnp.minimum(deficit, q_c)
    else:
        evaporated = jnp.zeros_like(q_c)

    phase_change = condensed - evaporated
    q_v = q_v - phase_change
    q_c = q_c + phase_change
    theta_p = theta_p + (LATENT_HEAT / CP) * phase_change / pi

    # Fallout
    q_c = jnp.minimum(q_c, precipitation_threshold)

    return jnp.stack([
        jnp.maximum(q_v, 0.0),
        jnp.maximum(q_c, 0.0),
        theta_p,
    ])


def relative_humidity(thermo: jnp.ndarray, profile: AtmosphereProfile) -> jnp.ndarray:
    """Vapor as a fraction of the ambient saturation mixing ratio."""
    resolution = thermo.shape[1:]
    q_sat = saturation_mixing_ratio(
        layer_lookup(profile.temperature, resolution),
        layer_lookup(profile.pressure, resolution),
    )
    return thermo[0] / q_sat
