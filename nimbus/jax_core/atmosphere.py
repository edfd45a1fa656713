"""
Ambient Atmosphere Profile.

Precomputes the ambient temperature and pressure of every vertical layer of
the grid from ground conditions and a constant lapse rate. The profile is
built once at reset and read by the force and thermodynamics stages.

Physical Background
-------------------
Under a constant lapse rate Γ the temperature falls linearly with height and
hydrostatic balance gives the barometric formula:

    T(h) = T0 - Γ h
    p(h) = p0 (1 - Γ h / T0)^(g / (Γ R_d))

The Exner function (p / p0)^(R_d / c_p) converts between temperature and
potential temperature, and the saturation mixing ratio uses the Magnus-type
approximation of Clausius-Clapeyron:

    q_s(T, p) = (380.16 / p) exp(17.67 Tc / (Tc + 243.5)),   Tc in °C

References
----------
- Bolton, D. (1980). The computation of equivalent potential temperature.
  Mon. Wea. Rev.
- Harris, M.J. et al. (2003). Simulation of cloud dynamics on graphics
  hardware. Graphics Hardware.
"""

from __future__ import annotations
import logging
from typing import NamedTuple, Tuple
import jax.numpy as jnp

from .fields import VERTICAL_AXIS, broadcast_layers

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

G = 9.81              # Gravitational acceleration (m/s²)
R_DRY = 287.0         # Gas constant for dry air (J/kg/K)
CP = 1003.5           # Specific heat at constant pressure (J/kg/K)
LATENT_HEAT = 2501000.0  # Latent heat of vaporization (J/kg)
KELVIN = 273.15

MIN_LAPSE_RATE = 1e-8     # Below this the column is treated as isothermal
MIN_PRESSURE = 1.0        # Pa, floor for the saturation formula
MIN_TEMPERATURE = 1.0     # K, floor for ambient temperature
MIN_CELSIUS = -200.0      # Keeps the Magnus denominator positive


# =============================================================================
# Data Structures
# =============================================================================

class AtmosphereProfile(NamedTuple):
    """Ambient state per vertical layer."""

    heights: jnp.ndarray        # (layers,) - height above ground (m)
    temperature: jnp.ndarray    # (layers,) - ambient temperature (K)
    pressure: jnp.ndarray       # (layers,) - ambient pressure (Pa)
    exner: jnp.ndarray          # (layers,) - Exner function of the pressure
    ground_temperature: float
    ground_pressure: float
    lapse_rate: float
    domain_height: float

    @property
    def layer_count(self) -> int:
        return self.heights.shape[0]


# =============================================================================
# Profile Generation
# =============================================================================

def generate_profile(
    ground_temperature: float,
    ground_pressure: float,
    lapse_rate: float,
    domain_height: float,
    layer_count: int,
) -> AtmosphereProfile:
    """
    Build the ambient temperature/pressure lookup.

    Parameters
    ----------
    ground_temperature : float
        Temperature at h = 0 (K)
    ground_pressure : float
        Pressure at h = 0 (Pa)
    lapse_rate : float
        Temperature decrease with height (K/m)
    domain_height : float
        Physical height of the domain (m)
    layer_count : int
        Number of layers, normally the vertical grid resolution

    Returns
    -------
    AtmosphereProfile
        Layer ``i`` sits at ``i / (layer_count - 1) * domain_height``.
    """
    if layer_count > 1:
        heights = jnp.linspace(0.0, domain_height, layer_count)
    else:
        heights = jnp.zeros(1)

    temperature = ground_temperature - lapse_rate * heights
    temperature = jnp.maximum(temperature, MIN_TEMPERATURE)

    if abs(lapse_rate) < MIN_LAPSE_RATE or ground_temperature <= 0.0:
        # Isothermal limit of the barometric formula
        logger.debug("Lapse rate ~0, using constant ambient pressure")
        pressure = jnp.full_like(heights, ground_pressure)
    else:
        exponent = G / (lapse_rate * R_DRY)
        base = jnp.maximum(1.0 - heights * lapse_rate / ground_temperature, 0.0)
        pressure = ground_pressure * base ** exponent

    if ground_pressure <= 0.0:
        logger.warning("Ground pressure is not positive, using Exner = 1")

    return AtmosphereProfile(
        heights=heights,
        temperature=temperature,
        pressure=pressure,
        exner=exner(pressure, ground_pressure),
        ground_temperature=ground_temperature,
        ground_pressure=ground_pressure,
        lapse_rate=lapse_rate,
        domain_height=domain_height,
    )


# =============================================================================
# Derived Quantities
# =============================================================================

def exner(pressure: jnp.ndarray, ground_pressure: float) -> jnp.ndarray:
    """Exner function (p / p0)^(R_d / c_p); 1 when p0 is not positive."""
    if ground_pressure <= 0.0:
        return jnp.ones_like(pressure)
    ratio = jnp.maximum(pressure, 0.0) / ground_pressure
    return ratio ** (R_DRY / CP)


def saturation_mixing_ratio(
    temperature: jnp.ndarray,
    pressure: jnp.ndarray,
) -> jnp.ndarray:
    """
    Saturation vapor mixing ratio (kg/kg).

    Parameters
    ----------
    temperature : array
        Temperature (K)
    pressure : array
        Pressure (Pa)
    """
    celsius = jnp.maximum(temperature - KELVIN, MIN_CELSIUS)
    p = jnp.maximum(pressure, MIN_PRESSURE)
    return (380.16 / p) * jnp.exp(17.67 * celsius / (celsius + 243.5))


def ambient_potential_temperature(profile: AtmosphereProfile) -> jnp.ndarray:
    """Potential temperature of each ambient layer (K)."""
    return profile.temperature / jnp.maximum(profile.exner, 1e-6)


def layer_lookup(values: jnp.ndarray, resolution: Tuple[int, ...]) -> jnp.ndarray:
    """Broadcast a per-layer profile array over a scalar field."""
    if values.shape[0] != resolution[VERTICAL_AXIS]:
        raise ValueError(
            f"Profile has {values.shape[0]} layers, grid has "
            f"{resolution[VERTICAL_AXIS]} vertical cells"
        )
    return broadcast_layers(values, len(resolution))


def equilibrium_thermo(
    profile: AtmosphereProfile,
    resolution: Tuple[int, ...],
    initial_humidity: float = 0.6,
) -> jnp.ndarray:
    """
    Thermo field in equilibrium with the ambient profile.

    Vapor is a fixed fraction of the saturation mixing ratio of each layer,
    there is no cloud water and no potential-temperature perturbation.

    Returns
    -------
    thermo : array (3, *resolution)
        Channels (q_v, q_c, theta').
    """
    q_sat = saturation_mixing_ratio(profile.temperature, profile.pressure)
    q_v = jnp.broadcast_to(
        layer_lookup(initial_humidity * q_sat, resolution), resolution
    )
    zeros = jnp.zeros(resolution, dtype=q_v.dtype)
    return jnp.stack([q_v, zeros, zeros])
