"""
Moisture and Heat Sources.

Sources add value to a field around a point with a compact radial falloff
that is exactly zero at the source radius. Atmospheric ground sources are
injected as a batch, each pulsing with its own phase:

    I(t) = 0.7 + 0.3 sin(ω t + φ)

Random source layouts are drawn from a seeded ``jax.random`` key so a
simulation can be reproduced exactly.
"""

from __future__ import annotations
import logging
from typing import NamedTuple, Optional, Sequence, Tuple
import jax
import jax.numpy as jnp

from .fields import VERTICAL_AXIS, cell_coordinates

logger = logging.getLogger(__name__)


GAUSSIAN = "gaussian"
SMOOTH = "smooth"

GROUND_LAYER = 1.0


# =============================================================================
# Data Structures
# =============================================================================

class SourceSpec(NamedTuple):
    """One point source of moisture and heat."""

    position: Tuple[float, ...]   # Grid index coordinates
    radius: float                 # Cells
    moisture: float = 0.0         # q_v added per second at the centre
    heat: float = 0.0             # theta' added per second at the centre (K/s)
    phase: float = 0.0            # Pulse phase offset (rad)


class SourceBatch(NamedTuple):
    """Stacked sources for batched injection."""

    positions: jnp.ndarray   # (n, ndim)
    radii: jnp.ndarray       # (n,)
    moisture: jnp.ndarray    # (n,)
    heat: jnp.ndarray        # (n,)
    phases: jnp.ndarray      # (n,)

    @property
    def count(self) -> int:
        return self.radii.shape[0]


def empty_sources(ndim: int) -> SourceBatch:
    """Batch with no sources."""
    return SourceBatch(
        positions=jnp.zeros((0, ndim)),
        radii=jnp.zeros(0),
        moisture=jnp.zeros(0),
        heat=jnp.zeros(0),
        phases=jnp.zeros(0),
    )


def stack_sources(sources: Sequence[SourceSpec], ndim: int) -> SourceBatch:
    """Stack individual specs into a batch."""
    if len(sources) == 0:
        return empty_sources(ndim)
    for spec in sources:
        if len(spec.position) != ndim:
            raise ValueError(
                f"Source position {tuple(spec.position)} does not match a {ndim}D grid"
            )
    return SourceBatch(
        positions=jnp.array([list(s.position) for s in sources], dtype=float),
        radii=jnp.array([s.radius for s in sources], dtype=float),
        moisture=jnp.array([s.moisture for s in sources], dtype=float),
        heat=jnp.array([s.heat for s in sources], dtype=float),
        phases=jnp.array([s.phase for s in sources], dtype=float),
    )


# =============================================================================
# Injection
# =============================================================================

def falloff_weights(
    resolution: Tuple[int, ...],
    position: jnp.ndarray,
    radius: float,
    falloff: str = GAUSSIAN,
) -> jnp.ndarray:
    """
    Radial weight of every cell, 1 at ``position`` and 0 at ``radius``.

    "gaussian" is a Gaussian shifted and rescaled so it reaches zero at the
    radius; "smooth" is the compact polynomial (1 - s²)².

    Returns
    -------
    array (*resolution)
    """
    coords = cell_coordinates(resolution)
    position = jnp.asarray(position, dtype=coords.dtype)
    offset = coords - position.reshape((-1,) + (1,) * len(resolution))
    distance = jnp.sqrt(jnp.sum(offset ** 2, axis=0))

    safe_radius = jnp.maximum(radius, 1e-6)
    s2 = (distance / safe_radius) ** 2
    inside = (distance < radius) & (radius > 0.0)

    if falloff == GAUSSIAN:
        tail = jnp.exp(-4.0)
        weight = (jnp.exp(-4.0 * s2) - tail) / (1.0 - tail)
    elif falloff == SMOOTH:
        weight = (1.0 - s2) ** 2
    else:
        raise ValueError(f"Unknown falloff: {falloff!r}")

    return jnp.where(inside, weight, 0.0)


def inject(
    field: jnp.ndarray,
    position: Sequence[float],
    radius: float,
    value: Sequence[float],
    falloff: str = GAUSSIAN,
) -> jnp.ndarray:
    """
    Add ``value`` around ``position`` with a radial falloff.

    Parameters
    ----------
    field : array (channels, *resolution)
        Target field
    position : sequence of float
        Centre in grid index coordinates
    radius : float
        Radius in cells; nothing is added at or beyond it
    value : sequence of float
        Per-channel amount added at the centre
    falloff : str
        "gaussian" or "smooth"

    Returns
    -------
    array
        ``field + value * weight``.
    """
    resolution = field.shape[1:]
    weights = falloff_weights(resolution, jnp.asarray(position), radius, falloff)
    value = jnp.asarray(value, dtype=field.dtype).reshape((-1,) + (1,) * len(resolution))
    return field + value * weights


def source_intensity(
    time: float,
    phase: jnp.ndarray,
    frequency: float = 0.5,
) -> jnp.ndarray:
    """Pulsing multiplier 0.7 + 0.3 sin(time * frequency + phase)."""
    return 0.7 + 0.3 * jnp.sin(time * frequency + phase)


def inject_sources(
    thermo: jnp.ndarray,
    sources: SourceBatch,
    time: float,
    dt: float,
    frequency: float = 0.5,
    duration: Optional[float] = None,
    falloff: str = GAUSSIAN,
) -> jnp.ndarray:
    """
    Inject a batch of pulsing moisture/heat sources into the thermo field.

    Each source adds (moisture * I, 0, heat * I) * dt at its centre. Once
    ``time`` reaches ``duration`` the sources stop injecting.
    """
    if sources.count == 0:
        return thermo

    resolution = thermo.shape[1:]
    intensity = source_intensity(time, sources.phases, frequency)
    if duration is not None:
        intensity = jnp.where(time < duration, intensity, 0.0)

    weights = jax.vmap(
        lambda position, radius: falloff_weights(resolution, position, radius, falloff)
    )(sources.positions, sources.radii)

    scale = intensity * dt
    q_v = jnp.tensordot(sources.moisture * scale, weights, axes=1)
    theta_p = jnp.tensordot(sources.heat * scale, weights, axes=1)

    return thermo.at[0].add(q_v).at[2].add(theta_p)


# =============================================================================
# Random Layouts
# =============================================================================

def _lerp(bounds: Tuple[float, float], t: jnp.ndarray) -> jnp.ndarray:
    low, high = bounds
    return low + (high - low) * t


def generate_sources(
    key: jax.Array,
    resolution: Tuple[int, ...],
    count: int = 12,
    radius_range: Tuple[float, float] = (3.0, 6.0),
    moisture_range: Tuple[float, float] = (0.0008, 0.002),
    heat_range: Tuple[float, float] = (0.8, 2.0),
    margin: float = 10.0,
) -> SourceBatch:
    """
    Scatter ground sources over the horizontal extent of the grid.

    A squared uniform draw biases sources toward the strong end of every
    range; stronger sources are larger, wetter and hotter together.

    Parameters
    ----------
    key : PRNGKey
        Random key; the same key gives the same layout
    resolution : tuple of int
        Grid resolution
    count : int
        Number of sources
    radius_range, moisture_range, heat_range : (float, float)
        Ranges interpolated by source intensity
    margin : float
        Distance kept from the side walls (cells)

    Returns
    -------
    SourceBatch
    """
    ndim = len(resolution)
    if count <= 0:
        return empty_sources(ndim)

    key_intensity, key_position, key_phase = jax.random.split(key, 3)

    intensity = jax.random.uniform(key_intensity, (count,)) ** 2

    columns = []
    position_keys = jax.random.split(key_position, ndim)
    for axis, n in enumerate(resolution):
        if axis == VERTICAL_AXIS:
            columns.append(jnp.full((count,), GROUND_LAYER))
            continue
        edge = min(margin, (n - 1) / 2.0)
        columns.append(
            jax.random.uniform(position_keys[axis], (count,), minval=edge, maxval=n - edge)
        )

    phases = jax.random.uniform(key_phase, (count,), minval=0.0, maxval=2.0 * jnp.pi)

    logger.debug(f"Generated {count} sources on a {resolution} grid")

    return SourceBatch(
        positions=jnp.stack(columns, axis=1),
        radii=_lerp(radius_range, intensity),
        moisture=_lerp(moisture_range, intensity),
        heat=_lerp(heat_range, intensity),
        phases=phases,
    )
