"""
Stable-Fluids Cloud Solver.

Ties the stages together into one frame:

1. Inject ground sources into the thermo field
2. Self-advect velocity, then enforce free-slip walls
3. Add buoyancy, vorticity confinement and wind
4. Project velocity (divergence, Jacobi sweeps, gradient correction)
5. Advect thermo along the projected velocity
6. Condensation, evaporation and precipitation
7. Enforce zero-gradient walls on thermo

Each stage consumes the committed output of the previous one. The state is a
plain NamedTuple owned by the caller; the solver keeps no module-level state.

Units
-----
Velocity is in grid cells per second and positions are continuous index
coordinates. Physical scales enter only through the atmosphere profile
(domain height) and the wind conversion.
"""

from __future__ import annotations
from functools import partial
import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple, Union
import jax
import jax.numpy as jnp

from .advection import advect
from .atmosphere import AtmosphereProfile, equilibrium_thermo, generate_profile
from .boundaries import enforce_bounds
from .fields import FieldBuffer, SCALAR, VELOCITY, VERTICAL_AXIS, make_buffer
from .forces import apply_forces
from .pressure import compute_divergence, project
from .sources import (
    SourceBatch,
    SourceSpec,
    empty_sources,
    generate_sources,
    inject_sources,
    stack_sources,
)
from .thermodynamics import relative_humidity, update_thermo

logger = logging.getLogger(__name__)


CLOUD_THRESHOLD = 1e-5   # q_c (kg/kg) above which a cell counts as cloud


# =============================================================================
# Data Structures
# =============================================================================

class SolverParams(NamedTuple):
    """
    Physical and numerical settings of the solver.

    All fields are plain Python values so the tuple is hashable and can be
    passed to the jitted frame as a static argument.
    """

    # Ambient atmosphere
    ground_temperature: float = 295.0     # K
    ground_pressure: float = 101325.0     # Pa
    lapse_rate: float = 0.0065            # K/m
    volume_height: float = 8000.0         # Physical domain height (m)
    initial_humidity: float = 0.6         # Fraction of saturation at reset

    # Fluid
    vorticity: float = 0.3                # Confinement strength
    buoyancy: float = 1.0                 # Buoyancy strength
    diffusion: float = 0.0                # Accepted, not used
    pressure_iterations: int = 10         # Jacobi sweeps per projection

    # Thermodynamics
    boundary_layer_fraction: float = 0.3
    precipitation_threshold: float = 0.002    # kg/kg
    evaporation_rate: float = 0.0             # 1/s

    # Wind (cells/s, 3D only)
    wind_velocity: Tuple[float, ...] = (0.0, 0.0, 0.0)
    wind_shear_exponent: float = 3.0

    # Sources
    source_frequency: float = 0.5         # Pulse angular frequency (rad/s)
    source_duration: float = 60.0         # Sources stop injecting after this (s)


class SimulationState(NamedTuple):
    """Everything that evolves from one frame to the next."""

    velocity: FieldBuffer         # (ndim, *resolution)
    thermo: FieldBuffer           # (3, *resolution) - q_v, q_c, theta'
    profile: AtmosphereProfile
    sources: SourceBatch
    time: float = 0.0
    step_count: int = 0

    @property
    def resolution(self) -> Tuple[int, ...]:
        return tuple(self.velocity.shape[1:])


class StepDiagnostics(NamedTuple):
    """Scalar summary of one frame."""

    divergence_before: float      # max |div u| before projection
    divergence_after: float       # max |div u| after projection (interior)
    max_speed: float              # cells/s
    mean_vertical_velocity: float
    total_vapor: float            # sum of q_v over all cells
    total_cloud: float            # sum of q_c over all cells
    max_theta_perturbation: float # K
    cloud_fraction: float         # share of cells with q_c > CLOUD_THRESHOLD
    max_relative_humidity: float


# =============================================================================
# Initialization
# =============================================================================

def reset(
    params: SolverParams,
    resolution: Sequence[int],
    key: Optional[jax.Array] = None,
    sources: Optional[Union[SourceBatch, Sequence[SourceSpec]]] = None,
    source_count: int = 12,
) -> SimulationState:
    """
    Create a fresh simulation.

    Velocity starts at rest and thermo starts in equilibrium with the
    ambient profile.

    Parameters
    ----------
    params : SolverParams
        Solver settings
    resolution : sequence of int
        Grid resolution (nx, ny) or (nx, ny, nz); axis 1 is vertical
    key : PRNGKey, optional
        If given (and ``sources`` is None), ``source_count`` random ground
        sources are generated from it
    sources : SourceBatch or sequence of SourceSpec, optional
        Explicit sources; takes precedence over ``key``
    source_count : int
        Number of random sources

    Returns
    -------
    SimulationState
    """
    resolution = tuple(int(n) for n in resolution)
    ndim = len(resolution)
    if ndim not in (2, 3):
        raise ValueError(f"Resolution must be 2D or 3D, got {resolution}")
    if min(resolution) < 3:
        raise ValueError(f"Every axis needs at least 3 cells, got {resolution}")

    profile = generate_profile(
        params.ground_temperature,
        params.ground_pressure,
        params.lapse_rate,
        params.volume_height,
        resolution[VERTICAL_AXIS],
    )

    if isinstance(sources, SourceBatch):
        if sources.positions.shape[1] != ndim:
            raise ValueError(
                f"Source batch is {sources.positions.shape[1]}D, grid is {ndim}D"
            )
        batch = sources
    elif sources is not None:
        batch = stack_sources(sources, ndim)
    elif key is not None:
        batch = generate_sources(key, resolution, count=source_count)
    else:
        batch = empty_sources(ndim)

    velocity = jnp.zeros((ndim,) + resolution)
    thermo = equilibrium_thermo(profile, resolution, params.initial_humidity)

    logger.info(
        f"Reset {ndim}D grid {resolution} with {batch.count} sources, "
        f"T0={params.ground_temperature:.1f} K, p0={params.ground_pressure:.0f} Pa"
    )

    return SimulationState(
        velocity=make_buffer(velocity),
        thermo=make_buffer(thermo),
        profile=profile,
        sources=batch,
        time=0.0,
        step_count=0,
    )


# =============================================================================
# Frame
# =============================================================================

@partial(jax.jit, static_argnames=("params",))
def _advance_fields(
    velocity: jnp.ndarray,
    thermo: jnp.ndarray,
    profile: AtmosphereProfile,
    sources: SourceBatch,
    time: float,
    dt: float,
    params: SolverParams,
):
    """One frame on raw arrays. Returns (velocity, thermo, divergence, projected divergence)."""
    thermo = inject_sources(
        thermo,
        sources,
        time,
        dt,
        frequency=params.source_frequency,
        duration=params.source_duration,
    )

    velocity = advect(velocity, velocity, dt)
    velocity = enforce_bounds(velocity, VELOCITY)

    velocity = apply_forces(
        velocity,
        thermo,
        profile,
        dt,
        vorticity_strength=params.vorticity,
        buoyancy_strength=params.buoyancy,
        wind_velocity=params.wind_velocity[:velocity.shape[0]],
        wind_shear_exponent=params.wind_shear_exponent,
    )

    projection = project(velocity, params.pressure_iterations)
    velocity = projection.velocity

    thermo = advect(velocity, thermo, dt)
    thermo = update_thermo(
        thermo,
        profile,
        dt,
        boundary_layer_fraction=params.boundary_layer_fraction,
        precipitation_threshold=params.precipitation_threshold,
        evaporation_rate=params.evaporation_rate,
    )
    thermo = enforce_bounds(thermo, SCALAR)

    return velocity, thermo, projection.divergence, compute_divergence(velocity)




def advance(
    state: SimulationState,
    params: SolverParams,
    dt: float,
) -> Tuple[SimulationState, StepDiagnostics]:
    """
    Advance the simulation by one frame and report diagnostics.

    Parameters
    ----------
    state : SimulationState
        Current state
    params : SolverParams
        Solver settings
    dt : float
        Time step (s)

    Returns
    -------
    state : SimulationState
        State after the frame
    diagnostics : StepDiagnostics
    """
    velocity, thermo, div_before, div_after = _advance_fields(
        state.velocity.read,
        state.thermo.read,
        state.profile,
        state.sources,
        state.time,
        dt,
        params,
    )

    new_state = state._replace(
        velocity=state.velocity.commit(velocity),
        thermo=state.thermo.commit(thermo),
        time=state.time + dt,
        step_count=state.step_count + 1,
    )

    speed = jnp.sqrt(jnp.sum(velocity ** 2, axis=0))
    diagnostics = StepDiagnostics(
        divergence_before=float(jnp.max(jnp.abs(div_before))),
        divergence_after=float(jnp.max(jnp.abs(div_after))),
        max_speed=float(jnp.max(speed)),
        mean_vertical_velocity=float(jnp.mean(velocity[VERTICAL_AXIS])),
        total_vapor=float(jnp.sum(thermo[0])),
        total_cloud=float(jnp.sum(thermo[1])),
        max_theta_perturbation=float(jnp.max(thermo[2])),
        cloud_fraction=float(jnp.mean(thermo[1] > CLOUD_THRESHOLD)),
        max_relative_humidity=float(jnp.max(relative_humidity(thermo, state.profile))),
    )

    return new_state, diagnostics


def step(
    state: SimulationState,
    params: SolverParams,
    dt: float,
) -> SimulationState:
    """Advance the simulation by one frame."""
    new_state, _ = advance(state, params, dt)
    return new_state


# =============================================================================
# Driver
# =============================================================================

def run_simulation(
    params: SolverParams,
    resolution: Sequence[int],
    n_steps: int,
    dt: float = 1.0 / 60.0,
    key: Optional[jax.Array] = None,
    sources: Optional[Union[SourceBatch, Sequence[SourceSpec]]] = None,
    source_count: int = 12,
    log_every: int = 100,
) -> Tuple[SimulationState, List[StepDiagnostics]]:
    """
    Run a simulation from reset.

    Parameters
    ----------
    params : SolverParams
        Solver settings
    resolution : sequence of int
        Grid resolution
    n_steps : int
        Number of frames
    dt : float
        Time step (s)
    key : PRNGKey, optional
        Seed for random sources
    sources : SourceBatch or sequence of SourceSpec, optional
        Explicit sources
    source_count : int
        Number of random sources when ``key`` is used
    log_every : int
        Progress is logged every this many steps (0 disables)

    Returns
    -------
    final_state : SimulationState
        State after the last frame
    history : list of StepDiagnostics
        One entry per frame
    """
    state = reset(params, resolution, key=key, sources=sources, source_count=source_count)

    logger.info(
        f"Running {n_steps} steps of dt={dt:.4f} s "
        f"({n_steps * dt:.1f} s simulated, {params.pressure_iterations} Jacobi sweeps)"
    )

    history = []
    for i in range(n_steps):
        state, diagnostics = advance(state, params, dt)
        history.append(diagnostics)

        if log_every and (i + 1) % log_every == 0:
            logger.info(
                f"Step {i + 1}/{n_steps}: t={state.time:.2f}s, "
                f"max_speed={diagnostics.max_speed:.2f}, "
                f"cloud={diagnostics.total_cloud:.3e}, "
                f"div={diagnostics.divergence_before:.2e}->{diagnostics.divergence_after:.2e}"
            )

    logger.info(f"Simulation complete after {state.step_count} steps")

    return state, history


def summarize_state(state: SimulationState) -> dict:
    """Generate summary statistics of a simulation state."""
    velocity = state.velocity.read
    thermo = state.thermo.read
    vertical = velocity[VERTICAL_AXIS]

    return {
        "resolution": list(state.resolution),
        "time": float(state.time),
        "step_count": int(state.step_count),
        "source_count": int(state.sources.count),
        "max_speed": float(jnp.max(jnp.sqrt(jnp.sum(velocity ** 2, axis=0)))),
        "max_updraft": float(jnp.max(vertical)),
        "max_downdraft": float(jnp.min(vertical)),
        "total_vapor": float(jnp.sum(thermo[0])),
        "total_cloud": float(jnp.sum(thermo[1])),
        "max_cloud": float(jnp.max(thermo[1])),
        "cloud_fraction": float(jnp.mean(thermo[1] > CLOUD_THRESHOLD)),
        "theta_perturbation_max": float(jnp.max(thermo[2])),
        "theta_perturbation_min": float(jnp.min(thermo[2])),
    }
