"""
JAX-based Stable-Fluids Core for Nimbus.

This subpackage provides the grid solver: semi-Lagrangian advection,
pressure projection, buoyancy and vorticity confinement, moist
thermodynamics and pulsing ground sources on 2D or 3D grids.

Modules
-------
fields : Channel-first grid layout and ping-pong buffers
atmosphere : Ambient temperature/pressure profile and saturation
advection : Semi-Lagrangian transport
boundaries : Free-slip and zero-gradient walls
pressure : Divergence, Jacobi sweeps and projection
forces : Buoyancy, vorticity confinement and sheared wind
thermodynamics : Condensation, evaporation and precipitation
sources : Moisture/heat source injection and random layouts
solver : Frame orchestration, diagnostics and the run loop

Quick Start
-----------
>>> import jax
>>> from nimbus.jax_core import SolverParams, run_simulation, summarize_state
>>>
>>> params = SolverParams(vorticity=0.3, pressure_iterations=10)
>>> state, history = run_simulation(
...     params, (128, 64), n_steps=600, key=jax.random.PRNGKey(0)
... )
>>> print(summarize_state(state)["total_cloud"])
"""

from .fields import (
    FieldBuffer,
    make_buffer,
    cell_coordinates,
    normalized_altitude,
    central_difference,
    VERTICAL_AXIS,
    VELOCITY,
    SCALAR,
)

from .atmosphere import (
    AtmosphereProfile,
    generate_profile,
    exner,
    saturation_mixing_ratio,
    ambient_potential_temperature,
    equilibrium_thermo,
    G,
    R_DRY,
    CP,
    LATENT_HEAT,
)

from .advection import (
    backtrace,
    interpolate_linear,
    advect,
)

from .boundaries import (
    bound_axis,
    enforce_bounds,
)

from .pressure import (
    ProjectionResult,
    compute_divergence,
    jacobi_sweep,
    solve_pressure,
    subtract_pressure_gradient,
    project,
)

from .forces import (
    buoyancy_acceleration,
    curl,
    vorticity_confinement,
    wind_velocity_from_heading,
    wind_forcing,
    apply_forces,
)

from .thermodynamics import (
    update_thermo,
    relative_humidity,
)

from .sources import (
    SourceSpec,
    SourceBatch,
    empty_sources,
    stack_sources,
    falloff_weights,
    inject,
    inject_sources,
    source_intensity,
    generate_sources,
)

from .solver import (
    SolverParams,
    SimulationState,
    StepDiagnostics,
    reset,
    step,
    advance,
    run_simulation,
    summarize_state,
)

__all__ = [
    # Fields
    "FieldBuffer",
    "make_buffer",
    "cell_coordinates",
    "normalized_altitude",
    "central_difference",
    "VERTICAL_AXIS",
    "VELOCITY",
    "SCALAR",
    # Atmosphere
    "AtmosphereProfile",
    "generate_profile",
    "exner",
    "saturation_mixing_ratio",
    "ambient_potential_temperature",
    "equilibrium_thermo",
    "G",
    "R_DRY",
    "CP",
    "LATENT_HEAT",
    # Advection
    "backtrace",
    "interpolate_linear",
    "advect",
    # Boundaries
    "bound_axis",
    "enforce_bounds",
    # Pressure
    "ProjectionResult",
    "compute_divergence",
    "jacobi_sweep",
    "solve_pressure",
    "subtract_pressure_gradient",
    "project",
    # Forces
    "buoyancy_acceleration",
    "curl",
    "vorticity_confinement",
    "wind_velocity_from_heading",
    "wind_forcing",
    "apply_forces",
    # Thermodynamics
    "update_thermo",
    "relative_humidity",
    # Sources
    "SourceSpec",
    "SourceBatch",
    "empty_sources",
    "stack_sources",
    "falloff_weights",
    "inject",
    "inject_sources",
    "source_intensity",
    "generate_sources",
    # Solver
    "SolverParams",
    "SimulationState",
    "StepDiagnostics",
    "reset",
    "step",
    "advance",
    "run_simulation",
    "summarize_state",
]
