"""
Nimbus: Stable-Fluids Atmospheric Cloud Simulation
==================================================

A grid-based solver for cumulus-style cloud formation. Moist, warm air
injected by ground sources rises under buoyancy, cools adiabatically and
condenses into cloud water once it exceeds the saturation mixing ratio.

The system integrates:
- Semi-Lagrangian advection and Jacobi pressure projection (Stable Fluids)
- Free-slip and zero-gradient boundary conditions
- Buoyancy, vorticity confinement and power-law wind shear
- Saturation adjustment with latent heating, evaporation and fallout
- Seeded random or explicit pulsing moisture/heat sources

Modules
-------
config : Configuration loading and validation
cli : Command-line interface
jax_core : JAX solver stages and the simulation loop

References
----------
- Stam, J. (1999). Stable Fluids. SIGGRAPH.
- Fedkiw, R., Stam, J., Jensen, H.W. (2001). Visual simulation of smoke.
  SIGGRAPH.
- Harris, M.J. et al. (2003). Simulation of cloud dynamics on graphics
  hardware. Graphics Hardware.
"""

__version__ = "0.1.0"
__author__ = "Nimbus Contributors"

from nimbus.config import (
    load_config,
    default_config,
    NimbusConfig,
    GridConfig,
    SourceConfig,
)
from nimbus.jax_core import (
    SolverParams,
    SimulationState,
    reset,
    step,
    advance,
    run_simulation,
)

__all__ = [
    "load_config",
    "default_config",
    "NimbusConfig",
    "GridConfig",
    "SourceConfig",
    "SolverParams",
    "SimulationState",
    "reset",
    "step",
    "advance",
    "run_simulation",
    "__version__",
]
