"""
Configuration loading and validation for Nimbus.

This module provides Pydantic models for validating the nimbus.yaml
configuration file and utility functions for loading configurations and
converting them into solver inputs.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Literal

import jax
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from nimbus.jax_core.forces import wind_velocity_from_heading
from nimbus.jax_core.solver import SolverParams
from nimbus.jax_core.sources import SourceBatch, SourceSpec, generate_sources, stack_sources

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================


class ProjectConfig(BaseModel):
    """Project metadata configuration."""

    name: str = Field(..., description="Project name")
    description: str = Field("", description="Project description")
    output_dir: Path = Field(Path("./output"), description="Output directory")
    random_seed: int | None = Field(None, description="Random seed for source layout")


class GridConfig(BaseModel):
    """Simulation grid. Axis 1 is vertical in both 2D and 3D."""

    resolution: list[int] = Field(
        default_factory=lambda: [256, 128],
        description="Cells per axis, (nx, ny) or (nx, ny, nz)",
    )
    volume_size: list[float] = Field(
        default_factory=lambda: [16000.0, 8000.0],
        description="Physical extent per axis (m)",
    )

    @model_validator(mode="after")
    def check_dimensions(self) -> "GridConfig":
        """Resolution and volume size must describe the same 2D or 3D grid."""
        if len(self.resolution) not in (2, 3):
            raise ValueError("grid.resolution must have 2 or 3 entries")
        if len(self.volume_size) != len(self.resolution):
            raise ValueError("grid.volume_size must have as many entries as grid.resolution")
        if min(self.resolution) < 3:
            raise ValueError("every grid.resolution entry must be at least 3")
        if min(self.volume_size) <= 0:
            raise ValueError("every grid.volume_size entry must be positive")
        return self

    @property
    def ndim(self) -> int:
        return len(self.resolution)


class AtmosphereConfig(BaseModel):
    """Ambient atmosphere configuration."""

    ground_temperature: float = Field(295.0, gt=0, description="Ground temperature (K)")
    ground_pressure: float = Field(101325.0, ge=0, description="Ground pressure (Pa)")
    lapse_rate: float = Field(0.0065, description="Temperature lapse rate (K/m)")
    initial_humidity: float = Field(
        0.6, ge=0, le=1, description="Initial vapor as a fraction of saturation"
    )


class FluidConfig(BaseModel):
    """Fluid solver configuration."""

    vorticity: float = Field(0.3, ge=0, description="Vorticity confinement strength")
    buoyancy: float = Field(1.0, description="Buoyancy strength")
    diffusion: float = Field(0.0, ge=0, description="Accepted for compatibility, not used")
    pressure_iterations: int = Field(10, ge=0, description="Jacobi sweeps per projection")


class ThermoConfig(BaseModel):
    """Moist thermodynamics configuration."""

    boundary_layer_fraction: float = Field(
        0.3, ge=0, le=1,
        description="Normalized altitude below which the parcel temperature sets saturation",
    )
    precipitation_threshold: float = Field(0.002, ge=0, description="Max cloud water (kg/kg)")
    evaporation_rate: float = Field(0.0, ge=0, description="Cloud evaporation rate (1/s)")


class WindConfig(BaseModel):
    """Background wind configuration (3D only)."""

    speed_knots: float = Field(10.0, ge=0)
    direction_degrees: float = Field(270.0, description="0 = +z, 90 = +x")
    shear_exponent: float = Field(3.0, ge=0, description="Power-law shear exponent")


class SourceConfig(BaseModel):
    """One explicit moisture/heat source."""

    position: list[float] = Field(..., description="Grid index coordinates")
    radius: float = Field(3.0, gt=0, description="Radius in cells")
    moisture: float = Field(0.0, ge=0, description="q_v per second at the centre")
    heat: float = Field(0.0, description="theta' per second at the centre (K/s)")
    phase: float = Field(0.0, description="Pulse phase (rad)")


class SourcesConfig(BaseModel):
    """Ground source configuration."""

    count: int = Field(12, ge=0, description="Number of random sources")
    radius_range: tuple[float, float] = Field((3.0, 6.0))
    moisture_range: tuple[float, float] = Field((0.0008, 0.002))
    heat_range: tuple[float, float] = Field((0.8, 2.0))
    margin: float = Field(10.0, ge=0, description="Distance from side walls (cells)")
    duration: float = Field(60.0, ge=0, description="Sources stop injecting after this (s)")
    pulse_frequency: float = Field(0.5, ge=0, description="Pulse angular frequency (rad/s)")
    explicit: list[SourceConfig] = Field(
        default_factory=list,
        description="Explicit sources; when present no random sources are drawn",
    )

    @field_validator("radius_range", "moisture_range", "heat_range")
    @classmethod
    def check_ordered(cls, v: tuple[float, float]) -> tuple[float, float]:
        """Ranges are (low, high)."""
        if v[0] > v[1]:
            raise ValueError(f"range must be ordered (low, high), got {v}")
        return v


class SimulationConfig(BaseModel):
    """Time stepping configuration."""

    dt: float = Field(1.0 / 60.0, gt=0, description="Time step (s)")
    n_steps: int = Field(600, ge=0, description="Number of frames")
    log_every: int = Field(100, ge=0, description="Progress logging frequency")


class OutputConfig(BaseModel):
    """Output configuration."""

    save_state: bool = Field(True, description="Write final fields to state.npz")
    save_diagnostics: bool = Field(True, description="Write per-step diagnostics.json")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO")
    log_file: Path | None = Field(None)


class NimbusConfig(BaseModel):
    """Root configuration model for Nimbus."""

    project: ProjectConfig
    grid: GridConfig = Field(default_factory=GridConfig)
    atmosphere: AtmosphereConfig = Field(default_factory=AtmosphereConfig)
    fluid: FluidConfig = Field(default_factory=FluidConfig)
    thermo: ThermoConfig = Field(default_factory=ThermoConfig)
    wind: WindConfig = Field(default_factory=WindConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @field_validator("project", mode="before")
    @classmethod
    def ensure_output_dir(cls, v: dict[str, Any]) -> dict[str, Any]:
        """Ensure output_dir is a Path."""
        if isinstance(v, dict) and "output_dir" in v:
            v["output_dir"] = Path(v["output_dir"])
        return v

    @model_validator(mode="after")
    def check_source_positions(self) -> "NimbusConfig":
        """Explicit sources must live on the configured grid."""
        for i, source in enumerate(self.sources.explicit):
            if len(source.position) != self.grid.ndim:
                raise ValueError(
                    f"sources.explicit[{i}].position has {len(source.position)} "
                    f"entries, grid is {self.grid.ndim}D"
                )
        return self


# =============================================================================
# Loading Functions
# =============================================================================


def load_config(config_path: str | Path) -> NimbusConfig:
    """
    Load and validate configuration from a YAML file.

    Parameters
    ----------
    config_path : str or Path
        Path to the nimbus.yaml configuration file.

    Returns
    -------
    NimbusConfig
        Validated configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If the configuration is invalid.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raise ValueError(f"Empty configuration file: {config_path}")

    # Resolve relative paths relative to config file location
    raw_config = _resolve_paths(raw_config, config_path.parent)

    config = NimbusConfig.model_validate(raw_config)

    logger.info(f"Configuration loaded: {config.project.name}")

    return config


def _resolve_paths(config: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """Recursively resolve ``./`` and ``../`` strings against ``base_dir``."""

    def resolve(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {k: resolve(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [resolve(item) for item in obj]
        elif isinstance(obj, str):
            if obj.startswith("./") or obj.startswith("../"):
                return str(base_dir / obj)
            return obj
        return obj

    return resolve(config)


def default_config(dimensions: int = 2, name: str = "nimbus_run") -> NimbusConfig:
    """
    Build a ready-to-run configuration.

    The 2D default reproduces the three steady ground sources of the
    classic cumulus demo; the 3D default draws 12 pulsing sources from a
    seed and blows a 10 kn westerly wind.
    """
    if dimensions == 2:
        nx, ny = 256, 128
        # Phase pi/2 with zero pulse frequency gives a constant intensity of 1
        steady = math.pi / 2.0
        sources = SourcesConfig(
            count=0,
            duration=100.0,
            pulse_frequency=0.0,
            explicit=[
                SourceConfig(position=[nx // 2, 1], radius=3.0,
                             moisture=0.00065, heat=0.8, phase=steady),
                SourceConfig(position=[nx // 2 - 64, 1], radius=3.5,
                             moisture=0.00055, heat=0.6, phase=steady),
                SourceConfig(position=[nx // 2 + 72, 1], radius=3.0,
                             moisture=0.0005, heat=0.65, phase=steady),
            ],
        )
        grid = GridConfig(resolution=[nx, ny], volume_size=[16000.0, 8000.0])
        project = ProjectConfig(name=name, description="2D cumulus demo")
    elif dimensions == 3:
        sources = SourcesConfig()
        grid = GridConfig(resolution=[96, 64, 96], volume_size=[12000.0, 8000.0, 12000.0])
        project = ProjectConfig(name=name, description="3D cloud field", random_seed=42)
    else:
        raise ValueError(f"dimensions must be 2 or 3, got {dimensions}")

    return NimbusConfig(project=project, grid=grid, sources=sources)


def config_to_yaml(config: NimbusConfig) -> str:
    """Serialize a configuration to YAML text."""
    data = config.model_dump(mode="json")
    return yaml.safe_dump(data, sort_keys=False)


# =============================================================================
# Solver Conversion
# =============================================================================


def to_solver_params(config: NimbusConfig) -> SolverParams:
    """
    Convert a configuration into solver parameters.

    The wind heading is converted from knots to grid cells per second using
    the grid spacing of each horizontal axis.
    """
    wind = wind_velocity_from_heading(
        config.wind.speed_knots,
        config.wind.direction_degrees,
        config.grid.resolution,
        config.grid.volume_size,
    )

    return SolverParams(
        ground_temperature=config.atmosphere.ground_temperature,
        ground_pressure=config.atmosphere.ground_pressure,
        lapse_rate=config.atmosphere.lapse_rate,
        volume_height=config.grid.volume_size[1],
        initial_humidity=config.atmosphere.initial_humidity,
        vorticity=config.fluid.vorticity,
        buoyancy=config.fluid.buoyancy,
        diffusion=config.fluid.diffusion,
        pressure_iterations=config.fluid.pressure_iterations,
        boundary_layer_fraction=config.thermo.boundary_layer_fraction,
        precipitation_threshold=config.thermo.precipitation_threshold,
        evaporation_rate=config.thermo.evaporation_rate,
        wind_velocity=wind,
        wind_shear_exponent=config.wind.shear_exponent,
        source_frequency=config.sources.pulse_frequency,
        source_duration=config.sources.duration,
    )


def explicit_sources(config: NimbusConfig) -> list[SourceSpec] | None:
    """Explicit sources as SourceSpecs, or None if random sources are used."""
    if not config.sources.explicit:
        return None
    return [
        SourceSpec(
            position=tuple(s.position),
            radius=s.radius,
            moisture=s.moisture,
            heat=s.heat,
            phase=s.phase,
        )
        for s in config.sources.explicit
    ]


def build_sources(config: NimbusConfig) -> SourceBatch:
    """
    Source batch for a run.

    Explicit sources win; otherwise ``sources.count`` sources are drawn with
    the configured ranges from ``project.random_seed`` (0 when unset).
    """
    ndim = config.grid.ndim
    specs = explicit_sources(config)
    if specs is not None:
        return stack_sources(specs, ndim)

    seed = config.project.random_seed
    if seed is None:
        logger.debug("No random_seed configured, using 0")
        seed = 0

    return generate_sources(
        jax.random.PRNGKey(seed),
        tuple(config.grid.resolution),
        count=config.sources.count,
        radius_range=config.sources.radius_range,
        moisture_range=config.sources.moisture_range,
        heat_range=config.sources.heat_range,
        margin=config.sources.margin,
    )


def setup_logging(config: NimbusConfig, level: str | None = None) -> None:
    """
    Configure logging based on configuration.

    Parameters
    ----------
    config : NimbusConfig
        Configuration object.
    level : str, optional
        Overrides ``config.output.log_level``.
    """
    level = getattr(logging, level or config.output.log_level)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if config.output.log_file:
        log_path = Path(config.output.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )
