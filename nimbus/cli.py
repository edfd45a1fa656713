"""
Command-line interface for Nimbus.

This module provides the CLI entry points for running cloud simulations
and managing configuration files.

Commands:
- nimbus run: Run a cloud simulation from a configuration file
- nimbus init: Generate a configuration template
- nimbus validate: Validate a configuration file
- nimbus info: Display system information
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
import click

logger = logging.getLogger(__name__)


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.version_option(package_name="nimbus")
def main():
    """
    NIMBUS: Stable-Fluids Atmospheric Cloud Simulation

    Buoyant, moist air rising from pulsing ground sources, condensing
    into cloud on a 2D or 3D grid with a JAX solver.

    \b
    Quick Start:
        nimbus init -o nimbus.yaml      # Create config template
        nimbus run nimbus.yaml          # Run simulation
        nimbus validate nimbus.yaml     # Check a config
    """
    pass


# =============================================================================
# Run Command
# =============================================================================

def _save_outputs(state, history, config, output_dir: Path) -> None:
    """Write final fields, diagnostics and summary to ``output_dir``."""
    import numpy as np
    from nimbus.jax_core import summarize_state

    output_dir.mkdir(parents=True, exist_ok=True)

    if config.output.save_state:
        state_path = output_dir / "state.npz"
        np.savez_compressed(
            state_path,
            velocity=np.asarray(state.velocity.read),
            thermo=np.asarray(state.thermo.read),
            heights=np.asarray(state.profile.heights),
            temperature=np.asarray(state.profile.temperature),
            pressure=np.asarray(state.profile.pressure),
            time=np.asarray(state.time),
        )
        logger.info(f"Saved final state to {state_path}")

    if config.output.save_diagnostics:
        diag_path = output_dir / "diagnostics.json"
        with open(diag_path, "w") as f:
            json.dump([d._asdict() for d in history], f, indent=2)
        logger.info(f"Saved {len(history)} diagnostic records to {diag_path}")

    with open(output_dir / "summary.json", "w") as f:
        json.dump(summarize_state(state), f, indent=2)


@main.command()
@click.argument("config_path", type=click.Path(exists=True, path_type=Path))
@click.option("--steps", "-n", type=int, help="Number of steps (overrides config)")
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Output directory")
@click.option("--seed", "-s", type=int, help="Random seed for the source layout")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress output")
def run(config_path, steps, output, seed, verbose, quiet):
    """
    Run a cloud simulation.

    \b
    Examples:
        nimbus run nimbus.yaml
        nimbus run nimbus.yaml --steps 1200 -o ./results -v
    """
    from nimbus.config import build_sources, load_config, setup_logging, to_solver_params

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if quiet:
        level = "ERROR"
    elif verbose:
        level = "DEBUG"
    else:
        level = None
    setup_logging(config, level)

    if steps is not None:
        config.simulation.n_steps = steps
    if output is not None:
        config.project.output_dir = output
    if seed is not None:
        config.project.random_seed = seed

    if not quiet:
        click.echo("=" * 60)
        click.echo(f"NIMBUS: {config.project.name}")
        click.echo("=" * 60)
        click.echo(f"Grid: {' x '.join(str(n) for n in config.grid.resolution)}")
        click.echo(f"Steps: {config.simulation.n_steps} x {config.simulation.dt:.4f} s")

    try:
        from nimbus.jax_core import run_simulation

        params = to_solver_params(config)
        sources = build_sources(config)

        state, history = run_simulation(
            params,
            config.grid.resolution,
            n_steps=config.simulation.n_steps,
            dt=config.simulation.dt,
            sources=sources,
            log_every=config.simulation.log_every,
        )

        _save_outputs(state, history, config, Path(config.project.output_dir))

    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not quiet:
        from nimbus.jax_core import summarize_state

        summary = summarize_state(state)
        click.echo("\n" + "=" * 60)
        click.echo("SIMULATION COMPLETE")
        click.echo("=" * 60)
        click.echo(f"Simulated time: {summary['time']:.2f} s")
        click.echo(f"Total cloud water: {summary['total_cloud']:.4e}")
        click.echo(f"Cloud fraction: {summary['cloud_fraction']:.2%}")
        click.echo(f"Max updraft: {summary['max_updraft']:.2f} cells/s")
        click.echo(f"Output: {config.project.output_dir}")
        click.echo("=" * 60)


# =============================================================================
# Init Command
# =============================================================================

@main.command()
@click.option("--output", "-o", type=click.Path(path_type=Path), default=Path("nimbus.yaml"),
              help="Output path for configuration")
@click.option("--dimensions", "-d", type=click.Choice(["2", "3"]), default="2",
              help="Grid dimensionality")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing file")
def init(output: Path, dimensions: str, force: bool):
    """
    Generate configuration template.

    Creates a new YAML configuration with default settings.
    """
    from nimbus.config import config_to_yaml, default_config

    output = Path(output)
    if output.suffix not in (".yaml", ".yml"):
        output = output.with_suffix(".yaml")

    if output.exists() and not force:
        click.echo(f"File exists: {output}. Use --force to overwrite.", err=True)
        sys.exit(1)

    config = default_config(int(dimensions), name=output.stem)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(config_to_yaml(config))

    click.echo(f"Created {dimensions}D configuration: {output}")


# =============================================================================
# Validate Command
# =============================================================================

@main.command()
@click.argument("config_path", type=click.Path(path_type=Path))
def validate(config_path):
    """
    Validate configuration file.

    Loads the file, checks it against the configuration schema and prints
    the derived solver settings.
    """
    from nimbus.config import load_config, to_solver_params

    click.echo(f"Validating: {config_path}")

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"\n✗ {e}", err=True)
        sys.exit(1)

    params = to_solver_params(config)

    click.echo("\n✓ Configuration loaded successfully")
    click.echo(f"\nName: {config.project.name}")
    click.echo(f"Grid: {config.grid.resolution} cells, {config.grid.volume_size} m")
    if config.sources.explicit:
        click.echo(f"Sources: {len(config.sources.explicit)} explicit")
    else:
        click.echo(f"Sources: {config.sources.count} random (seed {config.project.random_seed})")
    click.echo(f"Jacobi sweeps: {params.pressure_iterations}")
    click.echo(f"Wind: {tuple(round(w, 4) for w in params.wind_velocity)} cells/s")
    if config.grid.ndim == 2 and config.wind.speed_knots > 0:
        click.echo("  ⚠ wind is ignored on 2D grids")
    if config.fluid.diffusion > 0:
        click.echo("  ⚠ fluid.diffusion is accepted but not used")


# =============================================================================
# Info Command
# =============================================================================

@main.command()
def info():
    """Display system and configuration information."""
    import platform
    import numpy
    import jax
    import jax.numpy
    import pydantic
    from nimbus import __version__

    click.echo("=" * 60)
    click.echo("NIMBUS Cloud Simulation")
    click.echo("=" * 60)
    click.echo(f"Version: {__version__}")
    click.echo(f"Python: {platform.python_version()}")
    click.echo(f"NumPy: {numpy.__version__}")
    click.echo(f"JAX: {jax.__version__}")
    click.echo(f"JAX devices: {jax.devices()}")
    click.echo(f"Pydantic: {pydantic.__version__}")
    click.echo(f"Default float: {jax.numpy.zeros(()).dtype}")


if __name__ == "__main__":
    main()
