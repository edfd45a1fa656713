"""
Tests for configuration loading and conversion.
"""

from pathlib import Path

import pytest
import jax
import numpy as np
import yaml

jax.config.update("jax_enable_x64", True)

from nimbus.config import (
    NimbusConfig,
    build_sources,
    config_to_yaml,
    default_config,
    explicit_sources,
    load_config,
    setup_logging,
    to_solver_params,
)
from nimbus.jax_core.forces import KNOTS_TO_MS


def _write(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data))
    return path


@pytest.fixture
def minimal_3d():
    return {
        "project": {"name": "test_run", "random_seed": 11},
        "grid": {"resolution": [32, 16, 32], "volume_size": [3200.0, 8000.0, 3200.0]},
        "sources": {"count": 4},
    }


class TestModels:
    """Test configuration validation."""

    def test_defaults(self, minimal_3d):
        config = NimbusConfig.model_validate(minimal_3d)

        assert config.atmosphere.ground_temperature == 295.0
        assert config.atmosphere.ground_pressure == 101325.0
        assert config.atmosphere.lapse_rate == 0.0065
        assert config.fluid.vorticity == 0.3
        assert config.fluid.pressure_iterations == 10
        assert config.thermo.precipitation_threshold == 0.002
        assert config.wind.speed_knots == 10.0
        assert config.wind.direction_degrees == 270.0
        assert config.sources.duration == 60.0
        assert config.simulation.dt == pytest.approx(1.0 / 60.0)

    def test_mismatched_grid(self):
        with pytest.raises(ValueError):
            NimbusConfig.model_validate({
                "project": {"name": "bad"},
                "grid": {"resolution": [32, 16], "volume_size": [1.0, 1.0, 1.0]},
            })

    def test_too_small_grid(self):
        with pytest.raises(ValueError):
            NimbusConfig.model_validate({
                "project": {"name": "bad"},
                "grid": {"resolution": [32, 2], "volume_size": [1.0, 1.0]},
            })

    def test_four_dimensional_grid(self):
        with pytest.raises(ValueError):
            NimbusConfig.model_validate({
                "project": {"name": "bad"},
                "grid": {"resolution": [8, 8, 8, 8], "volume_size": [1.0] * 4},
            })

    def test_unordered_range(self, minimal_3d):
        minimal_3d["sources"]["radius_range"] = [6.0, 3.0]
        with pytest.raises(ValueError):
            NimbusConfig.model_validate(minimal_3d)

    def test_source_dimension(self, minimal_3d):
        minimal_3d["sources"]["explicit"] = [{"position": [1.0, 2.0], "radius": 2.0}]
        with pytest.raises(ValueError):
            NimbusConfig.model_validate(minimal_3d)

    def test_negative_temperature(self, minimal_3d):
        minimal_3d["atmosphere"] = {"ground_temperature": -5.0}
        with pytest.raises(ValueError):
            NimbusConfig.model_validate(minimal_3d)


class TestLoading:
    """Test YAML loading."""

    def test_load(self, tmp_path, minimal_3d):
        path = _write(tmp_path / "nimbus.yaml", minimal_3d)
        config = load_config(path)
        assert config.project.name == "test_run"
        assert config.grid.resolution == [32, 16, 32]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ValueError):
            load_config(path)

    def test_relative_paths(self, tmp_path, minimal_3d):
        minimal_3d["project"]["output_dir"] = "./results"
        sub = tmp_path / "configs"
        sub.mkdir()
        config = load_config(_write(sub / "nimbus.yaml", minimal_3d))
        assert config.project.output_dir == sub / "results"

    @pytest.mark.parametrize("dimensions", [2, 3])
    def test_yaml_round_trip(self, tmp_path, dimensions):
        config = default_config(dimensions)
        path = tmp_path / "nimbus.yaml"
        path.write_text(config_to_yaml(config))

        loaded = load_config(path)

        assert loaded.grid == config.grid
        assert loaded.sources == config.sources
        assert loaded.fluid == config.fluid


class TestDefaults:
    """Test the built-in configurations."""

    def test_2d_demo_sources(self):
        config = default_config(2)

        assert config.grid.resolution == [256, 128]
        assert len(config.sources.explicit) == 3
        assert config.sources.explicit[0].position == [128, 1]
        assert config.sources.explicit[1].position == [64, 1]
        assert config.sources.explicit[2].position == [200, 1]
        assert config.sources.duration == 100.0

    def test_3d_random_sources(self):
        config = default_config(3)
        assert config.grid.ndim == 3
        assert config.sources.count == 12
        assert not config.sources.explicit

    def test_invalid_dimensions(self):
        with pytest.raises(ValueError):
            default_config(4)


class TestConversion:
    """Test conversion to solver inputs."""

    def test_solver_params(self, minimal_3d):
        config = NimbusConfig.model_validate(minimal_3d)
        params = to_solver_params(config)

        assert params.volume_height == 8000.0
        assert params.pressure_iterations == 10
        assert params.wind_shear_exponent == 3.0
        # 270 degrees, 32 cells over 3200 m
        assert params.wind_velocity[0] == pytest.approx(-10.0 * KNOTS_TO_MS * 0.01)
        assert params.wind_velocity[1] == 0.0
        hash(params)

    def test_explicit_sources(self):
        config = default_config(2)
        specs = explicit_sources(config)
        assert len(specs) == 3
        assert specs[0].moisture == 0.00065
        assert specs[1].radius == 3.5

    def test_no_explicit_sources(self, minimal_3d):
        assert explicit_sources(NimbusConfig.model_validate(minimal_3d)) is None

    def test_build_random_sources(self, minimal_3d):
        config = NimbusConfig.model_validate(minimal_3d)
        a = build_sources(config)
        b = build_sources(config)

        assert a.count == 4
        np.testing.assert_array_equal(a.positions, b.positions)
        np.testing.assert_array_equal(a.positions[:, 1], 1.0)

    def test_build_explicit_sources(self):
        batch = build_sources(default_config(2))
        assert batch.count == 3
        assert batch.positions.shape == (3, 2)


class TestLogging:
    """Test logging setup."""

    def test_log_file_created(self, tmp_path, minimal_3d):
        minimal_3d["output"] = {"log_file": str(tmp_path / "logs" / "run.log"), "log_level": "DEBUG"}
        config = NimbusConfig.model_validate(minimal_3d)

        setup_logging(config)

        assert (tmp_path / "logs").is_dir()
