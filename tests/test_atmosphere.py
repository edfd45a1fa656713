"""
Tests for the ambient atmosphere profile.

Tests cover:
- Barometric profile and its degenerate limits
- Exner function
- Saturation mixing ratio
- Equilibrium thermo initialization
"""

import pytest
import jax
import jax.numpy as jnp
import numpy as np

jax.config.update("jax_enable_x64", True)

from nimbus.jax_core.atmosphere import (
    ambient_potential_temperature,
    equilibrium_thermo,
    exner,
    generate_profile,
    layer_lookup,
    saturation_mixing_ratio,
)


# =============================================================================
# Profile Tests
# =============================================================================


class TestProfile:
    """Test profile generation."""

    def test_ground_values(self):
        """Layer 0 sits at the ground."""
        profile = generate_profile(295.0, 101325.0, 0.0065, 8000.0, 64)

        assert profile.layer_count == 64
        assert float(profile.heights[0]) == 0.0
        assert float(profile.heights[-1]) == pytest.approx(8000.0)
        assert float(profile.temperature[0]) == pytest.approx(295.0)
        assert float(profile.pressure[0]) == pytest.approx(101325.0)
        assert float(profile.exner[0]) == pytest.approx(1.0)

    def test_standard_lapse(self):
        """Temperature falls linearly, pressure follows the barometric formula."""
        profile = generate_profile(295.0, 101325.0, 0.0065, 8000.0, 64)

        assert float(profile.temperature[-1]) == pytest.approx(295.0 - 52.0)
        expected = 101325.0 * (1.0 - 0.0065 * 8000.0 / 295.0) ** (9.81 / (0.0065 * 287.0))
        assert float(profile.pressure[-1]) == pytest.approx(expected, rel=1e-10)
        assert jnp.all(jnp.diff(profile.pressure) < 0)

    def test_isothermal_limit(self):
        """A zero lapse rate gives constant temperature and pressure."""
        profile = generate_profile(280.0, 90000.0, 0.0, 5000.0, 16)

        np.testing.assert_allclose(profile.temperature, 280.0)
        np.testing.assert_allclose(profile.pressure, 90000.0)
        assert jnp.all(jnp.isfinite(profile.exner))

    def test_zero_ground_pressure(self):
        """Non-positive ground pressure gives Exner = 1 instead of NaN."""
        profile = generate_profile(295.0, 0.0, 0.0065, 8000.0, 16)

        np.testing.assert_allclose(profile.exner, 1.0)
        assert jnp.all(jnp.isfinite(profile.pressure))

    def test_over_tall_domain(self):
        """Heights past the top of the atmosphere clamp instead of going NaN."""
        profile = generate_profile(295.0, 101325.0, 0.0065, 60000.0, 32)

        assert jnp.all(jnp.isfinite(profile.pressure))
        assert jnp.all(profile.pressure >= 0.0)
        assert jnp.all(profile.temperature >= 1.0)

    def test_potential_temperature_increases(self):
        """A sub-adiabatic lapse rate gives a stable, increasing theta."""
        profile = generate_profile(295.0, 101325.0, 0.0065, 8000.0, 32)
        theta = ambient_potential_temperature(profile)

        assert float(theta[0]) == pytest.approx(295.0)
        assert jnp.all(jnp.diff(theta) > 0)


# =============================================================================
# Thermodynamic Functions
# =============================================================================


class TestExner:
    """Test the Exner function."""

    def test_exner_ground(self):
        assert float(exner(jnp.array(101325.0), 101325.0)) == pytest.approx(1.0)

    def test_exner_below_one_aloft(self):
        pi = exner(jnp.array([80000.0, 50000.0]), 101325.0)
        assert jnp.all(pi < 1.0)
        assert float(pi[1]) < float(pi[0])

    def test_exner_degenerate(self):
        np.testing.assert_allclose(exner(jnp.array([5.0, 10.0]), 0.0), 1.0)


class TestSaturation:
    """Test saturation mixing ratio."""

    def test_reference_value(self):
        """About 16 g/kg at 295 K near sea level."""
        q_s = saturation_mixing_ratio(jnp.array(295.0), jnp.array(101325.0))
        assert float(q_s) == pytest.approx(0.0161, rel=1e-2)

    def test_increases_with_temperature(self):
        temperature = jnp.linspace(250.0, 320.0, 71)
        q_s = saturation_mixing_ratio(temperature, jnp.array(80000.0))
        assert jnp.all(jnp.diff(q_s) > 0)

    def test_decreases_with_pressure(self):
        pressure = jnp.linspace(30000.0, 110000.0, 81)
        q_s = saturation_mixing_ratio(jnp.array(280.0), pressure)
        assert jnp.all(jnp.diff(q_s) < 0)

    def test_monotone_over_grid(self):
        """Monotone in both arguments over the whole tested box."""
        t, p = jnp.meshgrid(
            jnp.linspace(250.0, 320.0, 15),
            jnp.linspace(30000.0, 110000.0, 17),
            indexing="ij",
        )
        q_s = saturation_mixing_ratio(t, p)
        assert jnp.all(jnp.diff(q_s, axis=0) > 0)
        assert jnp.all(jnp.diff(q_s, axis=1) < 0)

    def test_degenerate_inputs_finite(self):
        """Zero pressure and absurd temperatures stay finite."""
        q_s = saturation_mixing_ratio(jnp.array([0.0, 1.0, 500.0]), jnp.array([0.0, 0.0, 0.0]))
        assert jnp.all(jnp.isfinite(q_s))


# =============================================================================
# Equilibrium Thermo
# =============================================================================


class TestEquilibrium:
    """Test equilibrium thermo initialization."""

    def test_channels(self):
        profile = generate_profile(295.0, 101325.0, 0.0065, 8000.0, 32)
        thermo = equilibrium_thermo(profile, (16, 32), initial_humidity=0.6)

        assert thermo.shape == (3, 16, 32)
        np.testing.assert_array_equal(thermo[1], 0.0)
        np.testing.assert_array_equal(thermo[2], 0.0)

    def test_vapor_fraction_of_saturation(self):
        profile = generate_profile(295.0, 101325.0, 0.0065, 8000.0, 32)
        thermo = equilibrium_thermo(profile, (16, 32, 8), initial_humidity=0.5)

        q_s = saturation_mixing_ratio(profile.temperature, profile.pressure)
        np.testing.assert_allclose(thermo[0, 3, :, 5], 0.5 * q_s)
        # Horizontally uniform
        np.testing.assert_allclose(thermo[0, 0], thermo[0, -1])

    def test_layer_mismatch_raises(self):
        profile = generate_profile(295.0, 101325.0, 0.0065, 8000.0, 32)
        with pytest.raises(ValueError):
            layer_lookup(profile.temperature, (16, 20))
