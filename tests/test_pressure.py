"""
Tests for the pressure projection.
"""

import pytest
import jax
import jax.numpy as jnp
import numpy as np

jax.config.update("jax_enable_x64", True)

from nimbus.jax_core.fields import cell_coordinates
from nimbus.jax_core.pressure import (
    compute_divergence,
    jacobi_sweep,
    project,
    solve_pressure,
    subtract_pressure_gradient,
)


def _source_flow(resolution, sigma=6.0, amplitude=10.0):
    """Gradient of a Gaussian: a purely divergent flow away from the centre."""
    coords = cell_coordinates(resolution)
    centre = jnp.array([(n - 1) / 2.0 for n in resolution]).reshape(
        (-1,) + (1,) * len(resolution)
    )
    offset = coords - centre
    phi = amplitude * jnp.exp(-jnp.sum(offset ** 2, axis=0) / (2.0 * sigma ** 2))
    return -offset / sigma ** 2 * phi


def _interior_norm(div, margin=4):
    inner = div[(slice(margin, -margin),) * div.ndim]
    return float(jnp.sqrt(jnp.sum(inner ** 2)))


class TestDivergence:
    """Test the divergence operator."""

    def test_zero_on_shell(self):
        velocity = jax.random.normal(jax.random.PRNGKey(0), (2, 10, 8))
        div = compute_divergence(velocity)

        np.testing.assert_array_equal(div[0], 0.0)
        np.testing.assert_array_equal(div[-1], 0.0)
        np.testing.assert_array_equal(div[:, 0], 0.0)
        np.testing.assert_array_equal(div[:, -1], 0.0)

    def test_uniform_flow(self):
        velocity = jnp.ones((3, 6, 6, 6))
        np.testing.assert_allclose(compute_divergence(velocity), 0.0)

    def test_linear_expansion(self):
        """u = x, v = y has divergence 2 in the interior."""
        velocity = cell_coordinates((8, 8))
        div = compute_divergence(velocity)
        np.testing.assert_allclose(div[1:-1, 1:-1], 2.0)


class TestJacobi:
    """Test the Jacobi relaxation."""

    def test_uniform_fixed_point(self):
        pressure = jnp.full((8, 8), 3.0)
        np.testing.assert_allclose(jacobi_sweep(pressure, jnp.zeros((8, 8))), 3.0)

    def test_zero_iterations(self):
        div = jax.random.normal(jax.random.PRNGKey(1), (8, 8))
        np.testing.assert_array_equal(solve_pressure(div, 0), 0.0)

    def test_iterations_match_manual_sweeps(self):
        div = jax.random.normal(jax.random.PRNGKey(2), (6, 7, 5))
        manual = jnp.zeros_like(div)
        for _ in range(4):
            manual = jacobi_sweep(manual, div)
        np.testing.assert_allclose(solve_pressure(div, 4), manual, atol=1e-12)

    def test_gradient_subtraction(self):
        """Subtracting the gradient of a linear pressure shifts velocity uniformly."""
        pressure = 2.0 * cell_coordinates((8, 8))[0]
        corrected = subtract_pressure_gradient(jnp.zeros((2, 8, 8)), pressure)
        np.testing.assert_allclose(corrected[0, 1:-1], -2.0)
        np.testing.assert_allclose(corrected[1], 0.0)


class TestProjection:
    """Test that projection removes divergence."""

    def test_reduces_divergence_2d(self):
        velocity = _source_flow((48, 48))
        before = _interior_norm(compute_divergence(velocity))

        result = project(velocity, iterations=10)
        after = _interior_norm(compute_divergence(result.velocity))

        assert after < before

    def test_more_iterations_reduce_further(self):
        velocity = _source_flow((48, 48))

        few = project(velocity, iterations=5)
        many = project(velocity, iterations=40)

        assert _interior_norm(compute_divergence(many.velocity)) < _interior_norm(
            compute_divergence(few.velocity)
        )

    def test_reduces_divergence_3d(self):
        velocity = _source_flow((20, 20, 20), sigma=3.0)
        before = _interior_norm(compute_divergence(velocity), margin=3)

        result = project(velocity, iterations=20)
        after = _interior_norm(compute_divergence(result.velocity), margin=3)

        assert after < before

    def test_result_fields(self):
        velocity = _source_flow((16, 12), sigma=3.0)
        result = project(velocity, iterations=3)

        assert result.velocity.shape == (2, 16, 12)
        assert result.pressure.shape == (16, 12)
        np.testing.assert_allclose(result.divergence, compute_divergence(velocity))

    def test_rest_stays_at_rest(self):
        result = project(jnp.zeros((3, 6, 6, 6)), iterations=10)
        np.testing.assert_array_equal(result.velocity, 0.0)
        np.testing.assert_array_equal(result.pressure, 0.0)

    def test_solenoidal_flow_preserved(self):
        """A discretely divergence-free rotation is left unchanged in the interior."""
        coords = cell_coordinates((16, 16))
        c = 7.5
        velocity = jnp.stack([-(coords[1] - c), coords[0] - c])
        velocity = velocity * 0.01

        result = project(velocity, iterations=10)

        np.testing.assert_allclose(result.pressure, 0.0, atol=1e-12)
        np.testing.assert_allclose(
            result.velocity[:, 1:-1, 1:-1], velocity[:, 1:-1, 1:-1], atol=1e-12
        )
