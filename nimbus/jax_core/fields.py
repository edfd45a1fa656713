"""
Grid Fields and Ping-Pong Buffers.

Every stage of the solver reads one committed array and produces a new one.
``FieldBuffer`` makes that ownership explicit: a stage reads ``buffer.read``
and its result is committed into the write slot, after which the roles swap.

Layout
------
Fields are channel-first:
- velocity : (ndim, nx, ny) or (ndim, nx, ny, nz)
- thermo   : (3, nx, ny[, nz]) with channels (q_v, q_c, theta')
- scalars  : (nx, ny[, nz])

Axis 1 (y) is vertical in both 2D and 3D. Lengths are in grid cells, so the
cell spacing is 1 and positions are continuous index coordinates.
"""

from __future__ import annotations
from typing import NamedTuple, Tuple
import jax.numpy as jnp


VERTICAL_AXIS = 1

VELOCITY = "velocity"
SCALAR = "scalar"


# =============================================================================
# Data Structures
# =============================================================================

class FieldBuffer(NamedTuple):
    """Read/write pair for a field that is updated once per stage."""

    read: jnp.ndarray
    write: jnp.ndarray

    def commit(self, result: jnp.ndarray) -> "FieldBuffer":
        """Store ``result`` in the write slot and swap roles."""
        return FieldBuffer(read=result, write=self.read)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.read.shape


def make_buffer(initial: jnp.ndarray) -> FieldBuffer:
    """Create a buffer pair whose read side holds ``initial``."""
    return FieldBuffer(read=initial, write=jnp.zeros_like(initial))


# =============================================================================
# Grid Helpers
# =============================================================================

def cell_coordinates(resolution: Tuple[int, ...]) -> jnp.ndarray:
    """
    Index coordinates of every cell.

    Returns
    -------
    coords : array (ndim, *resolution)
        coords[a] holds the index along axis ``a``.
    """
    axes = [jnp.arange(n, dtype=float) for n in resolution]
    return jnp.stack(jnp.meshgrid(*axes, indexing="ij"))


def normalized_altitude(resolution: Tuple[int, ...]) -> jnp.ndarray:
    """Height of each vertical layer as a fraction of the domain height."""
    ny = resolution[VERTICAL_AXIS]
    return jnp.linspace(0.0, 1.0, ny) if ny > 1 else jnp.zeros(1)


def broadcast_layers(values: jnp.ndarray, ndim: int) -> jnp.ndarray:
    """Reshape a per-layer array (ny,) so it broadcasts over a scalar field."""
    shape = [1] * ndim
    shape[VERTICAL_AXIS] = values.shape[0]
    return values.reshape(shape)


def shift(f: jnp.ndarray, offset: int, axis: int) -> jnp.ndarray:
    """
    Neighbour values along ``axis`` with edge clamping.

    ``shift(f, +1, a)[i] == f[i + 1]`` and ``shift(f, -1, a)[i] == f[i - 1]``;
    the outermost cells see themselves instead of wrapping around.
    """
    n = f.shape[axis]
    if offset > 0:
        body = jnp.take(f, jnp.arange(1, n), axis=axis)
        edge = jnp.take(f, jnp.array([n - 1]), axis=axis)
        return jnp.concatenate([body, edge], axis=axis)
    body = jnp.take(f, jnp.arange(0, n - 1), axis=axis)
    edge = jnp.take(f, jnp.array([0]), axis=axis)
    return jnp.concatenate([edge, body], axis=axis)


def central_difference(f: jnp.ndarray, axis: int) -> jnp.ndarray:
    """Half-width central difference ``0.5 * (f[i+1] - f[i-1])``."""
    return 0.5 * (shift(f, 1, axis) - shift(f, -1, axis))


def interior_mask(resolution: Tuple[int, ...]) -> jnp.ndarray:
    """Boolean mask that is False on the outer shell of the grid."""
    mask = jnp.ones(resolution, dtype=bool)
    for axis in range(len(resolution)):
        index = [slice(None)] * len(resolution)
        index[axis] = 0
        mask = mask.at[tuple(index)].set(False)
        index[axis] = -1
        mask = mask.at[tuple(index)].set(False)
    return mask
