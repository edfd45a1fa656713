"""
Boundary Conditions on the Outer Shell.

Faces are enforced one axis pair at a time, each pass reading the previous
pass's committed output:

- 2D: x faces, then y faces
- 3D: XY faces (normal z), then YZ faces (normal x), then ZX faces (normal y)

A pass rewrites both opposing faces, including the edges and corners they
share with the other faces, from the adjacent interior slice. Velocity fields
get free-slip walls (normal component negated, tangential copied); scalar
fields get a zero-gradient copy.
"""

from __future__ import annotations
from typing import Tuple
import jax.numpy as jnp

from .fields import FieldBuffer, SCALAR, VELOCITY


def pass_order(ndim: int) -> Tuple[int, ...]:
    """Axis whose faces each sequential pass rewrites."""
    if ndim == 2:
        return (0, 1)
    if ndim == 3:
        return (2, 0, 1)
    raise ValueError(f"Boundary passes are defined for 2D and 3D grids, got {ndim}D")


def bound_axis(field: jnp.ndarray, axis: int, kind: str) -> jnp.ndarray:
    """
    Rewrite the two faces normal to ``axis`` of a channel-first field.

    Parameters
    ----------
    field : array (channels, *resolution)
        Field to read
    axis : int
        Spatial axis whose low and high faces are written
    kind : str
        "velocity" (no penetration) or "scalar" (copy)

    Returns
    -------
    array
        New field with the two faces replaced.
    """
    spatial = axis + 1
    ndim = field.ndim

    def index(i):
        idx = [slice(None)] * ndim
        idx[spatial] = i
        return tuple(idx)

    low = field[index(1)]
    high = field[index(-2)]

    if kind == VELOCITY:
        low = low.at[axis].multiply(-1.0)
        high = high.at[axis].multiply(-1.0)
    elif kind != SCALAR:
        raise ValueError(f"Unknown field kind: {kind!r}")

    return field.at[index(0)].set(low).at[index(-1)].set(high)


def enforce_bounds(field: jnp.ndarray, kind: str = SCALAR) -> jnp.ndarray:
    """
    Apply the boundary rule for ``kind`` to every face of the grid.

    Interior cells are passed through unchanged; applying the rule twice
    gives the same result as applying it once.
    """
    buffers = FieldBuffer(read=field, write=field)
    for axis in pass_order(field.ndim - 1):
        buffers = buffers.commit(bound_axis(buffers.read, axis, kind))
    return buffers.read
