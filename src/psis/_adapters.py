"""Adapters between labeled array containers and plain NumPy arrays.

The PSIS core operates only on plain ``np.ndarray`` buffers laid out as
``(draws, [chains,] params...)``.  Each array ecosystem integrates through
two functions dispatched on the container type:

- ``as_core_array(obj)`` strips labels and returns the float64 buffer.
- ``wrap_like(template, values, which)`` puts labels from ``template`` back
  around a core result.  ``which="full"`` wraps an array of the template's
  full shape; ``which="params"`` wraps an array of its parameter shape.

Plain arrays (and anything ``np.asarray`` accepts, including JAX arrays)
pass through unchanged.  ``xarray.DataArray`` keeps its dims, coords, name
and attrs, with the first one or two dims taken as sample dims.  Adding a
new container only requires new ``@dispatch`` registrations here.
"""

from __future__ import annotations

import numpy as np
import xarray as xr
from multipledispatch import dispatch

# ==============================================================================
# as_core_array: container -> float64 ndarray
# ==============================================================================


@dispatch(np.ndarray)
def as_core_array(x: np.ndarray) -> np.ndarray:
    """Plain arrays are used as-is when already float64."""
    return np.asarray(x, dtype=np.float64)


@dispatch(xr.DataArray)
def as_core_array(x: xr.DataArray) -> np.ndarray:  # noqa: F811
    """Underlying values of a DataArray."""
    return np.asarray(x.values, dtype=np.float64)


@dispatch(object)
def as_core_array(x) -> np.ndarray:  # noqa: F811
    """Scalars, lists and foreign arrays (e.g. JAX) via ``np.asarray``."""
    return np.asarray(x, dtype=np.float64)


# ==============================================================================
# wrap_like: core result -> container of the template's type
# ==============================================================================


@dispatch(object, object, str)
def wrap_like(template, values, which: str):
    """Unlabeled templates leave results untouched."""
    return values


@dispatch(xr.DataArray, object, str)
def wrap_like(template: xr.DataArray, values, which: str):  # noqa: F811
    """Reattach dims and coords of ``template`` to ``values``."""
    if which == "full":
        return xr.DataArray(
            values,
            dims=template.dims,
            coords=template.coords,
            name=template.name,
            attrs=template.attrs,
        )
    if which == "params":
        param_dims = template.dims[2:]
        coords = {
            name: coord
            for name, coord in template.coords.items()
            if set(coord.dims) <= set(param_dims)
        }
        return xr.DataArray(np.asarray(values), dims=param_dims, coords=coords)
    raise ValueError(f"which must be 'full' or 'params', got {which!r}")

