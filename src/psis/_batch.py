"""Per-parameter fan-out over arrays of shape ``(draws, [chains,] params...)``.

Every parameter is processed independently on the flattened draws of its
sample dimensions.  Units of work share no state: each writes only to its
own column of the ``(sample_size, n_params)`` view of the input, so the
fan-out needs no locking beyond joblib's final join.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, TypeVar

import numpy as np
from joblib import Parallel, delayed

from ._utils import as_param_columns, sample_size

logger = logging.getLogger(__name__)

T = TypeVar("T")


def map_params(
    func: Callable[[np.ndarray, float], T],
    x: np.ndarray,
    reff: np.ndarray,
    n_jobs: Optional[int] = None,
) -> List[T]:
    """Apply ``func(draws, reff_i)`` to every parameter of ``x``.

    Parameters
    ----------
    func : callable
        Called with the 1-D draws of one parameter (a writable view into
        ``x``) and that parameter's relative efficiency.
    x : np.ndarray
        Array of shape ``(draws, [chains,] params...)``.  Modifications
        made by ``func`` are written back to ``x``.
    reff : np.ndarray
        Relative efficiencies, already broadcast to the parameter shape.
    n_jobs : int, optional
        Number of joblib workers.  ``None`` or 1 runs serially.

    Returns
    -------
    list
        Results of ``func`` in C order of the parameter indices.
    """
    columns = as_param_columns(x)
    reff_flat = np.ravel(reff)
    n_params = columns.shape[1]
    logger.debug(
        "Processing %d parameters of %d draws (n_jobs=%s)",
        n_params,
        sample_size(x),
        n_jobs,
    )

    if n_jobs is None or n_jobs == 1 or n_params == 1:
        results = [func(columns[:, j], reff_flat[j]) for j in range(n_params)]
    else:
        # Threads share memory, so each worker writes straight into its column
        results = Parallel(n_jobs=n_jobs, require="sharedmem")(
            delayed(func)(columns[:, j], reff_flat[j]) for j in range(n_params)
        )

    # reshape copies non-contiguous inputs; copy the results back
    if not np.may_share_memory(columns, x):
        x[...] = columns.reshape(x.shape)
    return list(results)


def stack_params(values, shape, dtype=None) -> np.ndarray:
    """Arrange per-parameter values in an array of the parameter shape.

    Returns a 0-d array for inputs without parameter dimensions.  Use
    ``dtype=object`` for non-numeric values such as fitted distributions.
    """
    out = np.empty(len(values), dtype=dtype)
    out[:] = values
    return out.reshape(shape)
