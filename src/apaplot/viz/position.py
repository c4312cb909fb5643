from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np
import pandas as pd


def dodge_positions(
    x_code: pd.Series,
    group_code: Optional[pd.Series] = None,
    panel: Optional[pd.Series] = None,
    *,
    dodge_width: float,
    element_width: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Side-by-side placement of sub-groups sharing one x slot.

    With ``n`` sub-groups present at an x slot (within a panel), the ``i``-th one
    (ordered by group code) is centred at ``x + dodge_width * ((i + 0.5) / n - 0.5)``
    and gets width ``element_width / n``.

    Returns (centres, widths), aligned with ``x_code``.
    """

    x = pd.Series(np.asarray(x_code, dtype=float), index=x_code.index)
    if group_code is None:
        return x.to_numpy(), np.full(len(x), float(element_width))

    keys = pd.DataFrame({"x": x, "g": np.asarray(group_code)}, index=x.index)
    keys["p"] = np.asarray(panel) if panel is not None else ""
    by = keys.groupby(["p", "x"], sort=False)["g"]
    n = by.transform("nunique").to_numpy(dtype=float)
    rank = by.rank(method="dense").to_numpy(dtype=float) - 1.0

    centres = x.to_numpy() + dodge_width * ((rank + 0.5) / n - 0.5)
    widths = element_width / n
    return centres, widths


def wrap_dims(n_panels: int) -> Tuple[int, int]:
    """(nrow, ncol) for wrapping ``n_panels`` facet panels into a grid."""

    if n_panels < 1:
        raise ValueError("n_panels must be >= 1")
    if n_panels <= 3:
        return 1, n_panels
    if n_panels <= 6:
        return 2, (n_panels + 1) // 2
    if n_panels <= 12:
        return 3, (n_panels + 2) // 3
    ncol = math.ceil(math.sqrt(n_panels))
    return math.ceil(n_panels / ncol), ncol
