"""
Raster lattice definition shared by the spatial join and the prediction frame.

Both tables derive cell indices from the same affine transform, so a
(row, col) pair computed for a point and one enumerated from the raster
always refer to the same cell.
"""

from dataclasses import dataclass

import numpy as np
from affine import Affine


@dataclass(frozen=True)
class RasterGrid:
    """Origin, cell size and extent of a north-up raster."""

    transform: Affine
    width: int
    height: int
    crs: str = "EPSG:4326"

    @property
    def shape(self):
        return (self.height, self.width)

    @property
    def res(self):
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self):
        """(west, south, east, north) of the full extent."""
        x0, y0 = self.transform * (0, 0)
        x1, y1 = self.transform * (self.width, self.height)
        return (min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))

    def rowcol(self, xs, ys):
        """Containing cell of each coordinate, using floor semantics.

        Returns integer arrays (rows, cols) and a boolean ``inside`` mask.
        Coordinates outside the extent (or non-finite) get -1 and
        ``inside == False``.
        """
        xs = np.asarray(xs, dtype=float)
        ys = np.asarray(ys, dtype=float)
        finite = np.isfinite(xs) & np.isfinite(ys)

        cols_f, rows_f = ~self.transform * (np.where(finite, xs, 0.0),
                                            np.where(finite, ys, 0.0))
        rows = np.floor(rows_f).astype(np.int64)
        cols = np.floor(cols_f).astype(np.int64)

        inside = (
            finite
            & (rows >= 0) & (rows < self.height)
            & (cols >= 0) & (cols < self.width)
        )
        rows = np.where(inside, rows, -1)
        cols = np.where(inside, cols, -1)
        return rows, cols, inside

    def xy(self, rows, cols):
        """Cell-centre coordinates for integer (row, col) arrays."""
        rows = np.asarray(rows, dtype=float)
        cols = np.asarray(cols, dtype=float)
        xs, ys = self.transform * (cols + 0.5, rows + 0.5)
        return np.asarray(xs, dtype=float), np.asarray(ys, dtype=float)

    def flat_index(self, rows, cols):
        """Row-major cell number, matching the raster's cell ordering."""
        return np.asarray(rows, dtype=np.int64) * self.width + np.asarray(cols, dtype=np.int64)


@dataclass
class EnvStack:
    """Multi-band covariate raster with no-data already converted to NaN.

    data has shape (bands, height, width); names[i] labels data[i].
    """

    data: np.ndarray
    names: list
    grid: RasterGrid

    def __post_init__(self):
        if self.data.ndim != 3:
            raise ValueError(f"EnvStack data must be 3-D, got shape {self.data.shape}")
        if len(self.names) != self.data.shape[0]:
            raise ValueError(
                f"{len(self.names)} band names for {self.data.shape[0]} bands"
            )
        if self.data.shape[1:] != self.grid.shape:
            raise ValueError(
                f"Band shape {self.data.shape[1:]} does not match grid {self.grid.shape}"
            )

    def band(self, name):
        return self.data[self.names.index(name)]

    def valid_mask(self):
        """True where every band has a finite value."""
        return np.all(np.isfinite(self.data), axis=0)
