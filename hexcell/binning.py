"""Hexagon lattice - identical to the one matplotlib's hexbin draws."""

import logging
import math
from dataclasses import dataclass

import numpy as np
import pandas as pd

lg = logging.getLogger(__name__)
lg.setLevel(logging.INFO)

# (dcol, drow) on the doubled lattice - see HexGrid.grid_coords
DIRECTIONS = dict(
    right=(2, 0),
    topright=(1, 1),
    topleft=(-1, 1),
    left=(-2, 0),
    bottomleft=(-1, -1),
    bottomright=(1, -1),
)

# which vertices of the closed outline form the edge facing a neighbour
EDGES = dict(
    right=slice(0, 2),
    topright=slice(1, 3),
    topleft=slice(2, 4),
    left=slice(3, 5),
    bottomleft=slice(4, 6),
    bottomright=slice(5, 7),
)


def _nonsingular(vmin, vmax, expander=0.1, tiny=1e-15):
    """
    Widen a zero width or non finite range, as matplotlib's hexbin does.
    """
    if not (np.isfinite(vmin) and np.isfinite(vmax)):
        return -expander, expander

    if vmax < vmin:
        vmin, vmax = vmax, vmin

    maxabs = max(abs(vmin), abs(vmax))
    if maxabs < (1e6 / tiny) * np.finfo(float).tiny:
        vmin, vmax = -expander, expander
    elif vmax - vmin <= maxabs * tiny:
        if vmax == 0 and vmin == 0:
            vmin, vmax = -expander, expander
        else:
            vmin -= expander * abs(vmin)
            vmax += expander * abs(vmax)
    return vmin, vmax


@dataclass
class HexGrid:
    nx: int
    ny: int
    xmin: float
    xmax: float
    ymin: float
    ymax: float

    @classmethod
    def from_points(cls, x, y, gridsize):
        """
        Build the grid the way matplotlib does for linear axes.

        Does not work with logscale!
        """
        if np.iterable(gridsize):
            nx, ny = gridsize
        else:
            nx = gridsize
            ny = int(nx / math.sqrt(3))

        x = np.asarray(x, float)
        y = np.asarray(y, float)

        xmin, xmax = (x.min(), x.max()) if len(x) else (0, 1)
        ymin, ymax = (y.min(), y.max()) if len(y) else (0, 1)

        # to avoid issues with singular data, expand the min/max pairs
        xmin, xmax = _nonsingular(xmin, xmax, expander=0.1)
        ymin, ymax = _nonsingular(ymin, ymax, expander=0.1)

        # In the x-direction, the hexagons exactly cover the region from
        # xmin to xmax. Need some padding to avoid roundoff errors.
        padding = 1.0e-9 * (xmax - xmin)
        return cls(
            nx=int(nx),
            ny=int(ny),
            xmin=float(xmin - padding),
            xmax=float(xmax + padding),
            ymin=float(ymin),
            ymax=float(ymax),
        )

    @property
    def sx(self):
        return (self.xmax - self.xmin) / self.nx

    @property
    def sy(self):
        return (self.ymax - self.ymin) / self.ny

    @property
    def n1(self):
        "number of hexagons on the first lattice"
        return (self.nx + 1) * (self.ny + 1)

    @property
    def size(self):
        return self.n1 + self.nx * self.ny

    def bin_ids(self, x, y):
        """
        Hexagon id per point.

        Ids run over the first lattice, (nx + 1) x (ny + 1) hexagons,
        followed by the second, offset, lattice of nx x ny hexagons.
        This is the order in which matplotlib lays out its offsets.
        """
        nx1, ny1 = self.nx + 1, self.ny + 1
        nx2, ny2 = self.nx, self.ny

        # Positions in hexagon index coordinates.
        ix = (np.asarray(x, float) - self.xmin) / self.sx
        iy = (np.asarray(y, float) - self.ymin) / self.sy

        ix1 = np.round(ix).astype(int)
        iy1 = np.round(iy).astype(int)
        ix2 = np.floor(ix).astype(int)
        iy2 = np.floor(iy).astype(int)

        # -1 for points outside of the lattice
        i1 = np.where(
            (0 <= ix1) & (ix1 < nx1) & (0 <= iy1) & (iy1 < ny1),
            ix1 * ny1 + iy1,
            -1,
        )
        i2 = np.where(
            (0 <= ix2) & (ix2 < nx2) & (0 <= iy2) & (iy2 < ny2),
            ix2 * ny2 + iy2 + self.n1,
            -1,
        )

        d1 = (ix - ix1) ** 2 + 3.0 * (iy - iy1) ** 2
        d2 = (ix - ix2 - 0.5) ** 2 + 3.0 * (iy - iy2 - 0.5) ** 2
        bdist = d1 < d2

        return np.where(bdist, i1, i2)

    def _split(self, ids):
        ids = np.asarray(ids, int)
        second = ids >= self.n1
        local = np.where(second, ids - self.n1, ids)
        rows = np.where(second, self.ny, self.ny + 1)
        return second, local // rows, local % rows

    def centers(self, ids):
        """Hexagon centres (n x 2) in data coordinates."""
        second, ix, iy = self._split(ids)
        cx = self.xmin + (ix + 0.5 * second) * self.sx
        cy = self.ymin + (iy + 0.5 * second) * self.sy
        return np.column_stack([cx, cy])

    def grid_coords(self, ids):
        """
        Integer (col, row) coordinates on a doubled lattice.

        The second lattice sits on the odd positions, so a step to the
        right is col + 2 and the diagonal steps are col +/- 1, row +/- 1.
        """
        second, ix, iy = self._split(ids)
        return 2 * ix + second, 2 * iy + second

    def from_grid_coords(self, col, row):
        col = np.asarray(col, int)
        row = np.asarray(row, int)
        second = (col % 2) == 1
        ix = (col - second) // 2
        iy = (row - second) // 2
        nxs = np.where(second, self.nx, self.nx + 1)
        nys = np.where(second, self.ny, self.ny + 1)
        valid = (
            (col % 2 == row % 2)
            & (ix >= 0)
            & (iy >= 0)
            & (ix < nxs)
            & (iy < nys)
        )
        ids = np.where(second, self.n1 + ix * self.ny, ix * (self.ny + 1))
        return np.where(valid, ids + iy, -1)

    def neighbours(self, ids, direction):
        """Neighbour ids in `direction`, -1 where off the lattice."""
        dcol, drow = DIRECTIONS[direction]
        col, row = self.grid_coords(ids)
        return self.from_grid_coords(col + dcol, row + drow)

    def vertices(self):
        """Closed hexagon outline around (0, 0), as drawn by matplotlib."""
        polygon = [self.sx, self.sy / 3] * np.array(
            [[0.5, -0.5], [0.5, 0.5], [0.0, 1.0], [-0.5, 0.5],
             [-0.5, -0.5], [0.0, -1.0]]
        )
        return np.vstack([polygon, polygon[:1]])

    def to_dict(self):
        return dict(
            nx=self.nx, ny=self.ny,
            xmin=self.xmin, xmax=self.xmax,
            ymin=self.ymin, ymax=self.ymax,
        )


def binbin(x, y, gridsize):
    """
    Calculate bin ids for hexbin assignment.

    Args:
        x, y: point coordinates
        gridsize (int or (int, int)): number of hexagons in x (and y)

    Returns:
        np.ndarray: hexagon id per point
    """
    grid = HexGrid.from_points(x, y, gridsize)
    return grid.bin_ids(x, y)


def hexbin_matrix(grid, cID):
    """
    Centres and cell counts of all non-empty hexagons, sorted by id.
    """
    counts = pd.Series(cID).value_counts().sort_index()
    xy = grid.centers(counts.index.values)
    rv = pd.DataFrame(
        dict(x=xy[:, 0], y=xy[:, 1], number_of_cells=counts.values),
        index=counts.index.astype(int),
    )
    rv.index.name = "hexbin"
    return rv
