"""
Plot hexbin summaries.

All plots go through HexPlot; the decorators below take care of the
common parts (axes, spines, borders, low count hexagons, colorbars,
cluster outlines, subsetting). Every option set on the HexPlot can be
overridden in a single plot call.
"""

import logging
import warnings

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.collections import LineCollection
from matplotlib.patches import Patch
from mpl_toolkits.axes_grid1 import make_axes_locatable
from pandas.api.types import is_numeric_dtype

from hexcell.aggregate import (
    CATEGORICAL_ACTIONS,
    hexbin_density,
    hexbin_feature,
    hexbin_interact,
    hexbin_meta,
)
from hexcell.binning import EDGES
from hexcell.container import (
    get_embedding,
    get_grid,
    get_hexbin,
    get_meta,
    make_hexbin_label,
)

lg = logging.getLogger(__name__)
lg.setLevel(logging.INFO)

SUBSET_FAIL = "SUBSETT@!" * 4
CAT_FAIL = "CATCAT@!" * 4

# 3x3 bivariate palette; rows: density low -> high, cols: mean low -> high
BIVARIATE_PALETTE = [
    ["#e8e8e8", "#ace4e4", "#5ac8c8"],
    ["#dfb0d6", "#a5add3", "#5698b9"],
    ["#be64ac", "#8c62aa", "#3b4994"],
]

#
# Decorators!
#


def mincnt(method):
    """
    Grey out all hexagons with <= mincnt (selected) cells.
    """

    def decorator(self, *args, **kwargs):
        mincnt = kwargs.pop("mincnt", self.mincnt)
        mincnt_fail_color = kwargs.pop(
            "mincnt_fail_color", self.mincnt_fail_color
        )

        method(self, *args, **kwargs)
        if mincnt > 0:
            cellcnt = hexbin_density(self.adata, subset=self.subset_mask)
            self.paint(
                cellcnt["density"].values <= mincnt, mincnt_fail_color
            )

    return decorator


def add_colorbar(method):
    def decorator(self, *args, **kwargs):
        colorbar = kwargs.pop("colorbar", self.colorbar)

        method(self, *args, **kwargs)
        if colorbar and not self.categorical:
            divider = make_axes_locatable(self.ax)
            self.cax = divider.append_axes("right", size="5%", pad=0.05)
            mappable = mpl.cm.ScalarMappable(
                norm=self.hb.norm, cmap=self.hb.cmap
            )
            self.fig.colorbar(mappable, cax=self.cax, orientation="vertical")

    return decorator


def add_legend(method):
    def decorator(self, *args, **kwargs):
        legend = kwargs.pop("legend", self.legend)
        legend_fontsize = kwargs.pop("legend_fontsize", 7)

        method(self, *args, **kwargs)
        if legend and self.categorical and self.palette_used:
            handles = [
                Patch(facecolor=col, edgecolor="k", linewidth=0.3,
                      label=str(cat))
                for cat, col in self.palette_used.items()
            ]
            self.ax.legend(
                handles=handles,
                loc="center left",
                bbox_to_anchor=(1, 0.5),
                fontsize=legend_fontsize,
                frameon=False,
            )

    return decorator


def addborder(method):
    def decorator(self, *args, **kwargs):
        border_x = kwargs.pop("border_x", self.border_x)
        border_y = kwargs.pop("border_y", self.border_y)
        method(self, *args, **kwargs)
        xmin, xmax = self.ax.get_xlim()
        ymin, ymax = self.ax.get_ylim()
        xd = border_x * (xmax - xmin)
        yd = border_y * (ymax - ymin)
        self.ax.set_xlim(xmin - xd, xmax + xd)
        self.ax.set_ylim(ymin - yd, ymax + yd)

    return decorator


def ensure_ax(method):
    def decorator(self, *args, **kwargs):
        ax = kwargs.pop("ax", None)

        if ax is None:
            self.fig = plt.figure(figsize=self.figsize, dpi=self.dpi)
            self.ax = self.fig.gca()
        else:
            self.ax = ax
            self.fig = self.ax.figure

        method(self, *args, **kwargs)

    return decorator


def clean_spines(method):
    def decorator(self, *args, **kwargs):
        showaxes = self.getarg(kwargs, "showaxes", self.showaxes)
        title = kwargs.pop("title", None)
        xlab = kwargs.pop("xlab", None)
        ylab = kwargs.pop("ylab", None)

        method(self, *args, **kwargs)

        ax = self.ax
        if not showaxes:
            ax.get_xaxis().set_visible(False)
            ax.get_yaxis().set_visible(False)
            ax.spines["left"].set_visible(False)
            ax.spines["bottom"].set_visible(False)
        else:
            ax.set_xlabel(self.x_name if xlab is None else xlab)
            ax.set_ylabel(self.y_name if ylab is None else ylab)

        if title is None:
            title = self.title
        if title:
            ax.set_title(title)

        ax.grid(False)
        ax.spines["right"].set_visible(False)
        ax.spines["top"].set_visible(False)

    return decorator


def subset(method):
    def decorator(self, *args, **kwargs):
        subset = kwargs.pop("subset", self.subset)
        if subset is None:
            self.subset_mask = None
        elif isinstance(subset, str):
            # name of a boolean .obs column
            self.subset_mask = get_meta(self.adata, subset).values.astype(
                bool
            )
        else:
            self.subset_mask = np.asarray(subset, bool)
        method(self, *args, **kwargs)

    return decorator


def cluster_marker_lines(method):
    def decorator(self, *args, **kwargs):
        cluster_show = kwargs.pop("cluster_show", self.cluster_show)
        cluster_linecolor = kwargs.pop(
            "cluster_linecolor", self.cluster_linecolor
        )
        cluster_outline = kwargs.pop("cluster_outline", self.cluster_outline)
        cluster_linewidth = kwargs.pop(
            "cluster_linewidth", self.cluster_linewidth
        )
        cluster_labels = kwargs.pop("cluster_labels", self.cluster_labels)

        method(self, *args, **kwargs)

        if cluster_show is None:
            return

        cats = self.find_categories(cluster_show).fillna(CAT_FAIL)
        ids = cats.index.values
        centers = self.grid.centers(ids)
        vertices = self.grid.vertices()

        # 0: same group, 1: no neighbour, 2: other group
        rcutoff = 1 if cluster_outline else 2
        segments = []
        for direction, vsel in EDGES.items():
            nb = pd.Series(self.grid.neighbours(ids, direction))
            nbcat = cats.reindex(nb.values).values
            border = np.where(
                pd.isna(nbcat), 1, np.where(nbcat == cats.values, 0, 2)
            )
            for i in np.nonzero(border >= rcutoff)[0]:
                segments.append(vertices[vsel] + centers[i])

        self.ax.add_collection(
            LineCollection(
                segments,
                colors=cluster_linecolor,
                linewidths=cluster_linewidth,
                zorder=10,
            )
        )

        if cluster_labels:
            labels = make_hexbin_label(self.adata, cluster_show)
            for _, row in labels.iterrows():
                self.ax.text(
                    row["x"], row["y"], str(row["label"]),
                    ha="center", va="center", fontsize=7, zorder=11,
                    bbox=dict(boxstyle="round,pad=0.2", fc="white",
                              ec="none", alpha=0.7),
                )

    return decorator


def supadec(method):
    """
    Combine a set of common decorators

    Args:
        method: a method of this object

    Returns:
        method: decorated methods
    """
    return cluster_marker_lines(
        mincnt(addborder(clean_spines(ensure_ax(subset(method)))))
    )


class HexPlot:
    """
    Plot summaries of an AnnData object with a hexbin (see make_hexbin).

    Args:
        adata (AnnData): data, with a hexbin
        figsize, dpi: size of newly created figures
        colorbar (bool): add a colorbar to numerical plots
        legend (bool): add a legend to categorical plots
        cmap_cat (str): colormap for categories
        palette (dict): category to color map
        mincnt (int): grey out hexagons with <= mincnt cells
        border_x, border_y (float): extra space around the plot
        showaxes (bool): show axes & labels
        cluster_show (str): .obs column to outline groups of
        subset: boolean mask (or .obs column name) of cells to summarise
        plotargs: passed on to ax.hexbin
    """

    def __init__(
        self,
        adata,
        figsize=(5, 4),
        dpi=120,
        colorbar=True,
        legend=True,
        cmap_cat="Set2",
        mincnt=0,
        palette=None,
        border_x=0.0,
        border_y=0.0,
        showaxes=False,
        cluster_show=None,
        cluster_linecolor="black",
        cluster_outline=False,
        cluster_linewidth=1.5,
        cluster_labels=True,
        cat_fail_color="lightgrey",
        mincnt_fail_color="lightgrey",
        subset_fail_color="lightgrey",
        subset=None,
        **plotargs
    ):

        # core -
        self.adata = adata
        self.hexbin = get_hexbin(adata)
        self.grid = get_grid(adata)
        x, y, self.x_name, self.y_name = get_embedding(
            adata, self.hexbin["dimension_reduction"], self.hexbin["use_dims"]
        )

        # plotting
        self.figsize = figsize
        self.dpi = dpi
        self.showaxes = showaxes
        self.title = None

        # draw cluster lines
        self.cluster_show = cluster_show
        self.cluster_linecolor = cluster_linecolor
        self.cluster_outline = cluster_outline
        self.cluster_linewidth = cluster_linewidth
        self.cluster_labels = cluster_labels

        # categorical colors
        self.cmap_cat = cmap_cat
        self.palette = palette
        self.cat_fail_color = cat_fail_color
        self.legend = legend

        self.border_x = border_x
        self.border_y = border_y

        # filter min counts
        self.mincnt = mincnt
        self.mincnt_fail_color = mincnt_fail_color

        # add a colorbar?
        self.colorbar = colorbar

        # the hexagons are always those of the full dataset, the subset
        # only decides which cells are summarised
        self.subset = subset
        self.subset_fail_color = subset_fail_color
        self.subset_mask = None

        # set by the plot functions
        self.hb = None
        self.cax = None
        self.agg = None
        self.categorical = False
        self.palette_used = None

        # arguments for hexbin
        self.plotargs = plotargs
        for k, v in dict(
            linewidths=0.25,
            edgecolors="black",
            cmap="YlGnBu",
        ).items():
            self.plotargs[k] = self.plotargs.get(k, v)

        # these must match make_hexbin
        self.plotargs["gridsize"] = self.hexbin["nbins"]
        self.plotargs["mincnt"] = 1
        self.plotargs["x"] = x
        self.plotargs["y"] = y

    #
    # Helper functions
    #

    @classmethod
    def ensure_rgba(cls, x):
        if isinstance(x, str):
            return mpl.colors.to_rgba(x)
        x = tuple(x)
        if len(x) == 3:
            return (x[0], x[1], x[2], 1)
        else:
            return x

    def getarg(self, kwargs, key, default):
        rv = None
        found_rv = False

        if key in self.plotargs:
            rv = self.plotargs[key]
            found_rv = True
            del self.plotargs[key]

        if key in kwargs:
            rv = kwargs[key]
            found_rv = True
            del kwargs[key]

        if found_rv:
            return rv
        else:
            return default

    def draw_hexbin(self, kwargs):
        """Draw the hexagons; returns (vmin, vmax) taken from kwargs."""
        vmin = kwargs.pop("vmin", None)
        vmax = kwargs.pop("vmax", None)
        pa = dict(self.plotargs)
        pa.update(kwargs)
        self.hb = self.ax.hexbin(**pa)
        return vmin, vmax

    def paint(self, mask, color):
        """Set the face color of the hexagons in mask."""
        mask = np.asarray(mask, bool)
        if not mask.any():
            return
        array = self.hb.get_array()
        if array is not None:
            facecolors = self.hb.to_rgba(array)
        else:
            facecolors = np.array(self.hb.get_facecolors())
        facecolors[mask] = self.ensure_rgba(color)
        self.hb.set(array=None, facecolors=facecolors)

    def apply_agg(self, agg, vmin=None, vmax=None):
        """
        Color the hexagons by a numerical value per hexagon id.

        Hexagons without a value (no cells in the subset) get the
        subset_fail_color.
        """
        agg = agg.reindex(self.hexbin["hexbin_matrix"].index).astype(float)
        self.agg = agg
        self.categorical = False
        missing = agg.isna().values
        values = agg.dropna()

        if vmin is None:
            vmin = values.quantile(0.025) if len(values) else 0
        if vmax is None:
            vmax = values.quantile(0.975) if len(values) else 1

        self.hb.set(array=agg.fillna(vmin).values)
        self.hb.set_norm(mpl.colors.Normalize(vmin=vmin, vmax=vmax))
        self.paint(missing, self.subset_fail_color)

    def get_palette(self, values, palette=None, cats=None):
        if palette is None:
            palette = self.palette
        if palette is None:
            if cats is None:
                cats = sorted(pd.unique(values.dropna()))
            cmap = plt.colormaps.get(self.cmap_cat)
            palette = {x: cmap(i) for (i, x) in enumerate(cats)}
        return dict(palette)

    def apply_cat(self, agg, palette, **kwargs):
        subset_fail_color = kwargs.pop(
            "subset_fail_color", self.subset_fail_color
        )
        cat_fail_color = kwargs.pop("cat_fail_color", self.cat_fail_color)

        matrix = self.hexbin["hexbin_matrix"]
        agg = agg.reindex(matrix.index).astype(object)
        # no cells in the subset vs. no clear majority
        if self.subset_mask is not None:
            selected = hexbin_density(self.adata, subset=self.subset_mask)
            agg[selected["density"].values == 0] = SUBSET_FAIL
        agg = agg.where(agg.notna(), CAT_FAIL)
        self.agg = agg
        self.categorical = True

        present = [x for x in palette if x in set(agg.values)]
        self.palette_used = {x: palette[x] for x in present}

        # ensure we can fail
        palette[CAT_FAIL] = cat_fail_color
        palette[SUBSET_FAIL] = subset_fail_color
        missing = set(agg.values) - set(palette)
        if missing:
            raise KeyError(
                f"No color for {', '.join(map(str, missing))} in palette"
            )
        facecolors = [self.ensure_rgba(palette[x]) for x in agg.values]
        self.hb.set(array=None, facecolors=facecolors)

    def find_categories(self, C, fracdiff=0.0):
        col = f"{C}_majority"
        return hexbin_meta(self.adata, C, "majority", fracdiff=fracdiff)[col]

    def _plot_summary(self, summary, name, categorical, palette=None,
                      cats=None, **kwargs):
        catargs = {
            k: kwargs.pop(k)
            for k in ("subset_fail_color", "cat_fail_color")
            if k in kwargs
        }
        vmin, vmax = self.draw_hexbin(kwargs)
        if categorical:
            palette = self.get_palette(summary[name], palette, cats)
            self.apply_cat(summary[name], palette, **catargs)
        else:
            self.apply_agg(summary[name], vmin=vmin, vmax=vmax)

    #
    # Plotting functions
    #

    @add_colorbar
    @supadec
    def plot_density(self, **kwargs):
        self.title = "Density"
        vmin, vmax = self.draw_hexbin(kwargs)
        agg = hexbin_density(self.adata, subset=self.subset_mask)
        self.apply_agg(agg["density"], vmin=vmin, vmax=vmax)

    @add_legend
    @add_colorbar
    @supadec
    def plot_meta(self, col, action="majority", no=None, palette=None,
                  fracdiff=0.0, **kwargs):
        """
        Plot a summary of a .obs column

        Args:
            col (str): column in .obs
            action (str): majority, prop, prop_0, mode, mean or median
            no: level for action prop
            palette (dict): category to color map
            fracdiff (float): min fraction difference for a majority

        Returns:
            None - the hexbin collection is self.hb
        """
        self.title = f"{col} ({action})"
        summary = hexbin_meta(
            self.adata, col, action, no=no, subset=self.subset_mask,
            fracdiff=fracdiff,
        )
        values = get_meta(self.adata, col)
        # the mode of labels is a label
        categorical = action in CATEGORICAL_ACTIONS or (
            action == "mode" and not is_numeric_dtype(values.dtype)
        )
        cats = None
        if isinstance(values.dtype, pd.CategoricalDtype):
            cats = list(values.cat.categories)
        elif categorical:
            cats = sorted(pd.unique(values.dropna()))
        self._plot_summary(
            summary, f"{col}_{action}", categorical,
            palette=palette, cats=cats, **kwargs
        )

    @add_legend
    @add_colorbar
    @supadec
    def plot_feature(self, feature, action="mean", mod="RNA", type=None,
                     no=None, palette=None, **kwargs):
        self.title = f"{feature} ({action})"
        summary = hexbin_feature(
            self.adata, feature, action, mod=mod, type=type, no=no,
            subset=self.subset_mask,
        )
        self._plot_summary(
            summary, f"{feature}_{action}", action in CATEGORICAL_ACTIONS,
            palette=palette, **kwargs
        )

    @add_colorbar
    @supadec
    def plot_interact(self, feature, interact="corr_spearman",
                      mod=("RNA", "RNA"), type=(None, None), **kwargs):
        summary = hexbin_interact(
            self.adata, feature, interact, mod=mod, type=type,
            subset=self.subset_mask,
        )
        name = summary.columns[-1]
        self.title = name.replace("_", " ")
        vmin, vmax = self.draw_hexbin(kwargs)
        self.apply_agg(summary[name], vmin=vmin, vmax=vmax)

    @add_colorbar
    @supadec
    def plot_bivariate(self, feature, mod="RNA", type=None, fan=False,
                       key=True, **kwargs):
        """
        Density and mean feature value in one plot.

        With fan=False both are split in tertiles and colored with a
        3x3 bivariate palette (a key is drawn in the corner). With
        fan=True the color shows the mean and the opacity the density.
        """
        self.title = f"{feature} & density"
        summary = hexbin_feature(
            self.adata, feature, "mean", mod=mod, type=type,
            subset=self.subset_mask,
        )
        density = hexbin_density(self.adata, subset=self.subset_mask)
        mean = summary[f"{feature}_mean"]
        dens = density["density"].astype(float)
        vmin, vmax = self.draw_hexbin(kwargs)

        if fan:
            self.apply_agg(mean, vmin=vmin, vmax=vmax)
            facecolors = np.array(self.hb.get_facecolors())
            if self.hb.get_array() is not None:
                facecolors = self.hb.to_rgba(self.hb.get_array())
            alpha = 0.2 + 0.8 * dens.values / max(dens.max(), 1)
            facecolors[:, 3] = alpha
            self.hb.set(array=None, facecolors=facecolors)
            self.agg = pd.DataFrame(dict(mean=mean, density=dens))
            return

        def tertile(s):
            valid = s.dropna()
            if len(valid) == 0:
                return pd.Series(0, index=s.index)
            q = valid.quantile([1 / 3, 2 / 3]).values
            return pd.Series(
                np.digitize(s.fillna(valid.min()), q, right=True),
                index=s.index,
            )

        drow = tertile(dens)
        mcol = tertile(mean)
        facecolors = [
            self.ensure_rgba(BIVARIATE_PALETTE[r][c])
            for r, c in zip(drow, mcol)
        ]
        self.hb.set(array=None, facecolors=facecolors)
        self.categorical = True
        self.palette_used = None
        self.agg = pd.DataFrame(
            dict(mean=mean, density=dens, mean_class=mcol,
                 density_class=drow)
        )
        self.paint(mean.isna().values, self.subset_fail_color)

        if key:
            kax = self.ax.inset_axes([0.0, 0.0, 0.18, 0.18])
            kax.imshow(
                [[mpl.colors.to_rgb(c) for c in row]
                 for row in BIVARIATE_PALETTE],
                origin="lower",
            )
            kax.set_xticks([])
            kax.set_yticks([])
            kax.set_xlabel(feature, fontsize=6, labelpad=1)
            kax.set_ylabel("density", fontsize=6, labelpad=1)
            self.kax = kax

    def plot_feature_plus(self, col, feature, action="mean", mod="RNA",
                          type=None, **kwargs):
        """Feature plot with the groups of `col` outlined & labelled."""
        kwargs.setdefault("cluster_show", col)
        self.plot_feature(feature, action, mod=mod, type=type, **kwargs)


#
# Functional interface
#


def plot_hexbin_density(adata, title=None, xlab=None, ylab=None, ax=None,
                        **kwargs):
    """Plot the number of cells per hexagon."""
    hp = HexPlot(adata)
    hp.plot_density(title=title, xlab=xlab, ylab=ylab, ax=ax, **kwargs)
    return hp


def plot_hexbin_meta(adata, col, action, no=None, title=None, xlab=None,
                     ylab=None, ax=None, **kwargs):
    """Plot a summary of a .obs column per hexagon."""
    hp = HexPlot(adata)
    hp.plot_meta(col, action, no=no, title=title, xlab=xlab, ylab=ylab,
                 ax=ax, **kwargs)
    return hp


def plot_hexbin_feature(adata, feature, action="mean", mod="RNA", type=None,
                        title=None, xlab=None, ylab=None, ax=None, **kwargs):
    """Plot a summary of a feature (gene, protein, ...) per hexagon."""
    hp = HexPlot(adata)
    hp.plot_feature(feature, action, mod=mod, type=type, title=title,
                    xlab=xlab, ylab=ylab, ax=ax, **kwargs)
    return hp


def plot_hexbin_gene(adata, gene, action="mean", type=None, **kwargs):
    """Deprecated, use plot_hexbin_feature. Only plots RNA features."""
    mod = kwargs.pop("mod", "RNA")
    if mod != "RNA":
        raise ValueError(
            f"plot_hexbin_gene only plots RNA, use plot_hexbin_feature "
            f"for mod={mod!r}"
        )
    warnings.warn(
        "plot_hexbin_gene is deprecated, use plot_hexbin_feature",
        DeprecationWarning,
        stacklevel=2,
    )
    return plot_hexbin_feature(
        adata, gene, action, mod="RNA", type=type, **kwargs
    )


def plot_hexbin_bivariate(adata, feature, mod="RNA", type=None, fan=False,
                          title=None, xlab=None, ylab=None, ax=None,
                          **kwargs):
    """Plot density and mean feature value per hexagon together."""
    hp = HexPlot(adata)
    hp.plot_bivariate(feature, mod=mod, type=type, fan=fan, title=title,
                      xlab=xlab, ylab=ylab, ax=ax, **kwargs)
    return hp


def plot_hexbin_interact(adata, feature, interact="corr_spearman",
                         mod=("RNA", "RNA"), type=(None, None), title=None,
                         xlab=None, ylab=None, ax=None, **kwargs):
    """Plot the relation between two features per hexagon."""
    hp = HexPlot(adata)
    hp.plot_interact(feature, interact, mod=mod, type=type, title=title,
                     xlab=xlab, ylab=ylab, ax=ax, **kwargs)
    return hp


def plot_hexbin_feature_plus(adata, col, feature, action="mean", mod="RNA",
                             type=None, title=None, xlab=None, ylab=None,
                             ax=None, **kwargs):
    """Plot a feature with the groups in `col` outlined."""
    hp = HexPlot(adata)
    hp.plot_feature_plus(col, feature, action, mod=mod, type=type,
                         title=title, xlab=xlab, ylab=ylab, ax=ax, **kwargs)
    return hp
