"""Summaries of cell values per hexagon."""

import logging

import numpy as np
import pandas as pd
from scipy.stats import spearmanr
from sklearn.metrics import mutual_info_score

from hexcell.container import get_feature, get_hexbin, get_meta

lg = logging.getLogger(__name__)
lg.setLevel(logging.INFO)

ACTIONS = ("majority", "prop", "prop_0", "mode", "mean", "median")
CATEGORICAL_ACTIONS = ("majority",)
NUMERIC_ACTIONS = ("mean", "median")
INTERACTIONS = ("corr_spearman", "mi", "fc")

# minimal no of cells to calculate a correlation
MIN_CORR_CELLS = 3
MI_BINS = 10


def count_most(r, fracdiff=0.0):
    """
    Return the most abundant value

    Args:
        r (pd.Series): observations in this hexagon
        fracdiff (float): if the top two values differ by no more than
            this fraction of all observations, there is no majority

    Returns:
        ANY: most abundant value, or None
    """
    vc = r.value_counts()
    if len(vc) == 0:
        return None
    mx = vc.iloc[0]
    total = vc.sum()
    ml = vc.index[0]
    if len(vc) == 1:
        return ml
    m2 = vc.iloc[1]
    if ((mx - m2) / total) <= fracdiff:
        return None
    return ml


def _mode(r):
    vc = r.value_counts()
    if len(vc) == 0:
        return np.nan
    top = vc[vc == vc.iloc[0]]
    return min(top.index)


def _prop_0(r):
    return (r != 0).mean()


def make_hexbin_function(values, action, cID, no=None, fracdiff=0.0):
    """
    Summarise per cell values per hexagon.

    Args:
        values (array-like): one value per cell
        action (str): one of ACTIONS
        cID (array-like): hexagon id per cell
        no: the level used for `prop`
        fracdiff (float): ambiguity margin for `majority`

    Returns:
        pd.Series: value per hexagon id, sorted by id
    """
    if action not in ACTIONS:
        raise ValueError(
            f"Unknown action {action!r}, use one of {', '.join(ACTIONS)}"
        )

    data = pd.DataFrame(dict(v=np.asarray(values), _hb=np.asarray(cID)))
    grouped = data.groupby("_hb")["v"]

    if action == "majority":
        agg = grouped.agg(count_most, fracdiff=fracdiff)
    elif action == "prop":
        if no is None:
            raise ValueError("action 'prop' needs a level (no=)")
        levels = pd.unique(data["v"].dropna())
        if no not in levels:
            raise ValueError(f"Level {no!r} not found in values")
        agg = grouped.agg(lambda r: (r == no).mean())
    elif action == "prop_0":
        agg = grouped.agg(_prop_0)
    elif action == "mode":
        agg = grouped.agg(_mode)
    elif action == "mean":
        agg = grouped.mean()
    else:
        agg = grouped.median()

    agg.index.name = "hexbin"
    return agg.sort_index()


def _corr_spearman(x, y):
    if len(x) < MIN_CORR_CELLS or np.ptp(x) == 0 or np.ptp(y) == 0:
        return 0.0
    return spearmanr(x, y)[0]


def _mi(x, y):
    contingency, _, _ = np.histogram2d(x, y, bins=MI_BINS)
    return mutual_info_score(
        None, None, contingency=contingency.astype(np.int64)
    )


def _fc(x, y):
    return np.log2((x.mean() + 1) / (y.mean() + 1))


def make_hexbin_interact(x, y, interact, cID):
    """
    Relation of two features within each hexagon.

    Args:
        x, y (array-like): two per cell feature vectors
        interact (str): corr_spearman, mi or fc
        cID (array-like): hexagon id per cell

    Returns:
        pd.Series: value per hexagon id, sorted by id
    """
    funcs = dict(corr_spearman=_corr_spearman, mi=_mi, fc=_fc)
    if interact not in funcs:
        raise ValueError(
            f"Unknown interaction {interact!r}, use one of "
            f"{', '.join(INTERACTIONS)}"
        )
    func = funcs[interact]

    data = pd.DataFrame(
        dict(x=np.asarray(x, float), y=np.asarray(y, float),
             _hb=np.asarray(cID))
    )
    agg = data.groupby("_hb")[["x", "y"]].apply(
        lambda r: func(r["x"].values, r["y"].values)
    )
    agg.index.name = "hexbin"
    return agg.sort_index().astype(float)


#
# re-attach summaries to the hexbin matrix
#


def _subset_cells(hexbin, values, subset):
    cID = np.asarray(hexbin["cID"])
    if subset is None:
        return values, cID
    subset = np.asarray(subset, bool)
    if len(subset) != len(cID):
        raise ValueError("subset must have one value per cell")
    return values[subset], cID[subset]


def _attach(hexbin, agg, name):
    rv = hexbin["hexbin_matrix"].copy()
    # hexagons without (selected) cells keep their place
    rv[name] = agg.reindex(rv.index)
    return rv


def hexbin_density(adata, subset=None):
    """Number of (selected) cells per hexagon."""
    hexbin = get_hexbin(adata)
    _, cID = _subset_cells(hexbin, np.ones(adata.n_obs), subset)
    agg = pd.Series(cID).value_counts().sort_index()
    rv = _attach(hexbin, agg, "density")
    rv["density"] = rv["density"].fillna(0)
    return rv


def hexbin_meta(adata, col, action, no=None, subset=None, fracdiff=0.0):
    """Summary of a .obs column per hexagon."""
    hexbin = get_hexbin(adata)
    values = get_meta(adata, col).values
    # labels stay labels, only averages need numbers
    if action in NUMERIC_ACTIONS:
        values = np.asarray(values, float)
    values, cID = _subset_cells(hexbin, values, subset)
    agg = make_hexbin_function(values, action, cID, no=no, fracdiff=fracdiff)
    return _attach(hexbin, agg, f"{col}_{action}")


def hexbin_feature(
    adata, feature, action, mod="RNA", type=None, no=None, subset=None
):
    """Summary of a feature per hexagon."""
    hexbin = get_hexbin(adata)
    values = get_feature(adata, feature, mod=mod, type=type)
    values, cID = _subset_cells(hexbin, values, subset)
    agg = make_hexbin_function(values, action, cID, no=no)
    return _attach(hexbin, agg, f"{feature}_{action}")


def _pair(x, name):
    if isinstance(x, (str, type(None))):
        return (x, x)
    x = tuple(x)
    if len(x) != 2:
        raise ValueError(f"{name} needs two values")
    return x


def hexbin_interact(
    adata, feature, interact, mod=("RNA", "RNA"), type=(None, None),
    subset=None,
):
    """
    Relation of two features per hexagon.

    `feature` is a pair of feature names, `mod` and `type` are pairs or
    a single value used for both.
    """
    hexbin = get_hexbin(adata)
    feature = _pair(feature, "feature")
    mod = _pair(mod, "mod")
    type = _pair(type, "type")
    if feature[0] == feature[1] and mod[0] == mod[1]:
        lg.warning(f"Interaction of {feature[0]} with itself")

    x = get_feature(adata, feature[0], mod=mod[0], type=type[0])
    y = get_feature(adata, feature[1], mod=mod[1], type=type[1])
    xy, cID = _subset_cells(hexbin, np.column_stack([x, y]), subset)
    agg = make_hexbin_interact(xy[:, 0], xy[:, 1], interact, cID)
    return _attach(hexbin, agg, f"{feature[0]}_{feature[1]}_{interact}")
