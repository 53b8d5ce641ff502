"""
Get data in and out of AnnData objects.

The hexbin is stored in ``adata.uns["hexbin"]``:

- ``cID``: hexagon id for every cell
- ``hexbin_matrix``: centre & number of cells of every non-empty hexagon
- ``nbins``, ``dimension_reduction``, ``use_dims``, ``grid``: how it was made
"""

import logging

import numpy as np
import pandas as pd
from anndata import AnnData
from scipy import sparse

from hexcell.binning import HexGrid, hexbin_matrix

lg = logging.getLogger(__name__)
lg.setLevel(logging.INFO)

UNS_KEY = "hexbin"


def _check_adata(adata):
    if not isinstance(adata, AnnData):
        raise TypeError(
            f"Expected an AnnData object, got {type(adata).__name__}"
        )


def find_embedding(adata, dimension_reduction):
    """
    Find the obsm key for a dimension reduction.

    Tries the exact key first, then ``X_<name>`` case-insensitive,
    so that "PCA", "pca" and "X_pca" all find ``X_pca``.
    """
    if dimension_reduction in adata.obsm:
        return dimension_reduction

    wanted = dimension_reduction.lower()
    for key in adata.obsm.keys():
        k = key.lower()
        if k == wanted or k == "x_" + wanted:
            return key

    raise KeyError(
        f"Dimension reduction {dimension_reduction!r} not found "
        f"(available: {', '.join(adata.obsm.keys()) or 'none'})"
    )


def get_embedding(adata, dimension_reduction, use_dims=(0, 1)):
    """
    Return x, y coordinates and axis names of an embedding.

    Args:
        adata (AnnData): data
        dimension_reduction (str): name of the embedding in .obsm
        use_dims ((int, int)): the two (0-based) columns to use

    Returns:
        (np.ndarray, np.ndarray, str, str)
    """
    _check_adata(adata)
    key = find_embedding(adata, dimension_reduction)
    emb = adata.obsm[key]
    if isinstance(emb, pd.DataFrame):
        emb = emb.values
    emb = np.asarray(emb)

    use_dims = tuple(use_dims)
    if len(use_dims) != 2 or use_dims[0] == use_dims[1]:
        raise ValueError("use_dims needs two different dimensions")
    for d in use_dims:
        if not 0 <= d < emb.shape[1]:
            raise ValueError(
                f"Dimension {d} out of range for {key} "
                f"({emb.shape[1]} dimensions)"
            )

    # X_umap -> UMAP_1
    name = key[2:] if key.lower().startswith("x_") else key
    name = name.upper()
    x_name = f"{name}_{use_dims[0] + 1}"
    y_name = f"{name}_{use_dims[1] + 1}"
    return (
        emb[:, use_dims[0]].astype(float),
        emb[:, use_dims[1]].astype(float),
        x_name,
        y_name,
    )


def make_hexbin(adata, nbins=80, dimension_reduction="UMAP", use_dims=(0, 1)):
    """
    Bin the cells of an embedding into hexagons.

    Args:
        adata (AnnData): data, modified in place
        nbins (int): number of hexagons in the x direction
        dimension_reduction (str): embedding to use
        use_dims ((int, int)): the two embedding columns to bin on

    Returns:
        AnnData: the same object, with ``.uns["hexbin"]`` set
    """
    _check_adata(adata)
    x, y, x_name, y_name = get_embedding(
        adata, dimension_reduction, use_dims
    )

    grid = HexGrid.from_points(x, y, nbins)
    cID = grid.bin_ids(x, y)
    matrix = hexbin_matrix(grid, cID)

    adata.uns[UNS_KEY] = dict(
        cID=cID,
        hexbin_matrix=matrix,
        nbins=nbins,
        dimension_reduction=find_embedding(adata, dimension_reduction),
        use_dims=list(use_dims),
        grid=grid.to_dict(),
    )
    lg.info(
        f"Binned {adata.n_obs} cells into {len(matrix)} hexagons "
        f"({x_name} x {y_name})"
    )
    return adata


def get_hexbin(adata):
    """Return the stored hexbin, complain if there is none."""
    _check_adata(adata)
    hexbin = adata.uns.get(UNS_KEY)
    if hexbin is None:
        raise ValueError("No hexbin found - run make_hexbin first")
    if len(hexbin["cID"]) != adata.n_obs:
        raise ValueError(
            f"Hexbin was made for {len(hexbin['cID'])} cells, object has "
            f"{adata.n_obs} - rerun make_hexbin"
        )
    return hexbin


def get_grid(adata):
    return HexGrid(**get_hexbin(adata)["grid"])


def get_meta(adata, col):
    """Per cell metadata column as a Series."""
    _check_adata(adata)
    if col not in adata.obs.columns:
        raise KeyError(f"Column {col!r} not found in .obs")
    return adata.obs[col]


def _column(matrix, i):
    col = matrix[:, i]
    if sparse.issparse(col):
        col = col.toarray()
    return np.asarray(col).ravel()


def get_feature(adata, feature, mod="RNA", type=None):
    """
    Per cell values of a single feature.

    Args:
        adata (AnnData): data
        feature (str): gene / feature name
        mod (str): modality; "RNA" uses the main matrix, anything else
            is looked up as a DataFrame in .obsm (e.g. "ADT")
        type (str): for RNA; None or "X" for .X, otherwise a layer

    Returns:
        np.ndarray
    """
    _check_adata(adata)
    if mod == "RNA":
        if type is None or type == "X":
            matrix = adata.X
        elif type in adata.layers:
            matrix = adata.layers[type]
        else:
            raise KeyError(
                f"Layer {type!r} not found "
                f"(available: {', '.join(adata.layers.keys()) or 'none'})"
            )
        if feature not in adata.var_names:
            raise KeyError(f"Feature {feature!r} not found in {mod}")
        i = adata.var_names.get_loc(feature)
        return _column(matrix, i).astype(float)

    if mod not in adata.obsm:
        raise KeyError(f"Modality {mod!r} not found")
    data = adata.obsm[mod]
    if not isinstance(data, pd.DataFrame):
        raise KeyError(
            f"Modality {mod!r} has no feature names - store it as "
            "a DataFrame in .obsm"
        )
    if type is not None:
        lg.warning(f"Ignoring type={type!r} for modality {mod!r}")
    if feature not in data.columns:
        raise KeyError(f"Feature {feature!r} not found in {mod}")
    return data[feature].values.astype(float)


def make_hexbin_label(adata, col):
    """
    Label positions for the groups in a metadata column.

    Returns:
        pd.DataFrame: one row per group, x & y are the median
            embedding position of the group's cells.
    """
    hexbin = get_hexbin(adata)
    groups = get_meta(adata, col)
    x, y, _, _ = get_embedding(
        adata, hexbin["dimension_reduction"], hexbin["use_dims"]
    )
    df = pd.DataFrame(dict(x=x, y=y, label=groups.values))
    rv = (
        df.groupby("label", observed=True)[["x", "y"]]
        .median()
        .reset_index()
    )
    return rv[["x", "y", "label"]]
