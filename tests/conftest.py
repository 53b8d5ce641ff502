"""Pytest configuration and fixtures."""

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest
from anndata import AnnData

from hexcell import make_hexbin


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


@pytest.fixture
def pbmc_small():
    """
    Small toy dataset: 80 cells, 20 genes, three well separated groups
    in PCA space, a count & logcount layer and an ADT modality.

    There is no UMAP.
    """
    rng = np.random.default_rng(42)
    n_cells, n_genes = 80, 20

    groups = np.repeat(["0", "1", "2"], [30, 30, 20])
    centers = {"0": (-5.0, 0.0), "1": (5.0, 0.0), "2": (0.0, 6.0)}
    xy = np.vstack([rng.normal(centers[g], 1.0) for g in groups])
    pca = np.column_stack([xy, rng.normal(size=(n_cells, 3))])
    tsne = xy[:, ::-1].copy() * 2

    counts = rng.poisson(1.0, size=(n_cells, n_genes)).astype(float)
    # CD3E only expressed in group 1
    counts[:, 1] = np.where(groups == "1", rng.poisson(5.0, n_cells), 0)
    logcounts = np.log1p(counts)

    genes = [f"GENE{i}" for i in range(n_genes)]
    genes[0] = "TALDO1"
    genes[1] = "CD3E"

    obs_names = [f"cell_{i}" for i in range(n_cells)]
    obs = pd.DataFrame(
        {
            "RNA_snn_res.1": pd.Categorical(groups),
            "nCount_RNA": counts.sum(axis=1),
            "is_t": groups == "1",
        },
        index=obs_names,
    )
    adt = pd.DataFrame(
        {
            "CD3": np.where(groups == "1", 20.0, 1.0)
            + rng.poisson(2.0, n_cells),
            "CD19": rng.poisson(5.0, n_cells).astype(float),
        },
        index=obs_names,
    )

    return AnnData(
        X=logcounts,
        obs=obs,
        var=pd.DataFrame(index=genes),
        layers={"counts": counts, "logcounts": logcounts},
        obsm={"X_pca": pca, "X_tsne": tsne, "ADT": adt},
    )


@pytest.fixture
def binned(pbmc_small):
    return make_hexbin(pbmc_small, 10, dimension_reduction="PCA")
