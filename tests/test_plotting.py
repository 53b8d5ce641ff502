"""Tests for the hexbin plots."""

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest
from matplotlib.collections import LineCollection

from hexcell import (
    HexPlot,
    plot_hexbin_bivariate,
    plot_hexbin_density,
    plot_hexbin_feature,
    plot_hexbin_feature_plus,
    plot_hexbin_gene,
    plot_hexbin_interact,
    plot_hexbin_meta,
)
from hexcell.plotting import CAT_FAIL


def n_hexagons(adata):
    return len(adata.uns["hexbin"]["hexbin_matrix"])


class TestDensity:

    def test_density(self, binned):
        hp = plot_hexbin_density(binned)
        assert isinstance(hp, HexPlot)
        assert len(hp.hb.get_offsets()) == n_hexagons(binned)
        assert hp.agg.sum() == 80
        assert hp.ax.get_title() == "Density"

    def test_offsets_match_hexbin_matrix(self, binned):
        hp = plot_hexbin_density(binned)
        matrix = binned.uns["hexbin"]["hexbin_matrix"]
        np.testing.assert_allclose(hp.hb.get_offsets(),
                                   matrix[["x", "y"]].values)

    def test_given_axes(self, binned):
        fig, ax = plt.subplots()
        hp = plot_hexbin_density(binned, ax=ax, title="cells")
        assert hp.ax is ax
        assert ax.get_title() == "cells"

    def test_colorbar(self, binned):
        hp = plot_hexbin_density(binned)
        assert hp.cax in hp.fig.axes

    def test_axes_labels(self, binned):
        hp = plot_hexbin_density(binned, showaxes=True)
        assert hp.ax.get_xlabel() == "PCA_1"
        assert hp.ax.get_ylabel() == "PCA_2"
        hp = plot_hexbin_density(binned, showaxes=True, xlab="a", ylab="b")
        assert hp.ax.get_xlabel() == "a"

    def test_mincnt(self, binned):
        hp = HexPlot(binned, mincnt=1000)
        hp.plot_density()
        grey = mpl.colors.to_rgba("lightgrey")
        for fc in hp.hb.get_facecolors():
            np.testing.assert_allclose(fc, grey)

    def test_no_hexbin(self, pbmc_small):
        with pytest.raises(ValueError):
            plot_hexbin_density(pbmc_small)


class TestMeta:

    def test_majority(self, binned):
        hp = plot_hexbin_meta(binned, "RNA_snn_res.1", "majority")
        assert hp.categorical
        assert len(hp.hb.get_facecolors()) == n_hexagons(binned)
        labels = [t.get_text() for t in hp.ax.get_legend().get_texts()]
        assert set(labels) <= {"0", "1", "2"}

    def test_palette(self, binned):
        palette = {"0": "red", "1": "green", "2": "blue"}
        hp = plot_hexbin_meta(binned, "RNA_snn_res.1", "majority",
                              palette=palette)
        allowed = [mpl.colors.to_rgba(c)
                   for c in list(palette.values()) + ["lightgrey"]]
        for fc in hp.hb.get_facecolors():
            assert tuple(fc) in allowed

    def test_mean(self, binned):
        hp = plot_hexbin_meta(binned, "nCount_RNA", "mean")
        assert not hp.categorical
        assert hp.ax.get_title() == "nCount_RNA (mean)"
        assert hp.cax is not None

    def test_subset(self, binned):
        hp = plot_hexbin_meta(binned, "nCount_RNA", "mean", subset="is_t")
        assert hp.agg.isna().any()
        assert len(hp.hb.get_facecolors()) == n_hexagons(binned)

    def test_missing_column(self, binned):
        with pytest.raises(KeyError):
            plot_hexbin_meta(binned, "celltype", "majority")

    def test_fracdiff(self, binned):
        hp = plot_hexbin_meta(binned, "RNA_snn_res.1", "majority",
                              fracdiff=1.0)
        obs = pd.DataFrame(dict(
            group=binned.obs["RNA_snn_res.1"].astype(str).values,
            hexbin=binned.uns["hexbin"]["cID"],
        ))
        mixed = obs.groupby("hexbin")["group"].nunique() > 1
        mixed = mixed.reindex(hp.agg.index)
        assert (hp.agg == CAT_FAIL).tolist() == mixed.tolist()

    def test_mode_on_labels(self, binned):
        binned.obs["celltype"] = np.where(
            binned.obs["is_t"], "T cell", "B cell"
        )
        hp = plot_hexbin_meta(binned, "celltype", "mode")
        assert hp.categorical
        assert hp.cax is None
        labels = [t.get_text() for t in hp.ax.get_legend().get_texts()]
        assert set(labels) <= {"T cell", "B cell"}

    def test_mode_on_numbers(self, binned):
        hp = plot_hexbin_meta(binned, "nCount_RNA", "mode")
        assert not hp.categorical
        assert hp.cax is not None


class TestColorLimits:

    def test_default_quantiles(self, binned):
        hp = plot_hexbin_meta(binned, "nCount_RNA", "mean")
        values = hp.agg.dropna()
        assert hp.hb.norm.vmin == pytest.approx(values.quantile(0.025))
        assert hp.hb.norm.vmax == pytest.approx(values.quantile(0.975))
        assert (hp.hb.norm.vmin, hp.hb.norm.vmax) != (
            values.min(), values.max()
        )

    def test_override(self, binned):
        hp = plot_hexbin_density(binned, vmin=0, vmax=10)
        assert hp.hb.norm.vmin == 0
        assert hp.hb.norm.vmax == 10


class TestFeature:

    def test_feature(self, binned):
        hp = plot_hexbin_feature(binned, "CD3E", "prop_0", type="counts")
        assert hp.ax.get_title() == "CD3E (prop_0)"
        assert len(hp.agg) == n_hexagons(binned)

    def test_other_modality(self, binned):
        hp = plot_hexbin_feature(binned, "CD3", "median", mod="ADT")
        assert hp.agg.notna().all()

    def test_gene_deprecated(self, binned):
        with pytest.warns(DeprecationWarning):
            plot_hexbin_gene(binned, "TALDO1", "mean")

    def test_gene_rna_only(self, binned):
        with pytest.warns(DeprecationWarning):
            hp = plot_hexbin_gene(binned, "TALDO1", "mean", mod="RNA")
        assert hp.agg.notna().all()
        with pytest.raises(ValueError, match="plot_hexbin_feature"):
            plot_hexbin_gene(binned, "CD3", "mean", mod="ADT")

    def test_feature_plus(self, binned):
        hp = plot_hexbin_feature_plus(binned, "RNA_snn_res.1", "CD3E",
                                      "mean", cluster_outline=True)
        lines = [c for c in hp.ax.collections
                 if isinstance(c, LineCollection)]
        assert len(lines) == 1
        assert len(lines[0].get_segments()) > 0
        assert len(hp.ax.texts) == 3


class TestBivariate:

    def test_feature_not_found(self, binned):
        with pytest.raises(KeyError):
            plot_hexbin_bivariate(binned, "TALDO0", type="counts",
                                  mod="RNA")

    def test_mod_not_found(self, binned):
        with pytest.raises(KeyError):
            plot_hexbin_bivariate(binned, "TALDO1", type="counts",
                                  mod="HTO")

    def test_no_hexbin(self, pbmc_small):
        with pytest.raises(ValueError):
            plot_hexbin_bivariate(pbmc_small, "TALDO1", type="counts",
                                  mod="RNA")

    def test_bivariate(self, binned):
        hp = plot_hexbin_bivariate(binned, "TALDO1", type="counts")
        assert set(hp.agg["mean_class"]) <= {0, 1, 2}
        assert set(hp.agg["density_class"]) <= {0, 1, 2}
        assert len(hp.hb.get_facecolors()) == n_hexagons(binned)

    def test_fan(self, binned):
        hp = plot_hexbin_bivariate(binned, "TALDO1", type="counts",
                                   fan=True)
        alpha = hp.hb.get_facecolors()[:, 3]
        assert alpha.min() >= 0.2
        assert alpha.max() == pytest.approx(1.0)


class TestInteract:

    def test_interact(self, binned):
        hp = plot_hexbin_interact(binned, ("CD3E", "CD3"), "corr_spearman",
                                  mod=("RNA", "ADT"))
        assert len(hp.agg) == n_hexagons(binned)
        assert "CD3E" in hp.ax.get_title()

    def test_unknown_interaction(self, binned):
        with pytest.raises(ValueError):
            plot_hexbin_interact(binned, ("CD3E", "TALDO1"), "pearson")
