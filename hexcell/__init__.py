"""hexcell - hexbins for single cell embeddings

Too many cells in a UMAP make for a blob of overlapping dots. hexcell
bins the cells of an embedding into hexagons and plots a summary per
hexagon instead: the number of cells, the majority cell type, the mean
expression of a gene, the correlation of two features, ...

    >>> import hexcell as hc
    >>> hc.make_hexbin(adata, nbins=40, dimension_reduction="UMAP")
    >>> hc.plot_hexbin_density(adata)
    >>> hc.plot_hexbin_meta(adata, "leiden", "majority")
    >>> hc.plot_hexbin_feature(adata, "CD3E", "prop_0", type="counts")

"""

from hexcell.aggregate import (
    hexbin_density,
    hexbin_feature,
    hexbin_interact,
    hexbin_meta,
    make_hexbin_function,
    make_hexbin_interact,
)
from hexcell.binning import HexGrid, binbin
from hexcell.container import (
    get_embedding,
    get_feature,
    get_hexbin,
    make_hexbin,
    make_hexbin_label,
)
from hexcell.plotting import (
    HexPlot,
    plot_hexbin_bivariate,
    plot_hexbin_density,
    plot_hexbin_feature,
    plot_hexbin_feature_plus,
    plot_hexbin_gene,
    plot_hexbin_interact,
    plot_hexbin_meta,
)

__version__ = "0.1.0"
