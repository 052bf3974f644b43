from polystats.raster.source import RasterSource, RioRasterSource, ArrayRasterSource  # noqa isort:skip
from polystats.raster.nodata import NoDataMaskBuilder  # noqa

__all__ = ["RasterSource", "RioRasterSource", "ArrayRasterSource", "NoDataMaskBuilder"]
