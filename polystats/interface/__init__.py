from polystats.interface.rasterization import GeometryRasterizer, LabelBlock  # noqa

__all__ = ["GeometryRasterizer", "LabelBlock"]
