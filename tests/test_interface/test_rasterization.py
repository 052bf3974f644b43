"""Test rasterization of polygon attributes into label images."""

from __future__ import annotations

import logging
import pickle

import numpy as np
import pytest
from shapely.geometry import box

from polystats.exceptions import InvalidBurnValueError, MissingAttributeError
from polystats.grid import Grid
from polystats.interface import GeometryRasterizer, LabelBlock
from polystats.tiling import compute_tiling, iter_tiles
from polystats.vector import GeometryRecord, GeometrySource

_BACKGROUND = np.iinfo(np.uint32).max


class TestGeometryRasterizer:
    def test_rasterize_class(self, grid: Grid, stripes: GeometrySource) -> None:
        """Check each polygon burns its class value, on all pixels whose center it contains."""

        block = GeometryRasterizer(grid, stripes, burn="class").rasterize()

        assert isinstance(block, LabelBlock)
        assert block.shape == (10, 10)
        assert block.labels.dtype == np.uint32
        assert np.all(block.labels[:5] == 1)
        assert np.all(block.labels[5:] == 2)
        assert np.all(block.covered)

    def test_rasterize_fid(self, grid: Grid, stripes: GeometrySource) -> None:

        rasterizer = GeometryRasterizer(grid, stripes, burn="fid")
        block = rasterizer.rasterize()

        assert np.array_equal(rasterizer.labels, [0, 1])
        assert np.all(block.labels[:5] == 0)
        assert np.all(block.labels[5:] == 1)

    def test_rasterize_background(self, grid: Grid) -> None:
        """Check uncovered pixels get the background value and are flagged as not covered."""

        records = [
            GeometryRecord(box(0, 8, 3, 10), fid=0, class_value=4),
            # Outside of the grid
            GeometryRecord(box(20, 20, 30, 30), fid=1, class_value=5),
        ]
        block = GeometryRasterizer(grid, records).rasterize()

        expected_covered = np.zeros((10, 10), dtype=bool)
        expected_covered[:2, :3] = True
        assert np.array_equal(block.covered, expected_covered)
        assert np.all(block.labels[expected_covered] == 4)
        assert np.all(block.labels[~expected_covered] == _BACKGROUND)
        assert not np.any(block.labels == 5)

        # A custom background value with a smaller label type
        rasterizer = GeometryRasterizer(grid, records, background_value=0, default_burn_value=1, label_dtype="uint8")
        block = rasterizer.rasterize()
        assert block.labels.dtype == np.uint8
        assert np.all(block.labels[~expected_covered] == 0)

    def test_rasterize_no_geometry(self, grid: Grid) -> None:

        rasterizer = GeometryRasterizer(grid, [])
        assert len(rasterizer) == 0
        block = rasterizer.rasterize_tile(row_off=2, col_off=2, height=3, width=4)
        assert block.shape == (3, 4)
        assert not np.any(block.covered)
        assert np.all(block.labels == _BACKGROUND)

    def test_draw_order(self, grid: Grid) -> None:
        """Check later geometries overwrite earlier ones on shared pixels."""

        records = [
            GeometryRecord(box(0, 0, 10, 10), fid=0, class_value=1),
            GeometryRecord(box(0, 0, 5, 5), fid=1, class_value=2),
        ]
        block = GeometryRasterizer(grid, records).rasterize()
        assert np.all(block.labels[5:, :5] == 2)
        assert np.sum(block.labels == 1) == 75

        # Reversing the order hides the second polygon
        block = GeometryRasterizer(grid, records[::-1]).rasterize()
        assert np.all(block.labels == 1)

    @pytest.mark.parametrize("tile_shape", [(1, 10), (4, 10), (3, 3), (1, 1)])  # type: ignore
    def test_rasterize_tile(self, grid: Grid, tile_shape: tuple[int, int]) -> None:
        """Check tiles assemble into the label image of the full grid."""

        records = [
            GeometryRecord(box(1.2, 1.7, 8.3, 6.4), fid=0, class_value=3),
            GeometryRecord(box(4.6, 3.4, 9.4, 9.3), fid=1, class_value=7),
            GeometryRecord(box(0, 0, 2.6, 2.6).union(box(7, 7, 8, 8)), fid=2, class_value=9),
        ]
        rasterizer = GeometryRasterizer(grid, records)
        full = rasterizer.rasterize()

        labels = np.zeros(grid.shape, dtype=np.uint32)
        covered = np.zeros(grid.shape, dtype=bool)
        for tile in iter_tiles(compute_tiling(tile_shape, grid.shape)):
            block = rasterizer.rasterize_tile(
                row_off=tile[0], col_off=tile[2], height=tile[1] - tile[0], width=tile[3] - tile[2]
            )
            labels[tile[0] : tile[1], tile[2] : tile[3]] = block.labels
            covered[tile[0] : tile[1], tile[2] : tile[3]] = block.covered

        assert np.array_equal(labels, full.labels)
        assert np.array_equal(covered, full.covered)

    def test_burn_values(self, grid: Grid, caplog: pytest.LogCaptureFixture) -> None:
        """Check string class values, and the default burn value of non-numeric ones."""

        records = [
            GeometryRecord(box(0, 5, 10, 10), fid=0, class_value="12"),
            GeometryRecord(box(0, 0, 10, 5), fid=1, class_value="forest"),
        ]
        with caplog.at_level(logging.WARNING):
            rasterizer = GeometryRasterizer(grid, records, default_burn_value=99)
        assert np.array_equal(rasterizer.labels, [12, 99])
        assert "non-numeric class value" in caplog.text

    def test_burn_errors(self, grid: Grid) -> None:
        """Check missing attributes and labels that cannot be represented are fatal."""

        with pytest.raises(MissingAttributeError, match="missing on feature 3"):
            GeometryRasterizer(grid, [GeometryRecord(box(0, 0, 1, 1), fid=3, class_value=None)])

        # The identifier pass does not need the class
        GeometryRasterizer(grid, [GeometryRecord(box(0, 0, 1, 1), fid=3, class_value=None)], burn="fid")

        with pytest.raises(InvalidBurnValueError, match="equal to the background"):
            GeometryRasterizer(grid, [GeometryRecord(box(0, 0, 1, 1), fid=0, class_value=int(_BACKGROUND))])
        with pytest.raises(InvalidBurnValueError, match="cannot be represented"):
            GeometryRasterizer(grid, [GeometryRecord(box(0, 0, 1, 1), fid=0, class_value=-2)])
        with pytest.raises(InvalidBurnValueError, match="cannot be represented"):
            GeometryRasterizer(grid, [GeometryRecord(box(0, 0, 1, 1), fid=0, class_value=300)], label_dtype="uint8")
        with pytest.raises(InvalidBurnValueError, match="Default burn value"):
            GeometryRasterizer(grid, [], background_value=0, default_burn_value=0)

        with pytest.raises(ValueError, match="'class' or 'fid'"):
            GeometryRasterizer(grid, [], burn="name")  # type: ignore
        with pytest.raises(ValueError, match="unsigned integer"):
            GeometryRasterizer(grid, [], label_dtype="int32")

    def test_pickle(self, grid: Grid, stripes: GeometrySource) -> None:
        """Check a rasterizer can be sent to worker processes, its spatial index being rebuilt there."""

        rasterizer = GeometryRasterizer(grid, stripes)
        rasterizer.rasterize()
        assert rasterizer._tree is not None

        unpickled = pickle.loads(pickle.dumps(rasterizer))
        assert unpickled._tree is None
        assert np.array_equal(unpickled.rasterize().labels, rasterizer.rasterize().labels)
