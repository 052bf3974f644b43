# Copyright (c) 2026 polystats developers
#
# This file is part of the polystats project.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
#
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Statistics of the valid raster pixels inside each polygon and each polygon class."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from polystats._config import StreamingConfig
from polystats.exceptions import InvalidCRSError
from polystats.grid import compare_proj
from polystats.interface.rasterization import GeometryRasterizer
from polystats.io.writers import StatisticsSink
from polystats.multiproc.cluster import MultiprocConfig
from polystats.raster.nodata import NoDataMaskBuilder
from polystats.raster.source import RasterSource
from polystats.stats.accumulator import StreamingLabelStatisticsAccumulator
from polystats.stats.population import LabelPopulationMap
from polystats.vector.source import GeometryRecord, GeometrySource


@dataclass(frozen=True)
class PolygonClassStatistics:
    """
    Statistics of the two passes over a raster.

    :param samples_per_class: Population map keyed by class value.
    :param samples_per_vector: Population map keyed by feature identifier.
    """

    samples_per_class: LabelPopulationMap
    samples_per_vector: LabelPopulationMap

    def as_dict(self) -> dict[str, LabelPopulationMap]:
        """Population maps by their statistic name."""
        return {"samplesPerClass": self.samples_per_class, "samplesPerVector": self.samples_per_vector}


def _check_geometries_crs(source: RasterSource, geometries: GeometrySource | Sequence[GeometryRecord]) -> None:
    """Check that geometries are expressed in the CRS of the raster, when both declare one."""
    geoms_crs = getattr(geometries, "crs", None)
    if geoms_crs is None or source.grid.crs is None:
        return
    if not compare_proj(geoms_crs, source.grid.crs):
        raise InvalidCRSError(
            f"Geometries CRS {geoms_crs} differs from raster CRS {source.grid.crs}, reproject them first."
        )


def compute_polygon_class_statistics(
    source: RasterSource,
    geometries: GeometrySource | Sequence[GeometryRecord],
    config: StreamingConfig | None = None,
    mp_config: MultiprocConfig | None = None,
    sink: StatisticsSink | None = None,
) -> PolygonClassStatistics:
    """
    Compute the number of valid pixels, and their mean and variance per band, inside each polygon (identifier pass)
    and inside each class of polygons (class pass).

    Both passes use the same validity mask and the same tiling, so that the count of a polygon is equal to the sum of
    its contributions to the counts of classes.

    :param source: Raster source.
    :param geometries: Polygons in the CRS of the raster, in draw order.
    :param config: Configuration of the passes. Defaults to the global configuration.
    :param mp_config: Cluster configuration to compute tiles in parallel.
    :param sink: Sink receiving the two population maps once both passes are complete.

    :raises InvalidCRSError: If the geometries and the raster have different CRSs.
    :raises MissingAttributeError: If the class attribute is missing on a geometry.
    :raises InvalidBurnValueError: If a class value or identifier cannot be used as a label.
    """
    if config is None:
        config = StreamingConfig.from_config()
    _check_geometries_crs(source, geometries)
    records = list(geometries)

    mask_builder = NoDataMaskBuilder.from_source(source, config)
    maps = {}
    tiling = None
    passes = (("fid", "Computing number of samples per vector"), ("class", "Computing number of samples per class"))
    for burn, desc in passes:
        rasterizer = GeometryRasterizer(
            grid=source.grid,
            geometries=records,
            burn=burn,  # type: ignore
            background_value=config.nodata_label,
            label_dtype=config.label_dtype,
            all_touched=config.all_touched,
        )
        accumulator = StreamingLabelStatisticsAccumulator(
            source=source,
            rasterizer=rasterizer,
            mask_builder=mask_builder,
            config=config,
            tiling=tiling,
            mp_config=mp_config,
        )
        tiling = accumulator.tiling

        logging.info(desc)
        pop_map = accumulator.run(progress_desc=desc)
        # Pixels outside geometries are never accumulated, the background label is removed if burned anyway
        pop_map.pop(config.nodata_label)
        maps[burn] = pop_map

    stats = PolygonClassStatistics(samples_per_class=maps["class"], samples_per_vector=maps["fid"])
    logging.info(
        "Statistics computed for %d polygon(s) and %d class(es)",
        len(stats.samples_per_vector),
        len(stats.samples_per_class),
    )

    if sink is not None:
        sink.write(stats.as_dict())
    return stats
