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

"""
Command line tool computing the number of valid pixels of a raster inside each polygon and each class of a vector
file, and writing them to a statistics file.
"""

from __future__ import annotations

import argparse
import logging
import os
from typing import Any, Sequence

import geopandas as gpd

from polystats._config import StreamingConfig, validate_nodata
from polystats.exceptions import MissingAttributeError
from polystats.io.writers import DataFrameCSVWriter, StatisticsSink, StatisticsXMLWriter
from polystats.multiproc.cluster import ClusterGenerator, MultiprocConfig
from polystats.polygon_class_stats import compute_polygon_class_statistics
from polystats.raster.source import RioRasterSource
from polystats.vector.source import GeometrySource, _normalize_field_key, list_class_fields

_OUTPUT_EXTENSIONS = (".xml", ".csv")


def getparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compute the number of valid pixels of a raster inside each polygon of a vector file, and inside "
        "each class of polygons given by an attribute field. Pixels are valid if they do not match the nodata value "
        "in all bands."
    )

    parser.add_argument("-in", dest="input", type=str, required=True, help="str, path to the input raster.")
    parser.add_argument("-vec", dest="vec", type=str, required=True, help="str, path to the input vector file.")
    parser.add_argument(
        "-field",
        dest="field",
        type=str,
        required=True,
        help="str, name of the string or integer field carrying the class of polygons (case and non-alphanumeric "
        "characters are ignored).",
    )
    parser.add_argument(
        "-out",
        dest="out",
        type=str,
        required=True,
        help="str, path to the output statistics file, either a statistics XML file (.xml) or a CSV file (.csv).",
    )
    parser.add_argument(
        "-layer", dest="layer", type=str, default=None, help="str, layer of the vector file (Default is the first)."
    )
    parser.add_argument(
        "-ram",
        dest="ram",
        type=int,
        default=None,
        help="int, memory budget in megabytes used to size the tiles (Default is from polystats.config).",
    )
    parser.add_argument(
        "-nodata",
        dest="nodata",
        type=str,
        default="default",
        help="float or 'none', nodata value of the raster (Default is read from file metadata).",
    )
    parser.add_argument(
        "-workers",
        dest="workers",
        type=int,
        default=1,
        help="int, number of worker processes computing tiles (Default is 1, computing tiles sequentially).",
    )
    parser.add_argument(
        "-moments",
        dest="moments",
        default=False,
        action="store_true",
        help="If set, also write the mean and variance per band of each label to XML output.",
    )
    parser.add_argument(
        "-quiet",
        dest="quiet",
        default=False,
        action="store_true",
        help="If set, do not display progress bars and information messages.",
    )

    return parser


def _check_output_extension(filename: str) -> str:
    """Check the extension of the output file before any processing, and return it."""
    ext = os.path.splitext(filename)[1].lower()
    if ext not in _OUTPUT_EXTENSIONS:
        raise ValueError(
            f"Output file {filename} has extension {ext!r}, must be one of {', '.join(_OUTPUT_EXTENSIONS)}."
        )
    return ext


def _resolve_field(gdf: gpd.GeoDataFrame, field: str) -> str:
    """Get the name of the class field matching a user input, ignoring case and non-alphanumeric characters."""
    fields = list_class_fields(gdf)
    key = _normalize_field_key(field)
    if key not in fields:
        raise MissingAttributeError(
            f"Field '{field}' is not a string or integer field of the vector file, available fields: "
            f"{', '.join(sorted(fields.values()))}."
        )
    return fields[key]


def _create_sink(filename: str, ext: str, with_moments: bool) -> StatisticsSink:
    if ext == ".csv":
        return DataFrameCSVWriter(filename)
    return StatisticsXMLWriter(filename, with_moments=with_moments)


def main(test_args: Sequence[str] | None = None) -> None:
    # Parse arguments
    parser = getparser()
    args = parser.parse_args(test_args)
    logging.basicConfig(level=logging.WARNING if args.quiet else logging.INFO, format="%(levelname)s: %(message)s")

    ext = _check_output_extension(args.out)

    # Raster
    source = RioRasterSource(args.input)
    if args.nodata != "default":
        source.set_nodata(validate_nodata(args.nodata))

    # Vector, reprojected to the raster CRS
    gdf = gpd.read_file(args.vec, layer=args.layer) if args.layer is not None else gpd.read_file(args.vec)
    class_field = _resolve_field(gdf, args.field)
    geometries = GeometrySource.from_geodataframe(gdf, class_field=class_field, crs=source.grid.crs)

    overrides: dict[str, Any] = {"progress": not args.quiet}
    if args.ram is not None:
        overrides["ram"] = args.ram
    config = StreamingConfig.from_config(**overrides)

    sink = _create_sink(args.out, ext, with_moments=args.moments)
    if args.workers > 1:
        with ClusterGenerator("multiprocessing", nb_workers=args.workers) as cluster:
            stats = compute_polygon_class_statistics(
                source, geometries, config=config, mp_config=MultiprocConfig(cluster=cluster), sink=sink
            )
    else:
        stats = compute_polygon_class_statistics(source, geometries, config=config, sink=sink)

    logging.info(
        "Statistics file written to %s, %d polygon(s) and %d class(es) with valid pixels",
        args.out,
        len(stats.samples_per_vector),
        len(stats.samples_per_class),
    )


if __name__ == "__main__":
    main()
