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
polystats is a Python package computing the statistics of raster pixels inside polygons and classes of polygons,
streaming the raster tile by tile.
"""

from polystats._config import StreamingConfig, config  # noqa
from polystats.grid import Grid  # noqa

from polystats.raster import ArrayRasterSource, NoDataMaskBuilder, RioRasterSource  # noqa isort:skip
from polystats.vector import GeometryRecord, GeometrySource  # noqa isort:skip
from polystats.interface import GeometryRasterizer  # noqa isort:skip
from polystats.stats import LabelPopulationMap, StreamingLabelStatisticsAccumulator  # noqa isort:skip
from polystats.polygon_class_stats import PolygonClassStatistics, compute_polygon_class_statistics  # noqa isort:skip

try:
    from polystats.version import version as __version__  # noqa
except ImportError:  # pragma: no cover
    raise ImportError(
        "polystats is not properly installed. If you are "
        "running from the source directory, please instead "
        "create a new virtual environment and then install it "
        "in-place by running: pip install -e ."
    )
