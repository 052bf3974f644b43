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

"""Validity masks of raster blocks derived from a nodata rule."""

from __future__ import annotations

import logging
from typing import Literal

import numpy as np

from polystats._config import StreamingConfig
from polystats._typing import NDArrayBool, NDArrayNum
from polystats.raster.source import RasterSource


class NoDataMaskBuilder:
    """
    Build the validity mask of raster blocks.

    A pixel is invalid when its values match the nodata value in all bands (default), or in any band. A NaN nodata
    value matches NaN pixel values. The builder keeps no state between blocks.
    """

    def __init__(self, nodata: int | float | None = None, match: Literal["all", "any"] = "all"):
        """
        :param nodata: Nodata value. If None, all pixels are valid.
        :param match: Whether a pixel is invalid when "all" bands or "any" band match the nodata value.
        """
        if match not in ("all", "any"):
            raise ValueError(f"Argument 'match' must be 'all' or 'any', got {match!r}.")
        self.nodata = nodata
        self.match = match

    def __repr__(self) -> str:
        return f"NoDataMaskBuilder(nodata={self.nodata}, match={self.match!r})"

    @classmethod
    def from_source(cls, source: RasterSource, config: StreamingConfig) -> NoDataMaskBuilder:
        """
        Get the mask builder of a raster source: its declared nodata, or the configured default if none is declared.

        :param source: Raster source.
        :param config: Configuration of the pass.
        """
        nodata = source.nodata
        if nodata is None:
            nodata = config.default_nodata
            logging.info("No nodata value declared by the raster, using default nodata value %s", nodata)
        return cls(nodata=nodata, match=config.nodata_match)

    def build(self, block: NDArrayNum) -> NDArrayBool:
        """
        Build the validity mask of a block.

        :param block: Raster block of shape (count, rows, cols) or (rows, cols).

        :returns: Boolean array of shape (rows, cols), True where the pixel is valid.
        """
        block = np.asarray(block)
        if block.ndim == 2:
            block = block[np.newaxis, :, :]

        if self.nodata is None:
            return np.ones(block.shape[1:], dtype=bool)

        if isinstance(self.nodata, (float, np.floating)) and np.isnan(self.nodata):
            if not np.issubdtype(block.dtype, np.floating):
                return np.ones(block.shape[1:], dtype=bool)
            matches = np.isnan(block)
        elif _can_cast(self.nodata, block.dtype):
            matches = block == np.asarray(self.nodata, dtype=block.dtype)
        # A nodata value that cannot be represented in the data type matches no pixel
        else:
            matches = np.zeros(block.shape, dtype=bool)

        if self.match == "all":
            invalid = np.all(matches, axis=0)
        else:
            invalid = np.any(matches, axis=0)
        return ~invalid


def _can_cast(value: int | float, dtype: np.dtype) -> bool:
    """Whether a nodata value can be represented exactly in a data type."""
    if np.issubdtype(dtype, np.integer):
        info = np.iinfo(dtype)
        return float(value).is_integer() and info.min <= value <= info.max
    if dtype == bool:
        return value in (0, 1)
    return True
