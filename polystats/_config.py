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

"""Setup of runtime configuration of polystats."""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from typing import Any, Literal

import numpy as np

from polystats._typing import DTypeLike

# The setup is inspired by that of Matplotlib and Geowombat
# https://github.com/matplotlib/matplotlib/blob/main/lib/matplotlib/rcsetup.py
# https://github.com/jgrss/geowombat/blob/main/src/geowombat/config.py

_config_ini_file = os.path.abspath(os.path.join(os.path.dirname(__file__), "config.ini"))

# Validators: to check the format of user inputs


def validate_bool(b: bool | str | int) -> bool:
    """Convert b to ``bool`` or raise."""
    if isinstance(b, str):
        b = b.lower()
    if b in ("t", "y", "yes", "on", "true", "1", 1, True):
        return True
    elif b in ("f", "n", "no", "off", "false", "0", 0, False):
        return False
    else:
        raise ValueError(f"Cannot convert {b!r} to bool")


def validate_positive_int(i: int | str) -> int:
    """Convert i to a strictly positive ``int`` or raise."""
    try:
        value = int(i)
    except (TypeError, ValueError):
        raise ValueError(f"Cannot convert {i!r} to int")
    if value <= 0:
        raise ValueError(f"Expected a strictly positive integer, got {value}")
    return value


def validate_nodata(v: float | int | str | None) -> float | None:
    """Convert v to a ``float`` nodata value, or None for 'none'."""
    if v is None:
        return None
    if isinstance(v, str):
        if v.strip().lower() in ("none", ""):
            return None
        try:
            return float(v)
        except ValueError:
            raise ValueError(f"Cannot convert {v!r} to a nodata value")
    return float(v)


def validate_nodata_match(m: str) -> str:
    """Check m is one of the supported band-matching modes."""
    m = str(m).lower()
    if m not in ("all", "any"):
        raise ValueError(f"Nodata match must be 'all' or 'any', got {m!r}")
    return m


# Map the parameter names with a validating function to check user input
_validators = {
    "ram": validate_positive_int,
    "progress": validate_bool,
    "all_touched": validate_bool,
    "default_nodata": validate_nodata,
    "nodata_match": validate_nodata_match,
}


class PolyStatsConfigDict(dict):  # type: ignore
    """Class for a polystats config dictionary"""

    def __setitem__(self, k: str, v: Any) -> None:
        """We override setitem to check user input."""

        validate_func = _validators[k]
        new_value = validate_func(v)
        super().__setitem__(k, new_value)

    def _set_defaults(self, path_init_file: str) -> None:
        """Read defaults from the .ini file and validate them."""

        config_parser = configparser.ConfigParser()
        config_parser.read(path_init_file)

        for section in config_parser.sections():
            for k, v in config_parser[section].items():
                self.__setitem__(k, v)


# Generate default config dictionary
config = PolyStatsConfigDict()
config._set_defaults(path_init_file=_config_ini_file)


@dataclass(frozen=True)
class StreamingConfig:
    """
    Explicit configuration of a statistics pass, threaded through every call of the pass.

    :param ram: Memory budget for one tile of working arrays, in megabytes.
    :param tile_shape: Optional fixed tile shape (rows, cols), overriding the memory budget.
    :param progress: Whether to display a progress bar over tiles.
    :param all_touched: Whether to burn all pixels touched by a polygon, or only those whose center is inside.
    :param label_dtype: Unsigned integer dtype of label images.
    :param default_nodata: Nodata value used when the raster source declares none (None to disable masking).
    :param nodata_match: Whether a pixel is nodata when "all" bands or "any" band match the nodata value.
    """

    ram: int = 256
    tile_shape: tuple[int, int] | None = None
    progress: bool = True
    all_touched: bool = False
    label_dtype: DTypeLike = "uint32"
    default_nodata: float | None = 0.0
    nodata_match: Literal["all", "any"] = "all"

    def __post_init__(self) -> None:
        validate_positive_int(self.ram)
        validate_nodata_match(self.nodata_match)
        if self.tile_shape is not None and (len(self.tile_shape) != 2 or min(self.tile_shape) < 1):
            raise ValueError(f"Tile shape must be two strictly positive integers, got {self.tile_shape}")
        if not np.issubdtype(np.dtype(self.label_dtype), np.unsignedinteger):
            raise ValueError(f"Label dtype must be an unsigned integer type, got {self.label_dtype}")

    @property
    def ram_bytes(self) -> int:
        return int(self.ram) * 1024 * 1024

    @property
    def nodata_label(self) -> int:
        """Background label of label images: the maximum value of the label dtype."""
        return int(np.iinfo(np.dtype(self.label_dtype)).max)

    @classmethod
    def from_config(cls, **overrides: Any) -> StreamingConfig:
        """Build a configuration from the global defaults in ``polystats.config``, with optional overrides."""
        params = {
            "ram": config["ram"],
            "progress": config["progress"],
            "all_touched": config["all_touched"],
            "default_nodata": config["default_nodata"],
            "nodata_match": config["nodata_match"],
        }
        params.update(overrides)
        return cls(**params)
