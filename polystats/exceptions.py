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

"""Errors raised when inputs of a statistics pass are inconsistent."""

from __future__ import annotations


class InvalidCRSError(ValueError):
    """Raised when CRS-type input is not recognized, or two CRSs do not match."""


class InvalidGridError(ValueError):
    """Raised when grid-type input is not recognized, or two grids cannot be co-registered."""


class InvalidShapeError(ValueError):
    """Raised when shape-type input is not recognized."""


class MissingAttributeError(KeyError):
    """Raised when the attribute carrying the burn value is absent from a geometry."""

    def __str__(self) -> str:
        # KeyError quotes its message otherwise
        return str(self.args[0]) if self.args else ""


class InvalidBurnValueError(ValueError):
    """Raised when a burn value cannot be represented in the label image."""
