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
Sinks writing population maps to files.

The statistics XML file lists, for each named map, the sample count of every label:

    <FeatureStatistics>
      <Statistic name="samplesPerClass">
        <StatisticMap key="1" value="50" />
      </Statistic>
    </FeatureStatistics>
"""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from typing import Protocol, runtime_checkable

import pandas as pd

from polystats.stats.population import LabelPopulationMap


@runtime_checkable
class StatisticsSink(Protocol):
    """Receiver of named population maps."""

    def write(self, maps: dict[str, LabelPopulationMap]) -> None: ...


def _format_values(values: list[float]) -> str:
    return " ".join(repr(float(v)) for v in values)


class StatisticsXMLWriter:
    """Write the sample count of each label of named maps to a statistics XML file."""

    def __init__(self, filename: str | os.PathLike[str], with_moments: bool = False):
        """
        :param filename: Path of the XML file.
        :param with_moments: Whether to also write the mean and variance per band of each label, as space-separated
            "mean" and "variance" attributes.
        """
        self.filename = filename
        self.with_moments = with_moments

    def write(self, maps: dict[str, LabelPopulationMap]) -> None:
        root = ET.Element("FeatureStatistics")
        for name, pop_map in maps.items():
            stat = ET.SubElement(root, "Statistic", name=name)
            for label, entry in sorted(pop_map.items()):
                item = ET.SubElement(stat, "StatisticMap", key=str(label), value=str(entry.count))
                if self.with_moments:
                    item.set("mean", _format_values(entry.mean.tolist()))
                    item.set("variance", _format_values(entry.variance.tolist()))

        tree = ET.ElementTree(root)
        ET.indent(tree)
        tree.write(self.filename, encoding="utf-8", xml_declaration=True)
        logging.info("Statistics saved under %s", self.filename)


def read_statistics_xml(filename: str | os.PathLike[str]) -> dict[str, dict[int, int]]:
    """
    Read the sample counts of a statistics XML file.

    :param filename: Path of the XML file.

    :returns: Sample count of each label, by statistic name.
    """
    root = ET.parse(filename).getroot()
    if root.tag != "FeatureStatistics":
        raise ValueError(f"Not a statistics file, root element is {root.tag!r}.")
    out = {}
    for stat in root.iter("Statistic"):
        items = stat.iter("StatisticMap")
        out[stat.get("name", "")] = {int(m.get("key", "")): int(m.get("value", "")) for m in items}
    return out


class DataFrameCSVWriter:
    """Write the count, mean and variance per band of each label of named maps to a CSV file, one row per label."""

    def __init__(self, filename: str | os.PathLike[str]):
        """
        :param filename: Path of the CSV file.
        """
        self.filename = filename

    @staticmethod
    def to_dataframe(maps: dict[str, LabelPopulationMap]) -> pd.DataFrame:
        """Concatenate the dataframes of named maps, with a "statistic" column naming the map of each row."""
        frames = []
        for name, pop_map in maps.items():
            df = pop_map.to_dataframe().reset_index()
            df.insert(0, "statistic", name)
            frames.append(df)
        if len(frames) == 0:
            return pd.DataFrame(columns=["statistic", "label", "count"])
        return pd.concat(frames, ignore_index=True)

    def write(self, maps: dict[str, LabelPopulationMap]) -> None:
        self.to_dataframe(maps).to_csv(self.filename, index=False)
        logging.info("Statistics saved under %s", self.filename)
