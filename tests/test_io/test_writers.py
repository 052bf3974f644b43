"""Test sinks writing population maps to files."""

from __future__ import annotations

import os
import xml.etree.ElementTree as ET

import numpy as np
import pandas as pd
import pytest

from polystats.io import DataFrameCSVWriter, StatisticsSink, StatisticsXMLWriter, read_statistics_xml
from polystats.stats import LabelPopulationMap


class TestWriters:

    maps = {
        "samplesPerClass": LabelPopulationMap.from_block(np.array([2, 1, 2]), np.array([[1.0], [2.0], [5.0]])),
        "samplesPerVector": LabelPopulationMap.from_block(np.array([10, 11, 12]), np.array([[1.0], [2.0], [5.0]])),
    }

    def test_xml(self, tmp_path: str) -> None:
        """Check the XML file lists the count of each label, and parses back."""

        path = os.path.join(tmp_path, "stats.xml")
        writer = StatisticsXMLWriter(path)
        assert isinstance(writer, StatisticsSink)
        writer.write(self.maps)

        root = ET.parse(path).getroot()
        assert root.tag == "FeatureStatistics"
        assert [s.get("name") for s in root.findall("Statistic")] == ["samplesPerClass", "samplesPerVector"]
        first = root.find("Statistic").findall("StatisticMap")  # type: ignore
        assert [(m.get("key"), m.get("value")) for m in first] == [("1", "1"), ("2", "2")]
        assert first[0].get("mean") is None

        assert read_statistics_xml(path) == {"samplesPerClass": {1: 1, 2: 2}, "samplesPerVector": {10: 1, 11: 1, 12: 1}}

    def test_xml_moments(self, tmp_path: str) -> None:

        path = os.path.join(tmp_path, "stats.xml")
        StatisticsXMLWriter(path, with_moments=True).write(self.maps)

        root = ET.parse(path).getroot()
        item = root.find("Statistic").findall("StatisticMap")[1]  # type: ignore
        assert float(item.get("mean")) == pytest.approx(3.0)  # type: ignore
        assert float(item.get("variance")) == pytest.approx(4.0)  # type: ignore

    def test_read_invalid_xml(self, tmp_path: str) -> None:

        path = os.path.join(tmp_path, "other.xml")
        with open(path, "w") as f:
            f.write("<Other/>")
        with pytest.raises(ValueError, match="Not a statistics file"):
            read_statistics_xml(path)

    def test_csv(self, tmp_path: str) -> None:
        """Check the CSV file has one row per label of each map."""

        path = os.path.join(tmp_path, "stats.csv")
        DataFrameCSVWriter(path).write(self.maps)

        df = pd.read_csv(path)
        assert list(df.columns) == ["statistic", "label", "count", "mean_b1", "variance_b1"]
        assert len(df) == 5
        row = df[(df["statistic"] == "samplesPerClass") & (df["label"] == 2)].iloc[0]
        assert row["count"] == 2
        assert row["mean_b1"] == pytest.approx(3.0)
        assert row["variance_b1"] == pytest.approx(4.0)

        empty = DataFrameCSVWriter.to_dataframe({})
        assert len(empty) == 0
