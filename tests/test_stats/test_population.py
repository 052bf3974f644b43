"""Test running statistics of label populations."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from polystats.stats import LabelPopulationEntry, LabelPopulationMap


class TestLabelPopulationEntry:
    def test_update(self) -> None:
        """Check the online update gives the count, mean and population variance of samples."""

        entry = LabelPopulationEntry.empty(nb_bands=1)
        for value in [1, 2, 3, 4]:
            entry.update(value)

        assert entry.count == 4
        assert entry.mean == pytest.approx([2.5])
        assert entry.m2 == pytest.approx([5.0])
        assert entry.variance == pytest.approx([1.25])
        assert entry.std == pytest.approx([np.sqrt(1.25)])
        assert entry.isclose(LabelPopulationEntry.from_samples([1, 2, 3, 4]))

    def test_update_multiband(self) -> None:

        samples = np.array([[1.0, 10.0], [3.0, 30.0], [8.0, -5.0]])
        entry = LabelPopulationEntry()
        for pixel in samples:
            entry.update(pixel)

        assert entry.nb_bands == 2
        assert np.allclose(entry.mean, samples.mean(axis=0))
        assert np.allclose(entry.variance, samples.var(axis=0))

    def test_merge(self) -> None:
        """Check merging populations is the population of the union of samples, whatever the split."""

        rng = np.random.default_rng(42)
        samples = rng.normal(loc=1000, scale=3, size=(101, 3))
        expected = LabelPopulationEntry.from_samples(samples)

        for split in [1, 17, 50, 100]:
            first = LabelPopulationEntry.from_samples(samples[:split])
            second = LabelPopulationEntry.from_samples(samples[split:])
            assert first.merge(second).isclose(expected)
            assert second.merge(first).isclose(expected)

        # Merging with an empty population is a copy
        empty = LabelPopulationEntry.empty(nb_bands=3)
        merged = expected.merge(empty)
        assert merged.isclose(expected)
        assert merged.mean is not expected.mean
        assert empty.merge(expected).isclose(expected)

        with pytest.raises(ValueError, match="bands"):
            expected.merge(LabelPopulationEntry.from_samples([1.0, 2.0]))

    def test_empty(self) -> None:

        entry = LabelPopulationEntry.empty(nb_bands=2)
        assert entry.count == 0
        assert np.all(np.isnan(entry.variance))
        assert LabelPopulationEntry.from_samples(np.zeros((0, 2))).isclose(entry)


class TestLabelPopulationMap:

    rng = np.random.default_rng(42)
    labels = rng.integers(0, 6, size=500).astype(np.uint32)
    values = rng.normal(loc=50, scale=10, size=(500, 2))

    def test_fold_block(self) -> None:
        """Check folding a block at once is the same as folding its samples one by one."""

        by_pixel = LabelPopulationMap(nb_bands=2)
        by_pixel.fold_pixels(self.labels, self.values)

        by_block = LabelPopulationMap(nb_bands=2)
        by_block.fold_block(self.labels, self.values)

        assert set(by_block.keys()) == set(np.unique(self.labels).tolist())
        assert by_block.allclose(by_pixel)
        for label in by_block:
            samples = self.values[self.labels == label]
            assert by_block[label].count == samples.shape[0]
            assert np.allclose(by_block[label].mean, samples.mean(axis=0))
            assert np.allclose(by_block[label].variance, samples.var(axis=0))

    def test_fold_order(self) -> None:
        """Check folding blocks in any order and any size gives the same map."""

        expected = LabelPopulationMap.from_block(self.labels, self.values)

        for size in [1, 7, 64, 499]:
            chunks = [(self.labels[i : i + size], self.values[i : i + size]) for i in range(0, 500, size)]

            forward = LabelPopulationMap(nb_bands=2)
            for labels, values in chunks:
                forward.fold_block(labels, values)
            backward = LabelPopulationMap(nb_bands=2)
            for labels, values in chunks[::-1]:
                backward.merge(LabelPopulationMap.from_block(labels, values))

            assert forward.allclose(expected)
            assert backward.allclose(expected)

    def test_absent_labels(self) -> None:
        """Check labels without samples are absent, not present with a zero count."""

        pop_map = LabelPopulationMap(nb_bands=1)
        pop_map.fold_block(np.array([], dtype=np.uint32), np.zeros((0, 1)))
        assert len(pop_map) == 0

        pop_map.fold_block(np.array([3, 3]), np.array([[1.0], [2.0]]))
        assert 3 in pop_map
        assert 4 not in pop_map
        assert pop_map.get(4) is None
        assert pop_map.counts() == {3: 2}

        assert pop_map.pop(3) is not None
        assert 3 not in pop_map
        assert pop_map.pop(3) is None

        with pytest.raises(ValueError, match="bands"):
            pop_map.merge(LabelPopulationMap.from_block(np.array([1]), np.array([[1.0, 2.0]])))

    def test_accessors(self) -> None:

        pop_map = LabelPopulationMap.from_block(np.array([5, 2, 5, 5]), np.array([[1.0], [4.0], [2.0], [3.0]]))

        assert list(pop_map.counts()) == [2, 5]
        assert pop_map.counts() == {2: 1, 5: 3}
        assert pop_map.means()[5] == pytest.approx([2.0])
        assert pop_map.variances()[5] == pytest.approx([2.0 / 3.0])
        assert pop_map.variances()[2] == pytest.approx([0.0])

    def test_to_dataframe(self) -> None:

        pop_map = LabelPopulationMap.from_block(self.labels, self.values)
        df = pop_map.to_dataframe()

        assert isinstance(df, pd.DataFrame)
        assert df.index.name == "label"
        assert list(df.columns) == ["count", "mean_b1", "mean_b2", "variance_b1", "variance_b2"]
        assert df["count"].sum() == 500
        assert df.loc[0, "mean_b2"] == pytest.approx(pop_map[0].mean[1])
        assert df.loc[0, "variance_b1"] == pytest.approx(pop_map[0].variance[0])
