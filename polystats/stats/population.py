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
Running statistics of pixel populations, keyed by label.

Each label holds a sample count and, per band, a running mean and sum of squared deviations (M2), updated with
Welford's online algorithm. Populations computed on separate parts of a raster combine with the parallel form of the
algorithm (Chan et al.), so that the result does not depend on how the raster is split or in which order parts are
folded:

    n = n_a + n_b
    delta = mean_b - mean_a
    mean = mean_a + delta * n_b / n
    M2 = M2_a + M2_b + delta**2 * n_a * n_b / n

Rasters are folded block by block (`LabelPopulationMap.fold_block`): the population of each label in a block is
computed at once, then merged into the running population. The per-pixel rule (`LabelPopulationEntry.update`,
`LabelPopulationMap.fold_pixels`) and `LabelPopulationEntry.from_samples` are the reference definitions this folding
agrees with, up to floating-point rounding.
"""

from __future__ import annotations

from collections.abc import ItemsView, Iterator, KeysView, ValuesView
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from polystats._typing import ArrayLike, NDArrayInt, NDArrayNum


@dataclass
class LabelPopulationEntry:
    """
    Population of the valid pixels of one label.

    :param count: Number of pixels.
    :param mean: Running mean per band.
    :param m2: Running sum of squared deviations from the mean per band.
    """

    count: int = 0
    mean: NDArrayNum = field(default_factory=lambda: np.zeros(0))
    m2: NDArrayNum = field(default_factory=lambda: np.zeros(0))

    @classmethod
    def empty(cls, nb_bands: int) -> LabelPopulationEntry:
        """Entry with no sample yet."""
        return cls(count=0, mean=np.zeros(nb_bands, dtype=np.float64), m2=np.zeros(nb_bands, dtype=np.float64))

    @classmethod
    def from_samples(cls, samples: ArrayLike) -> LabelPopulationEntry:
        """
        Entry of a set of samples.

        :param samples: Array of shape (n,) for a single band or (n, bands).
        """
        samples = np.asarray(samples, dtype=np.float64)
        if samples.ndim == 1:
            samples = samples[:, np.newaxis]
        if samples.shape[0] == 0:
            return cls.empty(samples.shape[1])
        mean = samples.mean(axis=0)
        m2 = ((samples - mean) ** 2).sum(axis=0)
        return cls(count=int(samples.shape[0]), mean=mean, m2=m2)

    @property
    def nb_bands(self) -> int:
        return int(self.mean.shape[0])

    @property
    def variance(self) -> NDArrayNum:
        """Population variance per band (M2 / count), NaN without samples."""
        if self.count == 0:
            return np.full(self.nb_bands, np.nan)
        return self.m2 / self.count

    @property
    def std(self) -> NDArrayNum:
        return np.sqrt(self.variance)

    def update(self, pixel: ArrayLike) -> None:
        """
        Fold one pixel into the population with Welford's online update.

        :param pixel: Values of the pixel in all bands.
        """
        value = np.atleast_1d(np.asarray(pixel, dtype=np.float64))
        if self.nb_bands == 0 and self.count == 0:
            self.mean = np.zeros(value.shape[0])
            self.m2 = np.zeros(value.shape[0])
        self.count += 1
        delta = value - self.mean
        self.mean = self.mean + delta / self.count
        self.m2 = self.m2 + delta * (value - self.mean)

    def merge(self, other: LabelPopulationEntry) -> LabelPopulationEntry:
        """
        Combine two populations with the parallel form of Welford's algorithm.

        :param other: Population of other samples with the same bands.

        :returns: A new entry for the union of both populations.
        """
        if other.count == 0:
            return LabelPopulationEntry(count=self.count, mean=self.mean.copy(), m2=self.m2.copy())
        if self.count == 0:
            return LabelPopulationEntry(count=other.count, mean=other.mean.copy(), m2=other.m2.copy())
        if self.nb_bands != other.nb_bands:
            raise ValueError(f"Cannot merge populations with {self.nb_bands} and {other.nb_bands} bands.")

        count = self.count + other.count
        delta = other.mean - self.mean
        mean = self.mean + delta * (other.count / count)
        m2 = self.m2 + other.m2 + delta**2 * (self.count * other.count / count)
        return LabelPopulationEntry(count=count, mean=mean, m2=m2)

    def isclose(self, other: LabelPopulationEntry, rtol: float = 1e-9, atol: float = 1e-12) -> bool:
        """Whether two entries have the same count, and the same mean and M2 up to a tolerance."""
        return (
            self.count == other.count
            and np.allclose(self.mean, other.mean, rtol=rtol, atol=atol)
            and np.allclose(self.m2, other.m2, rtol=rtol, atol=atol)
        )


class LabelPopulationMap:
    """
    Mapping of label to the population of its valid pixels.

    A label absent from the map had no valid pixel: entries are only created when a first sample is folded.
    """

    def __init__(self, nb_bands: int, entries: dict[int, LabelPopulationEntry] | None = None):
        """
        :param nb_bands: Number of bands of the samples.
        :param entries: Initial entries.
        """
        self.nb_bands = int(nb_bands)
        self._entries: dict[int, LabelPopulationEntry] = {} if entries is None else dict(entries)

    def __repr__(self) -> str:
        return f"LabelPopulationMap({len(self)} labels, nb_bands={self.nb_bands}, counts={self.counts()})"

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __contains__(self, label: object) -> bool:
        return label in self._entries

    def __getitem__(self, label: int) -> LabelPopulationEntry:
        return self._entries[label]

    def get(self, label: int, default: LabelPopulationEntry | None = None) -> LabelPopulationEntry | None:
        return self._entries.get(label, default)

    def keys(self) -> KeysView[int]:
        return self._entries.keys()

    def values(self) -> ValuesView[LabelPopulationEntry]:
        return self._entries.values()

    def items(self) -> ItemsView[int, LabelPopulationEntry]:
        return self._entries.items()

    def pop(self, label: int, default: LabelPopulationEntry | None = None) -> LabelPopulationEntry | None:
        """Remove a label from the map, if present."""
        return self._entries.pop(label, default)

    def fold_pixels(self, labels: ArrayLike, values: ArrayLike) -> None:
        """
        Fold samples one by one in their order, with Welford's online update.

        :param labels: Label of each sample, shape (n,).
        :param values: Values of each sample, shape (n, bands).
        """
        labels = np.asarray(labels)
        values = np.asarray(values, dtype=np.float64).reshape(labels.shape[0], -1)
        for label, pixel in zip(labels.tolist(), values):
            entry = self._entries.get(label)
            if entry is None:
                entry = LabelPopulationEntry.empty(self.nb_bands)
                self._entries[label] = entry
            entry.update(pixel)

    def fold_block(self, labels: NDArrayInt, values: NDArrayNum) -> None:
        """
        Fold a block of samples: the population of each label in the block is computed at once, then combined with
        the running population of the label.

        :param labels: Label of each sample, shape (n,).
        :param values: Values of each sample, shape (n, bands).
        """
        self.merge(self.from_block(labels=labels, values=values, nb_bands=self.nb_bands))

    @classmethod
    def from_block(cls, labels: NDArrayInt, values: NDArrayNum, nb_bands: int | None = None) -> LabelPopulationMap:
        """
        Population map of a block of samples.

        :param labels: Label of each sample, shape (n,).
        :param values: Values of each sample, shape (n, bands).
        :param nb_bands: Number of bands, deduced from values if None.
        """
        labels = np.asarray(labels).ravel()
        values = np.asarray(values, dtype=np.float64).reshape(labels.shape[0], -1)
        if nb_bands is None:
            nb_bands = values.shape[1]
        pop_map = cls(nb_bands=nb_bands)
        if labels.size == 0:
            return pop_map

        uniq, inverse = np.unique(labels, return_inverse=True)
        inverse = inverse.ravel()
        nb_labels = uniq.shape[0]
        counts = np.bincount(inverse, minlength=nb_labels)

        means = np.empty((nb_labels, nb_bands), dtype=np.float64)
        m2 = np.empty((nb_labels, nb_bands), dtype=np.float64)
        for b in range(nb_bands):
            means[:, b] = np.bincount(inverse, weights=values[:, b], minlength=nb_labels) / counts
            dev = values[:, b] - means[inverse, b]
            m2[:, b] = np.bincount(inverse, weights=dev * dev, minlength=nb_labels)

        for i, label in enumerate(uniq.tolist()):
            pop_map._entries[label] = LabelPopulationEntry(count=int(counts[i]), mean=means[i], m2=m2[i])
        return pop_map

    def merge(self, other: LabelPopulationMap) -> LabelPopulationMap:
        """
        Combine the populations of another map into this one, in place.

        :param other: Map computed on other samples with the same bands.

        :returns: This map.
        """
        if other.nb_bands != self.nb_bands and len(other) > 0:
            raise ValueError(f"Cannot merge maps with {self.nb_bands} and {other.nb_bands} bands.")
        for label, entry in other.items():
            current = self._entries.get(label)
            if current is None:
                current = LabelPopulationEntry.empty(self.nb_bands)
            self._entries[label] = current.merge(entry)
        return self

    def counts(self) -> dict[int, int]:
        """Number of valid pixels per label."""
        return {label: e.count for label, e in sorted(self._entries.items())}

    def means(self) -> dict[int, NDArrayNum]:
        """Mean per band per label."""
        return {label: e.mean for label, e in sorted(self._entries.items())}

    def variances(self) -> dict[int, NDArrayNum]:
        """Population variance per band per label."""
        return {label: e.variance for label, e in sorted(self._entries.items())}

    def allclose(self, other: LabelPopulationMap, rtol: float = 1e-9, atol: float = 1e-12) -> bool:
        """Whether two maps have the same labels and counts, and the same moments up to a tolerance."""
        if set(self.keys()) != set(other.keys()):
            return False
        return all(e.isclose(other[label], rtol=rtol, atol=atol) for label, e in self.items())

    def to_dataframe(self) -> pd.DataFrame:
        """
        Convert the map into a dataframe indexed by label, with a count column and mean/variance columns per band.
        """
        columns = ["count"] + [f"mean_b{b + 1}" for b in range(self.nb_bands)]
        columns += [f"variance_b{b + 1}" for b in range(self.nb_bands)]
        rows = [[e.count, *e.mean.tolist(), *e.variance.tolist()] for _, e in sorted(self._entries.items())]
        df = pd.DataFrame(rows, columns=columns, index=pd.Index(sorted(self._entries), name="label"))
        return df.astype({"count": "int64"})
