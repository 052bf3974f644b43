"""Test clusters running tile tasks."""

from __future__ import annotations

import pytest

from polystats.multiproc import AbstractCluster, BasicCluster, ClusterGenerator, MpCluster, MultiprocConfig


def _add(a: int, b: int, factor: int = 1) -> int:
    return (a + b) * factor


class TestCluster:
    def test_cluster_generator(self) -> None:

        basic = ClusterGenerator("basic")
        assert isinstance(basic, BasicCluster)
        assert basic.nb_workers == 1

        with ClusterGenerator("multi", nb_workers=2) as cluster:
            assert isinstance(cluster, MpCluster)
            assert cluster.pool is not None
            assert cluster.nb_workers == 2
        assert cluster.pool is None

    def test_basic_cluster(self) -> None:

        with BasicCluster() as cluster:
            assert cluster.get_res(cluster.launch_task(_add, args=[1, 2], kwargs={"factor": 3})) == 9
            assert cluster.launch_task(_add, kwargs={"a": 1, "b": 1}) == 2

    def test_mp_cluster(self) -> None:

        with MpCluster(conf={"nb_workers": 2}) as cluster:
            tasks = [cluster.launch_task(_add, args=[i, i]) for i in range(5)]
            assert [cluster.get_res(t) for t in tasks] == [0, 2, 4, 6, 8]

        with pytest.raises(RuntimeError, match="closed cluster"):
            cluster.launch_task(_add, args=[1, 2])

    def test_abstract_cluster(self) -> None:

        with pytest.raises(NotImplementedError):
            AbstractCluster().launch_task(_add)

    def test_multiproc_config(self) -> None:

        config = MultiprocConfig()
        assert isinstance(config.cluster, BasicCluster)

        cluster = BasicCluster()
        assert MultiprocConfig(cluster=cluster).cluster is cluster
