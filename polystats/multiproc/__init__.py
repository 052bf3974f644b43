from polystats.multiproc.cluster import (  # noqa
    AbstractCluster,
    BasicCluster,
    ClusterGenerator,
    MpCluster,
    MultiprocConfig,
)

__all__ = ["AbstractCluster", "BasicCluster", "ClusterGenerator", "MpCluster", "MultiprocConfig"]
