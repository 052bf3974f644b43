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

"""Clusters running tile tasks, sequentially or on a pool of worker processes."""

from __future__ import annotations

import multiprocessing
from multiprocessing.pool import Pool
from typing import Any, Callable


class ClusterGenerator:
    def __new__(cls, name: str, nb_workers: int = 2) -> AbstractCluster:  # type: ignore
        """
        Create a cluster from its name: "basic" runs tasks in the calling process, any other name starts a pool of
        `nb_workers` processes.
        """
        if name == "basic":
            return BasicCluster()
        return MpCluster(conf={"nb_workers": nb_workers})


class AbstractCluster:
    """Base class of clusters, usable as a context manager that closes the cluster on exit."""

    def __init__(self) -> None:
        self.pool: Pool | None = None
        self.nb_workers = 1

    def __enter__(self) -> AbstractCluster:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release the resources of the cluster."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def launch_task(
        self, fun: Callable[..., Any], args: list[Any] | None = None, kwargs: dict[str, Any] | None = None
    ) -> Any:
        """
        Launch a task on the cluster.

        :param fun: Function to run.
        :param args: Positional arguments of the function.
        :param kwargs: Keyword arguments of the function.

        :return: A handle on the result, to pass to `get_res`.
        """
        raise NotImplementedError("This method should be implemented by subclasses.")

    def get_res(self, future: Any) -> Any:
        """
        Wait for the result of a launched task.

        :param future: Handle returned by `launch_task`.
        """
        return future


class BasicCluster(AbstractCluster):
    """Cluster running each task immediately in the calling process."""

    def close(self) -> None:
        pass

    def launch_task(
        self, fun: Callable[..., Any], args: list[Any] | None = None, kwargs: dict[str, Any] | None = None
    ) -> Any:
        return fun(*(args or []), **(kwargs or {}))


class MpCluster(AbstractCluster):
    """Cluster running tasks asynchronously on a pool of worker processes."""

    def __init__(self, conf: dict[str, Any] | None = None) -> None:
        """
        :param conf: Configuration dictionary, with the number of workers ("nb_workers", defaults to 1) and the
            multiprocessing start method ("start_method", defaults to that of the platform).
        """
        super().__init__()
        conf = {} if conf is None else conf
        nb_workers = conf.get("nb_workers", 1)
        self.nb_workers = nb_workers
        ctx = multiprocessing.get_context(conf.get("start_method"))
        # Workers are recycled after some tasks to release memory of large blocks
        self.pool = ctx.Pool(processes=nb_workers, maxtasksperchild=10)

    def close(self) -> None:
        """Terminate the worker processes and wait for them."""
        if self.pool is not None:
            self.pool.terminate()
            self.pool.join()
            self.pool = None

    def launch_task(
        self, fun: Callable[..., Any], args: list[Any] | None = None, kwargs: dict[str, Any] | None = None
    ) -> Any:
        if self.pool is None:
            raise RuntimeError("Cannot launch a task on a closed cluster.")
        return self.pool.apply_async(fun, args=args or [], kwds=kwargs or {})

    def get_res(self, future: Any) -> Any:
        return future.get(timeout=5000)


class MultiprocConfig:
    """
    Configuration of the cluster used to compute tiles in parallel.

    Passed to functions that can distribute their tiles, which otherwise process them sequentially.
    """

    def __init__(self, cluster: AbstractCluster | None = None):
        """
        :param cluster: Cluster to run tile tasks on. Defaults to a basic cluster running them in the calling process.
        """
        if cluster is None:
            cluster = ClusterGenerator("basic")
        assert isinstance(cluster, AbstractCluster)  # for mypy
        self.cluster = cluster

    def __repr__(self) -> str:
        return f"MultiprocConfig(cluster={type(self.cluster).__name__})"
