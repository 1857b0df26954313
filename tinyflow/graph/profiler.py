"""Per-node performance capture (wall clock, heap, RSS, CPU time)."""

import os
import time
import tracemalloc

import psutil

from tinyflow.graph.shared_store import NodeProfile


def _heap_used() -> int:
    # Only allocations made while tracing is on are counted
    if tracemalloc.is_tracing():
        return tracemalloc.get_traced_memory()[0]
    return 0


class NodeProfiler:
    """
    Measures one node invocation.

    Example:
        profiler = NodeProfiler("fetch").start()
        result = await invoke()
        profile = profiler.stop()
    """

    def __init__(self, node_id: str):
        self.node_id = node_id
        self._process = psutil.Process(os.getpid())
        self._timestamp = 0.0
        self._started = 0.0
        self._heap_before = 0
        self._rss_before = 0
        self._cpu_before = None
        self._owns_tracing = False

    def start(self) -> "NodeProfiler":
        if not tracemalloc.is_tracing():
            tracemalloc.start()
            self._owns_tracing = True
        self._timestamp = time.time() * 1000
        self._heap_before = _heap_used()
        self._rss_before = self._process.memory_info().rss
        self._cpu_before = self._process.cpu_times()
        self._started = time.perf_counter()
        return self

    def stop(self) -> NodeProfile:
        duration_ms = (time.perf_counter() - self._started) * 1000
        cpu_after = self._process.cpu_times()
        rss_after = self._process.memory_info().rss
        heap_after = _heap_used()
        if self._owns_tracing:
            tracemalloc.stop()
            self._owns_tracing = False

        cpu_user_us = int((cpu_after.user - self._cpu_before.user) * 1_000_000)
        cpu_system_us = int((cpu_after.system - self._cpu_before.system) * 1_000_000)
        cpu_percent = 0.0
        if duration_ms > 0:
            cpu_percent = round((cpu_user_us + cpu_system_us) / 1000 / duration_ms * 100, 2)

        return NodeProfile(
            node_id=self.node_id,
            duration_ms=round(duration_ms, 3),
            heap_used_before=self._heap_before,
            heap_used_after=heap_after,
            heap_delta=heap_after - self._heap_before,
            rss_before=self._rss_before,
            rss_after=rss_after,
            cpu_user_us=cpu_user_us,
            cpu_system_us=cpu_system_us,
            cpu_percent=cpu_percent,
            timestamp=self._timestamp,
        )
