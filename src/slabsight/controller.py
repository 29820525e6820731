"""
采集控制器：Idle -> Sampling -> Draining -> Terminated

每个周期采样一次、构造快照、更新 MetricStore 与趋势状态、打印心跳，
然后等待 interval 秒；cancel() 可立即打断等待并进入 Draining。
"""

import json
import os
import sys
import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

from .analyzer import LeakAnalyzer, LeakReport, render_report
from .collector import ProcSourceCollector
from .exporter import export_csv
from .records import BUDDY_ORDERS, RawInputs
from .series import SnapshotSeries
from .snapshot import SIZE_CLASSES, Snapshot, build_snapshot, find_size_classes
from .store import MetricStore
from .trend import DEFAULT_ALPHA, TrendEngine

DEFAULT_INTERVAL = 5
DEFAULT_CSV_PATH = "slabsight_data.csv"
DEFAULT_TRACKED_PREFIXES = ("slab.", "metaspace.")


def _log(*args, **kwargs) -> None:
    """诊断信息统一输出到 stderr"""
    print(*args, file=sys.stderr, flush=True, **kwargs)


def normalize_interval(value, default: int = DEFAULT_INTERVAL) -> int:
    """无法解析或小于 1 的间隔一律替换为默认值；小数截断取整（"2.5" -> 2）"""
    try:
        interval = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return interval if interval >= 1 else default


def system_page_size_kb() -> float:
    try:
        return os.sysconf("SC_PAGE_SIZE") / 1024
    except (AttributeError, ValueError, OSError):
        return 4


def observed_counters(raw: RawInputs) -> Dict[str, float]:
    """本周期实际读到的所有计数器（按来源加前缀）"""
    counters = {}
    if raw.vmstat is not None:
        for record in raw.vmstat:
            counters[f"vmstat.{record.key}"] = record.value
    if raw.slabs is not None:
        for record in raw.slabs:
            counters[f"slab.{record.name}"] = record.active_objects
    if raw.buddy is not None:
        for order in range(BUDDY_ORDERS):
            counters[f"buddy.order{order}"] = sum(r.free_at(order) for r in raw.buddy)
    if raw.metaspace is not None:
        counters["metaspace.used_kb"] = raw.metaspace.used_kb
        counters["metaspace.committed_kb"] = raw.metaspace.committed_kb
    return counters


class ControllerState(Enum):
    IDLE = "idle"
    SAMPLING = "sampling"
    DRAINING = "draining"
    TERMINATED = "terminated"


class CollectionController:
    """拥有 Series / MetricStore / 趋势状态的采集循环"""

    def __init__(self, pid: int, interval, config: Dict, collector=None,
                 clock: Callable[[], float] = time.time, verbose: bool = False,
                 csv_path: Optional[str] = None):
        self.pid = pid
        self.config = config

        sampling = config.get("sampling", {}) or {}
        self.default_interval = normalize_interval(sampling.get("default_interval_seconds"), DEFAULT_INTERVAL)
        self.interval = normalize_interval(interval, self.default_interval)

        sources = config.get("sources", {}) or {}
        self.page_size_kb = float(sources.get("page_size_kb") or system_page_size_kb())

        output = config.get("output", {}) or {}
        self.csv_path = csv_path or output.get("csv_path", DEFAULT_CSV_PATH)
        self.heartbeat_format = output.get("heartbeat_format", "text")

        self.collector = collector if collector is not None else ProcSourceCollector(pid, config)
        self.clock = clock
        self.verbose = verbose
        self.analyzer = LeakAnalyzer(config)

        self.state = ControllerState.IDLE
        self.store = MetricStore()
        self.series = SnapshotSeries()
        self.trend = self._new_trend_engine()
        self.report: Optional[LeakReport] = None
        self.exported_rows = 0

        self._stop_event = threading.Event()
        self._drain_lock = threading.Lock()

    def _new_trend_engine(self) -> TrendEngine:
        rules = self.config.get("trend", {}) or {}
        prefixes = rules.get("tracked_prefixes", DEFAULT_TRACKED_PREFIXES) or ()
        # 增长排名与相关性分析使用同一个窗口
        window = int((self.config.get("correlation", {}) or {}).get("window_samples", 0) or 0)
        return TrendEngine(float(rules.get("ema_alpha", DEFAULT_ALPHA)), prefixes, window)

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    def cancel(self):
        """请求停止采样；可重复调用"""
        self._stop_event.set()

    def start(self):
        if self.pid <= 0:
            raise ValueError(f"Invalid PID: {self.pid}")

        self.store = MetricStore()
        self.series = SnapshotSeries()
        self.trend = self._new_trend_engine()
        self.state = ControllerState.SAMPLING

    def _create_heartbeat_message(self, snapshot: Snapshot) -> Dict:
        """创建心跳消息"""
        return {
            "timestamp": int(snapshot.timestamp),
            "sequence": snapshot.sequence,
            "metaspace_used_kb": snapshot.metaspace_used_kb,
            "slabs_scanned_per_sec": round(snapshot.slabs_scanned_per_sec, 2),
            "allocation_rate_kb_per_sec": round(snapshot.allocation_rate_kb_per_sec, 2),
            "kmalloc_1k": snapshot.kmalloc_1k_active,
            "kmalloc_4k": snapshot.kmalloc_4k_active,
            "fragmentation_index": round(snapshot.fragmentation_index, 3),
            "missing_sources": list(snapshot.missing_sources),
        }

    def _emit_heartbeat(self, snapshot: Snapshot):
        if self.heartbeat_format == "json":
            print(json.dumps(self._create_heartbeat_message(snapshot), ensure_ascii=False), flush=True)
        else:
            print(
                f"[{int(snapshot.timestamp)}] Metaspace: {snapshot.metaspace_used_kb} KB"
                f" | Slabs/sec: {snapshot.slabs_scanned_per_sec:.2f}"
                f" | 1K: {snapshot.kmalloc_1k_active} | 4K: {snapshot.kmalloc_4k_active}"
                f" | Frag: {snapshot.fragmentation_index:.3f}",
                flush=True,
            )

        if self.verbose:
            print(
                f"[VMSTAT] free_pages={int(self.store.get('vmstat.nr_free_pages'))}"
                f" reclaimable={int(self.store.get('vmstat.nr_slab_reclaimable'))}"
                f" unreclaimable={int(self.store.get('vmstat.nr_slab_unreclaimable'))}",
                flush=True,
            )

    def _update_metrics(self, raw: RawInputs, snapshot: Snapshot):
        counters = observed_counters(raw)
        counters.update(snapshot.counters())

        for name, value in counters.items():
            diff = self.store.update_or_insert(name, value, snapshot.timestamp)
            if self.trend.is_tracked(name):
                self.trend.update(name, value, diff, snapshot.sequence)

    def _log_sources(self, raw: RawInputs):
        """--debug 模式下的采集诊断"""
        for error in raw.errors:
            _log(f"[DEBUG] {error}")

        if raw.slabs is not None:
            found = find_size_classes(raw.slabs)
            parts = []
            for label in SIZE_CLASSES:
                record = found.get(label)
                if record is None:
                    parts.append(f"{label.upper()} not found")
                else:
                    parts.append(f"{label.upper()} found ({record.name}, active={record.active_objects})")
            _log("[SLAB] " + " | ".join(parts))

        if raw.metaspace is not None:
            _log(f"[JVM] committed={raw.metaspace.committed_kb} KB used={raw.metaspace.used_kb} KB")

    def run_cycle(self) -> Snapshot:
        """执行一次采样周期"""
        previous = self.series.newest
        now = self.clock()
        # 墙钟回拨时不早于上一个快照，dt 为 0 时速率保持默认值
        if previous is not None and now < previous.timestamp:
            now = previous.timestamp

        raw = self.collector.collect(now)
        if self.verbose:
            self._log_sources(raw)

        snapshot = build_snapshot(previous, raw, self.page_size_kb)
        self.series.append(snapshot)
        self._update_metrics(raw, snapshot)
        self._emit_heartbeat(snapshot)
        return snapshot

    def run(self) -> int:
        """主循环，返回进程退出码"""
        if self.state is ControllerState.IDLE:
            self.start()

        try:
            while not self._stop_event.is_set():
                self.run_cycle()
                # cancel() 会立即唤醒这里的等待
                self._stop_event.wait(self.interval)
        except MemoryError:
            _log("[CTRL] Memory allocation failed, stopping sampling")
        except KeyboardInterrupt:
            self.cancel()

        self.drain()
        return 0

    def run_in_worker(self, poll_interval: float = 0.5) -> int:
        """
        在工作线程中执行 run()，调用线程只负责 join。

        信号处理器运行在主线程，调用 cancel() 时主线程不会持有
        _stop_event 的内部锁（等待只发生在工作线程中）。
        """
        outcome: Dict = {}

        def _target():
            try:
                outcome["code"] = self.run()
            except BaseException as e:
                outcome["error"] = e

        worker = threading.Thread(target=_target, name="slabsight-sampler", daemon=True)
        worker.start()
        while worker.is_alive():
            worker.join(poll_interval)

        if "error" in outcome:
            raise outcome["error"]
        return outcome["code"]

    def drain(self):
        """生成报告、导出 CSV、释放数据；只执行一次"""
        with self._drain_lock:
            if self.state in (ControllerState.DRAINING, ControllerState.TERMINATED):
                return
            self.state = ControllerState.DRAINING

        if self.cancelled:
            print("\n\nReceived interrupt signal. Generating report...", flush=True)

        self.report = self.analyzer.analyze(self.series, self.trend)
        print(render_report(self.report), flush=True)

        try:
            self.exported_rows = export_csv(self.series, self.csv_path)
            print(f"\nData exported to {self.csv_path}", flush=True)
        except OSError as e:
            _log(f"[CTRL] Cannot create CSV file {self.csv_path}: {e}")

        self.series.clear()
        self.store.clear()
        self.state = ControllerState.TERMINATED
