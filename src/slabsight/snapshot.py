from dataclasses import dataclass, fields
from typing import Dict, Optional, Sequence, Tuple

from .records import BUDDY_ORDERS, RawInputs, SlabRecord
from .stats import TRACKED_ORDERS, fragmentation_index

SCAN_COUNTER = "slabs_scanned"
ALLOC_COUNTERS = ("pgalloc_dma", "pgalloc_dma32", "pgalloc_normal", "pgalloc_movable")
RECLAIM_COUNTER = "pgsteal_kswapd"
RECLAIMABLE_COUNTER = "nr_slab_reclaimable"
UNRECLAIMABLE_COUNTER = "nr_slab_unreclaimable"

SIZE_CLASSES = {
    "1k": ("kmalloc-1024", "kmalloc-1k", "kmalloc-0001024"),
    "4k": ("kmalloc-4096", "kmalloc-4k", "kmalloc-0004096"),
}


def size_class(cache_name: str) -> Optional[str]:
    """kmalloc 缓存名 -> "1k" / "4k"，其余返回 None"""
    for label, names in SIZE_CLASSES.items():
        if cache_name in names:
            return label
    return None


def find_size_classes(slabs: Sequence[SlabRecord]) -> Dict[str, SlabRecord]:
    """本次 slabinfo 中匹配到的 1k/4k 缓存，未出现的类别不在结果中"""
    found = {}
    for record in slabs:
        label = size_class(record.name)
        if label is not None:
            found[label] = record
    return found


@dataclass(frozen=True)
class Snapshot:
    """一次采样；派生字段相对前一个快照计算，首个快照保持 0"""
    sequence: int
    timestamp: float

    kmalloc_1k_active: int = 0
    kmalloc_4k_active: int = 0
    slab_reclaimable: int = 0
    slab_unreclaimable: int = 0
    slabs_scanned: int = 0
    pages_allocated: int = 0
    pages_reclaimed: int = 0
    free_pages: Tuple[int, ...] = (0,) * BUDDY_ORDERS
    metaspace_used_kb: int = 0
    metaspace_committed_kb: int = 0

    slabs_scanned_per_sec: float = 0.0
    allocation_rate_kb_per_sec: float = 0.0
    fragmentation_index: float = 0.0

    missing_sources: Tuple[str, ...] = ()

    @property
    def order2_free_pages(self) -> int:
        return self.free_pages[2]

    @property
    def order3_free_pages(self) -> int:
        return self.free_pages[3]

    @property
    def kernel_active_objects(self) -> int:
        return self.kmalloc_1k_active + self.kmalloc_4k_active

    def counters(self) -> Dict[str, float]:
        """快照固定字段，按 snapshot.<field> 命名，供 MetricStore 使用"""
        values = {}
        for f in fields(self):
            if f.name in ("sequence", "timestamp", "free_pages", "missing_sources"):
                continue
            values[f"snapshot.{f.name}"] = getattr(self, f.name)
        return values


def _counter_fields(raw: RawInputs) -> Dict:
    values = {}

    if raw.slabs is not None:
        found = find_size_classes(raw.slabs)
        if "1k" in found:
            values["kmalloc_1k_active"] = found["1k"].active_objects
        if "4k" in found:
            values["kmalloc_4k_active"] = found["4k"].active_objects

    if raw.vmstat is not None:
        vm = {record.key: record.value for record in raw.vmstat}
        values["slabs_scanned"] = vm.get(SCAN_COUNTER, 0)
        values["pages_allocated"] = sum(vm.get(key, 0) for key in ALLOC_COUNTERS)
        values["pages_reclaimed"] = vm.get(RECLAIM_COUNTER, 0)
        values["slab_reclaimable"] = vm.get(RECLAIMABLE_COUNTER, 0)
        values["slab_unreclaimable"] = vm.get(UNRECLAIMABLE_COUNTER, 0)

    if raw.buddy is not None:
        # 多个 zone 按 order 累加
        totals = [0] * BUDDY_ORDERS
        for record in raw.buddy:
            for order in range(BUDDY_ORDERS):
                totals[order] += record.free_at(order)
        values["free_pages"] = tuple(totals)

    if raw.metaspace is not None:
        values["metaspace_used_kb"] = raw.metaspace.used_kb
        values["metaspace_committed_kb"] = raw.metaspace.committed_kb

    return values


def build_snapshot(previous: Optional[Snapshot], raw: RawInputs, page_size_kb: float = 4) -> Snapshot:
    """由原始输入构造快照；有前驱且 dt > 0 时才计算速率"""
    values = _counter_fields(raw)
    sequence = previous.sequence + 1 if previous is not None else 0

    if previous is not None:
        free_pages = values.get("free_pages", (0,) * BUDDY_ORDERS)
        values["fragmentation_index"] = fragmentation_index(
            {order: free_pages[order] for order in TRACKED_ORDERS}
        )

        # 任一端缺少 vmstat 时差值无意义，速率保持 0
        vmstat_seen = raw.vmstat is not None and "vmstat" not in previous.missing_sources
        dt = raw.timestamp - previous.timestamp
        if dt > 0 and vmstat_seen:
            scanned = values.get("slabs_scanned", 0)
            allocated = values.get("pages_allocated", 0)
            values["slabs_scanned_per_sec"] = (scanned - previous.slabs_scanned) / dt
            values["allocation_rate_kb_per_sec"] = (allocated - previous.pages_allocated) * page_size_kb / dt

    return Snapshot(
        sequence=sequence,
        timestamp=raw.timestamp,
        missing_sources=raw.missing_sources(),
        **values,
    )
