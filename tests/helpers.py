"""
Shared builders and fakes for slabsight tests.
"""

from typing import Dict, List, Optional

from slabsight.records import BuddyRecord, MetaspaceReading, RawInputs, SlabRecord, VmStatRecord


def make_raw(
    timestamp: float,
    scanned: int = 0,
    allocated: int = 0,
    kmalloc_1k: int = 0,
    kmalloc_4k: int = 0,
    metaspace_used_kb: Optional[int] = 0,
    order2: int = 0,
    order3: int = 0,
    extra_vmstat: Optional[Dict[str, int]] = None,
) -> RawInputs:
    """Build RawInputs with every source present."""
    vmstat: List[VmStatRecord] = [
        VmStatRecord("slabs_scanned", scanned),
        VmStatRecord("pgalloc_normal", allocated),
    ]
    for key, value in (extra_vmstat or {}).items():
        vmstat.append(VmStatRecord(key, value))

    free = [0] * 11
    free[2] = order2
    free[3] = order3

    return RawInputs(
        timestamp=timestamp,
        slabs=[
            SlabRecord("kmalloc-1k", kmalloc_1k, kmalloc_1k, 1024),
            SlabRecord("kmalloc-4k", kmalloc_4k, kmalloc_4k, 4096),
        ],
        vmstat=vmstat,
        buddy=[BuddyRecord(0, "Normal", tuple(free))],
        metaspace=None if metaspace_used_kb is None else MetaspaceReading(metaspace_used_kb + 100, metaspace_used_kb),
    )


class FakeCollector:
    """Replays prepared RawInputs; cancels the controller when they run out."""

    def __init__(self, raws: List[RawInputs], controller=None):
        self.raws = list(raws)
        self.controller = controller
        self.calls = 0

    def collect(self, timestamp: float) -> RawInputs:
        raw = self.raws[min(self.calls, len(self.raws) - 1)]
        self.calls += 1
        if self.calls >= len(self.raws) and self.controller is not None:
            self.controller.cancel()
        return RawInputs(
            timestamp=timestamp,
            slabs=raw.slabs,
            vmstat=raw.vmstat,
            buddy=raw.buddy,
            metaspace=raw.metaspace,
            errors=list(raw.errors),
        )


class FakeClock:
    def __init__(self, times: List[float]):
        self.times = list(times)
        self.index = 0

    def __call__(self) -> float:
        value = self.times[min(self.index, len(self.times) - 1)]
        self.index += 1
        return value
