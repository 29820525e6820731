"""
采集源记录：每种 /proc 源一种记录类型，用 SourceKind 区分
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

BUDDY_ORDERS = 11


class SourceKind(Enum):
    SLABINFO = "slabinfo"
    VMSTAT = "vmstat"
    BUDDYINFO = "buddyinfo"
    METASPACE = "metaspace"


@dataclass(frozen=True)
class SlabRecord:
    """/proc/slabinfo 中的一行"""
    name: str
    active_objects: int
    total_objects: int
    object_size: int

    kind = SourceKind.SLABINFO


@dataclass(frozen=True)
class VmStatRecord:
    """/proc/vmstat 中的一个键值对"""
    key: str
    value: int

    kind = SourceKind.VMSTAT


@dataclass(frozen=True)
class BuddyRecord:
    """/proc/buddyinfo 中一个 zone 的空闲页计数（按 order 索引）"""
    node: int
    zone: str
    free_pages: Tuple[int, ...]

    kind = SourceKind.BUDDYINFO

    def free_at(self, order: int) -> int:
        if 0 <= order < len(self.free_pages):
            return self.free_pages[order]
        return 0


@dataclass(frozen=True)
class MetaspaceReading:
    """jcmd VM.metaspace 汇总行解析结果（KB）"""
    committed_kb: int
    used_kb: int

    kind = SourceKind.METASPACE


@dataclass
class RawInputs:
    """
    一个采样周期的原始输入。

    某个源读取失败时对应字段为 None（与“读到但为空”区分），
    所有源共用同一个 timestamp。
    """
    timestamp: float
    slabs: Optional[List[SlabRecord]] = None
    vmstat: Optional[List[VmStatRecord]] = None
    buddy: Optional[List[BuddyRecord]] = None
    metaspace: Optional[MetaspaceReading] = None
    errors: List[str] = field(default_factory=list)

    def missing_sources(self) -> Tuple[str, ...]:
        missing = []
        if self.slabs is None:
            missing.append(SourceKind.SLABINFO.value)
        if self.vmstat is None:
            missing.append(SourceKind.VMSTAT.value)
        if self.buddy is None:
            missing.append(SourceKind.BUDDYINFO.value)
        if self.metaspace is None:
            missing.append(SourceKind.METASPACE.value)
        return tuple(missing)
