from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional
import time


@dataclass
class MetricRecord:
    """单个计数器的当前值与上一次的值"""
    name: str
    current: float
    previous: float
    first_seen: float
    updates: int = 0

    @property
    def diff(self) -> float:
        if self.updates == 0:
            return 0
        return self.current - self.previous


class MetricStore:
    """按名字索引的计数器表，每次更新返回与上一次的差值"""

    def __init__(self):
        self._records: Dict[str, MetricRecord] = {}

    def update_or_insert(self, name: str, value: float, timestamp: Optional[float] = None) -> float:
        record = self._records.get(name)
        if record is None:
            if timestamp is None:
                timestamp = time.time()
            self._records[name] = MetricRecord(name, value, value, timestamp)
            return 0

        record.previous = record.current
        record.current = value
        record.updates += 1
        return record.current - record.previous

    def get(self, name: str, default: float = 0) -> float:
        record = self._records.get(name)
        return record.current if record is not None else default

    def record(self, name: str) -> Optional[MetricRecord]:
        return self._records.get(name)

    def names(self) -> List[str]:
        return list(self._records)

    def clear(self):
        self._records.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[MetricRecord]:
        return iter(self._records.values())
