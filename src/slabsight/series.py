from typing import Iterator, List, Optional

from .snapshot import Snapshot


class SnapshotSeries:
    """按采样顺序追加的快照序列（只追加，不修改）"""

    def __init__(self):
        self._snapshots: List[Snapshot] = []

    def append(self, snapshot: Snapshot):
        newest = self.newest
        if newest is not None and snapshot.timestamp < newest.timestamp:
            raise ValueError(
                f"snapshot timestamp {snapshot.timestamp} is older than newest {newest.timestamp}"
            )
        self._snapshots.append(snapshot)

    @property
    def count(self) -> int:
        return len(self._snapshots)

    @property
    def oldest(self) -> Optional[Snapshot]:
        return self._snapshots[0] if self._snapshots else None

    @property
    def newest(self) -> Optional[Snapshot]:
        return self._snapshots[-1] if self._snapshots else None

    @property
    def duration(self) -> float:
        if not self._snapshots:
            return 0.0
        return self.newest.timestamp - self.oldest.timestamp

    def window(self, size: int = 0) -> List[Snapshot]:
        """末尾 size 个快照；size <= 0 表示整个序列"""
        if size <= 0:
            return list(self._snapshots)
        return self._snapshots[-size:]

    def column(self, attribute: str, size: int = 0) -> List[float]:
        return [float(getattr(s, attribute)) for s in self.window(size)]

    def clear(self):
        self._snapshots.clear()

    def __len__(self) -> int:
        return len(self._snapshots)

    def __iter__(self) -> Iterator[Snapshot]:
        return iter(self._snapshots)
