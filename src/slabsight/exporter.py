from pathlib import Path
from typing import Dict, Iterable, List, Union

from .snapshot import Snapshot

CSV_HEADER = [
    "timestamp", "metaspace_kb", "slabs_scanned_per_sec",
    "kmalloc_1k", "kmalloc_4k", "fragmentation_index",
]


def format_row(snapshot: Snapshot) -> List[str]:
    """速率保留4位小数，碎片化指数保留6位"""
    return [
        str(int(snapshot.timestamp)),
        str(snapshot.metaspace_used_kb),
        f"{snapshot.slabs_scanned_per_sec:.4f}",
        str(snapshot.kmalloc_1k_active),
        str(snapshot.kmalloc_4k_active),
        f"{snapshot.fragmentation_index:.6f}",
    ]


def export_csv(snapshots: Iterable[Snapshot], path: Union[str, Path]) -> int:
    """写出 CSV，返回数据行数"""
    rows = 0
    with open(path, "w", encoding="utf-8") as fout:
        fout.write(",".join(CSV_HEADER) + "\n")
        for snapshot in snapshots:
            fout.write(",".join(format_row(snapshot)) + "\n")
            rows += 1
    return rows


def read_csv(path: Union[str, Path]) -> List[Dict[str, float]]:
    """读回 export_csv 写出的文件"""
    with open(path, "r", encoding="utf-8") as fin:
        lines = [line.strip() for line in fin if line.strip()]

    if not lines:
        return []

    header = lines[0].split(",")
    if header != CSV_HEADER:
        raise ValueError(f"unexpected CSV header: {lines[0]}")

    return [dict(zip(header, (float(v) for v in line.split(",")))) for line in lines[1:]]
