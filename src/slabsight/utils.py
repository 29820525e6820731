import os
import re
import subprocess
from typing import Dict, List, Optional

from .records import BUDDY_ORDERS, BuddyRecord, MetaspaceReading, SlabRecord, VmStatRecord

_MB_TOKEN = re.compile(r"(\d+(?:\.\d+)?)\s*MB")


def _note_skipped(errors: Optional[List[str]], path: str, skipped: int):
    if errors is not None and skipped:
        errors.append(f"{path}: skipped {skipped} malformed row(s)")


def read_key_value_file(file_path: str) -> Optional[Dict[str, int]]:
    """读取/proc下的键值对文件（如meminfo, vmstat），不可读时返回None"""
    if not os.path.exists(file_path):
        return None

    result = {}
    try:
        with open(file_path, 'r', encoding='utf-8') as file:
            for line in file:
                line = line.strip()
                if not line:
                    continue

                parts = line.split()
                key = parts[0].rstrip(':')

                if len(parts) >= 2 and parts[1].lstrip('-').isdigit():
                    result[key] = int(parts[1])
    except (IOError, PermissionError):
        return None

    return result


def read_vmstat(proc_root: str = "/proc") -> Optional[List[VmStatRecord]]:
    values = read_key_value_file(os.path.join(proc_root, "vmstat"))
    if values is None:
        return None
    return [VmStatRecord(key, value) for key, value in values.items() if value >= 0]


def read_slabinfo(proc_root: str = "/proc", errors: Optional[List[str]] = None) -> Optional[List[SlabRecord]]:
    """读取/proc/slabinfo，跳过表头与格式不符的行；跳过的行数记入 errors"""
    slab_file = os.path.join(proc_root, "slabinfo")
    if not os.path.exists(slab_file):
        return None

    records = []
    skipped = 0
    try:
        with open(slab_file, 'r', encoding='utf-8') as file:
            for line in file:
                # "slabinfo - version: 2.1" 与 "# name <active_objs> ..."
                if line.startswith("slabinfo") or line.startswith("#"):
                    continue

                parts = line.split()
                if not parts:
                    continue
                if len(parts) < 4:
                    skipped += 1
                    continue
                try:
                    active, total, size = int(parts[1]), int(parts[2]), int(parts[3])
                except ValueError:
                    skipped += 1
                    continue
                records.append(SlabRecord(parts[0], active, total, size))
    except (IOError, PermissionError):
        return None

    _note_skipped(errors, slab_file, skipped)
    return records


def read_buddyinfo(proc_root: str = "/proc", errors: Optional[List[str]] = None) -> Optional[List[BuddyRecord]]:
    """读取/proc/buddyinfo：Node 0, zone   Normal  c0 c1 ... c10"""
    buddy_file = os.path.join(proc_root, "buddyinfo")
    if not os.path.exists(buddy_file):
        return None

    records = []
    skipped = 0
    try:
        with open(buddy_file, 'r', encoding='utf-8') as file:
            for line in file:
                if "zone" not in line:
                    continue

                head, _, tail = line.partition("zone")
                node_part = head.replace("Node", "").strip().rstrip(",")
                parts = tail.split()
                # 至少需要 zone 名与 order 0..2
                if len(parts) < 4:
                    skipped += 1
                    continue
                try:
                    node = int(node_part)
                    counts = [int(x) for x in parts[1:1 + BUDDY_ORDERS]]
                except ValueError:
                    skipped += 1
                    continue

                counts += [0] * (BUDDY_ORDERS - len(counts))
                records.append(BuddyRecord(node, parts[0], tuple(counts)))
    except (IOError, PermissionError):
        return None

    _note_skipped(errors, buddy_file, skipped)
    return records


def parse_metaspace_line(line: str) -> Optional[MetaspaceReading]:
    """
    解析 jcmd VM.metaspace 的 "Both:" 汇总行。

    例: Both: 2422 chunks, 40.63 MB capacity, 40.20 MB ( 99%) committed, 39.67 MB ( 98%) used
    依次为 capacity / committed / used。
    """
    values = [float(v) for v in _MB_TOKEN.findall(line)]
    if len(values) < 3:
        return None
    return MetaspaceReading(committed_kb=int(values[1] * 1024), used_kb=int(values[2] * 1024))


def read_metaspace(pid: int, jcmd: str = "jcmd", timeout_sec: float = 10.0) -> Optional[MetaspaceReading]:
    """调用 jcmd 读取目标 JVM 的 metaspace 使用量"""
    cmd = [jcmd, str(pid), "VM.metaspace"]
    try:
        proc = subprocess.run(cmd, text=True, capture_output=True, timeout=timeout_sec)
    except (OSError, subprocess.TimeoutExpired):
        return None

    if proc.returncode != 0:
        return None

    for line in proc.stdout.splitlines():
        if "Both:" in line:
            return parse_metaspace_line(" ".join(line.split()))
    return None
