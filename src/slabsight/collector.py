from typing import Dict

from .records import RawInputs
from .utils import read_buddyinfo, read_metaspace, read_slabinfo, read_vmstat


class ProcSourceCollector:
    """内核 /proc 源与 JVM metaspace 采集器"""

    def __init__(self, pid: int, config: Dict):
        self.pid = pid
        sources = config.get("sources", {}) or {}
        self.proc_root = sources.get("proc_root", "/proc")
        self.jcmd = sources.get("jcmd", "jcmd")
        self.jcmd_timeout = float(sources.get("jcmd_timeout_seconds", 10))

    def collect_slabinfo(self, errors=None):
        return read_slabinfo(self.proc_root, errors)

    def collect_vmstat(self):
        return read_vmstat(self.proc_root)

    def collect_buddyinfo(self, errors=None):
        return read_buddyinfo(self.proc_root, errors)

    def collect_metaspace(self):
        return read_metaspace(self.pid, self.jcmd, self.jcmd_timeout)

    def collect(self, timestamp: float) -> RawInputs:
        """顺序读取所有源；失败的源保持 None，不重试"""
        errors = []
        raw = RawInputs(
            timestamp=timestamp,
            slabs=self.collect_slabinfo(errors),
            vmstat=self.collect_vmstat(),
            buddy=self.collect_buddyinfo(errors),
            metaspace=self.collect_metaspace(),
            errors=errors,
        )

        if raw.slabs is None:
            raw.errors.append(f"cannot read {self.proc_root}/slabinfo")
        if raw.vmstat is None:
            raw.errors.append(f"cannot read {self.proc_root}/vmstat")
        if raw.buddy is None:
            raw.errors.append(f"cannot read {self.proc_root}/buddyinfo")
        if raw.metaspace is None:
            raw.errors.append(f"no metaspace summary from {self.jcmd} {self.pid} VM.metaspace")

        return raw
