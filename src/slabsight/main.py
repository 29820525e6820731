#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
SlabSight 主程序：JVM metaspace 与内核 slab 压力的关联监控
- 按间隔采样 /proc/slabinfo、/proc/vmstat、/proc/buddyinfo 与 jcmd VM.metaspace
- 每个周期打印一行心跳
- Ctrl+C / SIGTERM 后输出分析报告并导出 CSV

可选环境变量：
- SLABSIGHT_RULES : 规则文件 monitoring_rules.yaml（绝对路径）
"""

import argparse
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil
import yaml

from .controller import CollectionController, _log, normalize_interval

THIS_DIR = Path(__file__).resolve().parent
EXIT_USAGE = 1


# ---- 配置加载 ----
def find_config_path(cli_path: Optional[str] = None) -> Path:
    if cli_path:
        p = Path(cli_path).expanduser()
        if p.exists():
            return p
        raise FileNotFoundError(f"rules file not found: {p}")

    env_path = os.environ.get("SLABSIGHT_RULES")
    if env_path:
        p = Path(env_path).expanduser()
        if p.exists():
            return p

    candidates = [
        Path.cwd() / "monitoring_rules.yaml",
        THIS_DIR / "monitoring_rules.yaml",
    ]
    for c in candidates:
        if c.exists():
            return c
    raise FileNotFoundError("monitoring_rules.yaml not found (set SLABSIGHT_RULES to an absolute path)")


def load_configuration(path: Optional[Path] = None) -> Dict[str, Any]:
    cfg_path = path or find_config_path()
    with cfg_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{cfg_path}: top level must be a mapping, got {type(data).__name__}")
    for section in ("sampling", "sources", "trend", "correlation", "variability", "output"):
        if not isinstance(data.get(section), dict):
            data[section] = {}
    return data


# ---- 命令行 ----
class _UsageParser(argparse.ArgumentParser):
    """参数错误时以退出码 1 结束"""

    def error(self, message):
        self.print_usage(sys.stderr)
        _log(f"{self.prog}: error: {message}")
        sys.exit(EXIT_USAGE)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = _UsageParser(
        prog="slabsight",
        description="Correlate JVM metaspace growth with kernel slab allocator pressure",
        epilog="Example: slabsight 12345 5 --debug",
    )
    p.add_argument("pid", help="target JVM process id")
    p.add_argument("interval", nargs="?", default=None, help="sampling interval in seconds (default 5)")
    p.add_argument("--debug", action="store_true", help="print diagnostic output to stderr")
    p.add_argument("--rules", type=str, default=None, help="monitoring_rules.yaml path")
    p.add_argument("--output", type=str, default=None, help="CSV file written at shutdown")
    return p.parse_args(argv)


def resolve_pid(value: str) -> Optional[int]:
    try:
        pid = int(value)
    except ValueError:
        return None
    return pid if pid > 0 else None


def process_name(pid: int) -> str:
    try:
        return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return "?"


def install_signal_handlers(controller: CollectionController):
    """SIGINT/SIGTERM 只请求停止，报告由控制器在 Draining 阶段输出；采样循环须在工作线程中运行"""

    def _handle(signum, frame):
        controller.cancel()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    pid = resolve_pid(args.pid)
    if pid is None:
        _log(f"Invalid PID: {args.pid}")
        return EXIT_USAGE
    if not psutil.pid_exists(pid):
        _log(f"No such process: {pid}")
        return EXIT_USAGE

    try:
        config = load_configuration(find_config_path(args.rules))
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        _log(f"Cannot load rules: {e}")
        return EXIT_USAGE

    default_interval = normalize_interval(config["sampling"].get("default_interval_seconds"))
    interval = normalize_interval(args.interval, default_interval)

    controller = CollectionController(
        pid, interval, config, verbose=args.debug, csv_path=args.output,
    )
    install_signal_handlers(controller)

    banner = f"Target PID: {pid} ({process_name(pid)}) | Interval: {controller.interval}s"
    if args.debug:
        banner += " | DEBUG MODE"
    print("SlabSight - Kernel-Level JVM Memory Analyzer", flush=True)
    print(banner, flush=True)
    print("\nPress Ctrl+C to stop and generate report...\n", flush=True)

    return controller.run_in_worker()


def run():
    try:
        sys.exit(main())
    except BrokenPipeError:
        # 上游（如 `| head`）关闭管道时，安静退出
        sys.exit(0)


if __name__ == "__main__":
    run()
