"""
JVM metaspace / 内核 slab 关联监控
"""

from .analyzer import CorrelationResult, LeakAnalyzer, LeakReport, render_report
from .collector import ProcSourceCollector
from .controller import CollectionController, ControllerState
from .series import SnapshotSeries
from .snapshot import Snapshot, build_snapshot
from .store import MetricRecord, MetricStore
from .trend import TrendEngine, TrendState

__version__ = "0.1.0"

__all__ = [
    'CorrelationResult',
    'LeakAnalyzer',
    'LeakReport',
    'render_report',
    'ProcSourceCollector',
    'CollectionController',
    'ControllerState',
    'SnapshotSeries',
    'Snapshot',
    'build_snapshot',
    'MetricRecord',
    'MetricStore',
    'TrendEngine',
    'TrendState',
]
