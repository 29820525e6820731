from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .series import SnapshotSeries
from .stats import coefficient_of_variation, mean, pearson
from .trend import TrendEngine


@dataclass(frozen=True)
class CorrelationResult:
    correlation: float
    coefficient_var: float
    mean_pressure: float


@dataclass
class LeakReport:
    """一次分析的结果，用于输出最终报告"""
    sample_count: int
    duration: float
    result: Optional[CorrelationResult] = None
    correlation_label: str = ""
    variability_label: str = ""
    top_growth: List[Tuple[str, float]] = field(default_factory=list)
    sustained_growth: List[Tuple[str, int]] = field(default_factory=list)


CORRELATION_NOTES = {
    "strong": "STRONG - Reflection impacts kernel",
    "moderate": "MODERATE",
    "weak": "WEAK",
}

VARIABILITY_NOTES = {
    "erratic": "ERRATIC - Reflection causes instability",
    "moderate variability": "MODERATE variability",
    "stable": "STABLE pattern",
}


class LeakAnalyzer:
    """JVM metaspace 与内核 slab 的相关性分析器"""

    def __init__(self, config: Dict):
        self.config = config

    def _rules(self, section: str) -> Dict:
        return self.config.get(section, {}) or {}

    def correlate(self, series: SnapshotSeries) -> Optional[CorrelationResult]:
        """样本数 < 2 时返回 None"""
        window = int(self._rules("correlation").get("window_samples", 0) or 0)
        snapshots = series.window(window)
        if len(snapshots) < 2:
            return None

        pool_used = [float(s.metaspace_used_kb) for s in snapshots]
        kernel_active = [float(s.kernel_active_objects) for s in snapshots]
        scan_rates = [s.slabs_scanned_per_sec for s in snapshots]

        return CorrelationResult(
            correlation=pearson(pool_used, kernel_active),
            coefficient_var=coefficient_of_variation(scan_rates),
            mean_pressure=mean(scan_rates),
        )

    def classify_correlation(self, correlation: float) -> str:
        rules = self._rules("correlation")
        if correlation > rules.get("strong_threshold", 0.7):
            return "strong"
        elif correlation > rules.get("moderate_threshold", 0.4):
            return "moderate"
        return "weak"

    def classify_variability(self, coefficient_var: float) -> str:
        rules = self._rules("variability")
        if coefficient_var > rules.get("erratic_threshold", 0.5):
            return "erratic"
        elif coefficient_var > rules.get("moderate_threshold", 0.2):
            return "moderate variability"
        return "stable"

    def analyze(self, series: SnapshotSeries, trend: TrendEngine) -> LeakReport:
        rules = self._rules("trend")
        report = LeakReport(
            sample_count=series.count,
            duration=series.duration,
            top_growth=trend.top_growth(int(rules.get("top_n", 10))),
            sustained_growth=trend.sustained_growth(int(rules.get("sustained_streak", 3))),
        )

        result = self.correlate(series)
        if result is not None:
            report.result = result
            report.correlation_label = self.classify_correlation(result.correlation)
            report.variability_label = self.classify_variability(result.coefficient_var)
        return report


def render_report(report: LeakReport) -> str:
    lines = ["", "", "=== SLABSIGHT ANALYSIS REPORT ===", ""]
    lines.append(f"Total samples: {report.sample_count}")
    if report.sample_count > 0:
        lines.append(f"Duration: {int(report.duration)} seconds")
        lines.append("")

    if report.result is None:
        lines.append("Not enough samples for analysis.")
        return "\n".join(lines)

    result = report.result
    lines.append("--- Correlation Analysis ---")
    lines.append(
        f"JVM-Kernel Correlation: {result.correlation:.4f} "
        f"({CORRELATION_NOTES[report.correlation_label]})"
    )

    lines.append("")
    lines.append("--- Memory Pattern ---")
    lines.append(
        f"Coefficient of Variation: {result.coefficient_var:.4f} "
        f"({VARIABILITY_NOTES[report.variability_label]})"
    )

    lines.append("")
    lines.append("--- Kernel Pressure ---")
    lines.append(f"Average slabs scanned/sec: {result.mean_pressure:.2f}")

    if report.top_growth:
        lines.append("")
        lines.append(f"--- Top {len(report.top_growth)} Growing Metrics ---")
        for rank, (name, growth) in enumerate(report.top_growth, start=1):
            lines.append(f"{rank:>3}. {name:<40} {growth:+.0f}")

    if report.sustained_growth:
        lines.append("")
        lines.append("--- Sustained Growth ---")
        for name, streak in report.sustained_growth:
            lines.append(f"  {name}: increased {streak} cycles in a row")

    lines.append("")
    lines.append("=================================")
    return "\n".join(lines)
