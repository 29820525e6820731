from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Sequence, Tuple

DEFAULT_ALPHA = 0.3


@dataclass
class TrendState:
    """单个指标的趋势状态；window > 0 时额外保留最近 window - 1 个周期的 diff"""
    alpha: float
    window: int = 0
    ema: Optional[float] = None
    streak: int = 0
    last_observed: Optional[float] = None
    growth: float = 0.0
    samples: int = 0
    recent: Deque[Tuple[int, float]] = field(default_factory=deque)

    def __post_init__(self):
        self.recent = deque(self.recent, maxlen=max(self.window - 1, 0))

    def update(self, value: float, diff: float, sequence: Optional[int] = None):
        if self.ema is None:
            self.ema = value
        else:
            self.ema = self.ema + self.alpha * (value - self.ema)

        # 严格递增才累加，否则清零
        if self.last_observed is not None and value > self.last_observed:
            self.streak += 1
        else:
            self.streak = 0
        self.last_observed = value

        self.growth += diff
        if self.window > 0:
            self.recent.append((self.samples if sequence is None else sequence, diff))
        self.samples += 1

    def window_growth(self, newest_sequence: int) -> float:
        """窗口 [newest - window + 1, newest] 内的增长量；window <= 0 时为累计增长"""
        if self.window <= 0:
            return self.growth
        start = newest_sequence - self.window + 1
        return sum(diff for sequence, diff in self.recent if sequence > start)


class TrendEngine:
    """
    每个指标的 EMA、单调增长计数与窗口增长量。

    增长量来自 MetricStore 返回的 diff 累加；window 与相关性分析的
    window_samples 一致，排名只看最近 window 个采样周期。
    指标一旦被跟踪就不会移除，停止出现时只是不再更新。
    """

    def __init__(self, alpha: float = DEFAULT_ALPHA, tracked_prefixes: Sequence[str] = (), window: int = 0):
        self.alpha = alpha
        self.tracked_prefixes = tuple(tracked_prefixes)
        self.window = max(int(window), 0)
        self.states: Dict[str, TrendState] = {}
        self.newest_sequence = -1

    def is_tracked(self, name: str) -> bool:
        if not self.tracked_prefixes:
            return True
        return name.startswith(self.tracked_prefixes)

    def update(self, name: str, value: float, diff: float = 0.0, sequence: Optional[int] = None) -> TrendState:
        """sequence 为快照序号；省略时按该指标自己的观测次数计"""
        state = self.states.get(name)
        if state is None:
            state = TrendState(alpha=self.alpha, window=self.window)
            self.states[name] = state
        if sequence is None:
            sequence = state.samples
        state.update(value, diff, sequence)
        self.newest_sequence = max(self.newest_sequence, sequence)
        return state

    def get(self, name: str) -> Optional[TrendState]:
        return self.states.get(name)

    def growth(self, name: str) -> float:
        state = self.states.get(name)
        return state.growth if state is not None else 0.0

    def window_growth(self, name: str) -> float:
        state = self.states.get(name)
        return state.window_growth(self.newest_sequence) if state is not None else 0.0

    def top_growth(self, n: int) -> List[Tuple[str, float]]:
        """按窗口增长量降序、同值按名字排序，取前 n 个"""
        growth = {name: s.window_growth(self.newest_sequence) for name, s in self.states.items()}
        ranked = sorted(growth.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:max(0, n)]

    def sustained_growth(self, min_streak: int) -> List[Tuple[str, int]]:
        """当前连续增长次数不少于 min_streak 的指标"""
        hits = [(name, s.streak) for name, s in self.states.items() if s.streak >= min_streak]
        return sorted(hits, key=lambda item: (-item[1], item[0]))

    def __len__(self) -> int:
        return len(self.states)
