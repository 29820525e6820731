"""
描述性统计：均值、总体标准差、Pearson 相关系数、变异系数、碎片化指数

空序列返回 0.0，不做除零；不做显著性检验。
"""

import math
from typing import Dict, List, Sequence

# 碎片化指数只看 order 2/3 的空闲页
TRACKED_ORDERS = (2, 3)


def mean(xs: Sequence[float]) -> float:
    if not xs:
        return 0.0
    return sum(xs) / len(xs)


def population_stddev(xs: Sequence[float]) -> float:
    """总体标准差（除以 n 而不是 n-1）"""
    if not xs:
        return 0.0
    avg = mean(xs)
    variance = sum((x - avg) ** 2 for x in xs) / len(xs)
    return math.sqrt(variance)


def _centered(xs: Sequence[float]) -> List[float]:
    """减去均值后按 2 的幂缩放到 [-1, 1]；平方和既不上溢也不下溢"""
    peak = max(abs(x) for x in xs)
    if peak == 0:
        return [0.0] * len(xs)
    exponent = math.frexp(peak)[1]
    scaled = [math.ldexp(x, -exponent) for x in xs]

    avg = mean(scaled)
    deviations = [x - avg for x in scaled]
    spread = max(abs(d) for d in deviations)
    if spread == 0:
        return [0.0] * len(xs)
    exponent = math.frexp(spread)[1]
    return [math.ldexp(d, -exponent) for d in deviations]


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson 相关系数；n < 2 或任一序列方差为 0 时返回 0.0，结果限定在 [-1, 1]"""
    if len(xs) != len(ys):
        raise ValueError(f"sequence length mismatch: {len(xs)} != {len(ys)}")

    n = len(xs)
    if n < 2:
        return 0.0

    numerator = 0.0
    sum_sq_x = 0.0
    sum_sq_y = 0.0
    for dx, dy in zip(_centered(xs), _centered(ys)):
        numerator += dx * dy
        sum_sq_x += dx * dx
        sum_sq_y += dy * dy

    if sum_sq_x == 0.0 or sum_sq_y == 0.0:
        return 0.0
    r = numerator / (math.sqrt(sum_sq_x) * math.sqrt(sum_sq_y))
    return max(-1.0, min(1.0, r))


def coefficient_of_variation(xs: Sequence[float]) -> float:
    avg = mean(xs)
    if avg == 0:
        return 0.0
    return population_stddev(xs) / avg


def fragmentation_index(free_by_order: Dict[int, int], tracked_orders: Sequence[int] = TRACKED_ORDERS) -> float:
    """
    基于空闲页在各 order 上分布的碎片化指数。

    1 - sum(free_k * k) / (total_free * max_order)，
    被跟踪的 order 上没有空闲页时返回 1.0（完全碎片化/耗尽）。
    """
    total_free = sum(free_by_order.get(k, 0) for k in tracked_orders)
    if total_free == 0:
        return 1.0

    weighted_sum = sum(free_by_order.get(k, 0) * k for k in tracked_orders)
    return 1.0 - weighted_sum / (total_free * max(tracked_orders))
