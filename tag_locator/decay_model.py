from __future__ import annotations

import math
from typing import Iterable, List, Mapping, Optional

from .models import AggregatedSignal, ConfigurationError, DistanceObservation, Node


class DistanceEstimator:
    """基于指数衰减模型的 RSSI -> 距离换算"""

    def __init__(self, a: float, S: float, K: float):
        if a <= K:
            raise ConfigurationError(f"衰减模型不可逆: a={a} <= K={K}")
        if S <= 0:
            raise ConfigurationError(f"衰减系数 S 必须为正: {S}")
        # d=0 处的截距 (dB)
        self.a = float(a)
        # 衰减速率
        self.S = float(S)
        # 水平渐近线 (dB)
        self.K = float(K)

    def distance_to_rssi(self, distance: float) -> float:
        return self.K + (self.a - self.K) * math.exp(-self.S * distance)

    def rssi_to_distance(self, rssi: float) -> Optional[float]:
        """
        反解 RSSI = K + (a - K) * exp(-S * d)。
        区间 (K, a) 之外（含端点）返回 None，不做截断。
        """
        if not math.isfinite(rssi) or rssi <= self.K or rssi >= self.a:
            return None
        d = -math.log((rssi - self.K) / (self.a - self.K)) / self.S
        if not math.isfinite(d) or d <= 0:
            return None
        return d

    def estimate(self, signal: AggregatedSignal, node: Node) -> DistanceObservation:
        if signal.node_id != node.node_id:
            raise ValueError(f"signal for node {signal.node_id} paired with node {node.node_id}")
        return DistanceObservation(
            tag_id=signal.tag_id,
            node_id=signal.node_id,
            bucket_start=signal.bucket_start,
            mean_rssi=signal.mean_rssi,
            count=signal.count,
            distance=self.rssi_to_distance(signal.mean_rssi),
            x=node.x,
            y=node.y,
        )

    def estimate_all(
        self, signals: Iterable[AggregatedSignal], nodes: Mapping[str, Node]
    ) -> tuple[List[DistanceObservation], List[AggregatedSignal]]:
        """批量换算；没有坐标的节点原样返回，交由调用方统计"""
        observations: List[DistanceObservation] = []
        orphans: List[AggregatedSignal] = []
        for signal in signals:
            node = nodes.get(signal.node_id)
            if node is None:
                orphans.append(signal)
                continue
            observations.append(self.estimate(signal, node))
        return observations, orphans
