from __future__ import annotations

import math
from collections import defaultdict
from datetime import timedelta
from typing import Iterable, List, Tuple

from .models import Detection, SmoothedDetection


def group_by_pair(detections: Iterable[Detection]) -> dict[Tuple[str, str], List[Detection]]:
    """按 (tag, node) 分组，组内按时间排序"""
    groups: dict[Tuple[str, str], List[Detection]] = defaultdict(list)
    for d in detections:
        groups[(d.tag_id, d.node_id)].append(d)
    return {key: sorted(items, key=lambda d: d.timestamp) for key, items in groups.items()}


def smooth_group(group: List[Detection], window_minutes: int) -> List[SmoothedDetection]:
    """
    对单个 (tag, node) 组做时间对称的滑动平均。

    group 必须已按时间排序。窗口为 [t - w, t + w]（两端闭区间），
    按时间而不是按条数对称；组首尾的窗口自然变窄，但总包含自身。
    """
    if window_minutes == 0:
        return [SmoothedDetection(d.tag_id, d.node_id, d.timestamp, d.rssi) for d in group]

    half = timedelta(minutes=window_minutes)
    smoothed: List[SmoothedDetection] = []
    lo = hi = 0
    # 双指针维护窗口 group[lo:hi]
    for d in group:
        while hi < len(group) and group[hi].timestamp <= d.timestamp + half:
            hi += 1
        while group[lo].timestamp < d.timestamp - half:
            lo += 1
        window = group[lo:hi]
        mean = math.fsum(w.rssi for w in window) / len(window)
        smoothed.append(SmoothedDetection(d.tag_id, d.node_id, d.timestamp, mean))
    return smoothed


def smooth(detections: Iterable[Detection], window_minutes: int) -> List[SmoothedDetection]:
    """SignalSmoother：逐组平滑，输出按 (tag, node, 时间) 排序"""
    if window_minutes < 0:
        raise ValueError(f"window_minutes must be >= 0, got {window_minutes}")
    groups = group_by_pair(detections)
    result: List[SmoothedDetection] = []
    for key in sorted(groups):
        result.extend(smooth_group(groups[key], window_minutes))
    return result
