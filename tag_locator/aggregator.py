from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Iterable, List, Tuple

from .models import AggregatedSignal, SmoothedDetection

# 时间桶的对齐原点（按挂钟时间，不做时区换算）
BUCKET_ORIGIN = datetime(1970, 1, 1)


def bucket_start(timestamp: datetime, width: timedelta) -> datetime:
    """向下取整到桶宽，桶为右开区间 [start, start + width)"""
    wall = timestamp.replace(tzinfo=None)
    k = (wall - BUCKET_ORIGIN) // width
    return (BUCKET_ORIGIN + k * width).replace(tzinfo=timestamp.tzinfo)


def aggregate(smoothed: Iterable[SmoothedDetection], bucket_width: timedelta) -> List[AggregatedSignal]:
    """
    TimeAggregator：按 (tag, node, 时间桶) 求平均 RSSI 与检测次数。

    只输出非空桶；结果按 (tag, node, 桶起点) 排序。
    """
    if bucket_width <= timedelta(0):
        raise ValueError(f"bucket_width must be positive, got {bucket_width}")

    buckets: dict[Tuple[str, str, datetime], List[float]] = defaultdict(list)
    for s in smoothed:
        buckets[(s.tag_id, s.node_id, bucket_start(s.timestamp, bucket_width))].append(s.rssi)

    return [
        AggregatedSignal(
            tag_id=tag_id,
            node_id=node_id,
            bucket_start=start,
            mean_rssi=math.fsum(values) / len(values),
            count=len(values),
        )
        for (tag_id, node_id, start), values in sorted(buckets.items(), key=lambda kv: kv[0])
    ]
