from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Tuple

from .models import (
    CandidateSet,
    DistanceObservation,
    DistanceReference,
    SkipReason,
    SolverFailure,
)

# 二维最小二乘定位所需的最少节点数
MIN_NODES = 3

BucketKey = Tuple[str, datetime]


class CandidateFilter:
    """按 (tag, 时间桶) 挑选参与三边定位的节点"""

    def __init__(
        self,
        dist_cap: float,
        rss_floor: float,
        reference: DistanceReference = DistanceReference.ESTIMATE,
        min_nodes: int = MIN_NODES,
    ):
        self.dist_cap = dist_cap
        self.rss_floor = rss_floor
        self.reference = reference
        self.min_nodes = min_nodes

    @staticmethod
    def select_anchor(group: List[DistanceObservation]) -> DistanceObservation:
        """RSSI 最强者为锚点；并列时取节点 ID 最小者"""
        return min(group, key=lambda o: (-o.mean_rssi, o.node_id))

    def _within_cap(self, o: DistanceObservation, anchor: DistanceObservation) -> bool:
        if self.reference is DistanceReference.NODE:
            return math.hypot(o.x - anchor.x, o.y - anchor.y) <= self.dist_cap
        return o.distance - anchor.distance <= self.dist_cap

    def filter_group(self, group: List[DistanceObservation]) -> List[DistanceObservation]:
        usable = [o for o in group if o.has_distance and o.mean_rssi >= self.rss_floor]
        if not usable:
            return []
        anchor = self.select_anchor(usable)
        kept = [o for o in usable if self._within_cap(o, anchor)]
        return sorted(kept, key=lambda o: o.node_id)

    def partition(
        self, observations: Iterable[DistanceObservation]
    ) -> Tuple[Dict[BucketKey, CandidateSet], List[SolverFailure]]:
        """
        返回 (可解的候选集, 因节点不足被丢弃的桶)。
        两部分的键互不重叠，合起来覆盖输入中出现的全部 (tag, 桶)。
        """
        groups: Dict[BucketKey, List[DistanceObservation]] = defaultdict(list)
        for o in observations:
            groups[(o.tag_id, o.bucket_start)].append(o)

        solvable: Dict[BucketKey, CandidateSet] = {}
        dropped: List[SolverFailure] = []
        for key in sorted(groups):
            tag_id, start = key
            kept = self.filter_group(groups[key])
            node_ids = {o.node_id for o in kept}
            if len(node_ids) != len(kept):
                raise ValueError(f"duplicate node observations in bucket {key}")
            if len(kept) < self.min_nodes:
                dropped.append(
                    SolverFailure(
                        tag_id,
                        start,
                        SkipReason.INSUFFICIENT_CANDIDATES,
                        f"{len(kept)} usable nodes, need {self.min_nodes}",
                    )
                )
                continue
            solvable[key] = CandidateSet(
                tag_id=tag_id,
                bucket_start=start,
                anchor_node_id=self.select_anchor(kept).node_id,
                members=tuple(kept),
            )
        return solvable, dropped

    def filter(self, observations: Iterable[DistanceObservation]) -> Dict[BucketKey, CandidateSet]:
        return self.partition(observations)[0]
