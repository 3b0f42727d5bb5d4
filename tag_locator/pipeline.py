from __future__ import annotations

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping

from .aggregator import aggregate
from .calculator import MultilaterationSolver, SolverOutcome
from .config_manager import EngineConfig
from .decay_model import DistanceEstimator
from .filters import CandidateFilter
from .models import (
    CandidateSet,
    Detection,
    LocationEstimate,
    Node,
    SkipReason,
    SolverFailure,
    check_identifier,
)
from .smoother import smooth


logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    estimates: List[LocationEstimate] = field(default_factory=list)
    # 被跳过的 (tag, 桶) 及原因
    skipped: List[SolverFailure] = field(default_factory=list)
    # 各原因的计数；invalid_model_range / unknown_node 按观测计，其余按桶计
    counts: Counter = field(default_factory=Counter)

    def summary(self) -> str:
        parts = [f"{len(self.estimates)} estimates"]
        parts += [f"{reason.value}={n}" for reason, n in sorted(self.counts.items(), key=lambda kv: kv[0].value)]
        return ", ".join(parts)


class LocalizationPipeline:
    """平滑 -> 分桶 -> 距离换算 -> 候选筛选 -> 三边定位"""

    def __init__(self, config: EngineConfig, nodes: Mapping[str, Node]):
        self.config = config.validate()
        for node_id in nodes:
            check_identifier(node_id, "节点")
        self.nodes = dict(nodes)
        self.estimator = DistanceEstimator(config.a, config.S, config.K)
        self.candidate_filter = CandidateFilter(
            dist_cap=config.dist_cap,
            rss_floor=config.rss_floor,
            reference=config.dist_reference,
        )
        self.solver = MultilaterationSolver(
            max_iterations=config.max_iterations,
            tolerance=config.tolerance,
            confidence_level=config.confidence_level,
        )

    def _solve_all(self, candidate_sets: List[CandidateSet]) -> List[SolverOutcome]:
        if self.config.workers > 1 and len(candidate_sets) > 1:
            # map 保持输入顺序，与并行数无关
            with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                return list(pool.map(self.solver.solve, candidate_sets))
        return [self.solver.solve(c) for c in candidate_sets]

    def run(self, detections: Iterable[Detection]) -> PipelineResult:
        result = PipelineResult()
        detections = list(detections)
        for d in detections:
            check_identifier(d.tag_id, "标签")
            check_identifier(d.node_id, "节点")

        smoothed = smooth(detections, self.config.window_minutes)
        signals = aggregate(smoothed, self.config.bucket_width)
        observations, orphans = self.estimator.estimate_all(signals, self.nodes)
        if orphans:
            result.counts[SkipReason.UNKNOWN_NODE] += len(orphans)
            logger.warning(
                "%d 个时间桶信号来自未登记坐标的节点: %s",
                len(orphans),
                sorted({s.node_id for s in orphans}),
            )
        undefined = sum(1 for o in observations if not o.has_distance)
        if undefined:
            result.counts[SkipReason.INVALID_MODEL_RANGE] += undefined

        candidates, dropped = self.candidate_filter.partition(observations)
        result.skipped.extend(dropped)

        per_tag = Counter(tag_id for tag_id, _ in candidates)
        for tag_id in sorted(per_tag):
            logger.info("标签 %s: %d 个时间桶待定位", tag_id, per_tag[tag_id])

        for outcome in self._solve_all(list(candidates.values())):
            if isinstance(outcome, LocationEstimate):
                result.estimates.append(outcome)
            else:
                result.skipped.append(outcome)

        for failure in result.skipped:
            result.counts[failure.reason] += 1
            logger.debug(
                "跳过 %s @ %s: %s %s",
                failure.tag_id,
                failure.bucket_start,
                failure.reason.value,
                failure.message,
            )

        result.estimates.sort(key=lambda e: e.key)
        result.skipped.sort(key=lambda f: (f.tag_id, f.bucket_start))
        logger.info("定位完成: %s", result.summary())
        return result
