from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, Any, Tuple, Iterator


class ConfigurationError(ValueError):
    """配置或输入不合法，整批计算无法进行"""


def check_identifier(value: Any, kind: str) -> str:
    """节点/标签 ID 必须是非空字符串"""
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"非法的{kind}标识: {value!r}")
    return value


@dataclass(frozen=True)
class Node:
    node_id: str
    x: float
    y: float

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class Tag:
    tag_id: str
    start_date: date


@dataclass(frozen=True)
class Detection:
    tag_id: str
    node_id: str
    timestamp: datetime
    rssi: float


@dataclass(frozen=True)
class SmoothedDetection:
    tag_id: str
    node_id: str
    timestamp: datetime
    rssi: float


@dataclass(frozen=True)
class AggregatedSignal:
    tag_id: str
    node_id: str
    bucket_start: datetime
    mean_rssi: float
    count: int

    @property
    def bucket_date(self) -> date:
        return self.bucket_start.date()


@dataclass(frozen=True)
class DistanceObservation:
    tag_id: str
    node_id: str
    bucket_start: datetime
    mean_rssi: float
    count: int
    # None 表示超出衰减模型的可逆区间
    distance: Optional[float]
    x: float
    y: float

    @property
    def has_distance(self) -> bool:
        return self.distance is not None


class SkipReason(Enum):
    INVALID_MODEL_RANGE = "invalid_model_range"
    UNKNOWN_NODE = "unknown_node"
    INSUFFICIENT_CANDIDATES = "insufficient_candidates"
    SINGULAR_FIT = "singular_fit"
    SOLVER_DIVERGENCE = "solver_divergence"


class DistanceReference(Enum):
    # 以锚点的估计距离为基准（默认）
    ESTIMATE = "estimate"
    # 以锚点节点的坐标为基准
    NODE = "node"


@dataclass(frozen=True)
class CandidateSet:
    """同一标签、同一时间桶内通过筛选的节点集合"""

    tag_id: str
    bucket_start: datetime
    anchor_node_id: str
    members: Tuple[DistanceObservation, ...]

    def __len__(self) -> int:
        return len(self.members)

    def __iter__(self) -> Iterator[DistanceObservation]:
        return iter(self.members)


@dataclass(frozen=True)
class SolverFailure:
    tag_id: str
    bucket_start: datetime
    reason: SkipReason
    message: str = ""


@dataclass(frozen=True)
class LocationEstimate:
    """
    定位结果，置信区间为坐标分量的双侧区间
    """

    tag_id: str
    bucket_start: datetime
    node_count: int
    x: float
    y: float
    x_lower: float
    x_upper: float
    y_lower: float
    y_upper: float

    @property
    def hour(self) -> int:
        return self.bucket_start.hour

    @property
    def key(self) -> Tuple[str, datetime]:
        return (self.tag_id, self.bucket_start)

    def to_record(self) -> Dict[str, Any]:
        # 与野外数据处理脚本输出表一致的列名
        return {
            "TagId": self.tag_id,
            "Time.group": self.bucket_start,
            "Hour": self.hour,
            "No.Nodes": self.node_count,
            "UTMx_est": self.x,
            "UTMy_est": self.y,
            "x.LCI": self.x_lower,
            "x.UCI": self.x_upper,
            "y.LCI": self.y_lower,
            "y.UCI": self.y_upper,
        }
