from __future__ import annotations

import math
from datetime import datetime, timedelta

import pytest

from tag_locator.config_manager import EngineConfig
from tag_locator.decay_model import DistanceEstimator
from tag_locator.models import Detection, DistanceObservation, Node

T0 = datetime(2023, 6, 1, 5, 30)


@pytest.fixture
def square_nodes() -> dict[str, Node]:
    return {
        "n1": Node("n1", 0.0, 0.0),
        "n2": Node("n2", 100.0, 0.0),
        "n3": Node("n3", 0.0, 100.0),
        "n4": Node("n4", 100.0, 100.0),
    }


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig().validate()


@pytest.fixture
def estimator(engine_config: EngineConfig) -> DistanceEstimator:
    return DistanceEstimator(engine_config.a, engine_config.S, engine_config.K)


def observation(node: Node, distance, rssi: float = -70.0, tag_id: str = "tag1", start: datetime = T0):
    return DistanceObservation(
        tag_id=tag_id,
        node_id=node.node_id,
        bucket_start=start,
        mean_rssi=rssi,
        count=1,
        distance=distance,
        x=node.x,
        y=node.y,
    )


def beeps_at(
    estimator: DistanceEstimator,
    nodes: dict[str, Node],
    position: tuple[float, float],
    tag_id: str = "tag1",
    start: datetime = T0,
    minutes: int = 3,
    per_minute: int = 4,
) -> list[Detection]:
    """无噪声的模拟检测：每个节点收到与真实距离对应的 RSSI"""
    detections = []
    for node in nodes.values():
        d = math.hypot(position[0] - node.x, position[1] - node.y)
        rssi = estimator.distance_to_rssi(d)
        for i in range(minutes * per_minute):
            ts = start + timedelta(seconds=i * 60 / per_minute)
            detections.append(Detection(tag_id, node.node_id, ts, rssi))
    return detections
