import math

import pytest

from conftest import T0
from tag_locator.decay_model import DistanceEstimator
from tag_locator.models import AggregatedSignal, ConfigurationError, Node


@pytest.mark.parametrize("rssi", [-54.5, -60.0, -75.3, -90.0, -104.0])
def test_distance_inverts_model(estimator, rssi):
    d = estimator.rssi_to_distance(rssi)
    assert d is not None and d > 0
    assert estimator.distance_to_rssi(d) == pytest.approx(rssi, abs=1e-9)


def test_distance_decreases_with_signal(estimator):
    assert estimator.rssi_to_distance(-60.0) < estimator.rssi_to_distance(-80.0)


@pytest.mark.parametrize("offset", [0.0, 1.0, 30.0])
def test_out_of_range_is_undefined(estimator, offset):
    assert estimator.rssi_to_distance(estimator.a + offset) is None
    assert estimator.rssi_to_distance(estimator.K - offset) is None


def test_non_finite_rssi_is_undefined(estimator):
    assert estimator.rssi_to_distance(math.nan) is None
    assert estimator.rssi_to_distance(-math.inf) is None


def test_non_invertible_model_rejected():
    with pytest.raises(ConfigurationError):
        DistanceEstimator(a=-100.0, S=0.005, K=-100.0)
    with pytest.raises(ConfigurationError):
        DistanceEstimator(a=-50.0, S=0.0, K=-100.0)


def test_estimate_attaches_node_coordinates(estimator):
    signal = AggregatedSignal("tag1", "n7", T0, -70.0, 5)
    obs = estimator.estimate(signal, Node("n7", 12.5, -3.0))
    assert (obs.x, obs.y) == (12.5, -3.0)
    assert obs.count == 5
    assert obs.distance == pytest.approx(estimator.rssi_to_distance(-70.0))


def test_estimate_keeps_undefined_distance(estimator):
    obs = estimator.estimate(AggregatedSignal("tag1", "n1", T0, -120.0, 1), Node("n1", 0.0, 0.0))
    assert obs.distance is None
    assert not obs.has_distance


def test_estimate_rejects_wrong_node(estimator):
    with pytest.raises(ValueError):
        estimator.estimate(AggregatedSignal("tag1", "n1", T0, -70.0, 1), Node("n2", 0.0, 0.0))


def test_estimate_all_separates_unknown_nodes(estimator, square_nodes):
    signals = [
        AggregatedSignal("tag1", "n1", T0, -70.0, 1),
        AggregatedSignal("tag1", "ghost", T0, -70.0, 1),
    ]
    observations, orphans = estimator.estimate_all(signals, square_nodes)
    assert [o.node_id for o in observations] == ["n1"]
    assert [s.node_id for s in orphans] == ["ghost"]
