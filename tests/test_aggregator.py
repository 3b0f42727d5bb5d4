from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from tag_locator.aggregator import aggregate, bucket_start
from tag_locator.models import SmoothedDetection

MINUTE = timedelta(minutes=1)


def _s(ts, rssi, node="n1", tag="tag1"):
    return SmoothedDetection(tag, node, ts, rssi)


def test_bucket_start_is_right_open():
    assert bucket_start(datetime(2023, 6, 1, 12, 0, 59, 999999), MINUTE) == datetime(2023, 6, 1, 12, 0)
    assert bucket_start(datetime(2023, 6, 1, 12, 1), MINUTE) == datetime(2023, 6, 1, 12, 1)


def test_bucket_start_aligns_wider_buckets_to_clock():
    width = timedelta(minutes=5)
    assert bucket_start(datetime(2023, 6, 1, 12, 7, 30), width) == datetime(2023, 6, 1, 12, 5)
    assert bucket_start(datetime(2023, 6, 1, 23, 59), timedelta(hours=1)) == datetime(2023, 6, 1, 23, 0)


def test_bucket_start_keeps_timezone():
    ts = datetime(2023, 6, 1, 12, 0, 40, tzinfo=timezone.utc)
    assert bucket_start(ts, MINUTE) == datetime(2023, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_mean_and_count_per_bucket():
    t = datetime(2023, 6, 1, 12, 0)
    smoothed = [
        _s(t, -60.0),
        _s(t + timedelta(seconds=30), -70.0),
        _s(t + timedelta(seconds=65), -80.0),
    ]
    out = aggregate(smoothed, MINUTE)
    assert [(a.bucket_start, a.count) for a in out] == [(t, 2), (t + MINUTE, 1)]
    assert out[0].mean_rssi == pytest.approx(-65.0)
    assert out[1].mean_rssi == -80.0
    assert out[0].bucket_date == t.date()


def test_buckets_disjoint_and_counts_conserved():
    t = datetime(2023, 6, 1, 12, 0)
    smoothed = [
        _s(t + timedelta(seconds=17 * i), -60.0 - i, node=f"n{i % 3}") for i in range(40)
    ]
    out = aggregate(smoothed, MINUTE)
    keys = [(a.tag_id, a.node_id, a.bucket_start) for a in out]
    assert len(keys) == len(set(keys))
    assert all(a.count >= 1 for a in out)

    totals = Counter()
    for a in out:
        totals[a.node_id] += a.count
    assert totals == Counter(s.node_id for s in smoothed)

    expected = {(s.tag_id, s.node_id, bucket_start(s.timestamp, MINUTE)) for s in smoothed}
    assert set(keys) == expected


def test_empty_gaps_are_omitted():
    t = datetime(2023, 6, 1, 12, 0)
    out = aggregate([_s(t, -60.0), _s(t + timedelta(minutes=10), -61.0)], MINUTE)
    assert len(out) == 2


def test_empty_input():
    assert aggregate([], MINUTE) == []


def test_non_positive_width_rejected():
    with pytest.raises(ValueError):
        aggregate([], timedelta(0))
