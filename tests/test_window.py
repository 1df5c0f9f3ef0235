import pytest

from hyper_notify.engine.window import closest_index, select_window
from hyper_notify.errors import SelectionError
from hyper_notify.types import Bucket


def make_buckets(*bins):
    return [Bucket(float(b), 1.0, -1.0) for b in bins]


def test_closest_prefers_smallest_distance():
    buckets = make_buckets(40, 45, 50, 55)
    assert closest_index(buckets, 51) == 2


def test_closest_tie_goes_to_first():
    buckets = make_buckets(49, 51)
    assert closest_index(buckets, 50) == 0


def test_closest_empty_raises():
    with pytest.raises(SelectionError):
        closest_index([], 50)


def test_select_small_set_returns_everything():
    buckets = make_buckets(*range(30))
    window = select_window(buckets, 12.2)
    assert list(window.buckets) == buckets
    assert window.highlight_index == 12


def test_select_large_set_returns_twenty_centered():
    buckets = make_buckets(*range(50))
    window = select_window(buckets, 25)
    assert len(window.buckets) == 20
    assert window.highlight_index == 10
    assert window.buckets[10].bin_value == 25
    assert window.buckets[0].bin_value == 15
    assert window.buckets[-1].bin_value == 34


def test_select_large_set_clips_at_low_edge():
    buckets = make_buckets(*range(50))
    window = select_window(buckets, 2)
    assert [b.bin_value for b in window.buckets] == list(range(12))
    assert window.highlight_index == 2


def test_select_large_set_clips_at_high_edge():
    buckets = make_buckets(*range(50))
    window = select_window(buckets, 48)
    assert [b.bin_value for b in window.buckets] == list(range(38, 50))
    assert window.highlight_index == 10
    assert window.buckets[window.highlight_index].bin_value == 48


def test_select_without_reference_uses_zero():
    window = select_window(make_buckets(40, 45, 50), None)
    assert window.highlight_index == 0


def test_select_example_keeps_all_three():
    buckets = [Bucket(48, 10, 0), Bucket(51, 6, 0), Bucket(52, 0, 4)]
    window = select_window(buckets, 50)
    assert list(window.buckets) == buckets
    assert window.highlight_index == 1


def test_select_custom_limits():
    buckets = make_buckets(*range(12))
    window = select_window(buckets, 6, limit=10, radius=3)
    assert [b.bin_value for b in window.buckets] == [3, 4, 5, 6, 7, 8]
    assert window.highlight_index == 3


def test_select_empty_raises():
    with pytest.raises(SelectionError):
        select_window([], 50)
