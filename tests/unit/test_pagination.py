from __future__ import annotations

from unittest.mock import Mock

import pytest

from sheetsync.api.pagination import PaginatedCollection


def _factory(total: int):
    calls: list[tuple[int, int]] = []

    def load(page: int, size: int) -> list[int]:
        calls.append((page, size))
        start = (page - 1) * size
        return list(range(start, min(start + size, total)))

    return load, calls


def test_all_stops_on_short_page():
    load, calls = _factory(25)
    rows = PaginatedCollection(load, page_size=10).all()
    assert rows == list(range(25))
    assert calls == [(1, 10), (2, 10), (3, 10)]


def test_all_requests_one_extra_page_when_total_is_multiple():
    load, calls = _factory(20)
    assert len(PaginatedCollection(load, page_size=10).all()) == 20
    assert [p for p, _ in calls] == [1, 2, 3]


def test_with_count_requests_exact_pages():
    load, calls = _factory(20)
    rows = PaginatedCollection(load, page_size=10, get_count=lambda: 20).all()
    assert len(rows) == 20
    assert [p for p, _ in calls] == [1, 2]


def test_with_zero_count_requests_nothing():
    load, calls = _factory(0)
    assert PaginatedCollection(load, page_size=10, get_count=lambda: 0).all() == []
    assert calls == []


def test_map_applies_to_each_row():
    load, _ = _factory(3)
    assert PaginatedCollection(load, page_size=2).map(lambda n: n * 10) == [0, 10, 20]


def test_default_page_size():
    load, calls = _factory(0)
    PaginatedCollection(load).all()
    assert calls == [(1, 1000)]


def test_invalid_page_size():
    with pytest.raises(ValueError):
        PaginatedCollection(lambda p, s: [], page_size=0)


def test_track_reports_page_progress():
    tracker = Mock()
    load, _ = _factory(20)
    PaginatedCollection(load, page_size=10, get_count=lambda: 20).track(tracker, "Loading").all()
    percents = [c.args[1] for c in tracker.report.call_args_list]
    assert percents == [50, 100, 100]


def test_track_without_count_reports_quietly_per_full_page():
    tracker = Mock()
    tracker.progress_of.return_value = 5
    load, _ = _factory(25)
    PaginatedCollection(load, page_size=10).track(tracker, "Loading").all()
    assert tracker.report_quietly.call_count == 2
    tracker.report.assert_called_once_with("Loading", 100, None)
