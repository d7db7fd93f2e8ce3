"""Extraction budget tests"""
import threading

import pytest

from conftest import make_context

from harvester.engine.budget import BudgetTracker, ExtractedSet


class TestExtractedSet:
    def test_add_reports_novelty(self):
        extracted = ExtractedSet()
        assert extracted.add("1") is True
        assert extracted.add("1") is False
        assert len(extracted) == 1

    def test_keys_are_strings(self):
        extracted = ExtractedSet([5])
        assert "5" in extracted
        assert 5 in extracted

    def test_snapshot_is_frozen(self):
        extracted = ExtractedSet(["1"])
        snap = extracted.snapshot()
        extracted.add("2")
        assert snap == frozenset({"1"})
        assert set(extracted) == {"1", "2"}

    def test_concurrent_adds(self):
        extracted = ExtractedSet()

        def worker(offset):
            for i in range(500):
                extracted.add(str(offset * 1000 + i))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(extracted) == 2000


class TestBudgetTracker:
    @pytest.mark.parametrize("cap", [None, 0, -4])
    def test_unbounded(self, cap):
        tracker = BudgetTracker(ExtractedSet([str(i) for i in range(1, 100)]), cap)
        assert tracker.is_unbounded
        assert not tracker.is_over_budget()
        assert not tracker.is_over_budget(extra=10_000)
        assert tracker.remaining() is None

    def test_over_budget_exactly_at_cap_and_stays(self):
        extracted = ExtractedSet()
        tracker = BudgetTracker(extracted, 3)

        history = []
        for zpid in ["1", "2", "3", "4"]:
            history.append(tracker.is_over_budget())
            extracted.add(zpid)
            history.append(tracker.is_over_budget())

        # sizes: 0,1 | 1,2 | 2,3 | 3,4
        assert history == [False, False, False, False, False, True, True, True]

    def test_extra_counts_pending_records(self):
        tracker = BudgetTracker(ExtractedSet(["1"]), 3)
        assert not tracker.is_over_budget(extra=1)
        assert tracker.is_over_budget(extra=2)

    def test_remaining(self):
        tracker = BudgetTracker(ExtractedSet(["1", "2"]), 5)
        assert tracker.remaining() == 3

    def test_report(self):
        report = BudgetTracker(ExtractedSet(["1"]), 1).get_report()
        assert report["extracted"] == 1
        assert report["max_items"] == 1
        assert report["remaining"] == 0
        assert report["is_over_budget"] is True
        assert report["elapsed"] >= 0


class TestHarvestContext:
    def test_shared_set_by_reference(self):
        extracted = ExtractedSet()
        context = make_context(max_items=2)
        context.tracker.extracted = extracted
        extracted.add("1")
        assert len(context.extracted) == 1

    def test_record_error(self):
        context = make_context()
        assert context.any_errors is False
        context.record_error("boom")
        context.record_error("again")
        assert context.any_errors is True

    def test_date_range_from_input(self):
        context = make_context(date_from="2024-01-01", date_to="2024-02-01")
        assert context.date_range.start.isoformat() == "2024-01-01"
        assert context.date_range.end.isoformat() == "2024-02-01"
