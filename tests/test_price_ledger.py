"""Tests for the price ledger, run against both storage backends."""

import math
import threading
from datetime import date, datetime, timedelta

import pytest

from price_tracker.config import LedgerConfig
from price_tracker.models import AI_ESTIMATE_KEY, AI_ESTIMATE_STORE, AIEstimateInput
from price_tracker.price_ledger import InvalidObservation, PriceLedger, effective_records

TODAY = date(2026, 10, 19)


class TestUpsert:
    """Tests for PriceLedger.upsert."""

    def test_new_record(self, ledger):
        """A first observation seeds every price field."""
        record = ledger.upsert("Milk 2L", "Tesco Express", 1.80, TODAY, reporter_id="alice")

        assert record.normalized_name == "milk 2l"
        assert record.display_name == "Milk 2L"
        assert record.store_key == "tesco"
        assert record.store_id == "tesco"
        assert record.store_name == "Tesco Express"
        assert record.unit_price == 1.80
        assert record.min_price == record.max_price == record.average_price == 1.80
        assert record.report_count == 1
        assert record.confidence == pytest.approx(0.6)
        assert record.last_seen_date == TODAY
        assert record.last_reported_by == "alice"

    def test_second_observation_same_day(self, ledger):
        """Two same-day reports: equal weighting, confidence 0.7."""
        ledger.upsert("Milk", "Tesco", 2.00, TODAY)
        record = ledger.upsert("Milk", "Tesco", 1.00, TODAY)

        assert record.report_count == 2
        assert record.unit_price == 1.00
        assert record.min_price == 1.00
        assert record.max_price == 2.00
        assert record.average_price == pytest.approx(1.5)
        assert record.confidence == pytest.approx(0.7)

    def test_persisted(self, ledger, any_store):
        ledger.upsert("Milk", "Tesco", 1.20, TODAY)
        stored = any_store.get_price_record("milk", "tesco")
        assert stored is not None
        assert stored.unit_price == 1.20

    def test_older_first_observation_has_lower_confidence(self, ledger):
        record = ledger.upsert("Milk", "Tesco", 1.20, TODAY - timedelta(days=15))
        assert record.confidence == pytest.approx(0.35)

    def test_stale_observation_ignored(self, ledger):
        """An observation older than last_seen_date changes nothing."""
        fresh = ledger.upsert("Milk", "Tesco", 1.20, TODAY)
        result = ledger.upsert("Milk", "Tesco", 0.50, TODAY - timedelta(days=5))

        assert result.unit_price == 1.20
        assert result.report_count == 1
        stored = ledger.get_records("Milk")[0]
        assert stored.unit_price == fresh.unit_price
        assert stored.min_price == 1.20
        assert stored.report_count == 1

    def test_unique_per_item_and_store(self, ledger):
        """Case and whitespace variations hit the same record."""
        ledger.upsert("Milk 2L", "Tesco", 1.80, TODAY)
        ledger.upsert("  milk   2l ", "TESCO EXPRESS", 1.70, TODAY)

        records = ledger.get_records("MILK 2L")
        assert len(records) == 1
        assert records[0].report_count == 2

    def test_unknown_store_keys_on_cleaned_name(self, ledger):
        record = ledger.upsert("Milk", "Joe's Corner Shop", 1.10, TODAY)
        assert record.store_id is None
        assert record.store_key == "joes corner shop"

    def test_accepts_iso_string_and_datetime(self, ledger):
        record = ledger.upsert("Milk", "Tesco", 1.0, TODAY.isoformat())
        assert record.last_seen_date == TODAY
        record = ledger.upsert("Eggs", "Tesco", 2.0, datetime(2026, 10, 19, 17, 30))
        assert record.last_seen_date == TODAY

    def test_future_date_counts_as_today(self, ledger):
        record = ledger.upsert("Milk", "Tesco", 1.0, TODAY + timedelta(days=3))
        assert record.confidence == pytest.approx(0.6)

    def test_size_kept_only_as_pair(self, ledger):
        partial = ledger.upsert("Milk", "Tesco", 1.0, TODAY, size="2")
        assert partial.size is None
        assert partial.unit is None

        full = ledger.upsert("Milk", "Tesco", 1.0, TODAY, size="2", unit="L")
        assert (full.size, full.unit) == ("2", "L")
        assert full.variant_name == "Milk 2L"

    def test_unsized_observation_clears_label(self, ledger):
        ledger.upsert("Milk", "Tesco", 1.0, TODAY, size="2", unit="L")

        again = ledger.upsert("Milk", "Tesco", 1.1, TODAY)

        assert (again.size, again.unit, again.variant_name) == (None, None, None)

    def test_stale_observation_keeps_label(self, ledger):
        ledger.upsert("Milk", "Tesco", 1.0, TODAY, size="2", unit="L")

        stale = ledger.upsert("Milk", "Tesco", 1.1, TODAY - timedelta(days=2))

        assert stale.variant_name == "Milk 2L"

    def test_custom_decay_horizon(self, any_store):
        ledger = PriceLedger(any_store, LedgerConfig(decay_days=10), today=lambda: TODAY)
        record = ledger.upsert("Milk", "Tesco", 1.0, TODAY - timedelta(days=5))
        assert record.confidence == pytest.approx(0.1 + 0.25)


class TestValidation:
    """Invalid observations raise and write nothing."""

    @pytest.mark.parametrize("price", [0, -1, -0.01, math.nan, math.inf, -math.inf])
    def test_bad_prices(self, ledger, price):
        with pytest.raises(InvalidObservation):
            ledger.upsert("Milk", "Tesco", price, TODAY)
        assert ledger.get_records("Milk") == []

    @pytest.mark.parametrize("price", ["1.20", None, True])
    def test_non_numeric_prices(self, ledger, price):
        with pytest.raises(InvalidObservation):
            ledger.upsert("Milk", "Tesco", price, TODAY)

    @pytest.mark.parametrize("item", ["", "   "])
    def test_empty_item(self, ledger, item):
        with pytest.raises(InvalidObservation):
            ledger.upsert(item, "Tesco", 1.0, TODAY)

    def test_empty_store(self, ledger):
        with pytest.raises(InvalidObservation):
            ledger.upsert("Milk", "  ", 1.0, TODAY)

    @pytest.mark.parametrize("store", ["AI Estimate", "ai  estimate"])
    def test_reserved_store(self, ledger, store):
        with pytest.raises(InvalidObservation):
            ledger.upsert("Milk", store, 1.0, TODAY)
        assert ledger.get_records("Milk") == []

    def test_bad_date(self, ledger):
        with pytest.raises(InvalidObservation):
            ledger.upsert("Milk", "Tesco", 1.0, "last tuesday")
        assert ledger.get_records("Milk") == []

    def test_invalid_observation_is_value_error(self):
        assert issubclass(InvalidObservation, ValueError)


class TestAIEstimates:
    """Tests for AI-estimated prices."""

    def _estimate(self, price=1.20):
        return AIEstimateInput(
            normalized_name="milk 2l", item_name="Milk 2L", unit_price=price, user_id="alice"
        )

    def test_record_estimate(self, ledger):
        record = ledger.record_ai_estimate(self._estimate())

        assert record is not None
        assert record.store_key == AI_ESTIMATE_KEY
        assert record.store_name == AI_ESTIMATE_STORE
        assert record.report_count == 0
        assert record.confidence == pytest.approx(0.05)
        assert record.is_estimate

    def test_estimate_used_when_alone(self, ledger):
        ledger.record_ai_estimate(self._estimate())
        estimate = ledger.get_price_estimate("Milk 2L")

        assert estimate.cheapest.store == AI_ESTIMATE_STORE
        assert estimate.cheapest.price == 1.20
        assert estimate.store_count == 1

    def test_real_record_supersedes_estimate(self, ledger):
        """A cheaper AI guess is ignored once a receipt price exists."""
        ledger.record_ai_estimate(self._estimate(0.90))
        ledger.upsert("Milk 2L", "Tesco", 1.80, TODAY)

        estimate = ledger.get_price_estimate("Milk 2L")
        assert estimate.cheapest.store == "tesco"
        assert estimate.cheapest.price == 1.80
        assert estimate.store_count == 1

    def test_compare_requesting_estimate_store(self, ledger):
        ledger.record_ai_estimate(self._estimate(1.20))

        comparison = ledger.compare_across_stores(
            "Milk 2L", store_ids=[AI_ESTIMATE_STORE, "tesco"]
        )

        assert list(comparison.by_store) == [AI_ESTIMATE_STORE, "tesco"]
        assert comparison.by_store[AI_ESTIMATE_STORE].price == 1.20
        assert comparison.by_store["tesco"] is None
        assert comparison.cheapest_store == AI_ESTIMATE_STORE

    def test_estimate_refreshed(self, ledger):
        ledger.record_ai_estimate(self._estimate(1.20))
        record = ledger.record_ai_estimate(self._estimate(1.40))

        assert record.unit_price == 1.40
        assert len(ledger.get_records("Milk 2L")) == 1

    def test_effective_records(self, ledger):
        ledger.record_ai_estimate(self._estimate())
        only_estimate = ledger.get_records("Milk 2L")
        assert effective_records(only_estimate) == only_estimate

        ledger.upsert("Milk 2L", "Aldi", 1.50, TODAY)
        effective = effective_records(ledger.get_records("Milk 2L"))
        assert [r.store_key for r in effective] == ["aldi"]


class TestQueries:
    """Tests for estimates and comparisons."""

    @pytest.fixture
    def two_stores(self, ledger):
        ledger.upsert("Milk 2L", "Tesco Express", 1.80, TODAY, size="2", unit="L")
        ledger.upsert("Milk 2L", "ALDI UK", 1.50, TODAY)
        return ledger

    def test_get_records_cheapest_first(self, two_stores):
        assert [r.store_key for r in two_stores.get_records("Milk 2L")] == ["aldi", "tesco"]

    def test_get_price_estimate(self, two_stores):
        estimate = two_stores.get_price_estimate("milk 2l")

        assert estimate.item_name == "Milk 2L"
        assert estimate.cheapest.price == 1.50
        assert estimate.cheapest.store == "aldi"
        assert estimate.cheapest.store_id == "aldi"
        assert estimate.cheapest.last_seen == TODAY
        assert estimate.store_count == 2
        assert estimate.average == pytest.approx(1.65)

    def test_estimate_unknown_item(self, ledger):
        assert ledger.get_price_estimate("Caviar") is None

    def test_batch_get_estimates(self, two_stores):
        estimates = two_stores.batch_get_estimates(["Milk 2L", "Caviar"])
        assert set(estimates) == {"Milk 2L", "Caviar"}
        assert estimates["Milk 2L"].cheapest.price == 1.50
        assert estimates["Caviar"] is None

    def test_compare_all_stores(self, two_stores):
        comparison = two_stores.compare_across_stores("Milk 2L")

        assert set(comparison.by_store) == {"tesco", "aldi"}
        assert comparison.cheapest_store == "aldi"
        assert comparison.cheapest_price == 1.50
        assert comparison.average_price == pytest.approx(1.65)
        assert comparison.stores_with_data == 2
        assert comparison.by_store["tesco"].store == "Tesco Express"

    def test_compare_requested_stores(self, two_stores):
        """Requested stores without data appear as None."""
        comparison = two_stores.compare_across_stores(
            "Milk 2L", store_ids=["Tesco", "aldi", "lidl"]
        )

        assert list(comparison.by_store) == ["tesco", "aldi", "lidl"]
        assert comparison.by_store["lidl"] is None
        assert comparison.cheapest_store == "aldi"
        assert comparison.stores_with_data == 2

    def test_compare_size_filter(self, two_stores):
        comparison = two_stores.compare_across_stores("Milk 2L", size="2L")

        assert list(comparison.by_store) == ["tesco"]
        assert comparison.cheapest_price == 1.80
        assert comparison.size == "2L"

    def test_compare_no_data(self, ledger):
        comparison = ledger.compare_across_stores("Caviar", store_ids=["tesco"])
        assert comparison.by_store == {"tesco": None}
        assert comparison.cheapest_store is None
        assert comparison.stores_with_data == 0


class TestAttachVariant:
    def test_attach(self, ledger):
        ledger.upsert("Milk", "Tesco", 1.0, TODAY)
        record = ledger.attach_variant("Milk", "Tesco", "Milk 1L", "1", "L")
        assert record.variant_name == "Milk 1L"
        assert (record.size, record.unit) == ("1", "L")
        assert ledger.get_records("Milk")[0].variant_name == "Milk 1L"

    def test_attach_missing_record(self, ledger):
        assert ledger.attach_variant("Milk", "Tesco", "Milk 1L", "1", "L") is None
        assert ledger.get_records("Milk") == []


class TestConcurrentUpserts:
    """Concurrent writers to one key never lose an update."""

    def test_no_lost_updates(self, ledger):
        threads_count, per_thread = 4, 10
        errors: list[Exception] = []

        def worker():
            try:
                for _ in range(per_thread):
                    ledger.upsert("Milk", "Tesco", 1.0, TODAY)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(threads_count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        records = ledger.get_records("Milk")
        assert len(records) == 1
        assert records[0].report_count == threads_count * per_thread
