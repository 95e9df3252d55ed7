"""Tests for store identity resolution."""

import pytest

from price_tracker.models import StoreType
from price_tracker.store_normalizer import (
    ALIAS_TO_STORE_ID,
    MATCH_STRATEGIES,
    NOISE_SUFFIXES,
    UK_STORES,
    clean_store_text,
    get_all_store_ids,
    get_all_stores,
    get_mainstream_stores,
    get_specialty_stores,
    get_store_info,
    get_stores_by_type,
    get_stores_for_cuisines,
    is_valid_store_id,
    match_alias_prefix,
    match_exact_alias,
    match_store_id_token,
    match_stripped_alias,
    resolve_store,
    store_key,
    strip_noise_suffixes,
)


class TestResolveStore:
    """Tests for resolve_store."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("TESCO EXPRESS", "tesco"),
            ("tesco express", "tesco"),
            ("Tesco", "tesco"),
            ("Sainsbury's Local", "sainsburys"),
            ("M&S Simply Food", "marks"),
            ("Marks & Spencer", "marks"),
            ("ALDI UK", "aldi"),
            ("Lidl GB", "lidl"),
            ("Co-op", "coop"),
            ("Waitrose & Partners", "waitrose"),
            ("Wing Yip Superstore", "wingyip"),
            ("  tesco   express  ", "tesco"),
            ("Tesco Express.", "tesco"),
        ],
    )
    def test_known_names(self, raw, expected):
        """Known spellings resolve to their canonical id."""
        assert resolve_store(raw) == expected

    def test_case_insensitive(self):
        """Resolution ignores case."""
        assert resolve_store("TESCO EXPRESS") == resolve_store("tesco express") == "tesco"

    def test_unknown_store(self):
        """Unrecognized stores resolve to None."""
        assert resolve_store("Unknown Corner Shop") is None

    def test_no_false_substring_match(self):
        """'asda' inside 'hasda' does not match."""
        assert resolve_store("hasda mini mart") != "asda"
        assert resolve_store("hasda mini mart") is None

    def test_suffix_stripping(self):
        """Noise suffixes are stripped before alias lookup is retried."""
        assert resolve_store("Asda Superstore Ltd") == "asda"
        assert resolve_store("Budgens Local Ltd") == "budgens"

    def test_id_as_whole_word(self):
        """A store id anywhere as a whole word matches."""
        assert resolve_store("Big Tesco Car Park") == "tesco"

    def test_alias_prefix(self):
        """A name starting with an alias matches."""
        assert resolve_store("Tesco Petrol Station") == "tesco"

    @pytest.mark.parametrize("raw", ["", "   ", "!!!", None, 42])
    def test_empty_or_non_string(self, raw):
        """Empty and non-string input resolves to None."""
        assert resolve_store(raw) is None


class TestMatchStrategies:
    """Each strategy on its own."""

    def test_strategy_order(self):
        """Strategies run exact, stripped, id token, prefix."""
        assert MATCH_STRATEGIES == (
            match_exact_alias,
            match_stripped_alias,
            match_store_id_token,
            match_alias_prefix,
        )

    def test_exact_alias(self):
        assert match_exact_alias("tesco express") == "tesco"
        assert match_exact_alias("tesco express 123") is None

    def test_stripped_alias(self):
        assert match_stripped_alias("lidl stores ltd") == "lidl"
        assert match_stripped_alias("corner store") is None

    def test_store_id_token(self):
        assert match_store_id_token("my local aldi") == "aldi"
        assert match_store_id_token("hasda") is None

    def test_alias_prefix(self):
        assert match_alias_prefix("asda walmart") == "asda"
        assert match_alias_prefix("hasda") is None


class TestCleaning:
    """Tests for text cleaning helpers."""

    def test_clean_store_text(self):
        """Lowercases, drops punctuation, collapses whitespace."""
        assert clean_store_text("  Sainsbury's   LOCAL! ") == "sainsburys local"

    def test_clean_non_string(self):
        assert clean_store_text(None) == ""

    def test_strip_noise_suffixes(self):
        """Each removed suffix yields a new form."""
        assert strip_noise_suffixes("asda superstore ltd") == ["asda superstore"]
        assert strip_noise_suffixes("tesco") == []

    def test_store_key_known(self):
        assert store_key("TESCO EXPRESS") == "tesco"

    def test_store_key_unknown(self):
        """Unknown stores key on their cleaned name."""
        assert store_key("Joe's  Corner Shop") == "joes corner shop"


class TestStoreData:
    """Tests for the static store catalogue."""

    def test_store_count(self):
        """20 mainstream and 9 specialty stores."""
        assert len(UK_STORES) == 29
        assert len(get_mainstream_stores()) == 20
        assert len(get_specialty_stores()) == 9

    def test_ids_unique(self):
        ids = [s.id for s in UK_STORES]
        assert len(ids) == len(set(ids))

    def test_aliases_disjoint(self):
        """No alias belongs to two stores."""
        owners: dict[str, str] = {}
        for store in UK_STORES:
            for alias in store.aliases:
                assert owners.setdefault(alias, store.id) == store.id, alias

    def test_aliases_lowercase(self):
        for store in UK_STORES:
            assert all(alias == alias.lower() for alias in store.aliases)

    def test_every_alias_resolves_to_owner(self):
        """Every shipped alias resolves back to its own store."""
        for store in UK_STORES:
            for alias in store.aliases:
                assert ALIAS_TO_STORE_ID[alias] == store.id

    def test_alias_table_read_only(self):
        with pytest.raises(TypeError):
            ALIAS_TO_STORE_ID["new"] = "tesco"  # type: ignore[index]

    def test_noise_suffixes(self):
        assert "express" in NOISE_SUFFIXES
        assert "wholesale" in NOISE_SUFFIXES


class TestCatalogueLookups:
    """Tests for store catalogue helpers."""

    def test_get_all_stores_sorted(self):
        """Largest market share first."""
        stores = get_all_stores()
        shares = [s.market_share for s in stores]
        assert shares == sorted(shares, reverse=True)
        assert stores[0].id == "tesco"

    def test_get_store_info(self):
        info = get_store_info("aldi")
        assert info is not None
        assert info.display_name == "Aldi"
        assert info.store_type == StoreType.DISCOUNTER

    def test_get_store_info_unknown(self):
        assert get_store_info("nope") is None
        assert get_store_info(None) is None

    def test_get_stores_by_type(self):
        discounters = {s.id for s in get_stores_by_type("discounter")}
        assert discounters == {"aldi", "lidl"}

    def test_is_valid_store_id(self):
        assert is_valid_store_id("tesco")
        assert not is_valid_store_id("Tesco")

    def test_get_all_store_ids(self):
        ids = get_all_store_ids()
        assert ids[0] == "tesco"
        assert len(ids) == 29

    def test_get_stores_for_cuisines(self):
        ids = {s.id for s in get_stores_for_cuisines(["nigerian"])}
        assert ids == {"african_grocery"}

    def test_get_stores_for_cuisines_none(self):
        assert get_stores_for_cuisines(["british"]) == []
