"""Unit tests for resource ledgers and Kubernetes quantity handling."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from clusterdelta.ledger.resources import (
    add,
    add_in_place,
    equal,
    format_quantity,
    ledger_from_quantities,
    ledger_to_quantities,
    parse_quantity,
    rate,
    sub,
    sum_container_requests,
    sum_usage,
)

_names = st.sampled_from(["cpu", "memory", "ephemeral-storage", "nvidia.com/gpu", "pods"])
_ledgers = st.dictionaries(_names, st.integers(min_value=-(10**15), max_value=10**15), max_size=5)

# ---------------------------------------------------------------------------
# Quantities
# ---------------------------------------------------------------------------


class TestParseQuantity:
    @pytest.mark.parametrize(
        ("raw", "millis"),
        [
            ("500m", 500),
            ("1", 1000),
            ("0.5", 500),
            ("4", 4000),
            ("1k", 1_000_000),
            ("1Ki", 1024 * 1000),
            ("8Gi", 8 * 2**30 * 1000),
            ("1e3", 1_000_000),
            ("1M", 10**9),
            ("250000n", 1),
            (2, 2000),
        ],
    )
    def test_parses_to_millis(self, raw: str | int, millis: int) -> None:
        assert parse_quantity(raw) == millis

    def test_sub_milli_fraction_rounds_up(self) -> None:
        assert parse_quantity("1n") == 1
        assert parse_quantity("1500u") == 2

    @pytest.mark.parametrize("raw", ["", "abc", "1Qi", "1.2.3", "--1"])
    def test_rejects_invalid(self, raw: str) -> None:
        with pytest.raises(ValueError):
            parse_quantity(raw)

    def test_rejects_bool(self) -> None:
        with pytest.raises(ValueError):
            parse_quantity(True)


class TestFormatQuantity:
    def test_whole_units(self) -> None:
        assert format_quantity(4000) == "4"

    def test_milli_units(self) -> None:
        assert format_quantity(750) == "750m"

    @given(st.integers(min_value=-(10**15), max_value=10**15))
    def test_parse_inverts_format(self, millis: int) -> None:
        assert parse_quantity(format_quantity(millis)) == millis

    def test_ledger_conversion(self) -> None:
        ledger = ledger_from_quantities({"cpu": "750m", "memory": "1Gi"})
        assert ledger == {"cpu": 750, "memory": 2**30 * 1000}
        assert ledger_to_quantities(ledger) == {"cpu": "750m", "memory": str(2**30)}

    def test_empty_quantities(self) -> None:
        assert ledger_from_quantities(None) == {}
        assert ledger_from_quantities({}) == {}


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


class TestAdd:
    @given(_ledgers, _ledgers, _ledgers)
    def test_associative(self, a: dict[str, int], b: dict[str, int], c: dict[str, int]) -> None:
        assert add(add(a, b), c) == add(a, add(b, c))

    @given(_ledgers, _ledgers)
    def test_commutative(self, a: dict[str, int], b: dict[str, int]) -> None:
        assert equal(add(a, b), add(b, a))

    def test_does_not_mutate_inputs(self) -> None:
        a = {"cpu": 100}
        b = {"cpu": 50, "memory": 10}
        assert add(a, b) == {"cpu": 150, "memory": 10}
        assert a == {"cpu": 100}

    def test_in_place_copies_missing_keys(self) -> None:
        target = {"cpu": 1}
        add_in_place(target, {"memory": 5})
        assert target == {"cpu": 1, "memory": 5}


class TestSub:
    def test_only_shared_keys_are_subtracted(self) -> None:
        assert sub({"cpu": 1000, "memory": 10}, {"cpu": 250, "pods": 3}) == {"cpu": 750, "memory": 10}

    def test_may_go_negative(self) -> None:
        assert sub({"cpu": 100}, {"cpu": 300}) == {"cpu": -200}


class TestEqual:
    def test_same_keys_and_values(self) -> None:
        assert equal({"cpu": 1, "memory": 2}, {"memory": 2, "cpu": 1})

    def test_key_sets_must_match(self) -> None:
        assert not equal({"cpu": 1}, {"cpu": 1, "memory": 0})

    def test_values_must_match(self) -> None:
        assert not equal({"cpu": 1}, {"cpu": 2})


class TestRate:
    def test_absent_requested_key_is_zero(self) -> None:
        assert rate({"cpu": 4000, "memory": 8000}, {}) == {"cpu": 0.0, "memory": 0.0}

    def test_zero_capacity_is_omitted(self) -> None:
        assert rate({"cpu": 0, "memory": 1000}, {"cpu": 500, "memory": 500}) == {"memory": 0.5}

    def test_zero_capacity_omitted_even_when_not_requested(self) -> None:
        assert rate({"nvidia.com/gpu": 0}, {}) == {}

    def test_not_clamped(self) -> None:
        assert rate({"cpu": 1000}, {"cpu": 3000}) == {"cpu": 3.0}

    def test_requested_keys_outside_capacity_are_ignored(self) -> None:
        assert rate({"cpu": 1000}, {"cpu": 500, "pods": 3000}) == {"cpu": 0.5}

    @given(_ledgers, _ledgers)
    def test_keys_follow_capacity(self, capacity: dict[str, int], requested: dict[str, int]) -> None:
        result = rate(capacity, requested)
        assert set(result) == {name for name, cap in capacity.items() if cap != 0}


# ---------------------------------------------------------------------------
# Pod and metrics helpers
# ---------------------------------------------------------------------------


class TestSums:
    def test_container_requests(self) -> None:
        containers = [
            {"resources": {"requests": {"cpu": "250m", "memory": "64Mi"}}},
            {"resources": {"requests": {"cpu": "250m"}}},
            {"resources": {}},
        ]
        assert sum_container_requests(containers) == {"cpu": 500, "memory": 64 * 2**20 * 1000}

    def test_usage_always_has_cpu_and_memory(self) -> None:
        assert sum_usage([]) == {"cpu": 0, "memory": 0}

    def test_usage_sums_items(self) -> None:
        usages = [{"cpu": "100m", "memory": "1Ki"}, None, {"cpu": "50m"}]
        assert sum_usage(usages) == {"cpu": 150, "memory": 1024 * 1000}
