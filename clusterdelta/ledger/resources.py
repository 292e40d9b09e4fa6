"""Resource ledgers: arithmetic over resource-name to quantity mappings.

A ledger maps a resource name (``cpu``, ``memory``, ``nvidia.com/gpu``) to an
integer quantity in milli-units, so ``{"cpu": 750}`` is 750m CPU and
``{"memory": 1024000}`` is 1Ki of memory.  Keeping every value at milli
precision makes sums exact and lets rates be computed without float drift.

On the wire quantities travel as Kubernetes quantity strings; use
:func:`parse_quantity` / :func:`format_quantity` (or the ledger-level
:func:`ledger_from_quantities` / :func:`ledger_to_quantities`) at the edges.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Any, Final

ResourceLedger = dict[str, int]
ResourceRate = dict[str, float]

_BINARY_SUFFIXES: Final[dict[str, int]] = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}

_DECIMAL_SUFFIXES: Final[dict[str, Decimal]] = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "": Decimal(1),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}

_RE_QUANTITY = re.compile(r"^([+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+))((?:[eE][+-]?[0-9]+)|[a-zA-Z]*)$")


def parse_quantity(value: str | int | float) -> int:
    """Parse a Kubernetes quantity into milli-units.

    Fractions below one milli-unit round up, matching ``MilliValue()`` on a
    Kubernetes ``resource.Quantity``.

    Raises:
        ValueError: if *value* is not a valid quantity.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid quantity: {value!r}")
    if isinstance(value, int | float):
        number = Decimal(str(value))
        suffix = ""
    else:
        match = _RE_QUANTITY.match(value.strip())
        if match is None:
            raise ValueError(f"Invalid quantity: {value!r}")
        try:
            number = Decimal(match.group(1))
        except InvalidOperation as exc:
            raise ValueError(f"Invalid quantity: {value!r}") from exc
        suffix = match.group(2)

    if suffix in _BINARY_SUFFIXES:
        multiplier = Decimal(_BINARY_SUFFIXES[suffix])
    elif suffix in _DECIMAL_SUFFIXES:
        multiplier = _DECIMAL_SUFFIXES[suffix]
    elif suffix[:1] in ("e", "E"):
        multiplier = Decimal(10) ** int(suffix[1:])
    else:
        raise ValueError(f"Invalid quantity suffix in {value!r}")

    millis = (number * multiplier * 1000).to_integral_value(rounding=ROUND_CEILING)
    return int(millis)


def format_quantity(millis: int) -> str:
    """Render milli-units as a canonical Kubernetes quantity string."""
    if millis % 1000 == 0:
        return str(millis // 1000)
    return f"{millis}m"


def ledger_from_quantities(quantities: Mapping[str, Any] | None) -> ResourceLedger:
    """Build a ledger from a ``ResourceList``-shaped mapping of quantity strings."""
    if not quantities:
        return {}
    return {name: parse_quantity(qty) for name, qty in quantities.items()}


def ledger_to_quantities(ledger: Mapping[str, int]) -> dict[str, str]:
    """Render a ledger as a ``ResourceList``-shaped mapping of quantity strings."""
    return {name: format_quantity(millis) for name, millis in ledger.items()}


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def add_in_place(target: ResourceLedger, other: Mapping[str, int]) -> None:
    """Add every key of *other* into *target*, copying keys *target* lacks."""
    for name, qty in other.items():
        target[name] = target.get(name, 0) + qty


def add(a: Mapping[str, int], b: Mapping[str, int]) -> ResourceLedger:
    """Return the key-wise sum of *a* and *b*."""
    result = dict(a)
    add_in_place(result, b)
    return result


def sub_in_place(target: ResourceLedger, other: Mapping[str, int]) -> None:
    """Subtract *other* from *target* for keys present in both.

    Keys that only appear in *other* are ignored; no negative entries are
    created for them.
    """
    for name, qty in other.items():
        if name in target:
            target[name] -= qty


def sub(a: Mapping[str, int], b: Mapping[str, int]) -> ResourceLedger:
    """Return *a* minus *b*, restricted to keys already in *a*."""
    result = dict(a)
    sub_in_place(result, b)
    return result


def equal(a: Mapping[str, int], b: Mapping[str, int]) -> bool:
    """True iff both ledgers have the same keys with equal quantities."""
    if a.keys() != b.keys():
        return False
    return all(a[name] == b[name] for name in a)


def rate(capacity: Mapping[str, int], requested: Mapping[str, int]) -> ResourceRate:
    """Allocation rate (requested / capacity) per resource in *capacity*.

    A resource whose capacity is exactly zero is left out of the result,
    whether or not it was requested.  A resource missing from *requested*
    has rate 0.  Rates are not clamped, so overcommitted resources report
    values above 1.
    """
    result: ResourceRate = {}
    for name, cap in capacity.items():
        if cap == 0:
            continue
        if name not in requested:
            result[name] = 0.0
            continue
        result[name] = requested[name] / cap
    return result


# ---------------------------------------------------------------------------
# Pod / metrics helpers
# ---------------------------------------------------------------------------


def sum_container_requests(containers: Iterable[Mapping[str, Any]] | None) -> ResourceLedger:
    """Sum ``resources.requests`` across a pod's containers."""
    total: ResourceLedger = {}
    for container in containers or ():
        requests = (container.get("resources") or {}).get("requests") or {}
        add_in_place(total, ledger_from_quantities(requests))
    return total


def sum_usage(usages: Iterable[Mapping[str, Any] | None]) -> ResourceLedger:
    """Sum the cpu and memory of metrics-API ``usage`` blocks.

    Only cpu and memory are reported by the metrics API; both keys are always
    present in the result, even when *usages* is empty.
    """
    cpu = 0
    memory = 0
    for usage in usages:
        if not usage:
            continue
        if "cpu" in usage:
            cpu += parse_quantity(usage["cpu"])
        if "memory" in usage:
            memory += parse_quantity(usage["memory"])
    return {"cpu": cpu, "memory": memory}
