"""Resource ledgers for clusterdelta.

Submodules:
    resources -- Quantity parsing and key-wise ledger arithmetic (add, sub,
                 equal, rate) at milli-unit precision.
"""

from clusterdelta.ledger.resources import (
    ResourceLedger,
    ResourceRate,
    add,
    add_in_place,
    equal,
    format_quantity,
    ledger_from_quantities,
    ledger_to_quantities,
    parse_quantity,
    rate,
    sub,
    sub_in_place,
)

__all__ = [
    "ResourceLedger",
    "ResourceRate",
    "add",
    "add_in_place",
    "equal",
    "format_quantity",
    "ledger_from_quantities",
    "ledger_to_quantities",
    "parse_quantity",
    "rate",
    "sub",
    "sub_in_place",
]
