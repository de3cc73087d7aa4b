"""Kubernetes resource quantities and resource lists."""

from __future__ import annotations

import re
from collections.abc import Mapping, MutableMapping
from decimal import Decimal, InvalidOperation

ResourceList = dict[str, Decimal]

_BINARY = {"Ki": 1, "Mi": 2, "Gi": 3, "Ti": 4, "Pi": 5, "Ei": 6}
_DECIMAL = {"n": -9, "u": -6, "m": -3, "": 0, "k": 3, "M": 6, "G": 9, "T": 12, "P": 15, "E": 18}

_QUANTITY_RE = re.compile(
    r"(?P<number>[+-]?(?:\d+\.?\d*|\.\d+))"
    r"(?P<suffix>Ki|Mi|Gi|Ti|Pi|Ei|[numkMGTPE]|[eE][+-]?\d+)?"
)


class QuantityError(ValueError):
    """A resource quantity could not be parsed."""


def parse_quantity(text: str | int | float | Decimal) -> Decimal:
    """Parse a quantity such as ``"100m"``, ``"1Gi"`` or ``"1e3"``."""
    if isinstance(text, Decimal):
        return text
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        return Decimal(str(text))
    if not isinstance(text, str):
        raise QuantityError(f"invalid quantity {text!r}")
    match = _QUANTITY_RE.fullmatch(text.strip())
    if match is None:
        raise QuantityError(f"invalid quantity {text!r}")
    try:
        number = Decimal(match["number"])
    except InvalidOperation as exc:
        raise QuantityError(f"invalid quantity {text!r}") from exc
    suffix = match["suffix"] or ""
    if suffix in _BINARY:
        return number * (1024 ** _BINARY[suffix])
    if suffix in _DECIMAL:
        return number.scaleb(_DECIMAL[suffix])
    return number.scaleb(int(suffix[1:]))


def add_resources(lhs: MutableMapping[str, Decimal], rhs: Mapping[str, Decimal]) -> None:
    """Add every quantity in ``rhs`` into ``lhs`` in place."""
    for name, quantity in rhs.items():
        lhs[name] = lhs.get(name, Decimal(0)) + quantity


def subtract_resources(lhs: MutableMapping[str, Decimal], rhs: Mapping[str, Decimal]) -> None:
    """Subtract every quantity in ``rhs`` from ``lhs`` in place."""
    for name, quantity in rhs.items():
        lhs[name] = lhs.get(name, Decimal(0)) - quantity