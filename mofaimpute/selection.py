"""Selection of views and factors by name or position."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Sequence, Union
import numbers
import numpy as np

from .errors import InvalidSelection


@dataclass(frozen=True)
class AllOf:
    """Select every item, in the model's stored order."""


@dataclass(frozen=True)
class SubsetOf:
    """Select the listed items (names or 1-based positions) in the given order."""

    items: tuple

    def __init__(self, items):
        if isinstance(items, (str, numbers.Integral)):
            items = [items]
        object.__setattr__(self, "items", tuple(items))


Selection = Union[AllOf, SubsetOf]


def as_selection(selector) -> Selection:
    """
    Normalize a user-facing selection argument.

    Parameters
    ----------
    selector : "all", AllOf, SubsetOf, str, int, or sequence of str/int
        ``"all"`` (or ``None``) selects everything. A single name or position
        selects one item; a sequence selects several, keeping its order.

    Returns
    -------
    AllOf or SubsetOf
    """
    if isinstance(selector, (AllOf, SubsetOf)):
        return selector
    if selector is None:
        return AllOf()
    if isinstance(selector, str) and selector == "all":
        return AllOf()
    # A list holding only "all" is how R callers spell the sentinel
    if isinstance(selector, (list, tuple)) and len(selector) == 1 and isinstance(selector[0], str) and selector[0] == "all":
        return AllOf()
    return SubsetOf(selector)


def resolve_selection(selector, names: Sequence[str], kind: str = "item") -> list[str]:
    """
    Resolve a selection against an ordered list of available names.

    Parameters
    ----------
    selector : selection argument accepted by :func:`as_selection`
    names : sequence of str
        Available names in canonical order.
    kind : str, optional
        Noun used in error messages ("view", "factor"). Default is "item".

    Returns
    -------
    list of str
        Selected names, in the requested order.

    Raises
    ------
    InvalidSelection
        If a name is unknown, a position is out of range, the selection is
        empty, or an item is requested twice.
    """
    selection = as_selection(selector)
    names = [str(n) for n in names]
    if isinstance(selection, AllOf):
        return list(names)

    if len(selection.items) == 0:
        raise InvalidSelection(f"Empty {kind} selection.")

    lookup = set(names)
    resolved = []
    for item in selection.items:
        if isinstance(item, (bool, np.bool_)):
            raise InvalidSelection(f"Boolean values are not valid {kind} selectors: {item!r}.")
        if isinstance(item, str):
            if item not in lookup:
                raise InvalidSelection(
                    f"Unknown {kind} '{item}'. Available: {', '.join(names)}."
                )
            resolved.append(item)
        elif isinstance(item, numbers.Integral):
            idx = int(item)
            # Positions count from 1, in line with the default factor names LF1..LFK
            if idx < 1 or idx > len(names):
                raise InvalidSelection(
                    f"{kind.capitalize()} index {idx} out of range [1, {len(names)}]."
                )
            resolved.append(names[idx - 1])
        else:
            raise InvalidSelection(f"Invalid {kind} selector type: {type(item).__name__}.")

    if len(set(resolved)) != len(resolved):
        raise InvalidSelection(f"Duplicate {kind} in selection: {list(selection.items)}.")
    return resolved
