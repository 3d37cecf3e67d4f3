"""Exceptions raised while resolving selections and combining model matrices."""
from __future__ import annotations


class InvalidSelection(ValueError):
    """A requested view, factor or prediction type does not exist."""


class InconsistentModel(ValueError):
    """Factors, loadings and observed data disagree in shape or labels."""
