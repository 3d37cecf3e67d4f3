"""Likelihood-specific inverse links used to turn linear predictors into predictions."""
from __future__ import annotations
from enum import Enum
import torch

from .errors import InvalidSelection


class Likelihood(str, Enum):
    """Noise model of a view, fixed when the factor model was trained."""

    GAUSSIAN = "gaussian"
    BERNOULLI = "bernoulli"
    POISSON = "poisson"

    @classmethod
    def coerce(cls, value: Likelihood | str) -> Likelihood:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidSelection(
                f"Unknown likelihood '{value}'. Expected one of: {', '.join(m.value for m in cls)}."
            ) from None


class PredictionType(str, Enum):
    """Scale on which predictions are returned."""

    IN_RANGE = "inRange"
    RESPONSE = "response"
    LINK = "link"

    @classmethod
    def coerce(cls, value: PredictionType | str | None) -> PredictionType:
        if value is None:
            return cls.IN_RANGE
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidSelection(
                f"Unknown prediction type '{value}'. Expected one of: {', '.join(m.value for m in cls)}."
            ) from None


def stable_logistic(L: torch.Tensor) -> torch.Tensor:
    """
    Logistic function 1 / (1 + exp(-L)) without overflow for large |L|.

    Only exp(-|L|) is ever evaluated, which lies in (0, 1].
    """
    e = torch.exp(-torch.abs(L))
    return torch.where(L >= 0, 1.0 / (1.0 + e), e / (1.0 + e))


def _clip_linear(L: torch.Tensor, clip: float | tuple[float, float] | None) -> torch.Tensor:
    if clip is None:
        return L
    if isinstance(clip, tuple):
        low, high = clip
    else:
        low, high = (-float(clip), float(clip))
    return torch.clamp(L, float(low), float(high))


def predict_from_linear(
    L: torch.Tensor,
    likelihood: Likelihood | str,
    mode: PredictionType | str | None = PredictionType.IN_RANGE,
    clip: float | tuple[float, float] | None = None,
) -> torch.Tensor:
    """
    Map a linear predictor matrix to predictions under a view likelihood.

    Parameters
    ----------
    L : torch.Tensor
        Linear predictor of shape (n_features, n_samples).
    likelihood : Likelihood or str
        One of "gaussian", "bernoulli", "poisson".
    mode : PredictionType or str, optional
        "link" returns L itself; "response" returns the distribution mean
        (identity, logistic or exp); "inRange" additionally rounds the mean of
        integer-valued likelihoods to the nearest integer. Default is "inRange".
    clip : float or tuple of float or None, optional
        Bounds applied to L before the inverse link. A single float applies
        symmetric clipping to (-clip, clip). Ignored for "link" and for
        Gaussian views. Default is None.

    Returns
    -------
    torch.Tensor
        Prediction matrix with the same shape as L. L is not modified.
    """
    likelihood = Likelihood.coerce(likelihood)
    mode = PredictionType.coerce(mode)

    if mode is PredictionType.LINK:
        return L.clone()

    if likelihood is Likelihood.GAUSSIAN:
        # Continuous support: response and inRange coincide with the link scale
        return L.clone()
    if likelihood is Likelihood.BERNOULLI:
        mean = stable_logistic(_clip_linear(L, clip))
    elif likelihood is Likelihood.POISSON:
        # Rates beyond the dtype's range saturate at its largest finite value
        mean = torch.clamp(torch.exp(_clip_linear(L, clip)), max=torch.finfo(L.dtype).max)
    else:
        raise ValueError(f"Unhandled likelihood: {likelihood!r}")

    if mode is PredictionType.IN_RANGE:
        return torch.round(mean)
    return mean
