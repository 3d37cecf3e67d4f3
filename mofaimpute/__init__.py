from __future__ import annotations
from typing import TYPE_CHECKING
from .errors import InconsistentModel, InvalidSelection
from .likelihoods import Likelihood, PredictionType
from .selection import AllOf, SubsetOf
from .utils import FactorModel

if TYPE_CHECKING:
    import pandas as pd

# Public API for the mofaimpute package
__version__ = "0.1.0"
__all__ = [
    "impute",
    "predict",
    "FactorModel",
    "Likelihood",
    "PredictionType",
    "AllOf",
    "SubsetOf",
    "InvalidSelection",
    "InconsistentModel",
    "__version__",
]

def __dir__():
    return __all__

def impute(
    Z,
    W,
    data,
    likelihoods=None,
    views="all",
    factors="all",
    mode: str = "inRange",
    device: str | None = None,
    verbose: bool = False,
    progress_bar: bool = False,
    clip: float | tuple[float, float] | None = None,
    return_model: bool = False,
) -> FactorModel | dict[str, "pd.DataFrame"]:
    """
    Impute missing values of multi-view data from trained factors and loadings.

    Parameters
    ----------
    Z : pandas.DataFrame or array-like
        Factor matrix of shape (n_samples, n_factors).
    W : mapping of str to pandas.DataFrame or array-like
        Loadings of shape (n_features, n_factors) per view.
    data : mapping of str to pandas.DataFrame or array-like
        Observed data of shape (n_features, n_samples) per view, NaN where missing.
    likelihoods : mapping, str, or None, optional
        Likelihood per view ("gaussian", "bernoulli", "poisson"). Default is None
        (all Gaussian).
    views : "all", str, int, or sequence of str/int, optional
        Views to impute. Default is "all".
    factors : "all", str, int, or sequence of str/int, optional
        Factors used in the predictions. Default is "all".
    mode : {"inRange", "response", "link"}, optional
        Scale of the imputed values. Default is "inRange".
    device : str or None, optional
        Device for the matrix products. Default is None (auto-detect).
    verbose : bool, optional
        Whether to print progress messages. Default is False.
    progress_bar : bool, optional
        Whether to display a progress bar over views. Default is False.
    clip : float or tuple of float or None, optional
        Bounds on the linear predictor before the inverse link. Default is None.
    return_model : bool, optional
        Whether to return the model, with results in `imputed_data_`, instead of
        the imputed matrices. Default is False.

    Returns
    -------
    FactorModel or dict of str to pandas.DataFrame
        If return_model is True, returns the model holding the imputed data.
        Otherwise returns the imputed matrices for every view.
    """

    model = FactorModel(
        Z,
        W,
        likelihoods=likelihoods,
        data=data,
        device=device,
        verbose=verbose,
        progress_bar=progress_bar,
        clip=clip,
    )

    imputed = model.impute(views=views, factors=factors, mode=mode)

    if return_model:
        return model
    else:
        return imputed

def predict(
    Z,
    W,
    likelihoods=None,
    views="all",
    factors="all",
    mode: str = "inRange",
    device: str | None = None,
    clip: float | tuple[float, float] | None = None,
) -> dict[str, "pd.DataFrame"]:
    """
    Predict every entry of the selected views from factors and loadings.

    See `impute` for the parameters. Returns predictions of shape
    (n_features, n_samples) per selected view, in requested order.
    """
    model = FactorModel(Z, W, likelihoods=likelihoods, device=device, clip=clip)
    return model.predict(views=views, factors=factors, mode=mode)
