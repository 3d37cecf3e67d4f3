"""Predictions and missing-value imputation from a fitted multi-view factor model."""
from __future__ import annotations
from collections.abc import Mapping
import torch
import numpy as np
import pandas as pd
import warnings
from tqdm import tqdm
import scipy.sparse as sp

from .errors import InconsistentModel
from .likelihoods import Likelihood, PredictionType, predict_from_linear
from .selection import resolve_selection


class FactorModel:
    """
    Read-only view of a trained multi-view factor model.

    Holds the factor matrix Z (samples x factors), one loading matrix W_v
    (features x factors) per view and the likelihood of each view. Predictions
    for a view are f(W_v @ Z.T) with f the inverse link of its likelihood.
    """
    def __init__(
        self,
        Z,
        W: Mapping,
        likelihoods: Mapping | Likelihood | str | None = None,
        data: Mapping | None = None,
        sample_names=None,
        factor_names=None,
        feature_names: Mapping | None = None,
        device: str | None = None,
        verbose: bool = False,
        progress_bar: bool = False,
        clip: float | tuple[float, float] | None = None,
    ):
        """
        Initialize the factor model from trained matrices.

        Parameters
        ----------
        Z : pandas.DataFrame, array-like, or scipy.sparse matrix
            Factor matrix of shape (n_samples, n_factors). A DataFrame supplies
            sample names (index) and factor names (columns).
        W : mapping of str to pandas.DataFrame, array-like, or scipy.sparse matrix
            Loading matrix of shape (n_features, n_factors) for each view. The
            mapping order defines the canonical view order.
        likelihoods : mapping, Likelihood, str, or None, optional
            Likelihood per view ("gaussian", "bernoulli", "poisson"). A single
            value applies to every view. Views without an entry are Gaussian.
            Default is None (all Gaussian).
        data : mapping of str to matrix or None, optional
            Training data per view, shape (n_features, n_samples), NaN where
            unobserved. Used by `impute` when no data is passed. Default is None.
        sample_names, factor_names : sequence of str or None, optional
            Labels for array-valued Z. Defaults are "sample_<i>" and "LF<k>".
        feature_names : mapping of str to sequence of str or None, optional
            Feature labels for array-valued loadings. Default is "<view>_feature_<j>".
        device : str or None, optional
            Device used for the matrix products. If None, uses "cuda" if available,
            otherwise "mps" if available, otherwise "cpu". Default is None.
        verbose : bool, optional
            Whether to print progress messages. Default is False.
        progress_bar : bool, optional
            Whether to display a progress bar over views. Default is False.
        clip : float or tuple of float or None, optional
            Bounds on the linear predictor before the inverse link of Bernoulli
            and Poisson views. Default is None (no clipping).
        """
        self.verbose = verbose
        self.progress_bar = progress_bar
        self.clip = clip
        self.device = self._resolve_device(device)
        self.dtype = torch.float32 if self.device == "mps" else torch.float64

        self.Z = self._factor_frame(Z, sample_names, factor_names)
        feature_names = feature_names or {}
        if not isinstance(W, Mapping) or len(W) == 0:
            raise InconsistentModel("Loadings must be a non-empty mapping of view name to matrix.")
        self.W = {
            str(view): self._loading_frame(str(view), W_v, feature_names.get(view))
            for view, W_v in W.items()
        }
        self.likelihoods = self._resolve_likelihoods(likelihoods)
        self.data = data

        if self.verbose:
            print(
                f"Factor model with {self.n_samples} samples, {self.n_factors} factors "
                f"and {self.n_views} views on device: '{self.device}'"
            )

    @staticmethod
    def _resolve_device(device: str | None) -> str:
        if device is None:
            if torch.cuda.is_available():
                return "cuda"
            if torch.backends.mps.is_available():
                return "mps"
            return "cpu"
        if device not in ["cuda", "mps", "cpu"]:
            warnings.warn("Device must be 'cuda', 'mps', or 'cpu'. Using 'cpu' instead.")
            device = "cpu"
        if device == "cuda" and not torch.cuda.is_available():
            warnings.warn("CUDA device is not available. Using 'cpu' instead.")
            device = "cpu"
        if device == "mps" and not torch.backends.mps.is_available():
            warnings.warn("MPS device is not available. Using 'cpu' instead.")
            device = "cpu"
        return device

    @staticmethod
    def _dense(X) -> np.ndarray:
        if sp.issparse(X):
            X = X.toarray()
        elif isinstance(X, torch.Tensor):
            X = X.detach().cpu().numpy()
        X = np.array(X, dtype=np.float64)
        if X.ndim != 2:
            raise InconsistentModel(f"Expected a 2-dimensional matrix, got {X.ndim} dimensions.")
        return X

    @staticmethod
    def _check_unique(labels: pd.Index, what: str) -> None:
        if labels.has_duplicates:
            dups = labels[labels.duplicated()].unique().tolist()
            raise InconsistentModel(f"Duplicated {what}: {dups}.")

    def _factor_frame(self, Z, sample_names, factor_names) -> pd.DataFrame:
        if isinstance(Z, pd.DataFrame):
            values = Z.to_numpy(dtype=np.float64, copy=True)
            index, columns = Z.index, Z.columns
        else:
            values = self._dense(Z)
            n, k = values.shape
            index = sample_names if sample_names is not None else [f"sample_{i}" for i in range(n)]
            columns = factor_names if factor_names is not None else [f"LF{i + 1}" for i in range(k)]
            if len(index) != n or len(columns) != k:
                raise InconsistentModel(
                    f"Factor matrix has shape {values.shape} but {len(index)} sample names "
                    f"and {len(columns)} factor names were given."
                )
        Z = pd.DataFrame(values, index=pd.Index(index).astype(str), columns=pd.Index(columns).astype(str))
        self._check_unique(Z.index, "sample names")
        self._check_unique(Z.columns, "factor names")
        return Z

    def _loading_frame(self, view: str, W_v, feature_names) -> pd.DataFrame:
        if isinstance(W_v, pd.DataFrame):
            W_v = pd.DataFrame(
                W_v.to_numpy(dtype=np.float64, copy=True),
                index=W_v.index.astype(str),
                columns=W_v.columns.astype(str),
            )
            self._check_unique(W_v.columns, f"factor names in loadings of view '{view}'")
            if set(W_v.columns) != set(self.Z.columns):
                raise InconsistentModel(
                    f"Loadings of view '{view}' have factors {list(W_v.columns)}, "
                    f"factor matrix has {list(self.Z.columns)}."
                )
            W_v = W_v[self.Z.columns]
        else:
            values = self._dense(W_v)
            m, k = values.shape
            if k != self.n_factors:
                raise InconsistentModel(
                    f"Loadings of view '{view}' have {k} factors, factor matrix has {self.n_factors}."
                )
            index = feature_names if feature_names is not None else [f"{view}_feature_{j}" for j in range(m)]
            if len(index) != m:
                raise InconsistentModel(
                    f"Loadings of view '{view}' have {m} features but {len(index)} feature names were given."
                )
            W_v = pd.DataFrame(values, index=pd.Index(index).astype(str), columns=self.Z.columns)
        self._check_unique(W_v.index, f"feature names in view '{view}'")
        return W_v

    def _resolve_likelihoods(self, likelihoods) -> dict[str, Likelihood]:
        if likelihoods is None:
            return {view: Likelihood.GAUSSIAN for view in self.W}
        if isinstance(likelihoods, (Likelihood, str)):
            lik = Likelihood.coerce(likelihoods)
            return {view: lik for view in self.W}

        unknown = [str(v) for v in likelihoods if str(v) not in self.W]
        if unknown:
            raise InconsistentModel(f"Likelihoods given for views not in the model: {unknown}.")
        resolved = {}
        for view in self.W:
            if view in likelihoods:
                resolved[view] = Likelihood.coerce(likelihoods[view])
            else:
                warnings.warn(f"No likelihood given for view '{view}'. Using 'gaussian'.")
                resolved[view] = Likelihood.GAUSSIAN
        return resolved

    @property
    def sample_names(self) -> list[str]:
        return self.Z.index.tolist()

    @property
    def factor_names(self) -> list[str]:
        return self.Z.columns.tolist()

    @property
    def view_names(self) -> list[str]:
        return list(self.W)

    @property
    def feature_names(self) -> dict[str, list[str]]:
        return {view: W_v.index.tolist() for view, W_v in self.W.items()}

    @property
    def n_samples(self) -> int:
        return self.Z.shape[0]

    @property
    def n_factors(self) -> int:
        return self.Z.shape[1]

    @property
    def n_views(self) -> int:
        return len(self.W)

    def select_factors(self, factors="all") -> pd.DataFrame:
        """
        Restrict the factor matrix to a subset of factors.

        Parameters
        ----------
        factors : "all", str, int, or sequence of str/int
            Factor names or 1-based positions. Columns follow the requested order.

        Returns
        -------
        pandas.DataFrame
            Copy of Z with shape (n_samples, n_selected_factors).
        """
        keys = resolve_selection(factors, self.factor_names, kind="factor")
        return self.Z.loc[:, keys].copy()

    def select_views(self, views="all") -> dict[str, pd.DataFrame]:
        """Return copies of the loadings of the selected views, in requested order."""
        keys = resolve_selection(views, self.view_names, kind="view")
        return {view: self.W[view].copy() for view in keys}

    def select_loadings(self, view: str, factor_keys) -> pd.DataFrame:
        """
        Restrict the loadings of one view to an ordered list of factor names.

        `factor_keys` is expected to be the column list produced by
        `select_factors`, so that Z and W_v multiply factor by factor.
        """
        view = resolve_selection([view], self.view_names, kind="view")[0]
        W_v = self.W[view]
        missing = [k for k in factor_keys if k not in W_v.columns]
        if missing:
            raise InconsistentModel(f"Loadings of view '{view}' lack factors {missing}.")
        return W_v.loc[:, list(factor_keys)].copy()

    def _linear_predictor(self, view: str, Z_sel: pd.DataFrame, Z_t: torch.Tensor) -> torch.Tensor:
        W_sel = self.select_loadings(view, Z_sel.columns)
        if W_sel.shape[1] != Z_t.shape[1]:
            raise InconsistentModel(
                f"Loadings of view '{view}' have {W_sel.shape[1]} factors after selection, "
                f"factor matrix has {Z_t.shape[1]}."
            )
        W_t = torch.tensor(W_sel.to_numpy(), dtype=self.dtype, device=self.device)
        return W_t @ Z_t.T

    def _predict_views(self, views: list[str], factor_keys: list[str], mode: PredictionType) -> dict[str, pd.DataFrame]:
        Z_sel = self.Z.loc[:, factor_keys]
        Z_t = torch.tensor(Z_sel.to_numpy(), dtype=self.dtype, device=self.device)

        iterator = tqdm(views, desc="Predicting views") if self.progress_bar else views
        predictions = {}
        for view in iterator:
            L = self._linear_predictor(view, Z_sel, Z_t)
            P = predict_from_linear(L, self.likelihoods[view], mode=mode, clip=self.clip)
            predictions[view] = pd.DataFrame(
                P.detach().cpu().numpy().astype(np.float64),
                index=self.W[view].index,
                columns=self.Z.index,
            )
            if self.verbose:
                print(
                    f"Predicted view '{view}' ({self.likelihoods[view].value}, {mode.value}) "
                    f"using {len(factor_keys)} factors: shape {P.shape[0]} x {P.shape[1]}"
                )
        return predictions

    def predict(self, views="all", factors="all", mode: PredictionType | str = "inRange") -> dict[str, pd.DataFrame]:
        """
        Predict every entry of the selected views from the factors and loadings.

        Parameters
        ----------
        views : "all", str, int, or sequence of str/int
            Views to predict, by name or 1-based position. Default is "all".
        factors : "all", str, int, or sequence of str/int
            Factors used in the prediction. Default is "all".
        mode : {"inRange", "response", "link"}, optional
            Scale of the predictions, see `predict_from_linear`. Default is "inRange".

        Returns
        -------
        dict of str to pandas.DataFrame
            Predictions of shape (n_features, n_samples) per view, in requested order.

        Raises
        ------
        InvalidSelection
            If a view, factor or mode is unknown. Raised before any computation.
        """
        view_keys = resolve_selection(views, self.view_names, kind="view")
        factor_keys = resolve_selection(factors, self.factor_names, kind="factor")
        mode = PredictionType.coerce(mode)
        return self._predict_views(view_keys, factor_keys, mode)

    def _observed_frame(self, view: str, Y) -> pd.DataFrame:
        if isinstance(Y, pd.DataFrame):
            return pd.DataFrame(
                Y.to_numpy(dtype=np.float64, na_value=np.nan, copy=True),
                index=Y.index.astype(str),
                columns=Y.columns.astype(str),
            )
        values = self._dense(Y)
        expected = (self.W[view].shape[0], self.n_samples)
        if values.shape != expected:
            raise InconsistentModel(
                f"Observed data of view '{view}' has shape {values.shape}, model expects {expected}."
            )
        return pd.DataFrame(values, index=self.W[view].index, columns=self.Z.index)

    def _observed_views(self, data: Mapping) -> dict[str, pd.DataFrame]:
        keys = [str(v) for v in data]
        unknown = [v for v in keys if v not in self.W]
        if unknown:
            raise InconsistentModel(f"Observed data given for views not in the model: {unknown}.")
        missing = [v for v in self.view_names if v not in keys]
        if missing:
            raise InconsistentModel(f"Observed data missing for views: {missing}.")
        return {str(view): self._observed_frame(str(view), Y) for view, Y in data.items()}

    @staticmethod
    def _as_caller_frame(original, values: np.ndarray | None, Y: pd.DataFrame) -> pd.DataFrame:
        """Return values under the caller's own labels, or an untouched copy when nothing changed."""
        if not isinstance(original, pd.DataFrame):
            return Y.copy() if values is None else pd.DataFrame(values, index=Y.index, columns=Y.columns)
        if values is None:
            return original.copy()
        return pd.DataFrame(values, index=original.index.copy(), columns=original.columns.copy())

    @staticmethod
    def _align(view: str, P: pd.DataFrame, Y: pd.DataFrame) -> pd.DataFrame:
        """Reorder predictions to the observed matrix's feature and sample order."""
        for what, p_labels, y_labels in (
            ("features", P.index, Y.index),
            ("samples", P.columns, Y.columns),
        ):
            if y_labels.has_duplicates:
                raise InconsistentModel(f"Observed data of view '{view}' has duplicated {what}.")
            if len(p_labels) != len(y_labels) or set(p_labels) != set(y_labels):
                only_y = sorted(set(y_labels) - set(p_labels))[:5]
                only_p = sorted(set(p_labels) - set(y_labels))[:5]
                raise InconsistentModel(
                    f"Observed data of view '{view}' has {len(y_labels)} {what}, model has "
                    f"{len(p_labels)} (only observed: {only_y}, only model: {only_p})."
                )
        return P.loc[Y.index, Y.columns]

    def impute(
        self,
        data: Mapping | None = None,
        views="all",
        factors="all",
        mode: PredictionType | str = "inRange",
    ) -> dict[str, pd.DataFrame]:
        """
        Replace missing values in the observed data with model predictions.

        Parameters
        ----------
        data : mapping of str to matrix or None, optional
            Observed data per view, shape (n_features, n_samples), NaN where
            missing. Every model view must be present. DataFrames are matched
            to the model by feature and sample name; arrays by position.
            Defaults to the training data given at construction.
        views : "all", str, int, or sequence of str/int
            Views to impute. Other views are returned unchanged. Default is "all".
        factors : "all", str, int, or sequence of str/int
            Factors used in the predictions. Default is "all".
        mode : {"inRange", "response", "link"}, optional
            Scale of the imputed values. Default is "inRange".

        Returns
        -------
        dict of str to pandas.DataFrame
            Imputed data for every model view, in the model's view order. Each
            matrix keeps the labels and order of the observed data.

        Raises
        ------
        InvalidSelection
            If a view, factor or mode is unknown. Raised before any computation.
        InconsistentModel
            If observed data and model disagree in views, shape or labels.
        """
        view_keys = resolve_selection(views, self.view_names, kind="view")
        factor_keys = resolve_selection(factors, self.factor_names, kind="factor")
        mode = PredictionType.coerce(mode)

        if data is None:
            data = self.data
        if data is None:
            raise ValueError("No observed data: pass `data` or construct the model with training data.")
        originals = {str(view): Y for view, Y in data.items()}
        observed = self._observed_views(data)

        predictions = self._predict_views(view_keys, factor_keys, mode)

        imputed = {}
        for view in view_keys:
            Y = observed[view]
            P = self._align(view, predictions[view], Y)
            values = Y.to_numpy(copy=True)
            non_observed = np.isnan(values)
            if non_observed.any():
                values[non_observed] = P.to_numpy()[non_observed]
                imputed[view] = self._as_caller_frame(originals[view], values, Y)
            else:
                imputed[view] = self._as_caller_frame(originals[view], None, Y)
            if self.verbose:
                print(f"Imputed {int(non_observed.sum())} missing values in view '{view}'")

        result = {
            view: imputed[view] if view in imputed else self._as_caller_frame(originals[view], None, observed[view])
            for view in self.view_names
        }
        self.imputed_data_ = {view: Y.copy() for view, Y in result.items()}
        return result

    def get_imputed_data(self, views="all") -> dict[str, pd.DataFrame]:
        """
        Return copies of the matrices produced by the most recent `impute` call.

        Raises
        ------
        RuntimeError
            If `impute` has not been called yet.
        """
        if not hasattr(self, "imputed_data_"):
            raise RuntimeError("No imputed data available; call impute first.")
        keys = resolve_selection(views, self.view_names, kind="view")
        return {view: self.imputed_data_[view].copy() for view in keys}
