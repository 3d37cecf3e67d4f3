import numpy as np
import pytest
import torch
import os, sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from mofaimpute import InvalidSelection, Likelihood, PredictionType
from mofaimpute.likelihoods import predict_from_linear, stable_logistic


def _linear(values):
    return torch.tensor(values, dtype=torch.float64)


@pytest.mark.parametrize("mode", ["link", "response", "inRange"])
def test_gaussian_modes_coincide(mode):
    L = _linear([[2.0, -2.0]])
    P = predict_from_linear(L, "gaussian", mode=mode)
    assert torch.equal(P, L)


def test_gaussian_random_matrix_modes_identical():
    rng = np.random.default_rng(0)
    L = _linear(rng.normal(0.0, 3.0, size=(7, 11)))
    outs = [predict_from_linear(L, Likelihood.GAUSSIAN, mode=m) for m in PredictionType]
    for P in outs[1:]:
        assert torch.equal(P, outs[0])


def test_bernoulli_response_and_in_range():
    L = _linear([[2.0, -2.0]])
    P = predict_from_linear(L, "bernoulli", mode="response")
    np.testing.assert_allclose(P.numpy(), [[0.8807970779778823, 0.11920292202211755]], rtol=1e-12)
    P_round = predict_from_linear(L, "bernoulli", mode="inRange")
    np.testing.assert_array_equal(P_round.numpy(), [[1.0, 0.0]])


def test_poisson_in_range_rounds_rate():
    L = _linear([[2.0, -2.0]])
    P = predict_from_linear(L, "poisson", mode="response")
    np.testing.assert_allclose(P.numpy(), np.exp([[2.0, -2.0]]), rtol=1e-12)
    P_round = predict_from_linear(L, "poisson", mode="inRange")
    np.testing.assert_array_equal(P_round.numpy(), [[7.0, 0.0]])


@pytest.mark.parametrize("likelihood", ["bernoulli", "poisson"])
def test_link_mode_returns_linear_predictor(likelihood):
    L = _linear([[0.3, -4.2], [10.0, 0.0]])
    P = predict_from_linear(L, likelihood, mode="link")
    assert torch.equal(P, L)
    # Result is a new tensor
    P[0, 0] = 99.0
    assert L[0, 0] == 0.3


def test_default_mode_is_in_range():
    L = _linear([[0.4, 1.3]])
    P = predict_from_linear(L, "poisson")
    np.testing.assert_array_equal(P.numpy(), np.round(np.exp([[0.4, 1.3]])))


def test_stable_logistic_extremes():
    L = _linear([[-1000.0, -50.0, 0.0, 50.0, 1000.0]])
    p = stable_logistic(L).numpy()
    assert np.isfinite(p).all()
    assert p[0, 0] == 0.0
    assert p[0, 2] == 0.5
    assert p[0, 4] == 1.0
    np.testing.assert_allclose(p[0, 1], np.exp(-50.0), rtol=1e-12)


def test_bernoulli_in_range_only_binary_values():
    rng = np.random.default_rng(1)
    L = _linear(rng.normal(0.0, 20.0, size=(30, 40)))
    P = predict_from_linear(L, "bernoulli", mode="inRange").numpy()
    assert set(np.unique(P)).issubset({0.0, 1.0})


def test_poisson_in_range_non_negative_integers():
    rng = np.random.default_rng(2)
    L = _linear(rng.normal(0.0, 2.0, size=(30, 40)))
    P = predict_from_linear(L, "poisson", mode="inRange").numpy()
    assert (P >= 0).all()
    np.testing.assert_array_equal(P, np.round(P))


def test_clip_bounds_linear_predictor():
    L = _linear([[30.0, -30.0]])
    P = predict_from_linear(L, "poisson", mode="response", clip=20.0)
    np.testing.assert_allclose(P.numpy(), np.exp([[20.0, -20.0]]), rtol=1e-12)
    P = predict_from_linear(L, "poisson", mode="response", clip=(-5.0, 5.0))
    np.testing.assert_allclose(P.numpy(), np.exp([[5.0, -5.0]]), rtol=1e-12)
    # Clipping never applies on the link scale
    assert torch.equal(predict_from_linear(L, "poisson", mode="link", clip=20.0), L)


def test_unknown_mode_and_likelihood_raise():
    L = _linear([[1.0]])
    with pytest.raises(InvalidSelection):
        predict_from_linear(L, "gaussian", mode="mean")
    with pytest.raises(InvalidSelection):
        predict_from_linear(L, "gamma", mode="response")


def test_coerce_accepts_members_and_strings():
    assert Likelihood.coerce("Bernoulli") is Likelihood.BERNOULLI
    assert Likelihood.coerce(Likelihood.POISSON) is Likelihood.POISSON
    assert PredictionType.coerce(None) is PredictionType.IN_RANGE
    assert PredictionType.coerce("response") is PredictionType.RESPONSE


@pytest.mark.parametrize("mode", ["response", "inRange"])
def test_poisson_extreme_linear_predictor_stays_finite(mode):
    L = _linear([[800.0, 2.0, -800.0]])
    P = predict_from_linear(L, "poisson", mode=mode).numpy()
    assert np.isfinite(P).all()
    assert P[0, 0] == np.finfo(np.float64).max
    assert P[0, 2] == 0.0
    # Representable rates are untouched
    expected = np.exp(2.0) if mode == "response" else 7.0
    np.testing.assert_allclose(P[0, 1], expected, rtol=1e-14)


def test_poisson_extreme_linear_predictor_float32():
    L = torch.tensor([[100.0, 1.0]], dtype=torch.float32)
    P = predict_from_linear(L, "poisson", mode="inRange").numpy()
    assert np.isfinite(P).all()
    assert P[0, 0] == np.finfo(np.float32).max
