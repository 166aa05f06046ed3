# tests/test_total_covariance.py
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from bluekit import (
    CombinationModel,
    ConfigurationError,
    Correlation,
    Measurement,
    NoCorrelation,
    build_total_covariance,
)
from conftest import SYST_CORR, xsec1

ACTIVE = [0, 1, 2, 4]  # MeasDist_bin2 is switched off


def _expected(model, syst_corr=SYST_CORR):
    """Sum of outer(sigma, sigma) * C over all entries, then drop inactive rows/columns."""
    C = {
        "stat": np.eye(5),
        "syst": syst_corr,
        "another_unc": model.correlations["another_unc"].matrix,
    }
    full = np.zeros((5, 5))
    for utype in model.uncertainty_types:
        s = utype.magnitudes
        full += np.outer(s, s) * C[utype.name]
    return full[np.ix_(ACTIVE, ACTIVE)]


def test_tutorial_covariance(tutorial_model):
    M = build_total_covariance(tutorial_model)

    assert M.shape == (4, 4)
    np.testing.assert_allclose(M, M.T)
    np.testing.assert_allclose(M, _expected(tutorial_model))
    # stat + syst + another_unc on the diagonal of Meas1
    assert M[0, 0] == pytest.approx(0.8**2 + 1.8**2 + 2.3**2)


def test_repeated_calls_return_fresh_equal_matrices(tutorial_model):
    M1 = build_total_covariance(tutorial_model)
    M1[0, 0] = -1.0
    M2 = build_total_covariance(tutorial_model)
    assert M2[0, 0] > 0
    np.testing.assert_array_equal(M2, tutorial_model.total_covariance())


def test_inactive_measurement_shrinks_matrix():
    cor = np.array([[1.0, 0.2, 0.1], [0.2, 1.0, 0.3], [0.1, 0.3, 1.0]])

    def model(active):
        meas = [
            Measurement(f"m{i}", xsec1, 10.0 + i, {"total": 1.0 + i}, active=a)
            for i, a in enumerate(active)
        ]
        return CombinationModel(meas, {"total": Correlation(cor)})

    full = build_total_covariance(model([True, True, True]))
    reduced = build_total_covariance(model([True, False, True]))

    assert reduced.shape == (2, 2)
    np.testing.assert_allclose(reduced, np.delete(np.delete(full, 1, 0), 1, 1))


def test_inactive_uncertainty_contributes_nothing(tutorial_measurements, another_corr):
    with_syst = CombinationModel(
        tutorial_measurements,
        {
            "stat": NoCorrelation(),
            "syst": Correlation(SYST_CORR, active=False),
            "another_unc": Correlation(another_corr),
        },
    )
    M = build_total_covariance(with_syst)
    syst = np.array([1.8, 0.9, 0.7, 0.9, 1.3])[ACTIVE]
    np.testing.assert_allclose(
        M, _expected(with_syst) - np.outer(syst, syst) * SYST_CORR[np.ix_(ACTIVE, ACTIVE)],
        atol=1e-12,
    )


def test_nuisance_values_override_both_mirror_entries(tutorial_model):
    rho = {"rho1": -0.3, "rho2": 0.55}
    M = build_total_covariance(tutorial_model, rho)

    corr = SYST_CORR.copy()
    corr[0, 1] = corr[1, 0] = -0.3
    corr[2, 4] = corr[4, 2] = 0.55
    np.testing.assert_allclose(M, _expected(tutorial_model, corr))
    np.testing.assert_allclose(M, M.T)

    # the model and its static matrix are untouched
    np.testing.assert_allclose(build_total_covariance(tutorial_model), _expected(tutorial_model))
    assert tutorial_model.correlations["syst"].matrix[0, 1] == 0.5


def test_nuisance_values_bound_to_model(tutorial_model):
    bound = tutorial_model.with_nuisance_values({"rho1": 0.9})
    assert dict(tutorial_model.nuisance_values) == {}

    corr = SYST_CORR.copy()
    corr[0, 1] = corr[1, 0] = 0.9
    np.testing.assert_allclose(bound.total_covariance(), _expected(bound, corr))

    # explicit values win over the bound ones
    corr[0, 1] = corr[1, 0] = 0.1
    np.testing.assert_allclose(bound.total_covariance({"rho1": 0.1}), _expected(bound, corr))


@pytest.mark.parametrize("values", [{"rho1": 1.5}, {"rho3": 0.2}])
def test_bad_nuisance_values_rejected(tutorial_model, values):
    with pytest.raises(ConfigurationError):
        build_total_covariance(tutorial_model, values)


def test_concurrent_evaluation_matches_serial(tutorial_model):
    grid = [{"rho1": r, "rho2": -r} for r in np.linspace(-0.9, 0.9, 25)]
    serial = [build_total_covariance(tutorial_model, g) for g in grid]
    with ThreadPoolExecutor(max_workers=4) as pool:
        parallel = list(pool.map(lambda g: build_total_covariance(tutorial_model, g), grid))
    for a, b in zip(serial, parallel):
        np.testing.assert_array_equal(a, b)


def test_correlation_of_wrong_size_is_a_configuration_error(tutorial_measurements):
    with pytest.raises(ConfigurationError, match="shape"):
        CombinationModel(
            tutorial_measurements,
            {
                "stat": NoCorrelation(),
                "syst": Correlation(np.eye(4)),
                "another_unc": NoCorrelation(),
            },
        )


@pytest.mark.parametrize(
    "matrix",
    [
        [[1.0, 0.2], [0.3, 1.0]],  # not symmetric
        [[0.9, 0.2], [0.2, 1.0]],  # diagonal != 1
        [[1.0, 1.2], [1.2, 1.0]],  # |rho| > 1
    ],
)
def test_malformed_correlation_rejected(matrix):
    meas = [
        Measurement("a", xsec1, 1.0, {"total": 1.0}),
        Measurement("b", xsec1, 2.0, {"total": 1.0}),
    ]
    with pytest.raises(ConfigurationError):
        CombinationModel(meas, {"total": Correlation(matrix)})


def test_missing_uncertainty_rejected():
    meas = [
        Measurement("a", xsec1, 1.0, {"stat": 1.0, "syst": 0.5}),
        Measurement("b", xsec1, 2.0, {"stat": 1.0}),
    ]
    with pytest.raises(ConfigurationError, match="syst"):
        CombinationModel(meas, {"stat": NoCorrelation(), "syst": NoCorrelation()})
