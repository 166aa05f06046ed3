# tests/conftest.py
import numpy as np
import pytest

from bluekit import (
    Correlation,
    CombinationModel,
    Measurement,
    MeasurementDistribution,
    NoCorrelation,
    NuisanceCorrelation,
    convert_covariance,
    make_bin_observables,
    to_correlation_matrix,
)


def xsec1(p):
    return 20.12 * p["C1"] + 5.56 * p["C1"] * p["C2"] + 325.556 * p["C2"]


def xsec2(p):
    return 2.12 * p["C1"] + 4.3 * p["C1"] * p["C2"] + 12.6 * p["C2"]


def _dist_func(p, c):
    return c[0] * p["C1"] + c[1] * p["C1"] * p["C2"] + c[2] * p["C2"]


COV_SYST = np.array(
    [
        [3.24, 0.81, 0.378, 0.324, 0.468],
        [0.81, 0.81, 0.126, 0.162, 0.234],
        [0.378, 0.126, 0.49, 0.126, 0.182],
        [0.324, 0.162, 0.126, 0.81, 0.234],
        [0.468, 0.234, 0.182, 0.234, 1.69],
    ]
)

SYST_CORR = np.array(
    [
        [1.0, 0.5, 0.3, 0.2, 0.2],
        [0.5, 1.0, 0.2, 0.2, 0.2],
        [0.3, 0.2, 1.0, 0.2, 0.2],
        [0.2, 0.2, 0.2, 1.0, 0.2],
        [0.2, 0.2, 0.2, 0.2, 1.0],
    ]
)

DIST_CORR = np.array(
    [
        [1.0, 0.5, 0.0],
        [0.5, 1.0, 0.0],
        [0.0, 0.0, 1.0],
    ]
)


@pytest.fixture
def tutorial_measurements():
    """Two single measurements and a three-bin distribution with bin 2 switched off."""
    _, unc_syst = convert_covariance(COV_SYST)
    dist_obs = make_bin_observables("diff_xsec", _dist_func, [[2.2, 5.5, 6.6]] * 3)
    return [
        Measurement(
            "Meas1", xsec1, 21.6, {"stat": 0.8, "syst": unc_syst[0], "another_unc": 2.3}
        ),
        Measurement(
            "Meas2", xsec2, 1.9, {"stat": 0.6, "syst": unc_syst[1], "another_unc": 1.1}
        ),
        MeasurementDistribution(
            "MeasDist",
            dist_obs,
            [1.9, 2.93, 4.4],
            {
                "stat": [0.7, 1.1, 1.2],
                "syst": unc_syst[2:5],
                "another_unc": [1.0, 1.2, 1.9],
            },
            active=[True, False, True],
        ),
    ]


@pytest.fixture
def another_corr(tutorial_measurements):
    return to_correlation_matrix(
        tutorial_measurements,
        ("Meas1", "Meas2", 0.4),
        ("Meas1", "MeasDist", 0.1),
        ("MeasDist", "MeasDist", DIST_CORR),
        ("MeasDist_bin2", "MeasDist_bin3", 0.3),
    )


@pytest.fixture
def tutorial_model(tutorial_measurements, another_corr):
    return CombinationModel(
        tutorial_measurements,
        {
            "stat": NoCorrelation(),
            "syst": Correlation(SYST_CORR),
            "another_unc": Correlation(another_corr),
        },
        nuisance_correlations={
            "rho1": NuisanceCorrelation("syst", "Meas1", "Meas2"),
            "rho2": NuisanceCorrelation("syst", "MeasDist_bin1", "MeasDist_bin3"),
        },
    )


@pytest.fixture
def make_model():
    """Scalar measurements of one observable with a single uncertainty source."""

    def build(values, sigmas, corr, observable=xsec1):
        meas = [
            Measurement(f"m{i}", observable, v, {"total": s})
            for i, (v, s) in enumerate(zip(values, sigmas), start=1)
        ]
        return CombinationModel(meas, {"total": Correlation(corr)})

    return build
