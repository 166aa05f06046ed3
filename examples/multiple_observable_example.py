import numpy as np
from bluekit import (
    CombinationModel,
    Correlation,
    Measurement,
    MeasurementDistribution,
    NoCorrelation,
    NuisanceCorrelation,
    blue_multi,
    convert_covariance,
    make_bin_observables,
    to_correlation_matrix,
)


def xsec1(p):
    return 20.12 * p["C1"] + 5.56 * p["C1"] * p["C2"] + 325.556 * p["C2"]


def xsec2(p):
    return 2.12 * p["C1"] + 4.3 * p["C1"] * p["C2"] + 12.6 * p["C2"]


def dist_bin(p, c):
    return c[0] * p["C1"] + c[1] * p["C1"] * p["C2"] + c[2] * p["C2"]


# One observable per bin, sharing a function and differing in coefficients
diff_xsec = make_bin_observables("diff_xsec", dist_bin, [[2.2, 5.5, 6.6]] * 3)

cov_syst = np.array(
    [
        [3.24, 0.81, 0.378, 0.324, 0.468],
        [0.81, 0.81, 0.126, 0.162, 0.234],
        [0.378, 0.126, 0.49, 0.126, 0.182],
        [0.324, 0.162, 0.126, 0.81, 0.234],
        [0.468, 0.234, 0.182, 0.234, 1.69],
    ]
)
cor_syst, unc_syst = convert_covariance(cov_syst)

measurements = [
    Measurement("Meas1", xsec1, 21.6, {"stat": 0.8, "syst": unc_syst[0], "another_unc": 2.3}),
    Measurement("Meas2", xsec2, 1.9, {"stat": 0.6, "syst": unc_syst[1], "another_unc": 1.1}),
    MeasurementDistribution(
        "MeasDist",
        diff_xsec,
        [1.9, 2.93, 4.4],
        {"stat": [0.7, 1.1, 1.2], "syst": unc_syst[2:5], "another_unc": [1.0, 1.2, 1.9]},
        active=[True, False, True],
    ),
]

dist_corr = np.array([[1.0, 0.5, 0.0], [0.5, 1.0, 0.0], [0.0, 0.0, 1.0]])
another_corr = to_correlation_matrix(
    measurements,
    ("Meas1", "Meas2", 0.4),
    ("Meas1", "MeasDist", 0.1),
    ("MeasDist", "MeasDist", dist_corr),
    ("MeasDist_bin2", "MeasDist_bin3", 0.3),
)

model = CombinationModel(
    measurements,
    {
        "stat": NoCorrelation(),
        "syst": Correlation(cor_syst),
        "another_unc": Correlation(another_corr),
    },
    nuisance_correlations={
        "rho1": NuisanceCorrelation("syst", "Meas1", "Meas2"),
        "rho2": NuisanceCorrelation("syst", "MeasDist_bin1", "MeasDist_bin3", prior=(0.3, 0.7)),
    },
)

res = blue_multi(model)
for obs, v, u in zip(res.observables, res.values, res.uncs):
    print(f"{obs.name}: {v:.3f} +- {u:.3f}")

# Scan one nuisance correlation; the model itself never changes
for rho in np.linspace(-0.8, 0.8, 5):
    res = blue_multi(model, nuisance={"rho1": rho})
    print(f"rho1={rho:+.1f}: xsec1 unc = {res.uncs[0]:.3f}")
