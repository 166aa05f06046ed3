import numpy as np
from bluekit import (
    CombinationModel,
    Correlation,
    Measurement,
    NoCorrelation,
    blue,
    convert_covariance,
)


def xsec(p):
    return 100 + 10 * p["C"]


# Two measurements of the same cross section, given as a systematic covariance
cov_syst = np.array([[4.0, 1.0], [1.0, 9.0]])
cor_syst, unc_syst = convert_covariance(cov_syst)

measurements = [
    Measurement("ATLAS", xsec, 101.3, {"stat": 1.2, "syst": unc_syst[0]}),
    Measurement("CMS", xsec, 98.9, {"stat": 1.5, "syst": unc_syst[1]}),
]

model = CombinationModel(
    measurements,
    {"stat": NoCorrelation(), "syst": Correlation(cor_syst)},
)

res = blue(model)
print(f"BLUE: {res.value:.3f} +- {res.unc:.3f}")
print("weights:", res.weights)
