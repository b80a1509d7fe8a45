"""
Calibration package exports.
"""

from recallcore.calibration.fitter import SubprocessWeightFitter, parse_optimizer_output
from recallcore.calibration.gateway import (
    CalibrationEligibility,
    EligibilityStatus,
    WeightFitter,
    WeightSnapshot,
    calibration_eligibility,
    install_short_term_params,
    install_weights,
    run_calibration,
    short_term_eligibility,
    snapshot_weights,
    validate_weights,
)
from recallcore.calibration.short_term import fit_short_term_params

__all__ = [
    "SubprocessWeightFitter",
    "parse_optimizer_output",
    "CalibrationEligibility",
    "EligibilityStatus",
    "WeightFitter",
    "WeightSnapshot",
    "calibration_eligibility",
    "install_short_term_params",
    "install_weights",
    "run_calibration",
    "short_term_eligibility",
    "snapshot_weights",
    "validate_weights",
    "fit_short_term_params",
]
