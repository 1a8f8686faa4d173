"""
calibration_types -- CALCORR pipeline
Author: Jacob Isbell

Data containers shared by the resolver, the correction steps and the stage driver,
plus the exceptions used to report entry-level failures.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
from astropy.io import fits


class ProcessingOutcome(Enum):
    CORRECTED = "corrected"
    SKIPPED_OUTPUT_EXISTS = "skipped-output-exists"
    SKIPPED_NO_CALIBRATION = "skipped-no-calibration"
    SKIPPED_TYPE_EXCLUDED = "skipped-type-excluded"
    SKIPPED_CANCELLED = "skipped-cancelled"
    ERROR_INPUT_MISSING = "error-input-missing"
    ERROR_CALIBRATION_MISSING = "error-calibration-missing"
    ERROR_PROCESSING = "error-processing"


# reasons a calibration could not be resolved
NO_ASSOCIATION = "no-association"
MISSING_PARAMETERS = "missing-parameters"
BUILD_FAILED = "build-failed"
UNREADABLE = "unreadable"


class CorrectionError(Exception):
    pass


class InputMissing(CorrectionError):
    pass


class NoCalibrationAssociation(CorrectionError):
    pass


class CalibrationParametersMissing(CorrectionError):
    pass


class CalibrationBuildFailed(CorrectionError):
    pass


class CalibrationUnreadable(CorrectionError):
    pass


class OutputAlreadyExists(CorrectionError):
    pass


class ShapeMismatch(CorrectionError, ValueError):
    """Arrays that must share a shape do not. Not recoverable, aborts the run"""


@dataclass(frozen=True)
class CalibrationReference:
    number: Optional[int]

    @classmethod
    def none(cls):
        return cls(None)

    @property
    def is_none(self) -> bool:
        return self.number is None

    def __str__(self):
        return "none" if self.is_none else str(self.number)


@dataclass
class Exposure:
    number: int
    classification: str
    data: np.ndarray
    variance: np.ndarray
    mask: np.ndarray
    header: fits.Header
    path: str

    def __post_init__(self):
        shapes = {self.data.shape, self.variance.shape, self.mask.shape}
        if len(shapes) != 1:
            raise ShapeMismatch(
                f"Frame {self.number}: data {self.data.shape}, variance {self.variance.shape} and mask {self.mask.shape} differ"
            )


@dataclass
class ResolvedCalibration:
    reference: CalibrationReference
    data: np.ndarray
    header: fits.Header
    path: str


@dataclass
class Unavailable:
    reference: CalibrationReference
    reason: str
    message: str = ""

    @property
    def outcome(self) -> ProcessingOutcome:
        if self.reason == NO_ASSOCIATION:
            return ProcessingOutcome.SKIPPED_NO_CALIBRATION
        return ProcessingOutcome.ERROR_CALIBRATION_MISSING

    @property
    def error(self) -> CorrectionError:
        errors = {
            NO_ASSOCIATION: NoCalibrationAssociation,
            MISSING_PARAMETERS: CalibrationParametersMissing,
            BUILD_FAILED: CalibrationBuildFailed,
            UNREADABLE: CalibrationUnreadable,
        }
        return errors[self.reason](self.message)
