"""
apply_correction -- CALCORR pipeline
Author: Jacob Isbell

The two corrections applied by the stage driver:
    FlatCorrection      multiplies by a flat field and propagates the variance, D*F and V*F^2
    ResponseCorrection  divides by a relative response, guarding non-positive pixels

Both take an Exposure and a ResolvedCalibration and return the products to write as a dict
{suffix: (array, header)}.
"""

import numpy as np
from astropy.io import fits

from calibration_steps.calibration_types import (
    CalibrationReference,
    Exposure,
    ResolvedCalibration,
    ShapeMismatch,
)

# response pixels at or below zero are divided by this instead
RESPONSE_GUARD = 1e9


def _check_shapes(exposure: Exposure, calibration: ResolvedCalibration):
    if exposure.data.shape != calibration.data.shape:
        raise ShapeMismatch(
            f"Frame {exposure.number} has shape {exposure.data.shape} but calibration {calibration.path} has shape {calibration.data.shape}"
        )


class FlatCorrection:
    kind = "flat"
    input_suffixes = ["_intc", "_int"]
    output_suffixes = {"data": "_intf", "variance": "_varf", "mask": "_mskf"}
    # flats are never applied to these frame types
    excluded_types = ["bars", "continuum-bars", "arc"]
    uses_variance = True

    def accepts(self, classification: str) -> bool:
        return classification.strip().lower() not in self.excluded_types

    def _annotate(self, header, calibration):
        hdr = header.copy()
        hdr["FLATCORR"] = (True, "Flat field correction applied")
        hdr["FLATFILE"] = calibration.path
        # the flat's own build date, so that reprocessing gives identical files
        hdr["FLATSTMP"] = (str(calibration.header.get("DATE", "UNKNOWN")), "Flat field date")
        hdr["HISTORY"] = f"Multiplied by flat field {calibration.path}"
        return hdr

    def apply(self, exposure: Exposure, calibration: ResolvedCalibration) -> dict:
        _check_shapes(exposure, calibration)
        flat = calibration.data

        data = exposure.data * flat
        variance = exposure.variance * np.square(flat)

        hdr = self._annotate(exposure.header, calibration)
        return {
            self.output_suffixes["data"]: (data, hdr),
            self.output_suffixes["variance"]: (variance, hdr),
            self.output_suffixes["mask"]: (exposure.mask, hdr),
        }


class ResponseCorrection:
    kind = "response"
    input_suffixes = ["_imgc", "_img"]
    output_suffixes = {"data": "_imgr"}
    uses_variance = False

    def accepts(self, classification: str) -> bool:
        return True

    def apply(self, exposure: Exposure, calibration: ResolvedCalibration) -> dict:
        # combined images only, variance and mask are not carried through this correction
        _check_shapes(exposure, calibration)
        response = np.where(calibration.data <= 0, RESPONSE_GUARD, calibration.data)

        data = exposure.data / response

        hdr = exposure.header.copy()
        hdr["RESPCORR"] = (True, "Relative response correction applied")
        hdr["RESPFILE"] = calibration.path
        hdr["RESPSRC"] = (
            calibration.header.get("SRCFRAME", "UNKNOWN"),
            "Frame the response was made from",
        )
        hdr["HISTORY"] = f"Divided by relative response {calibration.path}"
        return {self.output_suffixes["data"]: (data, hdr)}


def _fake_exposure(data, number=1):
    return Exposure(
        number,
        "object",
        data,
        np.ones(data.shape),
        np.zeros(data.shape),
        fits.Header(),
        "fake.fits",
    )


def flat_test():
    data = np.random.rand(20, 30) * 100
    flat = np.random.rand(20, 30) + 0.5
    exposure = _fake_exposure(data)
    exposure.variance = data.copy()
    cal = ResolvedCalibration(CalibrationReference(5), flat, fits.Header(), "flat_0005.fits")

    result = FlatCorrection().apply(exposure, cal)
    assert np.allclose(result["_intf"][0], data * flat), "Flat correction failed on data"
    assert np.allclose(result["_varf"][0], data * flat**2), "Flat correction failed on variance"
    assert result["_intf"][1]["FLATCORR"], "Flat correction flag missing"
    assert not FlatCorrection().accepts("ARC"), "Arc frames must be excluded"

    return 1


def response_test():
    data = np.full((10, 10), 4.0)
    response = np.full((10, 10), 2.0)
    response[3, 4] = 0
    response[5, 5] = -3
    hdr = fits.Header()
    hdr["SRCFRAME"] = 77
    cal = ResolvedCalibration(CalibrationReference(77), response, hdr, "r0077_rsp.fits")

    im, out_hdr = ResponseCorrection().apply(_fake_exposure(data), cal)["_imgr"]
    assert np.all(np.isfinite(im)), "Response correction produced non-finite pixels"
    assert im[3, 4] == 4.0 / RESPONSE_GUARD, f"Zero guard failed, got {im[3, 4]}"
    assert im[5, 5] == 4.0 / RESPONSE_GUARD, f"Negative guard failed, got {im[5, 5]}"
    assert im[0, 0] == 2.0, f"Response correction failed, got {im[0, 0]}"
    assert out_hdr["RESPSRC"] == 77, "Response source frame not recorded"

    return 1
