"""
manifest -- CALCORR pipeline

The ordered list of exposures to correct, each paired with the calibration it should use.
Comes either from two equal-length lists in the config file or from a link file with two
whitespace separated columns (exposure number, calibration number). A negative or missing
calibration number means that no calibration is associated with the exposure.
"""

import pandas as pd

from calibration_steps.calibration_types import CalibrationReference


class Manifest:
    def __init__(self, entries):
        self.entries = [(int(num), ref) for num, ref in entries]

    @property
    def count(self):
        return len(self.entries)

    def __len__(self):
        return self.count

    def __iter__(self):
        return iter(self.entries)


def _to_reference(value) -> CalibrationReference:
    if value is None or pd.isna(value) or int(value) < 0:
        return CalibrationReference.none()
    return CalibrationReference(int(value))


def manifest_from_lists(exposures, calibrations) -> Manifest:
    if len(exposures) != len(calibrations):
        raise ValueError(
            f"Exposure and calibration lists differ in length ({len(exposures)} vs {len(calibrations)})"
        )
    return Manifest(
        [(num, _to_reference(cal)) for num, cal in zip(exposures, calibrations)]
    )


def manifest_from_link_file(fname) -> Manifest:
    df = pd.read_csv(
        fname,
        sep=r"\s+",
        comment="#",
        header=None,
        names=["exposure", "calibration"],
        dtype="Int64",
    )
    return Manifest(
        [
            (row.exposure, _to_reference(row.calibration))
            for row in df.itertuples(index=False)
        ]
    )


def manifest_from_config(configdata: dict) -> Manifest:
    if "link_file" in configdata and configdata["link_file"]:
        return manifest_from_link_file(configdata["link_file"])
    return manifest_from_lists(configdata["exposures"], configdata["calibrations"])
