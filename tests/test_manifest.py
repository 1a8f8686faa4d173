import pytest

from calibration_steps.calibration_types import CalibrationReference
from utils.manifest import (
    manifest_from_config,
    manifest_from_link_file,
    manifest_from_lists,
)


def test_from_lists():
    manifest = manifest_from_lists([100, 101, 200], [5, 5, -1])

    assert manifest.count == 3
    assert list(manifest) == [
        (100, CalibrationReference(5)),
        (101, CalibrationReference(5)),
        (200, CalibrationReference.none()),
    ]


def test_from_lists_with_null():
    manifest = manifest_from_lists([1], [None])
    assert list(manifest)[0][1].is_none


def test_uneven_lists():
    with pytest.raises(ValueError):
        manifest_from_lists([1, 2], [3])


def test_from_link_file(tmp_path):
    link = tmp_path / "links.txt"
    link.write_text("# exposure  flat\n100  5\n101\t5\n\n200 -1\n")

    manifest = manifest_from_link_file(str(link))

    assert manifest.count == 3
    assert [n for n, _ in manifest] == [100, 101, 200]
    assert [str(r) for _, r in manifest] == ["5", "5", "none"]


def test_link_file_takes_precedence(tmp_path):
    link = tmp_path / "links.txt"
    link.write_text("7 3\n")
    configdata = {"link_file": str(link), "exposures": [1], "calibrations": [1]}

    assert list(manifest_from_config(configdata)) == [(7, CalibrationReference(3))]


def test_missing_link_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        manifest_from_config({"link_file": str(tmp_path / "nope.txt")})
