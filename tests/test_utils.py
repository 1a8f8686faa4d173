import json
import os

import numpy as np
import pytest
from astropy.io import fits

from utils.config import load_config, make_context, verify_layout
from utils.util_logger import Logger
from utils.utils import (
    first_existing,
    frame_name,
    frame_path,
    read_fits,
    should_process,
    write_fits,
)


def test_output_gate(tmp_path):
    out = tmp_path / "r0001_intf.fits"

    assert should_process(str(out), clobber=False)
    assert should_process(str(out), clobber=True)
    out.write_bytes(b"")
    assert not should_process(str(out), clobber=False)
    assert should_process(str(out), clobber=True)


def test_frame_naming():
    assert frame_name("r", 42, 4) == "r0042"
    assert frame_path("/d", "r", 42, 4, "_intf") == "/d/r0042_intf.fits"
    assert frame_name("", 12345, 4) == "12345"


def test_first_existing(tmp_path):
    (tmp_path / "b").write_text("")
    assert first_existing([str(tmp_path / "a"), str(tmp_path / "b")]) == str(tmp_path / "b")
    assert first_existing([str(tmp_path / "a")]) is None


def test_fits_round_trip_keeps_header(tmp_path):
    hdr = fits.Header()
    hdr["IMAGETYP"] = "object"
    hdr["HISTORY"] = "first"
    fname = str(tmp_path / "x.fits")

    write_fits(np.arange(6).reshape(2, 3), hdr, fname)
    data, out_hdr = read_fits(fname)

    np.testing.assert_array_equal(data, np.arange(6).reshape(2, 3))
    assert out_hdr["IMAGETYP"] == "object"
    assert "first" in str(out_hdr["HISTORY"])


def test_write_fits_fails_loudly(tmp_path):
    with pytest.raises(OSError):
        write_fits(np.ones((2, 2)), None, str(tmp_path / "missing_dir" / "x.fits"))


def test_logger(tmp_path):
    logger = Logger(str(tmp_path), "ngc1", level=3)
    logger.create_log_file("flat_correction")
    logger.progress("flat_correction", 2, 5, "r0100 object")
    logger.warn("flat_correction", "careful")
    logger.error("flat_correction", "broken")

    with open(tmp_path / "flat_correctionngc1.log") as f:
        text = f.read()
    assert "CALCORR" in text
    assert "2/5 r0100 object" in text
    assert "Warning: careful" in text
    assert "ERROR: broken" in text


def test_load_config_defaults(tmp_path):
    cfg = tmp_path / "config.json"
    cfg.write_text(
        json.dumps(
            {
                "target": "ngc1",
                "data_dir": str(tmp_path / "in"),
                "output_dir": str(tmp_path / "out"),
                "calib_dir": str(tmp_path / "calib"),
                "clobber": True,
            }
        )
    )

    configdata = load_config(str(cfg))
    ctx = make_context(configdata, "flat_correction")

    assert ctx.clobber is True
    assert ctx.id_width == 4
    assert ctx.n_workers == 1
    assert ctx.logger.target == "ngc1"
    assert not ctx.cancel.is_set()


def test_load_config_missing_keys(tmp_path):
    cfg = tmp_path / "config.json"
    cfg.write_text(json.dumps({"target": "ngc1"}))
    with pytest.raises(KeyError):
        load_config(str(cfg))


def test_verify_layout(make_ctx, tmp_path):
    ctx = make_ctx()
    ctx.calib_dir = str(tmp_path / "new_calib")

    assert verify_layout(ctx)
    assert os.path.isdir(ctx.calib_dir)
    assert os.path.isdir(f"{ctx.output_dir}/corrected/flat_correction")
    assert os.path.isdir(f"{ctx.output_dir}/plots/flat_correction")

    ctx.data_dir = str(tmp_path / "nowhere")
    assert not verify_layout(ctx)


def test_wrapper_without_config_file():
    import subprocess
    import sys

    root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    result = subprocess.run(
        [sys.executable, "calcorr_correct.py"], cwd=root, capture_output=True, text=True
    )

    assert result.returncode == 1
    assert "No config file specified" in result.stdout
