import json

import numpy as np
import pytest
from astropy.io import fits

from utils.config import RunContext
from utils.util_logger import Logger
from utils.utils import create_filestructure


def write_frame(directory, name, data, **keys):
    hdr = fits.Header()
    for k, v in keys.items():
        hdr[k] = v
    fname = f"{directory}/{name}.fits"
    fits.PrimaryHDU(data=np.asarray(data, dtype=float), header=hdr).writeto(
        fname, overwrite=True
    )
    return fname


def write_params(directory, name, params):
    fname = f"{directory}/{name}.json"
    with open(fname, "w") as f:
        json.dump(params, f)
    return fname


@pytest.fixture
def frame_writer():
    return write_frame


@pytest.fixture
def params_writer():
    return write_params


@pytest.fixture
def make_ctx(tmp_path):
    def _make(process="flat_correction", **kwargs):
        data_dir = tmp_path / "data"
        output_dir = tmp_path / "out"
        calib_dir = tmp_path / "calib"
        for d in (data_dir, output_dir, calib_dir):
            d.mkdir(exist_ok=True)
        logger = Logger(str(output_dir), "test", level=3)
        ctx = RunContext(
            target="test",
            data_dir=str(data_dir),
            output_dir=str(output_dir),
            calib_dir=str(calib_dir),
            process=process,
            logger=logger,
            prefix="r",
            id_width=4,
            **kwargs,
        )
        create_filestructure(ctx.output_dir, process)
        return ctx

    return _make


@pytest.fixture
def ctx(make_ctx):
    return make_ctx()
