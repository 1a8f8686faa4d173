"""
build_calibration -- CALCORR pipeline
Author: Jacob Isbell

Builds a missing calibration product (flat field or relative response) from its own input
exposures, as described by the product's parameter record. Called by the calibration resolver
only when the product file is absent.

The parameter record is a json file next to the product, e.g.
    {"kind": "flat", "inputs": [12, 13, 14], "input_dir": "...", "output": ".../flat_0005.fits", "smooth": 0}
The resolver overwrites its logging entries (log_level, display, log_dir, log_target) with
the values of the run that asked for the build.
"""

import os
from threading import Lock

import matplotlib.pyplot as plt
import numpy as np
from astropy.io import fits
from scipy.ndimage import median_filter

from utils.util_logger import Logger
from utils.utils import first_existing, frame_path, read_fits, write_fits

PROCESS_NAME = "build_calibration"

# frame variants a calibration exposure may be found as, most processed first
INPUT_SUFFIXES = {
    "flat": ["_intc", "_int"],
    "response": ["_imgc", "_img"],
}

_plot_lock = Lock()


def _normalize(im):
    positive = im[np.isfinite(im) & (im > 0)]
    if len(positive) == 0:
        return None
    return im / np.median(positive)


def _load_inputs(params, input_dir, logger):
    ims = []
    dates = []
    for number in params["inputs"]:
        candidates = [
            frame_path(
                input_dir,
                params.get("prefix", ""),
                number,
                int(params.get("id_width", 4)),
                suffix,
            )
            for suffix in INPUT_SUFFIXES[params["kind"]]
        ]
        fname = first_existing(candidates)
        if fname is None:
            logger.error(
                PROCESS_NAME, f"Calibration input frame {number} not found in {candidates}"
            )
            return None, None
        im, hdr = read_fits(fname)
        ims.append(im)
        dates.append(str(hdr.get("DATE", "")))
    return ims, dates


def _build_flat(ims):
    combined = np.median(ims, 0)
    normalized = _normalize(combined)
    if normalized is None:
        return None
    flat = np.zeros(normalized.shape)
    good = np.isfinite(normalized) & (normalized > 0)
    # multiplicative correction factor, dead pixels are zeroed
    flat[good] = 1.0 / normalized[good]
    return flat


def _build_response(ims):
    return _normalize(np.asarray(ims[0], dtype=float))


def _plot_product(product, output, plot_root):
    plot_dir = f"{plot_root}/plots/{PROCESS_NAME}"
    os.makedirs(plot_dir, exist_ok=True)
    name = os.path.splitext(os.path.basename(output))[0]
    with _plot_lock:
        _, (ax, bx) = plt.subplots(1, 2, figsize=(9, 4))
        cbar = ax.imshow(product, origin="lower")
        plt.colorbar(cbar, ax=ax)
        ax.set_title(name)
        bx.hist(product[np.isfinite(product)].flatten(), bins=50)
        bx.set_xlabel("correction factor")
        plt.savefig(f"{plot_dir}/{name}.png")
        plt.close()


def build_calibration(params: dict, mylogger: Logger = None) -> bool:
    """
    Builds the product described by `params` and writes it to params["output"].
    Returns true if the product exists afterwards, false if there was an error
    """
    if mylogger is None:
        mylogger = Logger(
            params.get("log_dir", "./"),
            params.get("log_target", ""),
            params.get("log_level", 0),
        )
    logger = mylogger

    try:
        kind = params["kind"]
        inputs = params["inputs"]
        output = params["output"]
        input_dir = params["input_dir"]
        smooth = int(params.get("smooth", 0))
    except KeyError as e:
        logger.error(PROCESS_NAME, f"Parameter record is missing an entry: {e}")
        return False

    if kind not in INPUT_SUFFIXES:
        logger.error(PROCESS_NAME, f"Unknown calibration kind `{kind}`")
        return False
    if len(inputs) == 0:
        logger.error(PROCESS_NAME, f"No input frames listed for {output}")
        return False

    logger.info(
        PROCESS_NAME, f"Building {kind} calibration {output} from frames {inputs}"
    )
    ims, dates = _load_inputs(params, input_dir, logger)
    if ims is None:
        return False
    if len({im.shape for im in ims}) != 1:
        logger.error(PROCESS_NAME, f"Input frames {inputs} have different shapes")
        return False

    if kind == "flat":
        product = _build_flat(ims)
    else:
        product = _build_response(ims)
    if product is None:
        logger.error(PROCESS_NAME, f"Input frames {inputs} contain no positive pixels")
        return False

    if smooth > 1:
        product = median_filter(product, smooth)

    header = fits.Header()
    header["CALKIND"] = kind
    header["SRCFRAME"] = int(inputs[0])
    header["NCOMBINE"] = len(inputs)
    header["DATE"] = max(dates) if any(dates) else "UNKNOWN"
    write_fits(product, header, output)

    if int(params.get("display", 0)) > 0:
        try:
            _plot_product(product, output, params.get("log_dir", "./"))
        except Exception as e:
            logger.error(PROCESS_NAME, f"_plot_product failed due to {e}")

    logger.info(PROCESS_NAME, f"Calibration written to {output}")
    return os.path.exists(output)
