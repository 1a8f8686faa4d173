"""
stage_driver -- CALCORR pipeline
Author: Jacob Isbell

Runs one correction over every entry of a manifest: finds the input frame, checks whether
the output already exists, resolves (and if needed builds) the calibration, applies the
correction and writes the results. Entries are independent, a failure on one never stops
the others. Only a shape mismatch between arrays aborts the run.

Called by do_flat_correction and do_response_correction
"""

import os
import time
from concurrent.futures import ThreadPoolExecutor
from threading import Lock

import matplotlib.pyplot as plt
import numpy as np
import polars as pl
from matplotlib.colors import PowerNorm

from calibration_steps.calibration_types import (
    CorrectionError,
    Exposure,
    InputMissing,
    NoCalibrationAssociation,
    OutputAlreadyExists,
    ProcessingOutcome,
    ResolvedCalibration,
    ShapeMismatch,
)
from utils.utils import (
    first_existing,
    frame_name,
    frame_path,
    read_fits,
    read_header,
    should_process,
    write_fits,
)

CLASSIFICATION_KEY = "IMAGETYP"

# sidecar suffixes are derived from the data suffix, "_int" -> "_var"/"_msk", "_intc" -> "_varc"/"_mskc"
SIDECAR_STEMS = {"variance": "_var", "mask": "_msk"}

# pyplot is not thread safe
_plot_lock = Lock()


def _sidecar_suffix(data_suffix, which):
    return SIDECAR_STEMS[which] + data_suffix[4:]


def locate_input(ctx, number, input_suffixes):
    """
    Returns (path, suffix) of the first existing input variant of frame `number`
    """
    candidates = [
        frame_path(ctx.data_dir, ctx.prefix, number, ctx.id_width, s)
        for s in input_suffixes
    ]
    fname = first_existing(candidates)
    if fname is None:
        raise InputMissing(f"None of {candidates} exist")
    return fname, input_suffixes[candidates.index(fname)]


def _placeholder(shape):
    # a single non-zero pixel keeps the written array from being completely flat
    placeholder = np.zeros(shape)
    placeholder.flat[0] = 1
    return placeholder


def _load_sidecar(ctx, number, suffix, which, shape):
    fname = frame_path(
        ctx.data_dir, ctx.prefix, number, ctx.id_width, _sidecar_suffix(suffix, which)
    )
    if os.path.exists(fname):
        im, _ = read_fits(fname)
        return im
    ctx.logger.warn(
        ctx.process, f"{which} file {fname} not found, using a placeholder instead"
    )
    return _placeholder(shape)


def load_exposure(
    ctx, number, fname, suffix, classification, with_sidecars=True
) -> Exposure:
    data, header = read_fits(fname)
    if with_sidecars:
        variance = _load_sidecar(ctx, number, suffix, "variance", data.shape)
        mask = _load_sidecar(ctx, number, suffix, "mask", data.shape)
    else:
        variance = _placeholder(data.shape)
        mask = _placeholder(data.shape)
    return Exposure(number, classification, data, variance, mask, header, fname)


def _qa_plot(ctx, exposure: Exposure, corrected, calibration: ResolvedCalibration):
    name = frame_name(ctx.prefix, exposure.number, ctx.id_width)
    with _plot_lock:
        _draw_qa_plot(ctx, name, exposure, corrected, calibration)


def _draw_qa_plot(ctx, name, exposure, corrected, calibration):
    _, (ax, bx, cx) = plt.subplots(1, 3, figsize=(12, 4))
    ax.imshow(exposure.data, origin="lower", norm=PowerNorm(0.5))
    ax.set_title(f"{name} input")
    bx.imshow(corrected, origin="lower", norm=PowerNorm(0.5))
    bx.set_title(f"{name} corrected")
    cx.imshow(calibration.data, origin="lower")
    cx.set_title(os.path.basename(calibration.path))
    plt.savefig(f"{ctx.output_dir}/plots/{ctx.process}/{ctx.target}_{name}_qa.png")
    plt.close()


def _process_entry(ctx, index, count, number, reference, correction, resolver):
    name = frame_name(ctx.prefix, number, ctx.id_width)

    # 1. find the input frame
    fname, suffix = locate_input(ctx, number, correction.input_suffixes)

    # 2. the classification is only used for logging and frame type exclusion
    try:
        header = read_header(fname)
    except OSError as e:
        raise InputMissing(f"{fname} could not be read: {e}") from e
    classification = str(header.get(CLASSIFICATION_KEY, "UNKNOWN"))
    ctx.logger.progress(ctx.process, index, count, f"{name} {classification}")

    # 3. skip frames that are already done
    outputs = {
        s: f"{ctx.product_dir}/{name}{s}.fits"
        for s in correction.output_suffixes.values()
    }
    gate_path = outputs[correction.output_suffixes["data"]]
    if not should_process(gate_path, ctx.clobber):
        if not os.path.exists(gate_path):
            ctx.logger.warn(ctx.process, f"{gate_path} was skipped but does not exist")
        raise OutputAlreadyExists(f"{gate_path} exists, not overwriting")

    if not correction.accepts(classification):
        ctx.logger.info(
            ctx.process, f"{name} is of type {classification}, no {correction.kind} applied"
        )
        return ProcessingOutcome.SKIPPED_TYPE_EXCLUDED

    # 4. load the data, variance and mask
    try:
        exposure = load_exposure(
            ctx, number, fname, suffix, classification, correction.uses_variance
        )
    except OSError as e:
        raise InputMissing(f"{fname} or its variance/mask could not be read: {e}") from e

    # 5. find the calibration
    calibration = resolver.resolve(reference)
    if not isinstance(calibration, ResolvedCalibration):
        raise calibration.error

    # 6. correct and write
    results = correction.apply(exposure, calibration)
    for s, (im, hdr) in results.items():
        write_fits(im, hdr, outputs[s])
        ctx.logger.info(ctx.process, f"Wrote {outputs[s]}")

    if ctx.display > 0:
        try:
            _qa_plot(ctx, exposure, results[correction.output_suffixes["data"]][0], calibration)
        except Exception as e:
            ctx.logger.error(ctx.process, f"_qa_plot failed due to {e}")

    return ProcessingOutcome.CORRECTED


ERROR_OUTCOMES = {
    InputMissing: ProcessingOutcome.ERROR_INPUT_MISSING,
    OutputAlreadyExists: ProcessingOutcome.SKIPPED_OUTPUT_EXISTS,
    NoCalibrationAssociation: ProcessingOutcome.SKIPPED_NO_CALIBRATION,
}


def _run_entry(ctx, index, count, number, reference, correction, resolver):
    if ctx.cancel.is_set():
        ctx.logger.warn(ctx.process, f"Run cancelled, frame {number} not processed")
        return ProcessingOutcome.SKIPPED_CANCELLED
    try:
        return _process_entry(
            ctx, index, count, number, reference, correction, resolver
        )
    except ShapeMismatch:
        raise
    except CorrectionError as e:
        outcome = ERROR_OUTCOMES.get(
            type(e), ProcessingOutcome.ERROR_CALIBRATION_MISSING
        )
        if isinstance(e, InputMissing):
            ctx.logger.error(ctx.process, f"Frame {number}: input missing. {e}")
        elif isinstance(e, OutputAlreadyExists):
            ctx.logger.info(ctx.process, f"Frame {number}: {e}")
        elif not isinstance(e, NoCalibrationAssociation):
            ctx.logger.error(ctx.process, f"Frame {number}: {type(e).__name__}. {e}")
        return outcome
    except Exception as e:
        # anything else is fatal to this frame only
        ctx.logger.error(
            ctx.process, f"Frame {number} failed with {type(e).__name__}: {e}"
        )
        return ProcessingOutcome.ERROR_PROCESSING


def run_stage(manifest, ctx, correction, resolver) -> list:
    """
    Processes every manifest entry and returns their outcomes in manifest order.
    With ctx.n_workers > 1 the entries are spread over a thread pool.
    """
    start = time.time()
    count = manifest.count
    jobs = [
        (i + 1, count, number, reference, correction, resolver)
        for i, (number, reference) in enumerate(manifest)
    ]

    if ctx.n_workers > 1:
        with ThreadPoolExecutor(max_workers=ctx.n_workers) as pool:
            futures = [pool.submit(_run_entry, ctx, *job) for job in jobs]
            # result() re-raises a ShapeMismatch from any worker
            outcomes = [f.result() for f in futures]
    else:
        outcomes = [_run_entry(ctx, *job) for job in jobs]

    ctx.logger.info(
        ctx.process,
        f"Processed {count} frames in {time.time() - start:.1f} seconds, {resolver.n_builds} calibration(s) built",
    )
    return outcomes


def write_report(ctx, manifest, outcomes) -> str:
    """Saves the per-frame outcomes of a run as a csv table"""
    df = pl.DataFrame(
        {
            "frame": [number for number, _ in manifest],
            "calibration": [ref.number for _, ref in manifest],
            "outcome": [o.value for o in outcomes],
        },
        schema={"frame": pl.Int64, "calibration": pl.Int64, "outcome": pl.Utf8},
    )
    outname = f"{ctx.product_dir}/{ctx.target}_outcomes.csv"
    df.write_csv(outname)
    counts = df.group_by("outcome").len().sort("outcome")
    for row in counts.iter_rows():
        ctx.logger.info(ctx.process, f"{row[0]}: {row[1]}")
    return outname
