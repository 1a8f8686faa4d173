"""
do_flat_correction -- CALCORR pipeline
Author: Jacob Isbell

Multiplies every science frame of the manifest by its associated flat field and propagates
the variance. Flats that do not exist yet are built from their parameter record on first use.
Arc and bar frames are left alone.
Called by calcorr_correct
"""

from calibration_steps.apply_correction import FlatCorrection
from calibration_steps.build_calibration import build_calibration
from calibration_steps.resolve_calibration import CalibrationResolver
from correction_steps.stage_driver import run_stage, write_report
from utils.config import make_context, verify_layout
from utils.manifest import manifest_from_config
from utils.util_logger import Logger

PROCESS_NAME = "flat_correction"


def correct_flat(manifest, ctx, builder=build_calibration):
    resolver = CalibrationResolver(ctx, "flat", builder)
    return run_stage(manifest, ctx, FlatCorrection(), resolver)


def do_flat_correction(configdata: dict, mylogger: Logger) -> bool:
    """
    Entry point to the flat field stage -- builds the run context and manifest from the config and
    runs the correction over it. Returns true if the run completed, false if it could not start
    """
    logger = mylogger

    try:
        ctx = make_context(configdata, PROCESS_NAME, logger)
        manifest = manifest_from_config(configdata)
    except KeyError as e:
        logger.error(PROCESS_NAME, f"One or more config keys was incorrect: {e}")
        return False
    except (ValueError, FileNotFoundError) as e:
        logger.error(PROCESS_NAME, f"Could not read the manifest: {e}")
        return False

    if not verify_layout(ctx):
        return False

    logger.info(PROCESS_NAME, f"{manifest.count} frames to flat field")
    outcomes = correct_flat(manifest, ctx)
    outname = write_report(ctx, manifest, outcomes)
    logger.info(PROCESS_NAME, f"Saved outcomes to {outname}")
    return True
