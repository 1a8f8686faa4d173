"""
do_response_correction -- CALCORR pipeline
Author: Jacob Isbell

Divides every combined image of the manifest by its relative response. A missing response is
built from its parameter record or, failing that, from its raw source frame.
Called by calcorr_correct
"""

from calibration_steps.apply_correction import ResponseCorrection
from calibration_steps.build_calibration import build_calibration
from calibration_steps.resolve_calibration import ResponseCalibrationResolver
from correction_steps.stage_driver import run_stage, write_report
from utils.config import make_context, verify_layout
from utils.manifest import manifest_from_config
from utils.util_logger import Logger

PROCESS_NAME = "response_correction"


def correct_response(manifest, ctx, builder=build_calibration):
    resolver = ResponseCalibrationResolver(ctx, builder)
    return run_stage(manifest, ctx, ResponseCorrection(), resolver)


def do_response_correction(configdata: dict, mylogger: Logger) -> bool:
    """
    Entry point to the response stage. Returns true if the run completed, false if it could not start
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

    logger.info(PROCESS_NAME, f"{manifest.count} frames to correct for the response")
    outcomes = correct_response(manifest, ctx)
    outname = write_report(ctx, manifest, outcomes)
    logger.info(PROCESS_NAME, f"Saved outcomes to {outname}")
    return True
