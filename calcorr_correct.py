"""
calcorr_correct -- CALCORR Pipeline
Author: Jacob Isbell

Wrapper to apply the flat field or relative response correction to the frames produced by the
previous reduction stage. Requires a correction config file (see example_config.json).
"""

# package imports
import os
from sys import argv

# pipeline imports
from utils.config import load_config
from utils.util_logger import Logger
from correction_steps.do_flat_correction import do_flat_correction
from correction_steps.do_response_correction import do_response_correction


PROCESS_NAME = "pipeline"


def _start(configfile: str):
    configdata = load_config(configfile)

    target = configdata["target"]
    data_dir = configdata["data_dir"]
    output_dir = configdata["output_dir"]

    os.makedirs(output_dir, exist_ok=True)
    logger = Logger(output_dir, target, configdata["log_level"])
    logger.create_log_file(PROCESS_NAME)
    logger.info(PROCESS_NAME, "Config file loaded")
    logger.info(PROCESS_NAME, configdata)
    logger.info(
        PROCESS_NAME, f"Starting processing of {target} in directory {data_dir}"
    )
    logger.info(PROCESS_NAME, f"Results will be put into directory {output_dir}")
    return configdata, logger


def flat(configfile: str) -> bool:
    configdata, logger = _start(configfile)
    logger.create_log_file("flat_correction")
    logger.info(PROCESS_NAME, "Starting process `do_flat_correction`")
    if not do_flat_correction(configdata, logger):
        logger.error(PROCESS_NAME, "Process `do_flat_correction` failed")
        return False
    logger.info(PROCESS_NAME, "Process `do_flat_correction` finished successfully")
    return True


def response(configfile: str) -> bool:
    configdata, logger = _start(configfile)
    logger.create_log_file("response_correction")
    logger.info(PROCESS_NAME, "Starting process `do_response_correction`")
    if not do_response_correction(configdata, logger):
        logger.error(PROCESS_NAME, "Process `do_response_correction` failed")
        return False
    logger.info(PROCESS_NAME, "Process `do_response_correction` finished successfully")
    return True


if __name__ == "__main__":
    if len(argv) != 2:
        print("No config file specified. Please specify a config file")
        exit(1)
    flat(argv[1])
