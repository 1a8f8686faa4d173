"""
config -- CALCORR pipeline

Loads the json config file of a correction run and turns it into the run context which is
passed explicitly to every step. See example_config.json for a template.
"""

import json
import os
from dataclasses import dataclass, field
from threading import Event

from utils.util_logger import Logger
from utils.utils import create_filestructure

REQUIRED_KEYS = ["target", "data_dir", "output_dir", "calib_dir"]

DEFAULTS = {
    "prefix": "",
    "id_width": 4,
    "log_level": 0,
    "display": 0,
    "clobber": False,
    "n_workers": 1,
}


@dataclass
class RunContext:
    """Everything a step needs to know about the current run."""

    target: str
    data_dir: str
    output_dir: str
    calib_dir: str
    process: str
    logger: Logger
    prefix: str = ""
    id_width: int = 4
    log_level: int = 0
    display: int = 0
    clobber: bool = False
    n_workers: int = 1
    cancel: Event = field(default_factory=Event)

    @property
    def product_dir(self):
        return f"{self.output_dir}/corrected/{self.process}"


def load_config(configfile: str) -> dict:
    with open(configfile, "r") as inputfile:
        configdata = json.load(inputfile)

    missing = [k for k in REQUIRED_KEYS if k not in configdata]
    if missing:
        raise KeyError(f"Config file {configfile} is missing {missing}")

    for key, value in DEFAULTS.items():
        configdata.setdefault(key, value)
    return configdata


def make_context(configdata: dict, process: str, logger: Logger = None) -> RunContext:
    if logger is None:
        logger = Logger(
            configdata["output_dir"], configdata["target"], configdata["log_level"]
        )
    return RunContext(
        target=configdata["target"],
        data_dir=configdata["data_dir"],
        output_dir=configdata["output_dir"],
        calib_dir=configdata["calib_dir"],
        process=process,
        logger=logger,
        prefix=configdata["prefix"],
        id_width=int(configdata["id_width"]),
        log_level=int(configdata["log_level"]),
        display=int(configdata["display"]),
        clobber=bool(configdata["clobber"]),
        n_workers=max(1, int(configdata["n_workers"])),
    )


def verify_layout(ctx: RunContext) -> bool:
    """
    Checks that the input directory exists and creates the calibration and output directories.
    Returns false if the input directory is missing
    """
    if not os.path.isdir(ctx.data_dir):
        ctx.logger.error(ctx.process, f"Input directory {ctx.data_dir} does not exist")
        return False
    os.makedirs(ctx.calib_dir, exist_ok=True)
    create_filestructure(ctx.output_dir, ctx.process)
    return True
