"""
resolve_calibration -- CALCORR pipeline
Author: Jacob Isbell

Works out which calibration product an exposure should use, builds it if it is missing but
buildable, and loads it. Products are always referenced by their file on disk, so every
exposure sharing a reference applies the same persisted product.
Called by the stage driver.
"""

import json
import os
from threading import Lock

from calibration_steps.build_calibration import build_calibration
from calibration_steps.calibration_types import (
    BUILD_FAILED,
    MISSING_PARAMETERS,
    NO_ASSOCIATION,
    UNREADABLE,
    CalibrationReference,
    ResolvedCalibration,
    Unavailable,
)
from utils.utils import frame_name, read_fits

PROCESS_NAME = "resolve_calibration"

# keys of a parameter record that always follow the run asking for the build
INHERITED_KEYS = ["log_level", "display", "log_dir", "log_target"]


class CalibrationResolver:
    """
    Resolves calibration references of one kind ("flat" or "response") for one run.

    Building is serialized per product: the existence check is repeated under the product's
    lock, so two workers asking for the same missing product build it only once.
    """

    def __init__(self, ctx, kind, builder=build_calibration):
        self.ctx = ctx
        self.kind = kind
        self.builder = builder
        self.n_builds = 0
        self._locks = {}
        self._locks_guard = Lock()

    def product_path(self, reference: CalibrationReference) -> str:
        return f"{self.ctx.calib_dir}/{self.kind}_{str(reference.number).zfill(self.ctx.id_width)}.fits"

    def parameter_path(self, reference: CalibrationReference) -> str:
        return os.path.splitext(self.product_path(reference))[0] + ".json"

    def _lock_for(self, path) -> Lock:
        with self._locks_guard:
            if path not in self._locks:
                self._locks[path] = Lock()
            return self._locks[path]

    def load_parameters(self, reference: CalibrationReference):
        """
        Returns the parameter record of the product, or None if there is none
        """
        param_path = self.parameter_path(reference)
        if not os.path.exists(param_path):
            return None
        with open(param_path, "r") as inputfile:
            params = json.load(inputfile)
        if not isinstance(params, dict):
            raise ValueError(f"{param_path} does not hold a json object")
        params.setdefault("kind", self.kind)
        params.setdefault("input_dir", self.ctx.data_dir)
        params.setdefault("prefix", self.ctx.prefix)
        params.setdefault("id_width", self.ctx.id_width)
        params["output"] = self.product_path(reference)
        return params

    def _inherit_settings(self, params: dict) -> dict:
        # nested builds log with the current run's verbosity and into its log stream
        params = dict(params)
        params["log_level"] = self.ctx.log_level
        params["display"] = self.ctx.display
        params["log_dir"] = self.ctx.logger.output_dir
        params["log_target"] = self.ctx.logger.target
        return params

    def _build(self, reference, params):
        logger = self.ctx.logger
        params = self._inherit_settings(params)
        logger.info(
            PROCESS_NAME,
            f"{self.kind} calibration {reference} missing, building it from {params.get('inputs')}",
        )
        with self._locks_guard:
            self.n_builds += 1
        try:
            built = self.builder(params, logger)
        except Exception as e:
            logger.error(PROCESS_NAME, f"Builder raised {type(e).__name__}: {e}")
            return False
        if not built:
            return False
        return os.path.exists(params["output"])

    def _build_parameters(self, reference: CalibrationReference):
        """
        Parameters to build a missing product from. Returns None if the product cannot be built
        """
        return self.load_parameters(reference)

    def resolve(self, reference: CalibrationReference):
        """
        Returns a ResolvedCalibration, or an Unavailable explaining why there is none
        """
        logger = self.ctx.logger
        if reference.is_none:
            message = f"No {self.kind} calibration is associated"
            logger.warn(PROCESS_NAME, message)
            return Unavailable(reference, NO_ASSOCIATION, message)

        path = self.product_path(reference)
        with self._lock_for(path):
            if not os.path.exists(path):
                try:
                    params = self._build_parameters(reference)
                except (ValueError, OSError) as e:
                    message = f"Parameter record {self.parameter_path(reference)} is unreadable: {e}"
                    logger.error(PROCESS_NAME, message)
                    return Unavailable(reference, MISSING_PARAMETERS, message)
                if params is None:
                    message = f"{self.kind} calibration {path} does not exist and cannot be built: {self.parameter_path(reference)} not found"
                    logger.error(PROCESS_NAME, message)
                    return Unavailable(reference, MISSING_PARAMETERS, message)
                if not self._build(reference, params):
                    message = f"Building {self.kind} calibration {path} failed"
                    logger.error(PROCESS_NAME, message)
                    return Unavailable(reference, BUILD_FAILED, message)

        try:
            data, header = read_fits(path)
        except OSError as e:
            message = f"{self.kind} calibration {path} could not be read: {e}"
            logger.error(PROCESS_NAME, message)
            return Unavailable(reference, UNREADABLE, message)
        logger.info(PROCESS_NAME, f"Using {self.kind} calibration {path}")
        return ResolvedCalibration(reference, data, header, path)


class ResponseCalibrationResolver(CalibrationResolver):
    """
    Response products may also be built straight from their raw source frame, found by
    swapping the product suffix for the raw suffix, when no parameter record exists.
    """

    product_suffix = "_rsp"
    raw_suffix = "_img"

    def __init__(self, ctx, builder=build_calibration):
        super().__init__(ctx, "response", builder)

    def product_path(self, reference: CalibrationReference) -> str:
        name = frame_name(self.ctx.prefix, reference.number, self.ctx.id_width)
        return f"{self.ctx.calib_dir}/{name}{self.product_suffix}.fits"

    def raw_path(self, reference: CalibrationReference) -> str:
        product_name = os.path.basename(self.product_path(reference))
        raw_name = product_name.replace(
            f"{self.product_suffix}.fits", f"{self.raw_suffix}.fits"
        )
        return f"{self.ctx.data_dir}/{raw_name}"

    def _build_parameters(self, reference: CalibrationReference):
        params = self.load_parameters(reference)
        if params is not None:
            return params
        if not os.path.exists(self.raw_path(reference)):
            return None
        self.ctx.logger.info(
            PROCESS_NAME,
            f"No parameter record for response {reference}, building from {self.raw_path(reference)}",
        )
        return {
            "kind": self.kind,
            "inputs": [reference.number],
            "input_dir": self.ctx.data_dir,
            "prefix": self.ctx.prefix,
            "id_width": self.ctx.id_width,
            "output": self.product_path(reference),
        }
