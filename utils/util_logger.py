"""
Logger for the CALCORR pipeline
Author: Jacob Isbell

Contains the class which handles logging. Created once per run by the stage wrapper
and handed to every step (and to nested calibration builds) explicitly.
"""

from datetime import datetime
from threading import Lock

pipelinename = "CALCORR"


class Logger:
    def __init__(self, output_dir, targname="", level=0) -> None:
        self.output_dir = output_dir
        self.level = level
        self.target = targname
        # workers share one logger, so every write goes through this lock
        self._lock = Lock()

    def create_log_file(self, process):
        now = datetime.now()

        date_time = now.strftime("%m/%d/%Y, %H:%M:%S")

        message_string = (
            f"{pipelinename}\nRunning process: {process} at {date_time}\n" + "=" * 16
        )
        with self._lock:
            with open(f"{self.output_dir}/{process}{self.target}.log", "w") as logfile:
                logfile.write(f"{message_string} \n")

    def info(self, process: str, message: str) -> None:
        message_string = f"INFO: {message}"
        self._do_log(message_string, process, 0)

    def warn(self, process: str, message: str) -> None:
        message_string = f"Warning: {message}"
        self._do_log(message_string, process, 1)

    def error(self, process: str, message: str) -> None:
        message_string = f"ERROR: {message}"

        self._do_log(message_string, process, 2)

    def progress(self, process: str, index: int, count: int, summary: str) -> None:
        # one line per manifest entry, e.g. "3/12 r0042 object"
        self._do_log(f"{index}/{count} {summary}", process, 0)

    def _do_log(self, message_string, process, cutoff_level) -> None:
        now = datetime.now()

        date_time = now.strftime("%m/%d/%Y, %H:%M:%S")
        with self._lock:
            if self.level <= cutoff_level:
                print(f"[{date_time}]  {message_string}")

            with open(
                f"{self.output_dir}/{process}{self.target}.log", "a"
            ) as logfile:  # open in append mode
                logfile.write(f"[{date_time}]  {message_string} \n")
