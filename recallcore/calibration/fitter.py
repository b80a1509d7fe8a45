"""
Subprocess weight fitter.

Exports review logs to a temporary CSV and runs the external optimizer
(`python -m fsrs_optimizer <csv>`) with a timeout. The temporary directory is
removed on every exit path.
"""

from __future__ import annotations
import os
import re
import subprocess
import sys
import tempfile
from typing import Optional, Sequence

import pandas as pd
from loguru import logger

from recallcore.fsrs.constants import WEIGHT_COUNT
from recallcore.fsrs.errors import ComputationUnavailable
from recallcore.fsrs.memory_state import ReviewLogEntry, ensure_utc


EXECUTION_TIMEOUT_SECONDS = 300.0
CHECK_TIMEOUT_SECONDS = 5.0
ERROR_OUTPUT_MAX_LENGTH = 500

CSV_COLUMNS = ["card_id", "review_time", "review_rating", "review_state", "review_duration"]

_LIST_PATTERN = re.compile(r"\[([-\d.,\s eE+]+)\]")
_DECIMAL_PATTERN = re.compile(r"-?\d+\.\d+(?:[eE][-+]?\d+)?")


def parse_optimizer_output(stdout: str, stderr: str = "") -> Optional[tuple[float, ...]]:
    """
    Extract a 21-weight vector from optimizer output.

    Tries bracketed lists first (JSON or Python repr), then falls back to
    the first 21 decimal numbers in the output.

    Returns:
        Tuple of 21 floats, or None when nothing usable is found
    """
    output = f"{stdout}\n{stderr}"

    for match in _LIST_PATTERN.finditer(output):
        parts = [p.strip() for p in match.group(1).split(",") if p.strip()]
        try:
            values = [float(p) for p in parts]
        except ValueError:
            continue
        if len(values) == WEIGHT_COUNT:
            return tuple(values)

    numbers = _DECIMAL_PATTERN.findall(output)
    if len(numbers) >= WEIGHT_COUNT:
        return tuple(float(n) for n in numbers[:WEIGHT_COUNT])

    return None


def review_logs_to_csv(logs: Sequence[ReviewLogEntry], path: str):
    """
    Write logs in the optimizer's revlog schema.

    review_time is epoch milliseconds; missing durations are left empty.
    """
    df = pd.DataFrame(
        [
            {
                "card_id": log.item_id,
                "review_time": int(ensure_utc(log.review_time).timestamp() * 1000),
                "review_rating": int(log.rating),
                "review_state": log.review_state,
                "review_duration": log.review_duration_ms,
            }
            for log in logs
        ],
        columns=CSV_COLUMNS,
    )
    df["review_duration"] = df["review_duration"].astype("Int64")
    df.sort_values("review_time", kind="stable").to_csv(path, index=False)


class SubprocessWeightFitter:
    """
    WeightFitter that shells out to the fsrs_optimizer module.

    Args:
        python_executable: Interpreter with fsrs_optimizer installed
        module: Optimizer module to run with -m
        timeout_seconds: Upper bound on one optimizer run
        check_timeout_seconds: Upper bound on the availability probe
    """

    def __init__(
        self,
        python_executable: str = sys.executable,
        module: str = "fsrs_optimizer",
        timeout_seconds: float = EXECUTION_TIMEOUT_SECONDS,
        check_timeout_seconds: float = CHECK_TIMEOUT_SECONDS
    ):
        self.python_executable = python_executable
        self.module = module
        self.timeout_seconds = timeout_seconds
        self.check_timeout_seconds = check_timeout_seconds

    def command(self, csv_path: str) -> list[str]:
        return [self.python_executable, "-m", self.module, csv_path]

    def is_available(self) -> bool:
        """Probe whether the optimizer module can be imported."""
        try:
            completed = subprocess.run(
                [self.python_executable, "-c", f"import {self.module}"],
                capture_output=True,
                timeout=self.check_timeout_seconds,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return completed.returncode == 0

    def fit(self, logs: Sequence[ReviewLogEntry]) -> tuple[float, ...]:
        """
        Run the optimizer over logs.

        Raises:
            ComputationUnavailable: "fitter_failed" (no logs, non-zero exit),
                "fitter_timeout", "fitter_unavailable" or "malformed_output"
        """
        if not logs:
            raise ComputationUnavailable("fitter_failed", "No review logs to fit")

        with tempfile.TemporaryDirectory(prefix="recallcore-") as workdir:
            csv_path = os.path.join(workdir, "revlog.csv")
            review_logs_to_csv(logs, csv_path)

            try:
                completed = subprocess.run(
                    self.command(csv_path),
                    capture_output=True,
                    text=True,
                    timeout=self.timeout_seconds,
                    cwd=workdir,
                )
            except subprocess.TimeoutExpired as exc:
                raise ComputationUnavailable(
                    "fitter_timeout", f"Optimizer exceeded {self.timeout_seconds}s"
                ) from exc
            except OSError as exc:
                raise ComputationUnavailable("fitter_unavailable", str(exc)) from exc

            if completed.returncode != 0:
                logger.error(
                    f"Optimizer exited with {completed.returncode}: "
                    f"{(completed.stderr or '')[:ERROR_OUTPUT_MAX_LENGTH]}"
                )
                raise ComputationUnavailable("fitter_failed", f"Optimizer exited with {completed.returncode}")

            weights = parse_optimizer_output(completed.stdout or "", completed.stderr or "")
            if weights is None:
                logger.error(f"Could not parse optimizer output: {(completed.stdout or '')[:ERROR_OUTPUT_MAX_LENGTH]}")
                raise ComputationUnavailable("malformed_output", "No 21-weight vector in optimizer output")

        return weights
