"""Loudness measurement used to drive gain correction."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from .base import AudioLevelProfile, log_stage
from .ffmpeg import FFmpegError, FFmpegProcessor

if TYPE_CHECKING:
    from pathlib import Path

LOG = logging.getLogger(__name__)

DEFAULT_PEAK_DB = -10.0
DEFAULT_MEAN_DB = -25.0

_MEAN_RE = re.compile(r"mean_volume:\s*(-?[\d.]+|-?inf)\s*dB")
_PEAK_RE = re.compile(r"max_volume:\s*(-?[\d.]+|-?inf)\s*dB")


def _search_db(pattern: re.Pattern[str], report: str) -> float | None:
    match = pattern.search(report)
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    # Digital silence reports -inf, which cannot drive a gain computation
    return value if value > float("-inf") else None


def parse_volumedetect(
    report: str,
    default_peak_db: float = DEFAULT_PEAK_DB,
    default_mean_db: float = DEFAULT_MEAN_DB,
) -> AudioLevelProfile:
    """Parse the textual report printed by the volumedetect filter."""
    peak = _search_db(_PEAK_RE, report)
    mean = _search_db(_MEAN_RE, report)

    return AudioLevelProfile(
        peak_db=default_peak_db if peak is None else peak,
        mean_db=default_mean_db if mean is None else mean,
        degraded=peak is None or mean is None,
    )


def analyze_level(
    file_path: Path,
    ffmpeg: FFmpegProcessor | None = None,
    default_peak_db: float = DEFAULT_PEAK_DB,
    default_mean_db: float = DEFAULT_MEAN_DB,
) -> AudioLevelProfile:
    """
    Measure peak and mean loudness of a file.

    Never raises: any failure to run or parse the measurement falls back to
    conservative default levels so normalization can still go ahead.
    """
    processor = ffmpeg or FFmpegProcessor()
    command = [
        "ffmpeg",
        "-hide_banner",
        "-nostats",
        "-i",
        str(file_path),
        "-map",
        "0:a:0",
        "-af",
        "volumedetect",
        "-vn",
        "-f",
        "null",
        "-",
    ]

    log_stage(LOG, "analyze", "start", "Measuring audio level of %s", file_path)
    try:
        result = processor.run_command(command, file_path)
        report = result.stderr or ""
    except FFmpegError as e:
        LOG.debug("Level analysis command failed for %s: %s", file_path, e)
        report = ""

    profile = parse_volumedetect(report, default_peak_db, default_mean_db)
    if profile.degraded:
        log_stage(
            LOG,
            "analyze",
            "degraded",
            "Could not measure audio level of %s, assuming peak=%.1fdB mean=%.1fdB",
            file_path,
            profile.peak_db,
            profile.mean_db,
        )
    else:
        log_stage(
            LOG,
            "analyze",
            "done",
            "Audio level of %s: peak=%.1fdB mean=%.1fdB",
            file_path,
            profile.peak_db,
            profile.mean_db,
        )
    return profile
