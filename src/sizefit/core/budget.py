"""Bitrate budget for a single ladder rung."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import BitrateBudget

if TYPE_CHECKING:
    from ..config.settings import EncodingRung

DEFAULT_MIN_VIDEO_KBPS = 250


def effective_duration(duration_seconds: float, rung: EncodingRung) -> float:
    """Duration the rung will actually encode, after any trim."""
    if rung.trim_to_seconds and duration_seconds > rung.trim_to_seconds:
        return rung.trim_to_seconds
    return duration_seconds


def total_kbps(duration_seconds: float, ceiling_bytes: int) -> int:
    """Average bitrate that exactly fills the ceiling over the duration."""
    if duration_seconds <= 0:
        return 0
    return int(ceiling_bytes * 8 // (duration_seconds * 1024))


def budget(
    duration_seconds: float,
    ceiling_bytes: int,
    rung: EncodingRung,
    *,
    video: bool = True,
    min_video_kbps: int = DEFAULT_MIN_VIDEO_KBPS,
) -> BitrateBudget:
    """
    Split the size ceiling into audio and video bitrates for a rung.

    Audio always gets the rung's fixed bitrate. Video gets what remains of the
    average total, never less than ``min_video_kbps`` and never more than the
    rung's ``max_video_kbps``. An unknown duration leaves the rung cap as the
    video budget.
    """
    audio_kbps = rung.audio_bitrate_kbps
    total = total_kbps(effective_duration(duration_seconds, rung), ceiling_bytes)

    if not video:
        return BitrateBudget(total_kbps=total, audio_kbps=audio_kbps)

    if total <= 0:
        return BitrateBudget(total_kbps=0, audio_kbps=audio_kbps, video_kbps=rung.max_video_kbps, capped=True)

    video_kbps = max(min_video_kbps, total - audio_kbps)
    capped = video_kbps > rung.max_video_kbps
    return BitrateBudget(
        total_kbps=total,
        audio_kbps=audio_kbps,
        video_kbps=min(video_kbps, rung.max_video_kbps),
        capped=capped,
    )
