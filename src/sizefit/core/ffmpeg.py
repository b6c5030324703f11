"""FFmpeg integration and utilities."""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import time
from typing import TYPE_CHECKING, Any

from ..config.constants import ENCODER_LIST_TIMEOUT, HARDWARE_TEST_TIMEOUT, PROBE_TIMEOUT
from .base import MediaAsset, MediaKind, ProcessingError, log_stage

if TYPE_CHECKING:
    from pathlib import Path

LOG = logging.getLogger(__name__)

ENCODERS_LIST_MINIMUM_PARTS = 2

# Map x264 presets to NVENC p1 (fastest) .. p7 (slowest)
GPU_PRESET_MAP = {
    "ultrafast": "p1",
    "superfast": "p1",
    "veryfast": "p2",
    "faster": "p3",
    "fast": "p4",
    "medium": "p5",
    "slow": "p6",
    "slower": "p7",
    "veryslow": "p7",
}


def _parse_float(value: object, default: float = 0.0) -> float:
    """Parse a numeric ffprobe field that may be missing or 'N/A'."""
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


class FFmpegError(ProcessingError):
    """FFmpeg-specific error."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        return_code: int | None = None,
        stderr: str | None = None,
        file_path: Path | None = None,
        timed_out: bool = False,
    ) -> None:
        """Initialize FFmpeg error with detailed context."""
        super().__init__(message, file_path=file_path)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr
        self.timed_out = timed_out


class FFmpegProbe:
    """FFmpeg probe utility for media file analysis."""

    @staticmethod
    def check_availability() -> None:
        """Check if FFmpeg tools are available."""
        required = ["ffmpeg", "ffprobe"]
        missing = [exe for exe in required if not shutil.which(exe)]

        if missing:
            error_msg = f"Missing FFmpeg executables: {', '.join(missing)}"
            LOG.error(error_msg)
            raise FFmpegError(error_msg)

    @classmethod
    def probe_media(cls, file_path: Path) -> dict[str, Any]:
        """Probe media file for format and stream metadata."""
        cls.check_availability()

        cmd = [
            "ffprobe",
            "-v",
            "quiet",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(file_path),
        ]

        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=PROBE_TIMEOUT,
                encoding="utf-8",
                errors="replace",
            )
            probe_data = json.loads(result.stdout)
        except subprocess.CalledProcessError as e:
            error_details = e.stderr or e.stdout or "No error output"
            msg = f"ffprobe failed for {file_path}: {error_details.strip()}"
            raise FFmpegError(
                msg,
                command=cmd,
                return_code=e.returncode,
                file_path=file_path,
                stderr=e.stderr,
            ) from e
        except subprocess.TimeoutExpired as e:
            msg = f"ffprobe timed out for {file_path}"
            raise FFmpegError(msg, command=cmd, file_path=file_path, timed_out=True) from e
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON from ffprobe for {file_path}: {e}"
            raise FFmpegError(msg, command=cmd, file_path=file_path) from e
        else:
            return probe_data

    @staticmethod
    def asset_from_probe(file_path: Path, data: dict[str, Any]) -> MediaAsset:
        """Build a MediaAsset from ffprobe JSON output."""
        streams = data.get("streams", [])
        format_info = data.get("format", {})

        # Embedded cover art shows up as a video stream
        video = next(
            (
                s
                for s in streams
                if s.get("codec_type") == "video" and not s.get("disposition", {}).get("attached_pic")
            ),
            None,
        )
        audio = next((s for s in streams if s.get("codec_type") == "audio"), None)

        duration = _parse_float(format_info.get("duration"))
        if duration <= 0:
            duration = max((_parse_float(s.get("duration")) for s in streams), default=0.0)

        size = format_info.get("size")
        size_bytes = int(size) if size and str(size).isdigit() else file_path.stat().st_size

        # Ogg keeps comments on the stream, MP4 on the container
        comment = None
        for tags in [format_info.get("tags", {})] + [s.get("tags", {}) for s in streams]:
            comment = next((value for key, value in tags.items() if key.lower() == "comment"), None)
            if comment:
                break

        return MediaAsset(
            source_path=file_path,
            media_kind=MediaKind.VIDEO if video else MediaKind.AUDIO,
            duration_seconds=duration,
            size_bytes=size_bytes,
            width=video.get("width") if video else None,
            height=video.get("height") if video else None,
            video_codec=video.get("codec_name") if video else None,
            audio_codec=audio.get("codec_name") if audio else None,
            format_name=format_info.get("format_name"),
            comment=comment,
        )

    @classmethod
    def get_media_asset(cls, file_path: Path) -> MediaAsset:
        """Probe a file and describe it as a MediaAsset."""
        return cls.asset_from_probe(file_path, cls.probe_media(file_path))


class FFmpegProcessor:
    """FFmpeg command executor with enhanced error handling."""

    def __init__(self, timeout: int = 300) -> None:
        """Initialize FFmpeg processor with timeout."""
        self.timeout = timeout
        self._available_encoders: dict[str, bool] | None = None

    def get_available_encoders(self) -> dict[str, bool]:
        """Get list of available encoders from FFmpeg."""
        if self._available_encoders is not None:
            return self._available_encoders

        result = subprocess.run(  # noqa: S603
            ["ffmpeg", "-hide_banner", "-encoders"],  # noqa: S607
            capture_output=True,
            text=True,
            check=True,
            timeout=ENCODER_LIST_TIMEOUT,
            encoding="utf-8",
            errors="replace",
        )

        encoders = {}
        for line in result.stdout.split("\n"):
            # Encoder lines start with " V" for video or " A" for audio
            if line.startswith((" V", " A")):
                parts = line.split()
                if len(parts) >= ENCODERS_LIST_MINIMUM_PARTS:
                    encoders[parts[1]] = True

        self._available_encoders = encoders
        LOG.debug("Found %d available encoders", len(encoders))
        return encoders

    def is_encoder_available(self, encoder: str) -> bool:
        """Check if a specific encoder is available."""
        return self.get_available_encoders().get(encoder, False)

    def test_encoder(self, codec: str) -> bool:
        """Check that an encoder really works by running a tiny test encode."""
        # NVENC rejects very small frame sizes
        test_cmd = [
            "ffmpeg",
            "-hide_banner",
            "-y",
            "-f",
            "lavfi",
            "-i",
            "color=c=black:s=256x256:d=1:r=30",
            "-c:v",
            codec,
            "-f",
            "null",
            "-",
        ]

        result = subprocess.run(  # noqa: S603
            test_cmd,
            capture_output=True,
            text=True,
            timeout=HARDWARE_TEST_TIMEOUT,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
        if result.returncode != 0:
            LOG.debug("Test encode with %s failed: %s", codec, result.stderr.strip()[:200])
        return result.returncode == 0

    def run_command(self, command: list[str], file_path: Path | None = None) -> subprocess.CompletedProcess:
        """Run FFmpeg command with proper error handling."""
        FFmpegProbe.check_availability()

        LOG.debug("Running FFmpeg command: %s", " ".join(command))
        start_time = time.time()

        try:
            result = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,  # We'll handle return code ourselves
                encoding="utf-8",
                errors="replace",
            )

            LOG.debug("FFmpeg command completed in %.2fs", time.time() - start_time)

            if result.returncode != 0:
                self._handle_ffmpeg_error(result, command, file_path)
        except subprocess.TimeoutExpired as e:
            msg = f"FFmpeg command timed out after {self.timeout}s"
            raise FFmpegError(msg, command=command, file_path=file_path, timed_out=True) from e
        except OSError as e:
            msg = f"Unexpected error running FFmpeg: {e}"
            raise FFmpegError(msg, command=command, file_path=file_path) from e
        else:
            return result

    def _handle_ffmpeg_error(
        self, result: subprocess.CompletedProcess, command: list[str], file_path: Path | None
    ) -> None:
        """Handle FFmpeg command error by raising appropriate exception."""
        error_msg = f"FFmpeg failed with return code {result.returncode}"
        if result.stderr:
            error_msg += f": {result.stderr.strip()}"

        raise FFmpegError(
            error_msg,
            command=command,
            return_code=result.returncode,
            file_path=file_path,
            stderr=result.stderr,
        )


class HardwareEncoderDetector:
    """Detect a usable hardware video encoder once and remember the answer."""

    def __init__(self, encoder: str = "h264_nvenc", *, enabled: bool = True, ffmpeg: FFmpegProcessor | None = None):
        self.encoder = encoder
        self.enabled = enabled
        self.ffmpeg = ffmpeg or FFmpegProcessor()
        self._available: bool | None = None

    def detect(self) -> bool:
        """Return True when the hardware encoder is listed and passes a test encode."""
        if self._available is not None:
            return self._available

        self._available = self._probe() if self.enabled else False
        log_stage(
            LOG,
            "capability",
            "detected",
            "Hardware encoding (%s) %s",
            self.encoder,
            "is available" if self._available else "not available, using software encoding",
            hardware=self._available,
        )
        return self._available

    def _probe(self) -> bool:
        # Absence of hardware is an expected condition, never an error
        try:
            if not self.ffmpeg.is_encoder_available(self.encoder):
                return False
            return self.ffmpeg.test_encoder(self.encoder)
        except (subprocess.SubprocessError, OSError, ValueError) as e:
            LOG.debug("Hardware encoder probe failed for %s: %s", self.encoder, e)
            return False
