"""Typed audio effect options and their FFmpeg filter chain."""

from __future__ import annotations

from dataclasses import dataclass, fields

from ..config.constants import PITCH_SAMPLE_RATE

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

# Accepted spellings in option strings
_ALIASES = {
    "amplify": "amplify",
    "volume": "amplify",
    "reverse": "reverse",
    "pitch": "pitch",
    "clip": "clip_duration",
    "clip_duration": "clip_duration",
    "duration": "clip_duration",
    "start": "start_position",
    "start_position": "start_position",
}


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES or value == "":
        return True
    if value in _FALSE_VALUES:
        return False
    msg = f"Option '{key}' expects a boolean, got '{raw}'"
    raise ValueError(msg)


def _parse_number(key: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        msg = f"Option '{key}' expects a number, got '{raw}'"
        raise ValueError(msg) from None


@dataclass(frozen=True)
class FilterOptions:
    """Recognized effect options for a media request."""

    amplify: float | None = None  # gain multiplier
    reverse: bool = False
    pitch: float | None = None  # semitones
    clip_duration: float | None = None  # seconds
    start_position: float | None = None  # seconds

    def __post_init__(self) -> None:
        if self.amplify is not None and self.amplify < 0:
            msg = "amplify must not be negative"
            raise ValueError(msg)
        if self.clip_duration is not None and self.clip_duration <= 0:
            msg = "clip_duration must be positive"
            raise ValueError(msg)
        if self.start_position is not None and self.start_position < 0:
            msg = "start_position must not be negative"
            raise ValueError(msg)

    @classmethod
    def parse(cls, text: str) -> FilterOptions:
        """
        Parse an option string like ``{amplify=2,reverse=1,pitch=-3}``.

        Braces are optional. Unknown keys raise ValueError.
        """
        content = text.strip()
        if content.startswith("{") and content.endswith("}"):
            content = content[1:-1]
        content = content.strip()
        if not content:
            return cls()

        values: dict[str, object] = {}
        for segment in content.split(","):
            if not segment.strip():
                continue
            key, _, raw = segment.partition("=")
            key = key.strip().lower()
            name = _ALIASES.get(key)
            if name is None:
                known = ", ".join(f.name for f in fields(cls))
                msg = f"Unknown option '{key}'. Recognized options: {known}"
                raise ValueError(msg)
            values[name] = _parse_bool(key, raw) if name == "reverse" else _parse_number(key, raw)

        return cls(**values)  # type: ignore[arg-type]

    @property
    def is_empty(self) -> bool:
        return self == FilterOptions()

    @property
    def needs_clip(self) -> bool:
        return self.clip_duration is not None or self.start_position is not None

    def audio_filters(self) -> list[str]:
        """Build the FFmpeg audio filter chain for these options."""
        chain = []
        if self.amplify is not None:
            chain.append(f"volume={self.amplify:g}")
        if self.reverse:
            chain.append("areverse")
        if self.pitch:
            chain.append(f"asetrate={PITCH_SAMPLE_RATE}*2^({self.pitch:g}/12),aresample={PITCH_SAMPLE_RATE}")
        return chain

    def slug(self) -> str:
        """Short file-name friendly description of the options."""
        parts = []
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None or value is False:
                continue
            parts.append(f.name if value is True else f"{f.name}-{value:g}")
        return "_".join(parts) or "plain"
