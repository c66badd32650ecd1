"""Reconcile narration length with phase video length.

WHY: Narration is synthesized from the script while the phase window
comes from the source video, so the two rarely match. Small differences
are inaudible and best left alone; larger ones need the audio re-timed,
padded, or looped so the phase ends on a clean cut.

HOW: ratio = audio duration / video duration selects a method from the
SyncMethodBands table. audio_filters() returns the ffmpeg filter chain
for that method, and apply_sync() applies it to an ffmpeg-python stream.

RULES:
- compress_audio / speed_up_audio → atempo=ratio, chained so each stage
  stays within [MIN_ATEMPO, MAX_ATEMPO]
- add_padding → apad=pad_dur=<video - audio>
- extend_audio → aloop=loop=-1:size=ALOOP_SIZE, then atrim=duration=<video>
- direct_overlay → no filter
- fit_to_video() then pads and trims every narration to the cut length,
  so the muxed track always ends where the video ends
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from microvideo_pipeline import config
from microvideo_pipeline.config import SyncMethodBands

SYNC_METHODS = ("compress_audio", "speed_up_audio", "direct_overlay", "add_padding", "extend_audio")


def duration_ratio(audio_sec: float, video_sec: float) -> float:
    if video_sec <= 0:
        raise ValueError("video duration must be positive, got {}".format(video_sec))
    return audio_sec / video_sec


def select_sync_method(ratio: float, bands: Optional[SyncMethodBands] = None) -> str:
    """Map an audio/video duration ratio to a reconciliation method."""
    bands = bands or SyncMethodBands()
    if ratio > bands.compress_above:
        return "compress_audio"
    if ratio > bands.speed_up_above:
        return "speed_up_audio"
    if ratio >= bands.pad_below:
        return "direct_overlay"
    if ratio >= bands.extend_below:
        return "add_padding"
    return "extend_audio"


def atempo_chain(ratio: float) -> List[float]:
    """Split a tempo factor into atempo stages each within the filter's range."""
    if ratio <= 0:
        raise ValueError("tempo ratio must be positive, got {}".format(ratio))
    factors: List[float] = []
    remaining = ratio
    while remaining > config.MAX_ATEMPO:
        factors.append(config.MAX_ATEMPO)
        remaining /= config.MAX_ATEMPO
    while remaining < config.MIN_ATEMPO:
        factors.append(config.MIN_ATEMPO)
        remaining /= config.MIN_ATEMPO
    factors.append(round(remaining, 6))
    return factors


@dataclass(frozen=True)
class AudioSyncPlan:
    """The chosen method and its filter chain for one phase."""

    method: str
    ratio: float
    filters: Tuple[Tuple[str, Tuple[Tuple[str, Any], ...]], ...] = ()

    def describe(self) -> str:
        if not self.filters:
            return "(none)"
        parts = []
        for name, args in self.filters:
            parts.append("{}={}".format(name, ":".join("{}={}".format(k, v) for k, v in args)))
        return ",".join(parts)


def plan_audio_sync(audio_sec: float, video_sec: float, bands: Optional[SyncMethodBands] = None) -> AudioSyncPlan:
    ratio = duration_ratio(audio_sec, video_sec)
    method = select_sync_method(ratio, bands)
    if method in ("compress_audio", "speed_up_audio"):
        filters = tuple(("atempo", (("tempo", factor),)) for factor in atempo_chain(ratio))
    elif method == "add_padding":
        filters = (("apad", (("pad_dur", round(video_sec - audio_sec, 3)),)),)
    elif method == "extend_audio":
        filters = (
            ("aloop", (("loop", -1), ("size", config.ALOOP_SIZE))),
            ("atrim", (("duration", round(video_sec, 3)),)),
        )
    else:
        filters = ()
    return AudioSyncPlan(method=method, ratio=round(ratio, 4), filters=filters)


def apply_sync(audio_stream: Any, plan: AudioSyncPlan) -> Any:
    """Apply the plan's filters to an ffmpeg-python audio stream."""
    for name, args in plan.filters:
        if name == "atempo":
            audio_stream = audio_stream.filter("atempo", args[0][1])
        else:
            audio_stream = audio_stream.filter(name, **dict(args))
    return audio_stream


def fit_to_video(audio_stream: Any, video_sec: float) -> Any:
    """Pad with silence, then trim, so the track lasts exactly *video_sec*.

    The band methods leave a residual drift in either direction; the
    video length always wins.
    """
    length = round(video_sec, 3)
    return audio_stream.filter("apad", whole_dur=length).filter("atrim", duration=length)
