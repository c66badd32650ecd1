"""Overlay image generation (Pillow) and per-phase overlay planning.

WHY: Learners orient faster when the phase name, the key concept being
taught, and (optionally) the current cognitive load are visible on
screen. ffmpeg composites PNGs cheaply, so the overlays are drawn once
with Pillow and handed to the overlay filter with enable windows.

HOW: Three drawing functions produce transparent PNGs at fixed sizes.
plan_overlays() decides which overlays a phase gets and when they show,
in times relative to the start of the phase cut.

RULES:
- phase_label: 300×60, top_left, from 0 for min(3s, phase duration), z10
- keypoint: 400×80, bottom_center, at the keypoint's own time or 20% into
  the phase, for up to 4s, background colored by Bloom level, z20
- load_indicator: 200×30, top_right, the whole phase, three bars, z5
- Overlays never extend past the end of the phase
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from microvideo_pipeline import config
from microvideo_pipeline.core.ir import CognitiveLoadProfile, Keypoint, Overlay, PhaseTiming

logger = logging.getLogger(__name__)


def resolve_font(size: int) -> ImageFont.ImageFont:
    """Attempt to load a truetype font, falling back to the default bitmap font."""
    for path in config.FONT_CANDIDATES:
        try:
            return ImageFont.truetype(path, size=size)
        except (OSError, IOError):
            continue
    return ImageFont.load_default()


def _hex_to_rgba(value: str, alpha: int = 220) -> Tuple[int, int, int, int]:
    value = value.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16), alpha


def _fit_text(draw: ImageDraw.ImageDraw, text: str, font: ImageFont.ImageFont, max_width: int) -> str:
    """Trim *text* with an ellipsis until it fits *max_width* pixels."""
    if draw.textlength(text, font=font) <= max_width:
        return text
    while text and draw.textlength(text + "…", font=font) > max_width:
        text = text[:-1]
    return text + "…"


def _draw_banner(size: Tuple[int, int], text: str, background: str, font_size: int, path: Path) -> Path:
    width, height = size
    image = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    draw.rounded_rectangle((0, 0, width - 1, height - 1), radius=height // 4, fill=_hex_to_rgba(background))
    font = resolve_font(font_size)
    text = _fit_text(draw, text, font, width - 20)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (width - (right - left)) / 2 - left
    y = (height - (bottom - top)) / 2 - top
    draw.text((x, y), text, font=font, fill=(255, 255, 255, 255))
    image.save(path, format="PNG")
    return path


def draw_phase_label(phase: str, path: Path) -> Path:
    return _draw_banner(
        config.PHASE_LABEL_SIZE,
        config.PHASE_DISPLAY_NAMES.get(phase, phase.title()),
        config.DEFAULT_BLOOM_COLOR,
        28,
        path,
    )


def draw_keypoint(keypoint: Keypoint, path: Path) -> Path:
    color = config.BLOOM_COLORS.get(keypoint.bloom_level, config.DEFAULT_BLOOM_COLOR)
    return _draw_banner(config.KEYPOINT_SIZE, keypoint.concept, color, 26, path)


def draw_load_indicator(profile: CognitiveLoadProfile, path: Path) -> Path:
    """Three horizontal bars (intrinsic, extraneous, germane) scaled by score."""
    width, height = config.LOAD_INDICATOR_SIZE
    image = Image.new("RGBA", (width, height), (0, 0, 0, 140))
    draw = ImageDraw.Draw(image)
    bar_height = (height - 8) // 3
    for index, name in enumerate(("intrinsic", "extraneous", "germane")):
        score = max(0.0, min(1.0, profile.component(name).score))
        top = 2 + index * (bar_height + 2)
        right = 4 + int((width - 8) * score)
        draw.rectangle((4, top, max(5, right), top + bar_height - 1), fill=_hex_to_rgba(config.LOAD_BAR_COLORS[name], 255))
    image.save(path, format="PNG")
    return path


def pick_keypoint(timing: PhaseTiming, keypoints: Sequence[Keypoint]) -> Optional[Keypoint]:
    """Most important keypoint located in the phase window.

    Keypoints without a timestamp are only considered for the deliver
    phase, where the main content is presented.
    """
    located = [k for k in keypoints if k.timestamp is not None and timing.start_sec <= k.timestamp < timing.end_sec]
    if not located and timing.phase == "deliver":
        located = [k for k in keypoints if k.timestamp is None]
    if not located:
        return None
    return max(located, key=lambda k: k.importance)


def plan_overlays(
    timing: PhaseTiming,
    keypoints: Sequence[Keypoint],
    workdir: Path,
    profile: Optional[CognitiveLoadProfile] = None,
    load_indicator: bool = False,
) -> Tuple[Overlay, ...]:
    """Draw this phase's overlay images into *workdir* and schedule them."""
    duration = timing.duration_sec
    if duration <= 0:
        return ()
    overlays: List[Overlay] = []

    label_path = draw_phase_label(timing.phase, workdir / "{}_label.png".format(timing.phase))
    overlays.append(
        Overlay(
            kind="phase_label",
            image_path=str(label_path),
            start_sec=0.0,
            duration_sec=min(config.PHASE_LABEL_MAX_SEC, duration),
            position="top_left",
            z_index=config.OVERLAY_Z_INDEX["phase_label"],
        )
    )

    keypoint = pick_keypoint(timing, keypoints)
    if keypoint is not None:
        if keypoint.timestamp is not None:
            start = keypoint.timestamp - timing.start_sec
        else:
            start = duration * config.KEYPOINT_START_RATIO
        shown = min(config.KEYPOINT_DURATION_SEC, duration - start)
        if shown > 0:
            path = draw_keypoint(keypoint, workdir / "{}_keypoint.png".format(timing.phase))
            overlays.append(
                Overlay(
                    kind="keypoint",
                    image_path=str(path),
                    start_sec=round(start, 3),
                    duration_sec=round(shown, 3),
                    position="bottom_center",
                    z_index=config.OVERLAY_Z_INDEX["keypoint"],
                )
            )

    if load_indicator and profile is not None:
        path = draw_load_indicator(profile, workdir / "{}_load.png".format(timing.phase))
        overlays.append(
            Overlay(
                kind="load_indicator",
                image_path=str(path),
                start_sec=0.0,
                duration_sec=duration,
                position="top_right",
                z_index=config.OVERLAY_Z_INDEX["load_indicator"],
            )
        )

    overlays.sort(key=lambda o: o.z_index)
    logger.debug("Planned %d overlays for %s", len(overlays), timing.phase)
    return tuple(overlays)
