"""Micro-video pipeline: CLT-bLM four-phase synchronization and rendering.

WHY: Long-form lecture video is hard to learn from. This package turns one
video plus its transcript into a short, pedagogically structured
micro-video built around the four CLT-bLM phases (Prepare, Initiate,
Deliver, End), with narration and on-screen cues kept in sync.

HOW: Four-stage pipeline: analyze cognitive load (core.cognitive_load),
align phases to the source timeline (core.alignment), reconcile every
timing signal into one conflict-free timeline (core.sync), then cut,
overlay and assemble with ffmpeg (render). Timeline exports are
pluggable formatters. Each stage is independently testable.

RULES:
- Data flows strictly downward through the four stages
- Only render/ touches the media engine
- Frozen dataclasses in core.ir are the contract between stages
"""

__version__ = "0.1.0"
