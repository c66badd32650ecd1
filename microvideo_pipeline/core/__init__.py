"""Core analysis, alignment, and synchronization modules.

WHY: The core package holds the pure, media-free heart of the pipeline:
the IR dataclasses, the boundary models, and the first three stages.
Nothing here shells out to ffmpeg, so it is fully testable in isolation.

HOW: ir.py defines the data structures, inputs.py validates manifests
into them, content.py and cognitive_load.py score the material,
alignment.py places the phases on the source timeline, and sync.py
builds the synchronized event timeline.

RULES:
- IR dataclasses are the contract; change with care
- Every function here is deterministic: no clock, no randomness
"""
