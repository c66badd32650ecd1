"""Segment Renderer and its media helpers.

WHY: Cutting, overlaying, re-timing narration, and assembling the final
composite are the only steps that touch the media engine. Keeping them in
one package means the rest of the pipeline never imports ffmpeg.

HOW: media.py is the single gateway to ffmpeg-python (concurrency cap,
timeout, cancellation). overlays.py draws overlay images with Pillow.
audio.py chooses the narration reconciliation method. quality.py scores
the output. renderer.py orchestrates the per-phase tasks and assembly.
"""
