"""Single gateway to the media engine (ffmpeg via ffmpeg-python).

WHY: Every cut, overlay, re-timing, and assembly is an external ffmpeg
process. Uncapped, four phases times several videos would oversubscribe
the machine; unbounded, one hung encode would stall a whole batch; and
after cancellation nothing new should start. Routing every call through
one object enforces all three rules in one place and gives tests a single
seam to mock.

HOW: A process-wide BoundedSemaphore caps concurrent ffmpeg processes.
run() launches the compiled stream with run_async(), waits with a
timeout, and kills the process when the timeout expires. probe() runs
ffprobe on a one-shot worker with future.result(timeout=...). A shared
threading.Event is the cancel signal: once set, no new call starts.

RULES:
- Every ffmpeg/ffprobe call in the package goes through MediaGateway
- Timeouts and non-zero exits raise RenderError carrying phase and step
- A set cancel event raises PipelineCancelled before a call starts
- In-flight calls are left to finish or time out, never interrupted
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

import ffmpeg

from microvideo_pipeline import config
from microvideo_pipeline.errors import PipelineCancelled, RenderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class MediaInfo:
    """The probe fields the renderer and quality checks rely on."""

    duration_sec: float
    width: int
    height: int
    size_bytes: int
    bit_rate: int
    fps: float
    has_audio: bool


def _parse_rate(value: str) -> float:
    """Parse an ffprobe rate such as ``"30000/1001"``."""
    if not value:
        return 0.0
    if "/" in value:
        num, den = value.split("/", 1)
        return float(num) / float(den) if float(den) else 0.0
    return float(value)


def parse_probe(data: Dict[str, Any], path: Path) -> MediaInfo:
    """Reduce raw ffprobe JSON to a MediaInfo."""
    fmt = data.get("format", {})
    streams = data.get("streams", [])
    video = next((s for s in streams if s.get("codec_type") == "video"), {})
    duration = float(fmt.get("duration") or video.get("duration") or 0.0)
    size = int(fmt.get("size") or 0)
    if not size and path.exists():
        size = path.stat().st_size
    bit_rate = int(fmt.get("bit_rate") or 0)
    if not bit_rate and duration > 0:
        bit_rate = int(size * 8 / duration)
    return MediaInfo(
        duration_sec=duration,
        width=int(video.get("width") or 0),
        height=int(video.get("height") or 0),
        size_bytes=size,
        bit_rate=bit_rate,
        fps=_parse_rate(video.get("avg_frame_rate") or video.get("r_frame_rate") or ""),
        has_audio=any(s.get("codec_type") == "audio" for s in streams),
    )


class MediaGateway:
    """Concurrency-capped, time-bounded, cancellable ffmpeg runner.

    Args:
        max_concurrency: Simultaneous ffmpeg processes. Defaults to
                         config.MEDIA_CONCURRENCY (the CPU count).
        timeout_sec: Per-call wall-clock limit.
        cancel_event: Shared cancel signal; a private one is created when
                      omitted.
    """

    def __init__(
        self,
        max_concurrency: Optional[int] = None,
        timeout_sec: float = config.MEDIA_CALL_TIMEOUT_SEC,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        limit = max_concurrency or config.MEDIA_CONCURRENCY or os.cpu_count() or 1
        self._semaphore = threading.BoundedSemaphore(limit)
        self._timeout = timeout_sec
        self.cancel_event = cancel_event or threading.Event()
        self.max_concurrency = limit

    # -- cancellation -----------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        logger.info("Cancel requested; no new media calls will start")
        self.cancel_event.set()

    def check_cancelled(self, step: str = "", phase: Optional[str] = None) -> None:
        if self.cancel_event.is_set():
            raise PipelineCancelled(
                "cancelled before {}{}".format(step or "media call", " ({})".format(phase) if phase else "")
            )

    # -- calls ------------------------------------------------------------

    def run(self, stream: Any, *, step: str, phase: Optional[str] = None) -> None:
        """Run a compiled ffmpeg-python output stream.

        Raises:
            PipelineCancelled: The cancel signal was already set.
            RenderError: ffmpeg exited non-zero or exceeded the timeout.
        """
        self.check_cancelled(step, phase)
        with self._semaphore:
            self.check_cancelled(step, phase)
            started = time.perf_counter()
            logger.debug("ffmpeg %s started%s", step, " for {}".format(phase) if phase else "")
            process = stream.overwrite_output().run_async(pipe_stdout=True, pipe_stderr=True)
            try:
                _, stderr = process.communicate(timeout=self._timeout)
            except subprocess.TimeoutExpired as err:
                process.kill()
                process.communicate()
                raise RenderError(
                    "ffmpeg {} exceeded timeout ({:.0f}s)".format(step, self._timeout),
                    phase=phase,
                    step=step,
                ) from err
            if process.returncode != 0:
                message = (stderr or b"").decode("utf-8", errors="replace")
                raise RenderError(
                    "ffmpeg {} failed with exit code {}".format(step, process.returncode),
                    phase=phase,
                    step=step,
                    stderr=message[-2000:],
                )
            logger.debug("ffmpeg %s completed in %.2fs", step, time.perf_counter() - started)

    def probe(self, path: Path, *, phase: Optional[str] = None) -> MediaInfo:
        """ffprobe *path* under the same cap, timeout, and cancel rules."""
        self.check_cancelled("probe", phase)
        with self._semaphore:
            try:
                data = self._with_timeout(lambda: ffmpeg.probe(str(path)), step="probe", phase=phase)
            except ffmpeg.Error as err:
                message = (err.stderr or b"").decode("utf-8", errors="replace")
                raise RenderError(
                    "ffprobe failed for {}".format(Path(path).name),
                    phase=phase,
                    step="probe",
                    stderr=message[-2000:],
                ) from err
        return parse_probe(data, Path(path))

    def _with_timeout(self, operation: Callable[[], T], *, step: str, phase: Optional[str]) -> T:
        if self._timeout <= 0:
            return operation()
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(operation)
        try:
            return future.result(timeout=self._timeout)
        except FuturesTimeoutError as err:
            future.cancel()
            raise RenderError(
                "{} exceeded timeout ({:.0f}s)".format(step, self._timeout),
                phase=phase,
                step=step,
            ) from err
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
