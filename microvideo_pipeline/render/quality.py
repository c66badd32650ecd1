"""Post-render quality validation of the final composite.

WHY: A composite can encode without error and still be unusable: too
small to read on screen, outside the micro-video length window, or
starved of bitrate. These checks surface that as issues with concrete
recommendations, without ever blocking delivery.

RULES:
- Four checks: resolution, duration, file size, bitrate
- Every failed check adds one issue, one recommendation, and emits a
  QualityWarning
- score = passed checks / 4
"""

from __future__ import annotations

import logging
import warnings
from typing import Dict, List, Optional

from microvideo_pipeline.config import QualityThresholds
from microvideo_pipeline.core.ir import QualityReport
from microvideo_pipeline.errors import QualityWarning
from microvideo_pipeline.render.media import MediaInfo

logger = logging.getLogger(__name__)


def validate_quality(info: MediaInfo, thresholds: Optional[QualityThresholds] = None) -> QualityReport:
    """Score a probed composite against the quality thresholds."""
    t = thresholds or QualityThresholds()
    checks: Dict[str, bool] = {}
    issues: List[str] = []
    recommendations: List[str] = []

    checks["resolution"] = info.width >= t.min_width and info.height >= t.min_height
    if not checks["resolution"]:
        issues.append("Resolution {}x{} is below {}x{}".format(info.width, info.height, t.min_width, t.min_height))
        recommendations.append("Use a source video of at least {}x{}".format(t.min_width, t.min_height))

    checks["duration"] = t.min_duration_sec <= info.duration_sec <= t.max_duration_sec
    if not checks["duration"]:
        issues.append(
            "Duration {:.1f}s is outside {:.0f}-{:.0f}s".format(info.duration_sec, t.min_duration_sec, t.max_duration_sec)
        )
        if info.duration_sec < t.min_duration_sec:
            recommendations.append("Lengthen phase scripts or narration to reach {:.0f}s".format(t.min_duration_sec))
        else:
            recommendations.append("Shorten the deliver phase to stay under {:.0f}s".format(t.max_duration_sec))

    checks["file_size"] = info.size_bytes > t.min_size_bytes
    if not checks["file_size"]:
        issues.append("File size {} bytes is below {} bytes".format(info.size_bytes, t.min_size_bytes))
        recommendations.append("Check that every phase segment rendered with video content")

    checks["bitrate"] = info.bit_rate > t.min_bitrate_bps
    if not checks["bitrate"]:
        issues.append("Bitrate {} bps is below {} bps".format(info.bit_rate, t.min_bitrate_bps))
        recommendations.append("Lower the CRF value or raise the render quality setting")

    for issue in issues:
        warnings.warn(issue, QualityWarning, stacklevel=2)
        logger.warning("Quality check failed: %s", issue)

    passed = sum(1 for ok in checks.values() if ok)
    return QualityReport(
        checks=checks,
        issues=tuple(issues),
        recommendations=tuple(recommendations),
        score=passed / len(checks),
    )
