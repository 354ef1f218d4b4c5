"""
Duration reconciliation between a resolved script and the project's target length.

Scripts that overshoot the target are scaled down proportionally. Scripts that
fall short are left alone: per-scene provider caps make stretching unsafe, so
an under-filled video is accepted as-is.
"""

from typing import List, Tuple

import structlog

from pipeline.models import ReconciliationReport, ScenePlan

logger = structlog.get_logger(__name__)

DURATION_TOLERANCE = 0.1


def retime_scenes(scenes: List[ScenePlan]) -> List[ScenePlan]:
    """Recompute cumulative start/end times from each scene's duration."""
    cursor = 0.0
    retimed = []
    for scene in scenes:
        end = cursor + scene.duration
        retimed.append(scene.model_copy(update={"start_time": cursor, "end_time": end}))
        cursor = end
    return retimed


def reconcile_durations(
    scenes: List[ScenePlan],
    target: float,
    tolerance: float = DURATION_TOLERANCE,
) -> Tuple[List[ScenePlan], ReconciliationReport]:
    """
    Fit scene durations to the target duration.

    Args:
        scenes: Ordered scene plans
        target: Target total duration in seconds
        tolerance: Allowed absolute difference before any change is made

    Returns:
        Tuple of (reconciled scenes, report)
    """
    script_total = sum(scene.duration for scene in scenes)

    if not scenes or abs(script_total - target) <= tolerance:
        report = ReconciliationReport(
            script_total=script_total, target=target, scale_factor=1.0, action="unchanged"
        )
        logger.info(
            "durations_reconciled",
            script_total=script_total,
            target=target,
            scale_factor=1.0,
            action=report.action,
        )
        return list(scenes), report

    if script_total < target:
        report = ReconciliationReport(
            script_total=script_total, target=target, scale_factor=1.0, action="under_filled"
        )
        logger.info(
            "durations_reconciled",
            script_total=script_total,
            target=target,
            scale_factor=1.0,
            action=report.action,
        )
        return list(scenes), report

    scale = target / script_total
    scaled = [scene.model_copy(update={"duration": scene.duration * scale}) for scene in scenes]
    scaled = retime_scenes(scaled)

    # Absorb floating-point drift into the last scene so the total is exact.
    drift = target - scaled[-1].end_time
    if drift:
        last = scaled[-1]
        scaled[-1] = last.model_copy(
            update={"duration": last.duration + drift, "end_time": target}
        )

    report = ReconciliationReport(
        script_total=script_total, target=target, scale_factor=scale, action="scaled_down"
    )
    logger.info(
        "durations_reconciled",
        script_total=script_total,
        target=target,
        scale_factor=scale,
        action=report.action,
    )
    return scaled, report
