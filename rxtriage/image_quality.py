"""
Image Quality Gate -- pre-submission check for prescription captures.

The external vision service scores each capture for lighting, angle, focus
and zone completeness.  This gate turns those signals into an approve /
reject decision, an ordered list of issue identifiers and a guidance
sentence for the patient.

Checks, each evaluated independently (all must pass):

* lighting below the minimum fails as ``too_dark`` (very dark) or ``uneven``;
* pitch or roll beyond the tilt limit fails as ``tilted``;
* a blur flag or a low focus score fails as ``blurry``;
* each missing required zone adds ``missing_<zone>``.

Guidance wording comes from an injected ``GuidanceCatalog``; unknown issue
identifiers are shown verbatim rather than failing.
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from rxtriage.config import (
    DEFAULT_GUIDANCE_CATALOG,
    DEFAULT_IMAGE_QUALITY_POLICY,
    GuidanceCatalog,
    ImageQualityPolicy,
    QualityScoreWeights,
)
from rxtriage.models import DetectedZones, ImageAnalysis, ImageQualityResult

logger = logging.getLogger(__name__)

ISSUE_TOO_DARK = "too_dark"
ISSUE_UNEVEN = "uneven"
ISSUE_TILTED = "tilted"
ISSUE_BLURRY = "blurry"
MISSING_ZONE_PREFIX = "missing_"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class VisionResponseError(Exception):
    """Raised when a vision service reply has no valid analysis object."""
    pass


def missing_required_zones(
    zones: DetectedZones,
    policy: ImageQualityPolicy = DEFAULT_IMAGE_QUALITY_POLICY,
) -> list[str]:
    """Required zones that are not visible, in policy order."""
    return [zone for zone in policy.required_zones if not getattr(zones, zone)]


def calculate_quality_score(
    analysis: ImageAnalysis,
    weights: QualityScoreWeights = DEFAULT_IMAGE_QUALITY_POLICY.score_weights,
) -> float:
    """Weighted composite of the four component scores (0-1).

    Informational only; approval never depends on it.
    """
    return (
        analysis.lighting_score * weights.lighting
        + analysis.angle_score * weights.angle
        + analysis.focus_score * weights.focus
        + analysis.completeness_score * weights.completeness
    )


def detect_issues(
    analysis: ImageAnalysis,
    policy: ImageQualityPolicy = DEFAULT_IMAGE_QUALITY_POLICY,
) -> list[str]:
    """Return the ordered issue identifiers for a capture."""
    issues: list[str] = []

    # --- Lighting ---
    if analysis.lighting_score < policy.min_lighting_score:
        if analysis.lighting_score < policy.dark_lighting_score:
            issues.append(ISSUE_TOO_DARK)
        else:
            issues.append(ISSUE_UNEVEN)

    # --- Angle ---
    angle = analysis.detected_angle
    if (
        abs(angle.pitch) > policy.max_tilt_degrees
        or abs(angle.roll) > policy.max_tilt_degrees
    ):
        issues.append(ISSUE_TILTED)

    # --- Focus ---
    if analysis.blur_detected or analysis.focus_score < (1 - policy.blur_threshold):
        issues.append(ISSUE_BLURRY)

    # --- Completeness ---
    for zone in missing_required_zones(analysis.detected_zones, policy):
        issues.append(f"{MISSING_ZONE_PREFIX}{zone}")

    return issues


def generate_guidance_message(
    issues: list[str],
    catalog: GuidanceCatalog = DEFAULT_GUIDANCE_CATALOG,
) -> str:
    """Join the catalog sentence of each issue into one guidance message."""
    if not issues:
        return catalog.ready_message
    return ". ".join(catalog.messages.get(issue, issue) for issue in issues) + "."


def evaluate_image(
    analysis: ImageAnalysis,
    policy: ImageQualityPolicy = DEFAULT_IMAGE_QUALITY_POLICY,
    catalog: GuidanceCatalog = DEFAULT_GUIDANCE_CATALOG,
) -> ImageQualityResult:
    """Decide whether a capture may be uploaded.

    Args:
        analysis: Signals from the vision service for one capture.
        policy: Gate thresholds.
        catalog: Guidance sentences for the patient's locale.

    Returns:
        An ``ImageQualityResult``; ``approved`` is true iff no issue was found.
    """
    issues = detect_issues(analysis, policy)
    result = ImageQualityResult(
        approved=not issues,
        issues=issues,
        guidance_message=generate_guidance_message(issues, catalog),
        quality_score=calculate_quality_score(analysis, policy.score_weights),
    )
    logger.debug(
        "image evaluated: approved=%s issues=%s quality=%.3f",
        result.approved,
        issues,
        result.quality_score,
    )
    return result


def parse_vision_response(text: str) -> ImageAnalysis:
    """Extract and validate the analysis object from a vision model reply.

    Models often wrap JSON in prose or code fences; the outermost ``{...}``
    span is parsed.  Extra keys (the model's own verdict, guidance, etc.)
    are ignored: approval is always decided by ``evaluate_image``.

    Raises:
        VisionResponseError: If no JSON object is found or it fails validation.
    """
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        logger.warning("vision response contained no JSON object")
        raise VisionResponseError("No JSON object found in vision response.")

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        logger.warning("vision response JSON could not be decoded: %s", exc)
        raise VisionResponseError(f"Invalid JSON in vision response: {exc}") from exc

    if not isinstance(payload, dict):
        raise VisionResponseError("Vision response JSON must be an object.")

    try:
        return ImageAnalysis.model_validate(payload)
    except ValidationError as exc:
        logger.warning("vision response failed validation: %s", exc)
        raise VisionResponseError(f"Vision response failed validation: {exc}") from exc
