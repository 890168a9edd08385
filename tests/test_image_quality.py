"""
Tests for rxtriage.image_quality -- Image Quality Gate.
"""

from __future__ import annotations

import pytest

from rxtriage.config import GuidanceCatalog, ImageQualityPolicy
from rxtriage.image_quality import (
    VisionResponseError,
    calculate_quality_score,
    evaluate_image,
    generate_guidance_message,
    missing_required_zones,
    parse_vision_response,
)
from rxtriage.models import DetectedAngle, DetectedZones, ImageAnalysis

ALL_ZONES = {
    "header_visible": True,
    "patient_visible": True,
    "medication_visible": True,
    "dosage_visible": True,
    "signature_visible": True,
    "date_visible": True,
}


def _make_analysis(**kwargs) -> ImageAnalysis:
    zones = dict(ALL_ZONES)
    zones.update(kwargs.pop("zones", {}))
    defaults = {
        "lighting_score": 0.85,
        "angle_score": 0.92,
        "detected_angle": DetectedAngle(roll=2, pitch=-3, yaw=1),
        "focus_score": 0.88,
        "blur_detected": False,
        "completeness_score": 0.95,
        "detected_zones": DetectedZones(**zones),
    }
    defaults.update(kwargs)
    return ImageAnalysis(**defaults)


# ---------------------------------------------------------------------------
# 1. Decision rules
# ---------------------------------------------------------------------------

class TestDecision:
    def test_good_capture_approved(self):
        result = evaluate_image(_make_analysis())
        assert result.approved is True
        assert result.issues == []
        assert result.guidance_message == "The image is ready to submit"

    def test_very_dark_is_too_dark(self):
        result = evaluate_image(_make_analysis(lighting_score=0.2))
        assert result.issues == ["too_dark"]
        assert not result.approved

    def test_dim_is_uneven(self):
        assert evaluate_image(_make_analysis(lighting_score=0.45)).issues == ["uneven"]

    def test_lighting_at_minimum_passes(self):
        assert evaluate_image(_make_analysis(lighting_score=0.6)).approved

    def test_tilted_pitch(self):
        result = evaluate_image(_make_analysis(detected_angle=DetectedAngle(pitch=-16)))
        assert result.issues == ["tilted"]

    def test_tilted_roll(self):
        result = evaluate_image(_make_analysis(detected_angle=DetectedAngle(roll=20)))
        assert result.issues == ["tilted"]

    def test_tilt_limit_inclusive_and_yaw_ignored(self):
        angle = DetectedAngle(roll=15, pitch=-15, yaw=90)
        assert evaluate_image(_make_analysis(detected_angle=angle)).approved

    def test_blur_flag(self):
        assert evaluate_image(_make_analysis(blur_detected=True)).issues == ["blurry"]

    def test_low_focus_score(self):
        assert evaluate_image(_make_analysis(focus_score=0.65)).issues == ["blurry"]

    def test_missing_signature(self):
        result = evaluate_image(_make_analysis(zones={"signature_visible": False}))
        assert result.issues == ["missing_signature_visible"]
        assert not result.approved

    def test_nested_signals_are_frozen(self):
        analysis = _make_analysis()
        with pytest.raises(Exception):
            analysis.detected_zones.signature_visible = False
        with pytest.raises(Exception):
            analysis.detected_angle.pitch = 40
        assert evaluate_image(analysis).approved

    def test_optional_zones_not_required(self):
        analysis = _make_analysis(zones={"header_visible": False, "date_visible": False})
        assert evaluate_image(analysis).approved

    def test_issues_in_check_order(self):
        analysis = _make_analysis(
            lighting_score=0.1,
            detected_angle=DetectedAngle(pitch=30),
            blur_detected=True,
            zones={"medication_visible": False, "signature_visible": False},
        )
        assert evaluate_image(analysis).issues == [
            "too_dark",
            "tilted",
            "blurry",
            "missing_medication_visible",
            "missing_signature_visible",
        ]

    def test_custom_policy_required_zones(self):
        policy = ImageQualityPolicy(required_zones=["date_visible"])
        analysis = _make_analysis(zones={"signature_visible": False, "date_visible": False})
        assert evaluate_image(analysis, policy).issues == ["missing_date_visible"]


# ---------------------------------------------------------------------------
# 2. Guidance and scores
# ---------------------------------------------------------------------------

class TestGuidance:
    def test_messages_joined_with_period(self):
        message = generate_guidance_message(["blurry", "tilted"])
        assert message == (
            "Hold steady and tap to focus before capturing. "
            "Hold the phone directly above the prescription, parallel to the surface."
        )

    def test_unknown_issue_falls_back_to_identifier(self):
        assert generate_guidance_message(["lens_cracked"]) == "lens_cracked."

    def test_injected_catalog(self):
        catalog = GuidanceCatalog(
            locale="fr",
            ready_message="L'image est prête pour l'envoi",
            messages={"too_dark": "Allez dans un endroit plus lumineux"},
        )
        assert generate_guidance_message([], catalog) == "L'image est prête pour l'envoi"
        result = evaluate_image(_make_analysis(lighting_score=0.1), catalog=catalog)
        assert result.guidance_message == "Allez dans un endroit plus lumineux."

    def test_quality_score_weights(self):
        analysis = _make_analysis(
            lighting_score=1.0, angle_score=0.5, focus_score=0.0, completeness_score=1.0
        )
        assert calculate_quality_score(analysis) == pytest.approx(0.25 + 0.10 + 0.0 + 0.30)

    def test_quality_score_does_not_affect_approval(self):
        analysis = _make_analysis(angle_score=0.0, completeness_score=0.0)
        result = evaluate_image(analysis)
        assert result.approved
        assert result.quality_score < 0.5

    def test_missing_required_zones_helper(self):
        zones = DetectedZones(medication_visible=True)
        assert missing_required_zones(zones) == ["dosage_visible", "signature_visible"]


# ---------------------------------------------------------------------------
# 3. Vision response parsing
# ---------------------------------------------------------------------------

class TestParseVisionResponse:
    def test_json_wrapped_in_prose(self):
        text = (
            "Here is the analysis:\n```json\n"
            '{"lighting_score": 0.8, "focus_score": 0.9, "angle_score": 0.9,'
            ' "detected_zones": {"medication_visible": true, "dosage_visible": true,'
            ' "signature_visible": true}, "upload_approved": false}\n```'
        )
        analysis = parse_vision_response(text)
        assert analysis.lighting_score == 0.8
        assert evaluate_image(analysis).approved

    def test_no_json(self):
        with pytest.raises(VisionResponseError):
            parse_vision_response("I cannot see a prescription.")

    def test_invalid_json(self):
        with pytest.raises(VisionResponseError):
            parse_vision_response("{lighting_score: high}")

    def test_out_of_range_score(self):
        with pytest.raises(VisionResponseError):
            parse_vision_response('{"lighting_score": 3, "focus_score": 0.9}')
