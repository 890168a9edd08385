"""
Synthetic Scenario: Morning Pharmacy Queue Walkthrough
======================================================

This script walks through the RxTriage engine with entirely synthetic
orders and capture signals.  No real patient data is used.

Steps demonstrated:
  1. Load guidance catalogs from YAML
  2. Screen two prescription captures through the image gate
  3. Build a scored queue from raw order records
  4. Group the queue by tier
  5. Show the legal actions for each order
  6. Generate a Triage Report for the top order

Usage:
    python -m examples.pharmacy_queue_walkthrough
    # or: python examples/pharmacy_queue_walkthrough.py
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from rxtriage.config import GuidanceCatalogRegistry, load_guidance_catalogs_from_yaml
from rxtriage.image_quality import evaluate_image, parse_vision_response
from rxtriage.priority import explain_priority_score
from rxtriage.queue import build_queue, group_by_tier
from rxtriage.sla import estimate_wait_time
from rxtriage.triage_report import generate_triage_report


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def main() -> None:
    now = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    _banner("RxTriage Synthetic Scenario: Morning Queue")
    print(f"Reference time: {now.isoformat()}  (all data synthetic)\n")

    # ------------------------------------------------------------------
    # Step 1: Guidance catalogs
    # ------------------------------------------------------------------
    _banner("Step 1: Load Guidance Catalogs")

    registry = GuidanceCatalogRegistry()
    sample_yaml = Path(__file__).parent / "guidance_catalogs.yaml"
    for catalog in load_guidance_catalogs_from_yaml(sample_yaml):
        registry.register(catalog)
    print(f"Locales registered: {registry.list_locales()}")

    # ------------------------------------------------------------------
    # Step 2: Capture gate
    # ------------------------------------------------------------------
    _banner("Step 2: Prescription Capture Gate")

    replies = {
        "good capture": (
            '{"lighting_score": 0.85, "angle_score": 0.92,'
            ' "detected_angle": {"roll": 2, "pitch": -3, "yaw": 1},'
            ' "focus_score": 0.88, "blur_detected": false, "completeness_score": 0.95,'
            ' "detected_zones": {"medication_visible": true, "dosage_visible": true,'
            ' "signature_visible": true}}'
        ),
        "dark, unsigned capture": (
            'Analysis follows. {"lighting_score": 0.2, "focus_score": 0.9,'
            ' "detected_zones": {"medication_visible": true, "dosage_visible": true,'
            ' "signature_visible": false}}'
        ),
    }
    catalog = registry.get_or_default("fr")
    for label, reply in replies.items():
        result = evaluate_image(parse_vision_response(reply), catalog=catalog)
        print(f"{label}: approved={result.approved} issues={result.issues}")
        print(f"  quality_score={result.quality_score:.2f}")
        print(f"  guidance: {result.guidance_message}")

    # ------------------------------------------------------------------
    # Step 3: Build queue
    # ------------------------------------------------------------------
    _banner("Step 3: Score the Queue")

    def patient(chronic: bool = False, preferred: bool = False, refill: bool = False) -> dict:
        return {
            "is_chronic_patient": chronic,
            "preferred_tier": preferred,
            "has_refill_history": refill,
        }

    records = [
        {
            "id": "ORD-1001",
            "status": "PENDING_PHARMACIST_REVIEW",
            "created_at": now - timedelta(minutes=45),
            "promised_delivery_at": now + timedelta(minutes=15),
            "patient": patient(chronic=True),
            "items_count": 4,
            "has_interaction_warning": True,
            "ai_verification": {"status": "needs_review", "confidence": 0.73,
                                "attention_flags": ["dosage_unclear"]},
        },
        {
            "id": "ORD-1002",
            "status": "PREPARING",
            "created_at": now - timedelta(minutes=20),
            "promised_delivery_at": now + timedelta(minutes=150),
            "patient": patient(refill=True),
            "items_count": 2,
            "has_controlled_substance": True,
            "ai_verification": {"status": "approved", "confidence": 0.97},
        },
        {
            "id": "ORD-1003",
            "status": "PENDING_VERIFICATION",
            "created_at": now - timedelta(minutes=5),
            "promised_delivery_at": None,
            "patient": patient(),
            "items_count": 1,
            "ai_verification": {"status": "rejected", "confidence": 0.41},
        },
    ]
    queue = build_queue(records, now)
    for position, item in enumerate(queue, start=1):
        print(
            f"{position}. {item.order_id}: score={item.priority_score} "
            f"tier={item.priority_tier.value} sla={item.sla_breach_in_minutes} "
            f"est_wait={estimate_wait_time(position - 1)}min"
        )

    # ------------------------------------------------------------------
    # Step 4: Group by tier
    # ------------------------------------------------------------------
    _banner("Step 4: Tiers")

    for tier, members in group_by_tier(queue).items():
        print(f"{tier.value:<8} {[m.order_id for m in members]}")

    # ------------------------------------------------------------------
    # Step 5: Actions
    # ------------------------------------------------------------------
    _banner("Step 5: Legal Actions")

    for item in queue:
        print(f"{item.order_id} [{item.status.value}]: {[a.value for a in item.available_actions]}")

    # ------------------------------------------------------------------
    # Step 6: Triage report
    # ------------------------------------------------------------------
    _banner("Step 6: Triage Report (top order)")

    top = queue[0]
    report = generate_triage_report(top, explain_priority_score(top.context, now), now)
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
