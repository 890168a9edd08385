"""
Core data models for the RxTriage priority & verification engine.

Closed enums describe order lifecycle status, AI verification outcome,
priority tier and operator actions.  Records are pydantic models; the
scoring inputs are frozen so that a context cannot be mutated between
scoring and classification.

The library only *reads* order status.  Transitions are performed by
operators through external systems.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class VerificationStatus(str, enum.Enum):
    """Outcome of the external AI prescription verification.

    * ``APPROVED``     -- prescription is machine-readable and consistent.
    * ``NEEDS_REVIEW`` -- ambiguous; a pharmacist must look at it.
    * ``REJECTED``     -- prescription will most likely not proceed.
    """

    APPROVED = "approved"
    NEEDS_REVIEW = "needs_review"
    REJECTED = "rejected"


class PriorityTier(str, enum.Enum):
    """Coarse urgency bucket derived from a priority score."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"


class OrderStatus(str, enum.Enum):
    """Fulfillment stage of an order.

    Happy path::

        PENDING_IMAGE -> PENDING_AI_ANALYSIS -> PENDING_VERIFICATION
        -> PENDING_PHARMACIST_REVIEW -> PHARMACIST_APPROVED -> PREPARING
        -> READY -> AWAITING_COURIER -> COURIER_ASSIGNED -> IN_DELIVERY
        -> DELIVERED

    ``PHARMACIST_REJECTED``, ``CANCELLED`` and ``REFUNDED`` are terminal.
    """

    PENDING_IMAGE = "PENDING_IMAGE"
    PENDING_AI_ANALYSIS = "PENDING_AI_ANALYSIS"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    PENDING_PHARMACIST_REVIEW = "PENDING_PHARMACIST_REVIEW"
    PHARMACIST_APPROVED = "PHARMACIST_APPROVED"
    PHARMACIST_REJECTED = "PHARMACIST_REJECTED"
    PREPARING = "PREPARING"
    READY = "READY"
    AWAITING_COURIER = "AWAITING_COURIER"
    COURIER_ASSIGNED = "COURIER_ASSIGNED"
    IN_DELIVERY = "IN_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class OrderAction(str, enum.Enum):
    """Operator actions that may be offered for an order."""

    VIEW_PRESCRIPTION = "VIEW_PRESCRIPTION"
    VERIFY = "VERIFY"
    REJECT = "REJECT"
    CHECK_INTERACTIONS = "CHECK_INTERACTIONS"
    REQUEST_CLARIFICATION = "REQUEST_CLARIFICATION"
    START_PREP = "START_PREP"
    MARK_READY = "MARK_READY"
    ASSIGN_COURIER = "ASSIGN_COURIER"
    CALL_PATIENT = "CALL_PATIENT"


# ---------------------------------------------------------------------------
# Order scoring inputs
# ---------------------------------------------------------------------------

class AIVerificationResult(BaseModel):
    """Summary of the external AI verification, consumed read-only."""

    model_config = ConfigDict(frozen=True)

    status: VerificationStatus = Field(
        ...,
        description="Verification outcome reported by the AI service.",
    )
    confidence: float = Field(
        ...,
        ge=0,
        le=1,
        description="Overall confidence of the AI service (0-1).",
    )
    attention_flags: list[str] = Field(
        default_factory=list,
        description="Opaque identifiers of items the pharmacist should look at.",
    )


class PatientFlags(BaseModel):
    """Patient facts that influence priority."""

    model_config = ConfigDict(frozen=True)

    is_chronic: bool = Field(default=False, description="Patient on long-term treatment.")
    is_preferred_tier: bool = Field(default=False, description="Premium / preferred patient.")
    has_refill_history: bool = Field(default=False, description="Patient has refilled before.")


class OrderFlags(BaseModel):
    """Order facts that influence priority and available actions."""

    model_config = ConfigDict(frozen=True)

    has_controlled_substance: bool = Field(
        default=False,
        description="At least one item is a controlled substance.",
    )
    has_interaction_warning: bool = Field(
        default=False,
        description="A drug-interaction warning was raised for this order.",
    )
    item_count: int = Field(default=1, ge=0, description="Number of line items.")


class OrderContext(BaseModel):
    """Everything the priority scorer needs to know about one order.

    ``ai_verification`` is required: scoring an order without its
    verification summary would silently default an urgency-relevant
    field, so construction fails instead.
    """

    model_config = ConfigDict(frozen=True)

    time_in_queue_minutes: int = Field(
        ...,
        ge=0,
        description="Whole minutes the order has spent in the queue.",
    )
    promised_delivery_at: Optional[datetime] = Field(
        default=None,
        description="Promised delivery deadline (timezone-aware), if any.",
    )
    patient: PatientFlags = Field(default_factory=PatientFlags)
    order: OrderFlags = Field(default_factory=OrderFlags)
    ai_verification: AIVerificationResult

    @field_validator("promised_delivery_at")
    @classmethod
    def deadline_timezone_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and (v.tzinfo is None or v.tzinfo.utcoffset(v) is None):
            raise ValueError("promised_delivery_at must be timezone-aware")
        return v


class OrderQueueItem(BaseModel):
    """A scored order as presented in the pharmacist queue."""

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(..., min_length=1)
    status: OrderStatus
    context: OrderContext
    priority_score: int = Field(..., ge=0, le=100)
    priority_tier: PriorityTier
    sla_breach_in_minutes: Optional[int] = Field(
        default=None,
        description="Signed minutes until the deadline; negative once breached.",
    )
    available_actions: list[OrderAction] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Image capture analysis
# ---------------------------------------------------------------------------

class DetectedAngle(BaseModel):
    """Camera orientation relative to the prescription, in degrees."""

    model_config = ConfigDict(frozen=True)

    roll: float = Field(default=0.0, ge=-180, le=180, description="Rotation around the viewing axis.")
    pitch: float = Field(default=0.0, ge=-180, le=180, description="Tilt forward/backward.")
    yaw: float = Field(default=0.0, ge=-180, le=180, description="Rotation left/right.")


class DetectedZones(BaseModel):
    """Visibility of the semantically meaningful regions of a prescription."""

    model_config = ConfigDict(frozen=True)

    header_visible: bool = Field(default=False, description="Doctor / clinic header.")
    patient_visible: bool = Field(default=False, description="Patient name.")
    medication_visible: bool = Field(default=False, description="Drug names.")
    dosage_visible: bool = Field(default=False, description="Dosage instructions.")
    signature_visible: bool = Field(default=False, description="Prescriber signature.")
    date_visible: bool = Field(default=False, description="Prescription date.")


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float = Field(..., ge=0)
    y: float = Field(..., ge=0)
    w: float = Field(..., gt=0)
    h: float = Field(..., gt=0)


class ImageAnalysis(BaseModel):
    """Per-capture signals supplied by the external vision service.

    One instance per capture attempt; a retake produces a new analysis.
    """

    model_config = ConfigDict(frozen=True)

    lighting_score: float = Field(..., ge=0, le=1)
    lighting_issues: list[str] = Field(
        default_factory=list,
        description="Issues reported by the vision service (too_dark, too_bright, uneven, glare).",
    )
    angle_score: float = Field(default=1.0, ge=0, le=1)
    detected_angle: DetectedAngle = Field(default_factory=DetectedAngle)
    is_flat: bool = Field(default=True)
    focus_score: float = Field(..., ge=0, le=1)
    blur_detected: bool = Field(default=False)
    blur_regions: list[BoundingBox] = Field(default_factory=list)
    completeness_score: float = Field(default=1.0, ge=0, le=1)
    detected_zones: DetectedZones = Field(default_factory=DetectedZones)


class ImageQualityResult(BaseModel):
    """Outcome of the pre-submission image gate."""

    model_config = ConfigDict(frozen=True)

    approved: bool
    issues: list[str] = Field(default_factory=list)
    guidance_message: str
    quality_score: float = Field(
        ...,
        description="Weighted composite score; informational, not used for approval.",
    )
