"""
Triage Policy Configuration -- Weights, Thresholds and Guidance Catalogs.

Every number that influences priority or image approval lives in a named,
validated policy object rather than in the scoring code.  Policy changes are
therefore reviewable as data and the scoring functions can be tested against
any policy instance.

The defaults reproduce the production weights exactly.  They are contractual
values: the scoring tests pin them.

Guidance messages shown to patients during capture are injected as a
``GuidanceCatalog`` keyed by issue identifier, so the wording can be
localized without touching the decision logic.  ``GuidanceCatalogRegistry``
holds one catalog per locale.
"""

from __future__ import annotations

import copy
import math
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Priority policy
# ---------------------------------------------------------------------------

class TimeInQueueWeights(BaseModel):
    """Time pressure: +1 point per ``minutes_per_point``, capped."""

    minutes_per_point: int = Field(default=3, gt=0)
    max_points: int = Field(
        default=30,
        ge=0,
        description="Cap so that waiting alone cannot dominate the other signals.",
    )


class SLABreachWeights(BaseModel):
    """Stepped bonus by minutes remaining until the promised delivery.

    Steps are evaluated in order: ``< imminent_minutes``, ``< soon_minutes``,
    ``< approaching_minutes``, otherwise ``distant_points``.  Orders without
    a deadline receive nothing.
    """

    imminent_minutes: int = Field(default=30)
    soon_minutes: int = Field(default=60)
    approaching_minutes: int = Field(default=120)
    imminent_points: int = Field(default=20)
    soon_points: int = Field(default=15)
    approaching_points: int = Field(default=10)
    distant_points: int = Field(default=5)

    @model_validator(mode="after")
    def steps_ascending(self) -> "SLABreachWeights":
        if not (self.imminent_minutes < self.soon_minutes < self.approaching_minutes):
            raise ValueError(
                "SLA steps must be strictly ascending: "
                f"{self.imminent_minutes} < {self.soon_minutes} < {self.approaching_minutes}"
            )
        return self


class PatientWeights(BaseModel):
    chronic: int = Field(default=10)
    preferred_tier: int = Field(default=5)
    refill_history: int = Field(default=3)


class OrderWeights(BaseModel):
    """Order complexity adjustments.

    ``interaction_warning`` is negative: a flagged interaction needs careful
    review rather than a rushed one.
    """

    controlled_substance: int = Field(default=5)
    interaction_warning: int = Field(default=-10)
    large_order: int = Field(default=3)
    large_order_min_items: int = Field(
        default=5,
        ge=0,
        description="Bonus applies when item count is strictly greater than this.",
    )


class AIWeights(BaseModel):
    needs_review: int = Field(default=15)
    rejected: int = Field(default=-20)
    low_confidence: int = Field(default=8)
    low_confidence_threshold: float = Field(default=0.7, ge=0, le=1)


class TierThresholds(BaseModel):
    """Minimum score for each tier; anything below ``normal`` is LOW."""

    critical: int = Field(default=85, ge=0, le=100)
    high: int = Field(default=65, ge=0, le=100)
    normal: int = Field(default=35, ge=0, le=100)

    @field_validator("high")
    @classmethod
    def high_below_critical(cls, v: int, info) -> int:
        critical = info.data.get("critical")
        if critical is not None and v >= critical:
            raise ValueError(f"high ({v}) must be < critical ({critical})")
        return v

    @field_validator("normal")
    @classmethod
    def normal_below_high(cls, v: int, info) -> int:
        high = info.data.get("high")
        if high is not None and v >= high:
            raise ValueError(f"normal ({v}) must be < high ({high})")
        return v


class PriorityPolicy(BaseModel):
    """Complete additive scoring policy."""

    base_score: int = Field(default=50)
    min_score: int = Field(default=0, ge=0, le=100)
    max_score: int = Field(default=100, ge=0, le=100)
    time_in_queue: TimeInQueueWeights = Field(default_factory=TimeInQueueWeights)
    sla_breach: SLABreachWeights = Field(default_factory=SLABreachWeights)
    patient: PatientWeights = Field(default_factory=PatientWeights)
    order: OrderWeights = Field(default_factory=OrderWeights)
    ai: AIWeights = Field(default_factory=AIWeights)
    tiers: TierThresholds = Field(default_factory=TierThresholds)

    @model_validator(mode="after")
    def score_range_ordered(self) -> "PriorityPolicy":
        if self.min_score >= self.max_score:
            raise ValueError(
                f"min_score ({self.min_score}) must be < max_score ({self.max_score})"
            )
        return self


# ---------------------------------------------------------------------------
# Image quality policy
# ---------------------------------------------------------------------------

REQUIRED_ZONE_NAMES = (
    "header_visible",
    "patient_visible",
    "medication_visible",
    "dosage_visible",
    "signature_visible",
    "date_visible",
)


class QualityScoreWeights(BaseModel):
    """Weights of the informational composite quality score."""

    lighting: float = Field(default=0.25, ge=0, le=1)
    angle: float = Field(default=0.20, ge=0, le=1)
    focus: float = Field(default=0.25, ge=0, le=1)
    completeness: float = Field(default=0.30, ge=0, le=1)

    @model_validator(mode="after")
    def weights_sum_to_one(self) -> "QualityScoreWeights":
        total = self.lighting + self.angle + self.focus + self.completeness
        if not math.isclose(total, 1.0, abs_tol=1e-9):
            raise ValueError(f"quality score weights must sum to 1.0, got {total}")
        return self


class ImageQualityPolicy(BaseModel):
    """Thresholds for the pre-submission capture gate."""

    min_lighting_score: float = Field(default=0.6, ge=0, le=1)
    dark_lighting_score: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Below this a failing capture is reported as too_dark instead of uneven.",
    )
    max_tilt_degrees: float = Field(default=15.0, ge=0, le=180)
    blur_threshold: float = Field(
        default=0.3,
        ge=0,
        le=1,
        description="Focus scores below 1 - blur_threshold count as blurry.",
    )
    required_zones: list[str] = Field(
        default_factory=lambda: ["medication_visible", "dosage_visible", "signature_visible"],
    )
    score_weights: QualityScoreWeights = Field(default_factory=QualityScoreWeights)

    @field_validator("dark_lighting_score")
    @classmethod
    def dark_below_min(cls, v: float, info) -> float:
        minimum = info.data.get("min_lighting_score")
        if minimum is not None and v > minimum:
            raise ValueError(
                f"dark_lighting_score ({v}) must be <= min_lighting_score ({minimum})"
            )
        return v

    @field_validator("required_zones")
    @classmethod
    def known_zones(cls, v: list[str]) -> list[str]:
        unknown = [zone for zone in v if zone not in REQUIRED_ZONE_NAMES]
        if unknown:
            raise ValueError(f"unknown zones {unknown}; expected a subset of {REQUIRED_ZONE_NAMES}")
        duplicates = sorted({zone for zone in v if v.count(zone) > 1})
        if duplicates:
            raise ValueError(f"required_zones lists {duplicates} more than once")
        return v


# ---------------------------------------------------------------------------
# Guidance catalogs
# ---------------------------------------------------------------------------

class GuidanceCatalog(BaseModel):
    """Issue identifier -> user-facing sentence, for one locale."""

    locale: str = Field(..., min_length=1)
    ready_message: str = Field(
        ...,
        min_length=1,
        description="Shown when the capture has no issues.",
    )
    messages: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_PRIORITY_POLICY = PriorityPolicy()
"""Production weights: base 50, 3 min/point capped at 30, SLA 20/15/10/5,
patient 10/5/3, order +5/-10/+3, AI +15/-20/+8, tiers 85/65/35."""

DEFAULT_IMAGE_QUALITY_POLICY = ImageQualityPolicy()

DEFAULT_GUIDANCE_CATALOG = GuidanceCatalog(
    locale="en",
    ready_message="The image is ready to submit",
    messages={
        "too_dark": "Move to a brighter place or turn on more lights",
        "too_bright": "Reduce direct light on the prescription",
        "uneven": "Make sure the prescription is evenly lit",
        "glare": "Tilt slightly to remove the glare",
        "tilted": "Hold the phone directly above the prescription, parallel to the surface",
        "blurry": "Hold steady and tap to focus before capturing",
        "missing_medication_visible": "Make sure the medication name is visible",
        "missing_dosage_visible": "Make sure the dosage instructions are visible",
        "missing_signature_visible": "Make sure the prescriber's signature is visible",
    },
)


# ---------------------------------------------------------------------------
# Catalog registry
# ---------------------------------------------------------------------------

class GuidanceCatalogRegistry:
    """In-memory guidance catalogs keyed by locale.

    Catalogs are deep-copied on the way in and out so callers cannot mutate
    a registered catalog.
    """

    def __init__(self, default_locale: str = DEFAULT_GUIDANCE_CATALOG.locale) -> None:
        self._catalogs: dict[str, GuidanceCatalog] = {}
        self.default_locale = default_locale

    def register(self, catalog: GuidanceCatalog) -> None:
        """Register a catalog for a new locale.

        Raises:
            ValueError: If the locale is already registered.
        """
        if catalog.locale in self._catalogs:
            raise ValueError(
                f"Catalog for locale '{catalog.locale}' already registered. "
                "Use update() to modify an existing catalog."
            )
        self._catalogs[catalog.locale] = copy.deepcopy(catalog)

    def get(self, locale: str) -> GuidanceCatalog:
        """Return a copy of the catalog for ``locale``.

        Raises:
            KeyError: If no catalog is registered for ``locale``.
        """
        if locale not in self._catalogs:
            raise KeyError(f"No guidance catalog registered for locale '{locale}'")
        return copy.deepcopy(self._catalogs[locale])

    def get_or_default(self, locale: str | None) -> GuidanceCatalog:
        """Return the catalog for ``locale``, falling back to the default locale
        and finally to ``DEFAULT_GUIDANCE_CATALOG``."""
        for candidate in (locale, self.default_locale):
            if candidate is not None and candidate in self._catalogs:
                return copy.deepcopy(self._catalogs[candidate])
        return copy.deepcopy(DEFAULT_GUIDANCE_CATALOG)

    def update(self, catalog: GuidanceCatalog) -> None:
        """Replace the catalog of an already registered locale.

        Raises:
            KeyError: If the locale is not registered.
        """
        if catalog.locale not in self._catalogs:
            raise KeyError(
                f"Cannot update: no catalog registered for locale '{catalog.locale}'"
            )
        self._catalogs[catalog.locale] = copy.deepcopy(catalog)

    def list_locales(self) -> list[str]:
        return sorted(self._catalogs.keys())

    def __len__(self) -> int:
        return len(self._catalogs)

    def __contains__(self, locale: str) -> bool:
        return locale in self._catalogs


# ---------------------------------------------------------------------------
# YAML loaders
# ---------------------------------------------------------------------------

def _read_yaml_mapping(path: str | Path, top_level_key: str) -> Any:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or top_level_key not in raw:
        raise ValueError(
            f"YAML file must contain a top-level '{top_level_key}' key."
        )
    return raw[top_level_key]


def load_priority_policy_from_yaml(path: str | Path) -> PriorityPolicy:
    """Load a priority policy from a YAML file.

    Example YAML structure::

        priority_policy:
          base_score: 50
          time_in_queue:
            minutes_per_point: 3
            max_points: 30
          tiers:
            critical: 85
            high: 65
            normal: 35

    Omitted sections keep their defaults.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If the policy fails validation.
    """
    data = _read_yaml_mapping(path, "priority_policy")
    if not isinstance(data, dict):
        raise ValueError("'priority_policy' must be a mapping.")
    return PriorityPolicy(**data)


def load_image_quality_policy_from_yaml(path: str | Path) -> ImageQualityPolicy:
    """Load image gate thresholds from a top-level ``image_quality_policy`` key.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If the policy fails validation.
    """
    data = _read_yaml_mapping(path, "image_quality_policy")
    if not isinstance(data, dict):
        raise ValueError("'image_quality_policy' must be a mapping.")
    return ImageQualityPolicy(**data)


def load_guidance_catalogs_from_yaml(path: str | Path) -> list[GuidanceCatalog]:
    """Load guidance catalogs from a YAML file.

    Example YAML structure::

        catalogs:
          - locale: "fr"
            ready_message: "L'image est prête pour l'envoi"
            messages:
              too_dark: "Déplacez-vous vers un endroit plus lumineux"

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If any catalog fails validation.
    """
    entries = _read_yaml_mapping(path, "catalogs")
    if not isinstance(entries, list):
        raise ValueError("'catalogs' must be a list of catalog objects.")

    catalogs: list[GuidanceCatalog] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Catalog entry at index {idx} must be a mapping.")
        catalogs.append(GuidanceCatalog(**entry))
    return catalogs
