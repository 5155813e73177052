"""
Content repository row schemas
Validates loosely typed explore content rows before they reach the ranker
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator
import json


# ============================================================================
# Helpers
# ============================================================================

def _parse_json_if_str(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            # Comma-separated fallback for tag columns
            return [part for part in text.split(",")]
    return value


def _normalize_tags(value: Any) -> List[str]:
    value = _parse_json_if_str(value)
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if isinstance(value, (list, tuple, set, frozenset)):
        tags = []
        for tag in value:
            if tag is None:
                continue
            text = str(tag).strip().lower()
            if text:
                tags.append(text)
        return sorted(set(tags))
    raise ValueError("tags must be a list or a JSON/comma-separated string")


# ============================================================================
# Content rows
# ============================================================================

class EngagementRow(BaseModel):
    """Engagement counters; non-negative"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    views: int = Field(default=0, ge=0)
    unique_viewers: int = Field(default=0, ge=0, alias="uniqueViewers")
    completions: int = Field(default=0, ge=0)
    saves: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)

    @field_validator('*', mode='before')
    @classmethod
    def none_as_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class ContentRow(BaseModel):
    """Explore content row as produced by the content repository"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    published_at: datetime = Field(..., alias="publishedAt")
    partner_trust_tier: str = Field(default="unverified", alias="partnerTrustTier")
    quality_score: float = Field(default=0.0, alias="qualityScore")
    engagement: EngagementRow = Field(default_factory=EngagementRow, alias="engagementCounts")
    geo_tags: List[str] = Field(default_factory=list, alias="geoTags")
    category_tags: List[str] = Field(default_factory=list, alias="categoryTags")
    boost_weight: float = Field(default=0.0, ge=0.0, alias="boostWeight")

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        if isinstance(v, bool):
            raise ValueError("id must be a string or integer")
        if isinstance(v, int):
            return str(v)
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('published_at', mode='before')
    @classmethod
    def parse_published_at(cls, v: Any) -> Any:
        if v is None or v == "":
            raise ValueError("published_at is required")
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            try:
                return datetime.fromtimestamp(v, tz=timezone.utc)
            except (OverflowError, OSError) as exc:
                raise ValueError(f"published_at timestamp out of range: {v}") from exc
        if isinstance(v, str):
            return datetime.fromisoformat(v.strip().replace('Z', '+00:00'))
        return v

    @field_validator('published_at')
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator('partner_trust_tier', mode='before')
    @classmethod
    def normalize_tier(cls, v: Any) -> str:
        if v is None or v == "":
            return "unverified"
        tier = str(getattr(v, "value", v)).strip().lower()
        if tier not in ("unverified", "verified", "premium"):
            raise ValueError(f"unknown partner trust tier: {v}")
        return tier

    @field_validator('quality_score', mode='before')
    @classmethod
    def normalize_quality(cls, v: Any) -> float:
        if v is None or v == "":
            return 0.0
        score = float(v)
        if score > 1.0:
            score = score / 100.0  # Quality service reports 0-100
        return max(0.0, min(1.0, score))

    @field_validator('engagement', mode='before')
    @classmethod
    def parse_engagement(cls, v: Any) -> Any:
        v = _parse_json_if_str(v)
        return {} if v is None else v

    @field_validator('geo_tags', 'category_tags', mode='before')
    @classmethod
    def parse_tags(cls, v: Any) -> List[str]:
        return _normalize_tags(v)

    @field_validator('boost_weight', mode='before')
    @classmethod
    def missing_boost_is_zero(cls, v: Any) -> Any:
        return 0.0 if v is None or v == "" else v


# ============================================================================
# Viewer profile
# ============================================================================

class ViewerProfile(BaseModel):
    """Viewer interest profile built by the caller"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    viewer_id: Optional[str] = Field(default=None, alias="viewerId")
    interest_vector: Dict[str, float] = Field(default_factory=dict, alias="interestVector")
    location_hint: Optional[str] = Field(default=None, alias="locationHint")

    @field_validator('viewer_id', mode='before')
    @classmethod
    def coerce_viewer_id(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator('interest_vector', mode='before')
    @classmethod
    def parse_interest_vector(cls, v: Any) -> Any:
        v = _parse_json_if_str(v)
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("interest_vector must be a mapping")
        vector = {}
        for tag, weight in v.items():
            key = str(tag).strip().lower()
            if not key or weight is None:
                continue
            vector[key] = max(0.0, min(1.0, float(weight)))
        return vector

    @field_validator('location_hint', mode='before')
    @classmethod
    def normalize_location(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip().lower()
        return text or None
