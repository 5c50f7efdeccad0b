"""
API Schemas — Request and Response Models

Pydantic models for the SpamShield API.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field


# ============================================================
# ANALYZE
# ============================================================

class AnalyzeRequest(BaseModel):
    """POST /detections/analyze request body."""
    content: str = Field(..., max_length=50_000,
                         description="The submitted text to analyze.")
    content_type: str = Field("POST", pattern="^(POST|REPLY|COMMENT)$",
                              description="Kind of submission.")
    target_id: Optional[str] = Field(None, description="Id of the post/reply/comment.")
    actor_id: Optional[str] = Field(None, description="Submitting user, for history.")
    workspace_id: Optional[str] = Field(None, description="Community/workspace scope.")
    auto_act: bool = Field(False, description="Enact a REJECT recommendation automatically.")
    persist: bool = Field(True, description="Store a detection record.")

    model_config = {"json_schema_extra": {"examples": [
        {"content": "Make money fast! Click here now bit.ly/x", "content_type": "POST"},
    ]}}


class AnalyzeResponse(BaseModel):
    is_spam: bool
    confidence: float
    score: int
    reasons: list[str]
    detection_id: Optional[str] = None
    recommendation: str
    actions_taken: list[str] = []
    score_breakdown: dict = {}


# ============================================================
# DETECTIONS
# ============================================================

class ReviewEntryResponse(BaseModel):
    reviewer: str
    timestamp: str
    previous_status: str
    new_status: str
    notes: Optional[str] = None


class DetectionResponse(BaseModel):
    id: str
    workspace_id: Optional[str] = None
    target_type: str
    target_id: Optional[str] = None
    actor_id: Optional[str] = None
    content_excerpt: str
    score: int
    confidence: float
    reasons: list[str]
    metadata: dict
    status: str
    auto_detected: bool
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[str] = None
    review_notes: Optional[str] = None
    review_history: list[ReviewEntryResponse]
    revision: int
    created_at: str


class DetectionDetailResponse(BaseModel):
    detection: DetectionResponse
    activity: list[dict]


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class DetectionListResponse(BaseModel):
    records: list[DetectionResponse]
    pagination: Pagination


class ReviewRequest(BaseModel):
    """PUT /detections/{id}/review request body."""
    status: str = Field(..., pattern="^(CONFIRMED|FALSE_POSITIVE|PENDING)$")
    review_notes: Optional[str] = Field(None, max_length=5_000)
    reviewer_id: Optional[str] = Field(
        None, description="Defaults to the authenticated caller.")
    expected_revision: Optional[int] = Field(
        None, ge=0, description="Reject the review if the record changed since this revision.")


class ReviewResponse(BaseModel):
    success: bool
    detection: DetectionResponse
    message: str


class DeleteResponse(BaseModel):
    success: bool
    message: str


# ============================================================
# STATISTICS
# ============================================================

class TrendPoint(BaseModel):
    date: str
    total: int
    spam: int


class StatisticsResponse(BaseModel):
    total_detections: int
    confirmed_spam: int
    pending_review: int
    false_positives: int
    auto_detected: int
    accuracy: float
    period: str
    daily_trend: list[TrendPoint]


# ============================================================
# AUDIT
# ============================================================

class AuditEntry(BaseModel):
    id: int
    prev_hash: str
    hash: str
    event_type: str
    subject_id: Optional[str] = None
    data: dict
    timestamp: str
    engine_version: str


class AuditResponse(BaseModel):
    entries: list[AuditEntry]
    total_count: int


class ChainVerification(BaseModel):
    verified: bool
    entries_checked: int
    broken_links: list[dict]


# ============================================================
# HEALTH
# ============================================================

class HealthResponse(BaseModel):
    status: str
    version: str
    engine_version: str
    detections: int
    audit_entries: int
    auth_enabled: bool
