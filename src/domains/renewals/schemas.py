"""Renewal request schemas and the legacy field translation.

Older clients send and read camelCase names (``personalTrainerId``,
``planIdRequested``...) and uppercase statuses. Records are always stored
in canonical form; ``from_legacy_payload`` and ``to_legacy_view`` are the
only places that know about the old shape.
"""
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.core.models import as_utc

from .models import RenewalRequest, RenewalStatus, normalize_status

# legacy name -> canonical name
LEGACY_FIELD_NAMES: dict[str, str] = {
    "personalTrainerId": "personal_id",
    "planIdRequested": "plan_id",
    "studentId": "student_id",
    "paymentLink": "payment_link",
    "paymentProofUrl": "payment_proof_url",
    "paymentDecisionNote": "payment_decision_note",
    "adminId": "admin_id",
    "requestedAt": "requested_at",
    "linkSentAt": "link_sent_at",
    "proofUploadedAt": "proof_uploaded_at",
    "processedAt": "processed_at",
}


def from_legacy_payload(payload: Any) -> Any:
    """Rename legacy keys to canonical ones and normalize ``status``.

    Canonical keys win when both spellings are present.
    """
    if not isinstance(payload, dict):
        return payload
    data = dict(payload)
    for legacy, canonical in LEGACY_FIELD_NAMES.items():
        if legacy in data:
            value = data.pop(legacy)
            data.setdefault(canonical, value)
    if data.get("status") is not None:
        data["status"] = normalize_status(data["status"]).value
    return data


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def to_legacy_view(request: RenewalRequest) -> dict[str, Any]:
    """Canonical fields plus their legacy aliases, status normalized."""
    view: dict[str, Any] = {
        "id": request.id,
        "personal_id": request.personal_id,
        "plan_id": request.plan_id,
        "student_id": request.student_id,
        "status": request.state.value,
        "notes": request.notes,
        "proof": request.proof,
        "payment_link": request.payment_link,
        "payment_proof_url": request.payment_proof_url,
        "payment_decision_note": request.payment_decision_note,
        "admin_id": request.admin_id,
        "requested_at": request.requested_at,
        "link_sent_at": request.link_sent_at,
        "proof_uploaded_at": request.proof_uploaded_at,
        "processed_at": request.processed_at,
    }
    for legacy, canonical in LEGACY_FIELD_NAMES.items():
        view[legacy] = _json_value(view[canonical])
    return view


class _LegacyAwareRequest(BaseModel):
    @model_validator(mode="before")
    @classmethod
    def _translate_legacy(cls, data: Any) -> Any:
        return from_legacy_payload(data)


class RenewalCreate(_LegacyAwareRequest):
    """Trainer request for a plan renewal or change."""

    plan_id: UUID
    student_id: UUID | None = None
    notes: str | None = Field(None, max_length=1000)


class PaymentLinkRequest(_LegacyAwareRequest):
    payment_link: str = Field(..., min_length=1, max_length=500)


class ApproveRequest(_LegacyAwareRequest):
    payment_decision_note: str | None = Field(None, max_length=1000)


class DecisionRequest(_LegacyAwareRequest):
    """Admin decision on a request with an uploaded proof."""

    decision: Literal["approved", "rejected"]
    payment_decision_note: str | None = Field(None, max_length=1000)

    @model_validator(mode="before")
    @classmethod
    def _normalize_decision(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("decision"), str):
            data = dict(data)
            data["decision"] = normalize_status(data["decision"]).value
        return data


class RenewalResponse(BaseModel):
    """Renewal request as returned by the API, legacy aliases included."""

    id: UUID
    personal_id: UUID
    plan_id: UUID | None
    student_id: UUID | None
    status: RenewalStatus
    notes: str | None
    proof: dict[str, Any] | None
    payment_link: str | None
    payment_proof_url: str | None
    payment_decision_note: str | None
    admin_id: UUID | None
    requested_at: datetime
    link_sent_at: datetime | None
    proof_uploaded_at: datetime | None
    processed_at: datetime | None

    model_config = ConfigDict(extra="allow")

    @classmethod
    def from_request(cls, request: RenewalRequest) -> "RenewalResponse":
        return cls(**to_legacy_view(request))
