"""
Escalation API Endpoints.

POST /api/v1/escalations                  — escalate a high-risk assessment
POST /api/v1/escalations/test             — operator test trigger (synthetic answers)
POST /api/v1/escalations/test/{channel}   — single-channel test send, not recorded
GET  /api/v1/escalations                  — escalation history, newest first
GET  /api/v1/escalations/summary          — counts by status
GET  /api/v1/escalations/{escalation_id}  — one escalation record
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from nivaran.alerting.orchestrator import EscalationOrchestrator
from nivaran.alerting.schemas import (
    Channel,
    ChannelAttempt,
    EscalationListResponse,
    EscalationRecord,
    EscalationRequest,
    EscalationStatus,
    EscalationSummary,
)
from nivaran.api.deps import get_orchestrator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/escalations", tags=["escalations"])


# ── Escalate ───────────────────────────────────────────────────────────


@router.post("", response_model=EscalationRecord)
async def create_escalation(
    body: EscalationRequest,
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
):
    """
    Escalate a high-risk assessment.

    Always answers 200 with the finalized record; a failed delivery is a
    `failed` status, not an HTTP error.
    """
    return await orchestrator.send_emergency_alert(
        body.subject_id,
        body.subject_name,
        body.answers,
    )


@router.post("/test", response_model=EscalationRecord)
async def trigger_test_escalation(
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
):
    """Run a full escalation with synthetic high-risk answers."""
    return await orchestrator.send_test_alert()


@router.post("/test/{channel}", response_model=ChannelAttempt)
async def test_channel(
    channel: Channel,
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
):
    """Send a test message through one channel. Nothing is recorded."""
    return await orchestrator.test_channel(channel)


# ── History ────────────────────────────────────────────────────────────


@router.get("", response_model=EscalationListResponse)
async def list_escalations(
    subject_id: Optional[str] = Query(None, description="Only this subject's escalations"),
    status: Optional[EscalationStatus] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
):
    """Escalation history, newest first."""
    if subject_id:
        records = orchestrator.get_user_notifications(subject_id)
    else:
        records = orchestrator.get_all_notifications()

    if status:
        records = [r for r in records if r.status == status]

    records.reverse()
    return EscalationListResponse(escalations=records[:limit], total=len(records))


@router.get("/summary", response_model=EscalationSummary)
async def escalation_summary(
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
):
    records = orchestrator.get_all_notifications()
    counts = {s: 0 for s in EscalationStatus}
    for record in records:
        counts[record.status] += 1
    return EscalationSummary(
        total=len(records),
        sent=counts[EscalationStatus.SENT],
        failed=counts[EscalationStatus.FAILED],
        pending=counts[EscalationStatus.PENDING],
    )


@router.get("/{escalation_id}", response_model=EscalationRecord)
async def get_escalation(
    escalation_id: str,
    orchestrator: EscalationOrchestrator = Depends(get_orchestrator),
):
    for record in orchestrator.get_all_notifications():
        if record.id == escalation_id:
            return record
    raise HTTPException(status_code=404, detail=f"Escalation {escalation_id} not found")
