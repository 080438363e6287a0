"""Endpoints and websocket handler for job notifications."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, WebSocket, WebSocketDisconnect, status

from fieldnotify.application.use_cases.notifications import NotificationOrchestrator
from fieldnotify.domain.entities import AuditOutcome, SubmitOutcome
from fieldnotify.domain.errors import (
    DedupUnavailableError,
    InvalidRecipientError,
    RateLimiterUnavailableError,
)
from fieldnotify.infrastructure.notifications import notification_manager
from fieldnotify.interfaces.api.dependencies import get_orchestrator
from fieldnotify.interfaces.api.schemas import NotificationEventCreate, SubmitOutcomeRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _status_code_for(outcome: SubmitOutcome) -> int:
    if outcome.status is not AuditOutcome.FAILED:
        return status.HTTP_202_ACCEPTED
    if isinstance(outcome.error, InvalidRecipientError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(outcome.error, (DedupUnavailableError, RateLimiterUnavailableError)):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_502_BAD_GATEWAY


@router.post(
    "/events",
    response_model=SubmitOutcomeRead,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_notification_event(
    payload: NotificationEventCreate,
    response: Response,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> SubmitOutcomeRead:
    """Submit a notification event and return its audited outcome."""

    outcome = await orchestrator.submit(payload.to_entity())
    response.status_code = _status_code_for(outcome)
    return SubmitOutcomeRead.from_outcome(outcome)


@router.websocket("/ws")
async def notifications_websocket(websocket: WebSocket) -> None:
    """Websocket endpoint that streams notifications to one recipient."""

    recipient_id = (websocket.query_params.get("recipient_id") or "").strip()
    if not recipient_id:
        await websocket.close(code=1008)
        return

    await notification_manager.connect(recipient_id, websocket)
    try:
        while True:
            try:
                message = await websocket.receive_json()
            except WebSocketDisconnect:
                raise
            except ValueError:
                continue

            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.debug("Websocket closed for %s", recipient_id)
    finally:
        notification_manager.disconnect(recipient_id, websocket)


__all__ = ["router"]
