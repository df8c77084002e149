"""HTTP routes."""

import json
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, status

from app.adapters.inbound.http.schemas import LoopsResponse
from app.adapters.inbound.http.webhook_signature import verify_webhook_signature
from app.application.dtos.automation import AutomationStatus, WorkflowResult
from app.application.dtos.webhook import WebhookReceipt
from app.domain.errors import NotFoundError
from app.infrastructure.config.settings import settings
from app.infrastructure.logging.logger import log_event, log_webhook_event
from app.infrastructure.scheduling.polling_loop import get_scheduler_registry
from app.infrastructure.wiring.container import Container
from app.infrastructure.wiring.dependencies import get_container

router = APIRouter()


def _tracking_id(header_value: Optional[str]) -> str:
    return header_value or str(uuid4())


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict[str, str]:
    """
    Health check endpoint for liveness/readiness.

    Returns:
        Health status
    """
    return {"status": "ok"}


@router.post("/webhooks/{source}", status_code=status.HTTP_200_OK, response_model=WebhookReceipt)
async def receive_webhook(
    source: str,
    request: Request,
    background_tasks: BackgroundTasks,
    x_tracking_id: Optional[str] = Header(default=None),
    container: Container = Depends(get_container),
) -> WebhookReceipt:
    """
    Durably store an inbound webhook event and process it in the background.

    Args:
        source: Webhook source (e.g. "calendly")
        request: FastAPI request object (raw body is needed for the signature)
        background_tasks: Scheduler for post-response processing
        x_tracking_id: Optional caller-supplied correlation token
        container: Wired services

    Returns:
        Receipt with the stored event id and duplicate flag

    Raises:
        HTTPException: 401 on a bad signature, 400 on a malformed body
    """
    tracking_id = _tracking_id(x_tracking_id)
    body = await request.body()
    verify_webhook_signature(request, body, settings.webhook_secret)

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed JSON body",
        ) from err
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook body must be a JSON object",
        )

    receipt = await container.event_inbox.receive(source, payload, tracking_id)
    log_webhook_event(
        tracking_id,
        source=source,
        event_type=receipt.event_type,
        event_id=receipt.event_id,
        duplicate=receipt.duplicate,
    )

    if not receipt.duplicate:
        background_tasks.add_task(container.event_inbox.process, receipt.event_id, tracking_id)
    return receipt


@router.post(
    "/automation/{lead_id}/run",
    status_code=status.HTTP_200_OK,
    response_model=WorkflowResult,
)
async def run_automation(
    lead_id: str,
    x_tracking_id: Optional[str] = Header(default=None),
    container: Container = Depends(get_container),
) -> WorkflowResult:
    """
    Run the complete lead workflow synchronously.

    Args:
        lead_id: Lead identifier
        x_tracking_id: Optional caller-supplied correlation token
        container: Wired services

    Returns:
        Per-step breakdown (completed, skipped, failed)

    Raises:
        HTTPException: 404 if the lead does not exist
    """
    tracking_id = _tracking_id(x_tracking_id)
    log_event(tracking_id, component="http", route="run_automation", lead_id=lead_id)
    try:
        return await container.coordinator.execute_complete_workflow(lead_id, tracking_id)
    except NotFoundError as err:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err)) from err


@router.get("/automation/loops", status_code=status.HTTP_200_OK, response_model=LoopsResponse)
async def get_loops() -> LoopsResponse:
    """
    Report the background polling loops of this process.

    Returns:
        Loop statuses
    """
    return LoopsResponse(loops=get_scheduler_registry().status())


@router.get(
    "/automation/{lead_id}/status",
    status_code=status.HTTP_200_OK,
    response_model=AutomationStatus,
)
async def get_automation_status(
    lead_id: str,
    container: Container = Depends(get_container),
) -> AutomationStatus:
    """
    Get the automation state of a lead.

    Args:
        lead_id: Lead identifier
        container: Wired services

    Returns:
        Lead, agent, meeting, tasks and detected reminder gaps

    Raises:
        HTTPException: 404 if the lead does not exist
    """
    try:
        return await container.coordinator.get_automation_status(lead_id)
    except NotFoundError as err:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(err)) from err
