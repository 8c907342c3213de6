"""FastAPI REST endpoints for the shipment tracking service."""

from datetime import datetime
from typing import Dict, List, Any, Optional
from fastapi import APIRouter, Body, HTTPException, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from ..core.assembler import TimelineAssembler
from ..core.exceptions import (
    TrackerError,
    RateLimitExceededError,
    RecordNotFoundError,
    create_error_response
)
from ..core.logging import get_logger, bind_request_context, reset_request_context
from ..core.metrics import MetricsCollector
from ..core.middleware import client_ip, get_status_code_for_error
from ..models.core import LayoutKind, ResolutionMode, TimelineView
from ..storage.record_source import RecordSource

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["tracking"])


def get_services(request: Request):
    """Dependency to get the application's service container."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Tracking services not initialized"
        )
    return services


def get_assembler(services=Depends(get_services)) -> TimelineAssembler:
    """Dependency to get the timeline assembler."""
    return services.assembler


def get_record_source(services=Depends(get_services)) -> RecordSource:
    """Dependency to get the record source."""
    return services.record_source


def get_metrics(services=Depends(get_services)) -> MetricsCollector:
    """Dependency to get the metrics collector."""
    return services.metrics


def enforce_rate_limit(request: Request, services=Depends(get_services)) -> None:
    """Dependency rejecting clients that exceeded their allowance."""
    if services.rate_limiter is None:
        return
    try:
        services.rate_limiter.enforce(client_ip(request))
    except RateLimitExceededError as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=create_error_response(e),
            headers={"Retry-After": str(e.retry_after)}
        )


def _raise_http_error(error: TrackerError) -> None:
    raise HTTPException(
        status_code=get_status_code_for_error(error),
        detail=create_error_response(error)
    )


# Request/Response models
class TrackingQuery(BaseModel):
    """Request body for a tracking lookup."""
    model_config = ConfigDict(populate_by_name=True)

    order_no: Optional[str] = Field(None, alias="orderNo", description="Order number")
    tracking_no: Optional[str] = Field(None, alias="trackingNo", description="Tracking number")


class TrackingData(BaseModel):
    """Shipment summary together with its timeline."""
    order_no: str
    tracking_no: str
    shipment_type: Optional[str] = None
    status: Optional[str] = None
    last_update: Optional[str] = None
    timeline: TimelineView


class TrackingResponse(BaseModel):
    """Response model for tracking lookups."""
    success: bool = True
    data: TrackingData


class WorkflowSummary(BaseModel):
    """Catalog entry as listed by the API."""
    key: str
    name: str
    layout_kind: LayoutKind
    shipment_type_labels: List[str]
    steps: List[str]
    events: List[str]


class WorkflowListResponse(BaseModel):
    """Response model for the workflow listing."""
    catalog: str
    resolution_mode: ResolutionMode
    workflows: List[WorkflowSummary]


class TimelineRequest(BaseModel):
    """Request model for assembling a timeline from explicit inputs."""
    workflow: str = Field(..., description="Selector key or shipment type label")
    mode: Optional[ResolutionMode] = Field(None, description="Resolution mode, defaults to the configured one")
    current_step: Optional[int] = Field(None, description="Current ordinal for ordinal mode")
    milestones: Dict[str, Any] = Field(default_factory=dict, description="Milestone field values")
    include_events: bool = Field(default=True, description="Whether event overlays are shown")


# Endpoints

def _track(order_no: Optional[str], tracking_no: Optional[str], request: Request, services) -> TrackingResponse:
    if not order_no or not order_no.strip() or not tracking_no or not tracking_no.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "MissingParameters",
                "message": "Both orderNo and trackingNo are required",
                "details": {"order_no": order_no, "tracking_no": tracking_no},
                "timestamp": datetime.utcnow().isoformat()
            }
        )

    order_no, tracking_no = order_no.strip().upper(), tracking_no.strip().upper()
    request.state.order_no = order_no
    request.state.tracking_no = tracking_no
    context_token = bind_request_context(order_no=order_no, tracking_no=tracking_no)

    try:
        record = services.record_source.fetch(order_no, tracking_no)
        if record is None:
            raise RecordNotFoundError(order_no, tracking_no)

        timeline = services.assembler.assemble(
            record.shipment_type or "",
            record=record.milestones,
            explicit_ordinal=record.current_step,
            include_events=services.config.include_events
        )
    except TrackerError as e:
        logger.warning(f"Tracking lookup for {order_no}/{tracking_no} failed: {e.error_code}")
        _raise_http_error(e)
    else:
        logger.info(f"Tracking lookup for {order_no}/{tracking_no} resolved to '{timeline.selector_key}'")
    finally:
        reset_request_context(context_token)

    return TrackingResponse(
        data=TrackingData(
            order_no=record.order_no,
            tracking_no=record.tracking_no,
            shipment_type=record.shipment_type,
            status=record.status,
            last_update=record.last_update,
            timeline=timeline
        )
    )


@router.get(
    "/tracking",
    response_model=TrackingResponse,
    summary="Look up a shipment",
    description="Fetch a shipment by order and tracking number and return its timeline",
    dependencies=[Depends(enforce_rate_limit)]
)
def get_tracking(
    request: Request,
    order_no: Optional[str] = Query(None, alias="orderNo"),
    tracking_no: Optional[str] = Query(None, alias="trackingNo"),
    services=Depends(get_services)
) -> TrackingResponse:
    """Look up a shipment from query parameters."""
    return _track(order_no, tracking_no, request, services)


@router.post(
    "/tracking",
    response_model=TrackingResponse,
    summary="Look up a shipment",
    description="Fetch a shipment by order and tracking number given in the request body",
    dependencies=[Depends(enforce_rate_limit)]
)
def post_tracking(
    query: TrackingQuery,
    request: Request,
    services=Depends(get_services)
) -> TrackingResponse:
    """Look up a shipment from a JSON body."""
    return _track(query.order_no, query.tracking_no, request, services)


@router.get(
    "/workflows",
    response_model=WorkflowListResponse,
    summary="List workflow shapes"
)
async def list_workflows(assembler: TimelineAssembler = Depends(get_assembler)) -> WorkflowListResponse:
    """List the shapes of the configured catalog."""
    catalog = assembler.catalog
    return WorkflowListResponse(
        catalog=catalog.name,
        resolution_mode=assembler.resolver.mode,
        workflows=[
            WorkflowSummary(
                key=shape.key,
                name=shape.name,
                layout_kind=shape.layout_kind,
                shipment_type_labels=list(shape.shipment_type_labels),
                steps=[step.title for step in shape.main_steps],
                events=[step.title for step in shape.events]
            )
            for shape in catalog.list_shapes()
        ]
    )


@router.get(
    "/workflows/{selector_key}/timeline",
    response_model=TimelineView,
    summary="Preview a workflow timeline",
    description="Resolve a workflow shape in ordinal mode at the given current step"
)
async def preview_timeline(
    selector_key: str,
    current_step: int = Query(1, description="Current ordinal"),
    include_events: bool = Query(True),
    assembler: TimelineAssembler = Depends(get_assembler)
) -> TimelineView:
    """Preview a shape at a given step."""
    try:
        return assembler.assemble(
            selector_key,
            explicit_ordinal=current_step,
            mode=ResolutionMode.ORDINAL,
            include_events=include_events
        )
    except TrackerError as e:
        _raise_http_error(e)


@router.post(
    "/timeline",
    response_model=TimelineView,
    summary="Assemble a timeline",
    description="Assemble a timeline from an explicit workflow, mode and milestone record"
)
async def assemble_timeline(
    request: TimelineRequest,
    assembler: TimelineAssembler = Depends(get_assembler)
) -> TimelineView:
    """Assemble a timeline from the request body."""
    try:
        return assembler.assemble(
            request.workflow,
            record=request.milestones,
            explicit_ordinal=request.current_step,
            mode=request.mode,
            include_events=request.include_events
        )
    except TrackerError as e:
        _raise_http_error(e)


@router.get("/monitoring/stats", summary="Request statistics")
async def monitoring_stats(metrics: MetricsCollector = Depends(get_metrics)) -> Dict[str, Any]:
    """Summarize requests observed in the current monitoring window."""
    return {"success": True, "data": metrics.stats()}


@router.post("/monitoring/reset", summary="Start a new monitoring window")
async def reset_monitoring(metrics: MetricsCollector = Depends(get_metrics)) -> Dict[str, Any]:
    """Discard collected metrics."""
    metrics.reset()
    logger.info("Monitoring window reset")
    return {"success": True, "window_started": metrics.window_started.isoformat()}


@router.post("/usage", summary="Record a usage beacon")
async def record_usage(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    metrics: MetricsCollector = Depends(get_metrics)
) -> Dict[str, Any]:
    """Store a usage beacon sent by a front end."""
    metrics.record_usage(payload, client_ip=client_ip(request))
    return {"success": True}


@router.get("/health", summary="Service health")
async def health(services=Depends(get_services)) -> Dict[str, Any]:
    """Basic health check including the record source in use."""
    source = services.record_source.describe()
    return {
        "status": "ok",
        "message": f"{services.config.app_name} is running",
        "timestamp": datetime.utcnow().isoformat(),
        "using_mock_data": source.get("using_mock_data", False),
        "catalog": services.assembler.catalog.name
    }
