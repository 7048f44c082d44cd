"""
GraftWatch - REST API

FastAPI application hosting one client process of the report platform:
submission, the public feed, credibility votes, discussion threads and the
admin moderation screens. All state lives in the shared document store.

The caller presents a Firebase ID token as ``Authorization: Bearer <token>``
when Firebase is configured; otherwise the ``X-User-Id`` header carries a uid
already verified upstream by the identity provider.

Run with: uvicorn graftwatch.api.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from graftwatch import __version__
from graftwatch.auth import create_identity_provider
from graftwatch.auth.identity import CurrentUser, require_user
from graftwatch.core.config import settings
from graftwatch.core.constants import CORRUPTION_TYPES
from graftwatch.core.exceptions import (
    GraftWatchError,
    NotFoundError,
    PartialWriteError,
    PermissionDeniedError,
    ReportValidationError,
    TransientStoreError,
)
from graftwatch.core.geo_utils import BoundingBox
from graftwatch.core.logging import setup_logging
from graftwatch.crowdsource.comments import CommentService
from graftwatch.crowdsource.models import Location, Report
from graftwatch.crowdsource.moderation import ModerationStateMachine
from graftwatch.crowdsource.proximity import reports_in_bbox
from graftwatch.crowdsource.report_handler import ReportHandler
from graftwatch.crowdsource.validation import encode_image
from graftwatch.crowdsource.votes import VoteConsistencyEngine
from graftwatch.ingestion.geocoding import ReverseGeocoder
from graftwatch.store import DocumentStore, create_store
from graftwatch.store.sql import SqlDocumentStore
from graftwatch.sync.coordinator import SyncCoordinator
from graftwatch.visualization.map_generator import create_report_map

logger = logging.getLogger(__name__)


# ============================================================================
# Services
# ============================================================================

class Services:
    """Engines bound to one shared store."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self.identity = create_identity_provider(store)
        self.reports = ReportHandler(store)
        self.votes = VoteConsistencyEngine(store)
        self.comments = CommentService(store)
        self.moderation = ModerationStateMachine(store)
        self.sync = SyncCoordinator(store)
        self.geocoder = ReverseGeocoder()

    async def close(self) -> None:
        self.sync.close_all()
        await self.geocoder.aclose()
        await self.store.close()


_services: Optional[Services] = None


def init_services(store: Optional[DocumentStore] = None) -> Services:
    """(Re)bind the API to a store; the configured store when None."""
    global _services
    _services = Services(store or create_store())
    logger.info(f"API bound to {type(_services.store).__name__}")
    return _services


def get_services() -> Services:
    if _services is None:
        return init_services()
    return _services


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    services = get_services()
    if isinstance(services.store, SqlDocumentStore):
        services.store.start_polling()
    yield
    await services.close()


# FastAPI app
app = FastAPI(
    title="GraftWatch",
    description="Crowdsourced corruption reporting with community credibility votes and moderation",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Pydantic Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: str
    store: str


class LocationModel(BaseModel):
    lat: float
    lng: float
    address: str = ""


class ReportCreateRequest(BaseModel):
    """Request to submit a corruption report."""
    description: str = Field(..., min_length=1)
    corruption_type: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None
    evidence_base64: List[str] = Field(default_factory=list)
    evidence_links: List[str] = Field(default_factory=list)


class ReportResponse(BaseModel):
    """Corruption report response."""
    id: str
    user_id: str
    description: str
    corruption_type: str
    location: Optional[LocationModel]
    evidence_base64: List[str]
    evidence_links: List[str]
    status: str
    votes: Dict[str, int]
    created_at: Optional[str]
    updated_at: Optional[str]
    distance_km: Optional[float] = None


class ReportListResponse(BaseModel):
    """List of reports."""
    count: int
    reports: List[ReportResponse]


class ReportDetailResponse(BaseModel):
    report: ReportResponse
    user_vote: Optional[str] = None
    comment_count: int = 0


class ReportStatsResponse(BaseModel):
    """Report statistics."""
    total_reports: int
    pending_count: int
    by_status: dict
    by_type: dict
    with_images: int
    with_links: int
    approval_rate: float


class ReportEditRequest(BaseModel):
    """Admin edit of report content."""
    description: Optional[str] = None
    corruption_type: Optional[str] = None
    address: Optional[str] = None
    evidence_links: Optional[List[str]] = None
    remove_image_indices: List[int] = Field(default_factory=list)


class StatusChangeResponse(BaseModel):
    report_id: str
    previous: str
    current: str
    changed: bool


class VoteRequest(BaseModel):
    """Credibility vote."""
    type: str = Field(..., pattern="^(true|suspicious|needEvidence)$")


class VoteResponse(BaseModel):
    report_id: str
    previous: Optional[str]
    current: Optional[str]
    votes: Dict[str, int]


class CommentCreateRequest(BaseModel):
    text: str = Field(..., min_length=1)
    parent_id: Optional[str] = None


class CommentEditRequest(BaseModel):
    text: str = Field(..., min_length=1)


class ProfileCreateRequest(BaseModel):
    email: str = ""


# ============================================================================
# Helper Functions
# ============================================================================

def http_error(error: GraftWatchError) -> HTTPException:
    """Translate an engine error into an HTTP error."""
    if isinstance(error, PermissionDeniedError):
        return HTTPException(status_code=403, detail=error.message)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, ReportValidationError):
        return HTTPException(status_code=422, detail=error.errors)
    if isinstance(error, PartialWriteError):
        return HTTPException(status_code=409, detail={
            "message": error.message,
            "completed_steps": error.completed_steps,
            "failed_step": error.failed_step,
        })
    if isinstance(error, TransientStoreError):
        return HTTPException(status_code=503, detail=error.message)
    return HTTPException(status_code=500, detail=error.message)


def report_response(report: Report, distance_km: Optional[float] = None) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        user_id=report.user_id,
        description=report.description,
        corruption_type=report.corruption_type,
        location=LocationModel(**report.location.to_dict()) if report.location else None,
        evidence_base64=report.evidence_base64,
        evidence_links=report.evidence_links,
        status=report.status.value,
        votes=report.votes,
        created_at=report.created_at.isoformat() if report.created_at else None,
        updated_at=report.updated_at.isoformat() if report.updated_at else None,
        distance_km=round(distance_km, 3) if distance_km is not None else None,
    )


def report_list(reports: List[Report]) -> ReportListResponse:
    return ReportListResponse(
        count=len(reports),
        reports=[report_response(r) for r in reports],
    )


async def get_current_user(
    authorization: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Optional[CurrentUser]:
    """Resolve the caller; None for anonymous requests."""
    credential = x_user_id
    if authorization and authorization.lower().startswith("bearer "):
        credential = authorization[7:].strip()
    try:
        return await services.identity.resolve(credential)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# System Routes
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(services: Services = Depends(get_services)):
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        store=type(services.store).__name__,
    )


@app.get("/api/v1/corruption-types", tags=["System"])
async def list_corruption_types():
    return {"corruption_types": CORRUPTION_TYPES}


@app.get("/api/v1/geocode/reverse", tags=["System"])
async def reverse_geocode(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    services: Services = Depends(get_services),
):
    """Address for a point, or the coordinates when no address is known."""
    address = await services.geocoder.address_for(lat, lng)
    return {"lat": lat, "lng": lng, "address": address}


# ============================================================================
# Report Routes
# ============================================================================

@app.post("/api/v1/reports", response_model=ReportResponse, status_code=201, tags=["Reports"])
async def create_report(
    request: ReportCreateRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Submit a corruption report.

    New reports are pending and only become public once an administrator
    approves them.
    """
    try:
        location = Location(
            lat=request.latitude,
            lng=request.longitude,
            address=(request.address or "").strip(),
        )
        report = await services.reports.submit_report(
            user,
            description=request.description,
            corruption_type=request.corruption_type,
            location=location,
            evidence_base64=request.evidence_base64,
            evidence_links=request.evidence_links,
        )
        return report_response(report)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/reports/with-photo", response_model=ReportResponse, status_code=201, tags=["Reports"])
async def create_report_with_photo(
    description: str = Form(...),
    corruption_type: str = Form(...),
    latitude: float = Form(...),
    longitude: float = Form(...),
    address: Optional[str] = Form(None),
    evidence_link: Optional[str] = Form(None),
    photo: UploadFile = File(...),
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Submit a report with one photo attached.

    The photo is stored inline as a data URL and must fit the size ceiling.
    """
    try:
        require_user(user)
        photo_data = await photo.read()
        image = encode_image(photo_data, photo.content_type or "image/jpeg")

        if not address:
            address = await services.geocoder.address_for(latitude, longitude)

        report = await services.reports.submit_report(
            user,
            description=description,
            corruption_type=corruption_type,
            location=Location(lat=latitude, lng=longitude, address=address),
            evidence_base64=[image],
            evidence_links=[evidence_link] if evidence_link else [],
        )
        return report_response(report)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/reports", response_model=ReportListResponse, tags=["Reports"])
async def list_reports(
    corruption_type: Optional[str] = Query(None, description="Filter by corruption type"),
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0),
    west: Optional[float] = Query(None, ge=-180, le=180),
    south: Optional[float] = Query(None, ge=-90, le=90),
    east: Optional[float] = Query(None, ge=-180, le=180),
    north: Optional[float] = Query(None, ge=-90, le=90),
    limit: int = Query(default=50, ge=1, le=200),
    services: Services = Depends(get_services),
):
    """
    Public feed of approved reports.

    With ``lat``/``lng`` the feed is narrowed to the nearby radius and
    ordered by distance; otherwise newest first.
    """
    try:
        view = await services.sync.open_feed(corruption_type)
        try:
            if lat is not None and lng is not None:
                entries = view.set_nearby(lat, lng, radius_km)
            else:
                entries = view.state
        finally:
            services.sync.close(view)

        if west is not None and south is not None and east is not None and north is not None:
            inside = {r.id for r in reports_in_bbox([e.report for e in entries], BoundingBox(west, south, east, north))}
            entries = [e for e in entries if e.report.id in inside]

        entries = entries[:limit]
        return ReportListResponse(
            count=len(entries),
            reports=[report_response(e.report, e.distance_km) for e in entries],
        )
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/reports/mine", response_model=ReportListResponse, tags=["Reports"])
async def list_own_reports(
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """The caller's own reports, whatever their status."""
    try:
        return report_list(await services.reports.get_own_reports(user))
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/reports/stats/summary", response_model=ReportStatsResponse, tags=["Reports"])
async def get_report_stats(services: Services = Depends(get_services)):
    """Get statistics for all reports."""
    try:
        stats = await services.reports.get_statistics()
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return ReportStatsResponse(
        total_reports=stats["total_reports"],
        pending_count=stats["pending_count"],
        by_status=stats["by_status"],
        by_type=stats["by_type"],
        with_images=stats["with_images"],
        with_links=stats["with_links"],
        approval_rate=stats["approval_rate"],
    )


@app.get("/api/v1/reports/{report_id}", response_model=ReportDetailResponse, tags=["Reports"])
async def get_report(
    report_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Get one report with the caller's vote.

    Reports that are not approved are visible to their author and to
    administrators only.
    """
    try:
        report = await services.reports.require_report(report_id)
        if not report.is_public:
            if user is None or (user.uid != report.user_id and not user.is_admin):
                raise NotFoundError(f"Report {report_id} not found")

        user_vote = None
        if user is not None:
            user_vote = await services.votes.current_vote(report_id, user.uid)

        return ReportDetailResponse(
            report=report_response(report),
            user_vote=user_vote.value if user_vote else None,
            comment_count=await services.comments.count_comments(report_id),
        )
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/api/v1/reports/{report_id}", status_code=204, tags=["Reports"])
async def delete_report(
    report_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Delete a report.

    Administrators may delete any report; authors only their own reports
    that have not been approved.
    """
    try:
        if user is not None and user.is_admin:
            await services.moderation.delete_report(report_id, user)
        else:
            await services.reports.delete_own_report(report_id, user)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Vote Routes
# ============================================================================

@app.post("/api/v1/reports/{report_id}/vote", response_model=VoteResponse, tags=["Votes"])
async def cast_vote(
    report_id: str,
    request: VoteRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Cast a credibility vote.

    Casting the same kind again withdraws it; a different kind replaces
    the previous vote.
    """
    try:
        outcome = await services.votes.cast_vote(report_id, user, request.type)
        report = await services.reports.require_report(report_id)
        return VoteResponse(
            report_id=report_id,
            previous=outcome.previous.value if outcome.previous else None,
            current=outcome.current.value if outcome.current else None,
            votes=report.votes,
        )
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/api/v1/reports/{report_id}/vote", response_model=VoteResponse, tags=["Votes"])
async def remove_vote(
    report_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        outcome = await services.votes.remove_vote(report_id, user)
        report = await services.reports.require_report(report_id)
        return VoteResponse(
            report_id=report_id,
            previous=outcome.previous.value if outcome.previous else None,
            current=None,
            votes=report.votes,
        )
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Comment Routes
# ============================================================================

@app.get("/api/v1/reports/{report_id}/comments", tags=["Comments"])
async def get_comment_thread(
    report_id: str,
    services: Services = Depends(get_services),
):
    """Threaded discussion of a report, oldest first."""
    try:
        view = await services.sync.open_comment_thread(report_id)
        try:
            if not view.report_exists:
                raise NotFoundError(f"Report {report_id} not found")
            return view.state.to_dict()
        finally:
            services.sync.close(view)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/reports/{report_id}/comments", status_code=201, tags=["Comments"])
async def add_comment(
    report_id: str,
    request: CommentCreateRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        comment_id = await services.comments.add_comment(
            report_id, user, request.text, parent_id=request.parent_id
        )
        comment = await services.comments.get_comment(comment_id)
        return comment.to_dict()
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.put("/api/v1/comments/{comment_id}", tags=["Comments"])
async def edit_comment(
    comment_id: str,
    request: CommentEditRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        await services.comments.edit_comment(comment_id, user, request.text)
        return (await services.comments.get_comment(comment_id)).to_dict()
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/api/v1/comments/{comment_id}", status_code=204, tags=["Comments"])
async def delete_comment(
    comment_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        await services.comments.delete_comment(comment_id, user)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Moderation Routes
# ============================================================================

@app.put("/api/v1/reports/{report_id}/status", response_model=StatusChangeResponse, tags=["Moderation"])
async def update_report_status(
    report_id: str,
    status: str = Query(..., description="New status: pending, approved, rejected"),
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Move a report between moderation states."""
    try:
        transition = await services.moderation.set_status(report_id, user, status)
        return StatusChangeResponse(
            report_id=report_id,
            previous=transition.previous.value,
            current=transition.current.value,
            changed=transition.changed,
        )
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.patch("/api/v1/reports/{report_id}", response_model=ReportResponse, tags=["Moderation"])
async def edit_report(
    report_id: str,
    request: ReportEditRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Edit report content; the moderation status is unchanged."""
    try:
        report = await services.moderation.edit_report(
            report_id,
            user,
            description=request.description,
            corruption_type=request.corruption_type,
            address=request.address,
            evidence_links=request.evidence_links,
            remove_image_indices=request.remove_image_indices,
        )
        return report_response(report)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/reports/{report_id}/recount", tags=["Moderation"])
async def recount_votes(
    report_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Rebuild the tally from the vote records."""
    try:
        votes = await services.votes.recount(report_id, user)
        return {"report_id": report_id, "votes": votes}
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/reports/{report_id}/drift", tags=["Moderation"])
async def get_tally_drift(
    report_id: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Stored tally minus vote-record counts, per kind."""
    try:
        if user is None or not user.is_admin:
            raise PermissionDeniedError("Administrator role required")
        drift = await services.votes.tally_drift(report_id)
        return {"report_id": report_id, "drift": drift, "consistent": not any(drift.values())}
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Admin Routes
# ============================================================================

@app.get("/api/v1/admin/reports", response_model=ReportListResponse, tags=["Admin"])
async def admin_list_reports(
    status: Optional[str] = Query(None, description="Filter by status"),
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Every report, any status, newest first."""
    try:
        view = await services.sync.open_admin_reports(user)
        try:
            reports = view.state
        finally:
            services.sync.close(view)
        if status:
            reports = [r for r in reports if r.status.value == status]
        return report_list(reports)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/admin/users", tags=["Admin"])
async def admin_list_users(
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        view = await services.sync.open_admin_users(user)
        try:
            users = view.state
        finally:
            services.sync.close(view)
        return {"count": len(users), "users": [u.to_dict() for u in users]}
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/admin/comments", tags=["Admin"])
async def admin_list_comments(
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        view = await services.sync.open_admin_comments(user)
        try:
            comments = view.state
        finally:
            services.sync.close(view)
        return {"count": len(comments), "comments": [c.to_dict() for c in comments]}
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# User Routes
# ============================================================================

@app.post("/api/v1/users/me", tags=["Users"])
async def register_profile(
    request: ProfileCreateRequest,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Create the caller's profile on first sign-in."""
    try:
        user = require_user(user)
        profile = await services.identity.register(user.uid, request.email or user.email)
        return profile.to_dict()
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.put("/api/v1/users/{uid}/disabled", tags=["Users"])
async def set_user_disabled(
    uid: str,
    disabled: bool = Query(...),
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        await services.moderation.set_user_disabled(uid, user, disabled)
        return {"uid": uid, "disabled": disabled}
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/api/v1/users/{uid}", status_code=204, tags=["Users"])
async def delete_user_profile(
    uid: str,
    user: Optional[CurrentUser] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    try:
        await services.moderation.delete_user_profile(uid, user)
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Map Routes
# ============================================================================

@app.get("/api/v1/map", response_class=HTMLResponse, tags=["Visualization"])
async def get_report_map(services: Services = Depends(get_services)):
    """Interactive map of approved reports."""
    try:
        view = await services.sync.open_map()
        try:
            reports = view.state
        finally:
            services.sync.close(view)
        return create_report_map(reports)._repr_html_()
    except GraftWatchError as e:
        raise http_error(e)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ============================================================================
# Main
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
