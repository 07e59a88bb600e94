"""
Admin API: dashboard, content management and analytics reporting.
Protected by the X-Admin-Key header.
"""

from dataclasses import asdict
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field, field_validator
from sqlmodel import Session

from challenge_hub.api import deps
from challenge_hub.core.typing import to_utc_naive, utc_now
from challenge_hub.db import get_optional_session, get_session
from challenge_hub.models import Assignment, Challenge
from challenge_hub.services import admin_analytics, content_admin, dashboard, labels
from challenge_hub.services.admin_analytics import DateRange
from challenge_hub.services.content_admin import InvalidSlugError, NotFoundError, SlugConflictError
from challenge_hub.services.health import check_health

router = APIRouter(dependencies=[Depends(deps.require_admin)])


# --- Schemas --------------------------------------------------------------


class ClientCreate(BaseModel):
    name: str = Field(min_length=1)
    logo_url: Optional[str] = None


class ChallengeCreate(BaseModel):
    client_id: str
    internal_name: str = Field(min_length=1)
    public_title: Optional[str] = None
    show_public_title: bool = True
    slug: Optional[str] = None
    description: Optional[str] = None
    visual_url: Optional[str] = None
    brand_color: Optional[str] = None
    support_info: Optional[str] = None
    contact_info: Optional[str] = None
    password_instructions: Optional[str] = None


class ArchiveRequest(BaseModel):
    archived: bool = True


class SprintCreate(BaseModel):
    name: str = Field(min_length=1)
    position: Optional[int] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    password: Optional[str] = None

    @field_validator("starts_at", "ends_at")
    @classmethod
    def normalize_datetime(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(value)


class UsageCreate(BaseModel):
    assignment_id: str
    position: Optional[int] = None
    label: Optional[str] = None
    is_visible: bool = True
    release_at: Optional[datetime] = None
    sprint_id: Optional[str] = None

    @field_validator("release_at")
    @classmethod
    def normalize_release_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(value)


class AssignmentCreate(BaseModel):
    internal_title: str = Field(min_length=1)
    public_title: Optional[str] = None
    subtitle: Optional[str] = None
    slug: Optional[str] = None
    instructions: Optional[str] = None
    instructions_html: Optional[str] = None
    content: Optional[str] = None
    content_html: Optional[str] = None
    visual_url: Optional[str] = None
    media_url: Optional[str] = None
    password: Optional[str] = None


class AssignmentUpdate(BaseModel):
    internal_title: Optional[str] = None
    public_title: Optional[str] = None
    subtitle: Optional[str] = None
    slug: Optional[str] = None
    instructions: Optional[str] = None
    instructions_html: Optional[str] = None
    content: Optional[str] = None
    content_html: Optional[str] = None
    visual_url: Optional[str] = None
    media_url: Optional[str] = None
    password: Optional[str] = None
    remove_password: bool = False

    @field_validator("internal_title")
    @classmethod
    def require_internal_title(cls, value: Optional[str]) -> str:
        if value is None or not value.strip():
            raise ValueError("internal_title cannot be empty")
        return value


class LabelsUpdate(BaseModel):
    labels: dict[str, str]


def assignment_out(assignment: Assignment) -> dict:
    """Assignment fields for admin responses; the password hash is never exposed."""
    data = assignment.model_dump(exclude={"password_hash"})
    data["has_password"] = bool(assignment.password_hash)
    return data


def challenge_out(challenge: Challenge, client_name: Optional[str] = None) -> dict:
    data = challenge.model_dump()
    data["client_name"] = client_name
    data["url"] = f"/c/{challenge.slug}"
    return data


def _not_found(e: NotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _slug_error(e: ValueError) -> HTTPException:
    if isinstance(e, SlugConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


def parse_date_range(date_from: Optional[str], date_to: Optional[str]) -> Optional[DateRange]:
    if not date_from and not date_to:
        return None
    if not date_from or not date_to:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Both 'from' and 'to' are required for a date range",
        )
    try:
        return DateRange.parse(date_from, date_to)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Dates must be YYYY-MM-DD or ISO-8601",
        )


# --- Dashboard ------------------------------------------------------------


@router.get("")
def get_dashboard(db: Optional[Session] = Depends(get_optional_session)):
    """Dashboard stats, recent activity and database health."""
    return {
        "stats": asdict(dashboard.get_dashboard_stats(db)),
        "recent_activity": [asdict(a) for a in dashboard.get_recent_activity(db)],
        "health": check_health(db),
    }


@router.get("/health")
def get_health(db: Optional[Session] = Depends(get_optional_session)):
    return check_health(db)


# --- Clients --------------------------------------------------------------


@router.get("/clients")
def list_clients(db: Session = Depends(get_session)):
    return [client.model_dump() for client in content_admin.list_clients(db)]


@router.post("/clients", status_code=status.HTTP_201_CREATED)
def create_client(data: ClientCreate, db: Session = Depends(get_session)):
    return content_admin.create_client(db, data.name, data.logo_url).model_dump()


@router.get("/clients/{client_id}")
def get_client(client_id: str, db: Session = Depends(get_session)):
    try:
        client, challenges = content_admin.get_client_with_challenges(db, client_id)
    except NotFoundError as e:
        raise _not_found(e)
    return {
        **client.model_dump(),
        "challenges": [challenge_out(c, client.name) for c in challenges],
    }


# --- Challenges -----------------------------------------------------------


@router.get("/challenges")
def list_challenges(include_archived: bool = False, db: Session = Depends(get_session)):
    return [
        challenge_out(challenge, client.name if client else None)
        for challenge, client in content_admin.list_challenges(db, include_archived)
    ]


@router.post("/challenges", status_code=status.HTTP_201_CREATED)
def create_challenge(data: ChallengeCreate, db: Session = Depends(get_session)):
    fields = data.model_dump(exclude={"client_id", "slug"})
    try:
        challenge = content_admin.create_challenge(db, data.client_id, slug=data.slug, **fields)
    except NotFoundError as e:
        raise _not_found(e)
    except (InvalidSlugError, SlugConflictError) as e:
        raise _slug_error(e)
    return challenge_out(challenge)


@router.post("/challenges/{challenge_id}/archive")
def archive_challenge(
    challenge_id: str, data: Optional[ArchiveRequest] = None, db: Session = Depends(get_session)
):
    archived = data.archived if data else True
    try:
        challenge = content_admin.archive_challenge(db, challenge_id, archived)
    except NotFoundError as e:
        raise _not_found(e)
    return challenge_out(challenge)


@router.post("/challenges/{challenge_id}/sprints", status_code=status.HTTP_201_CREATED)
def create_sprint(challenge_id: str, data: SprintCreate, db: Session = Depends(get_session)):
    try:
        sprint = content_admin.create_sprint(db, challenge_id, **data.model_dump())
    except NotFoundError as e:
        raise _not_found(e)
    out = sprint.model_dump(exclude={"password_hash"})
    out["has_password"] = bool(sprint.password_hash)
    return out


@router.post("/challenges/{challenge_id}/usages", status_code=status.HTTP_201_CREATED)
def add_usage(challenge_id: str, data: UsageCreate, db: Session = Depends(get_session)):
    try:
        usage = content_admin.add_assignment_usage(db, challenge_id, **data.model_dump())
    except NotFoundError as e:
        raise _not_found(e)
    return usage.model_dump()


@router.put("/challenges/{challenge_id}/labels")
def put_labels(challenge_id: str, data: LabelsUpdate, db: Session = Depends(get_session)):
    result = labels.set_labels(db, challenge_id, data.labels)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.error)
    return {"labels": [label.model_dump() for label in result.value]}


@router.delete("/challenges/{challenge_id}/labels")
def delete_labels(challenge_id: str, db: Session = Depends(get_session)):
    result = labels.delete_all_labels(db, challenge_id)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.error)
    return {"success": True}


@router.delete("/challenges/{challenge_id}/labels/{key}")
def delete_label(challenge_id: str, key: str, db: Session = Depends(get_session)):
    result = labels.delete_label(db, challenge_id, key)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=result.error)
    return {"success": True}


# --- Assignments ----------------------------------------------------------


@router.get("/assignments")
def list_assignments(db: Session = Depends(get_session)):
    return [assignment_out(a) for a in content_admin.list_assignments(db)]


@router.post("/assignments", status_code=status.HTTP_201_CREATED)
def create_assignment(data: AssignmentCreate, db: Session = Depends(get_session)):
    fields = data.model_dump(exclude={"internal_title", "slug", "password"})
    try:
        assignment = content_admin.create_assignment(
            db, data.internal_title, slug=data.slug, password=data.password, **fields
        )
    except (InvalidSlugError, SlugConflictError) as e:
        raise _slug_error(e)
    return assignment_out(assignment)


@router.patch("/assignments/{assignment_id}")
def update_assignment(assignment_id: str, data: AssignmentUpdate, db: Session = Depends(get_session)):
    updates = data.model_dump(exclude_unset=True, exclude={"password", "remove_password"})
    try:
        assignment = content_admin.update_assignment(
            db,
            assignment_id,
            updates,
            password=data.password,
            remove_password=data.remove_password,
        )
    except NotFoundError as e:
        raise _not_found(e)
    except (InvalidSlugError, SlugConflictError) as e:
        raise _slug_error(e)
    return assignment_out(assignment)


# --- Analytics ------------------------------------------------------------


@router.get("/analytics")
def get_analytics(
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    challenge_id: Optional[str] = None,
    days: int = Query(default=30, ge=1, le=365),
    db: Optional[Session] = Depends(get_optional_session),
):
    """Overview, per-challenge stats and the daily views chart."""
    date_range = parse_date_range(date_from, date_to)
    return {
        "overview": asdict(admin_analytics.get_overview_stats(db, date_range)),
        "challenges": [asdict(s) for s in admin_analytics.get_challenge_stats(db, date_range)],
        "daily": [asdict(d) for d in admin_analytics.get_daily_view_counts(db, challenge_id, days)],
    }


@router.get("/analytics/challenges/{challenge_id}/assignments")
def get_assignment_analytics(
    challenge_id: str,
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    db: Optional[Session] = Depends(get_optional_session),
):
    date_range = parse_date_range(date_from, date_to)
    return [asdict(s) for s in admin_analytics.get_assignment_stats(db, challenge_id, date_range)]


@router.get("/analytics/export")
def export_analytics(
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    challenge_id: Optional[str] = None,
    db: Optional[Session] = Depends(get_optional_session),
):
    """CSV download of raw events, newest first."""
    date_range = parse_date_range(date_from, date_to)
    csv_text = admin_analytics.export_analytics_csv(db, challenge_id, date_range)
    filename = f"analytics-export-{utc_now().date().isoformat()}.csv"
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
