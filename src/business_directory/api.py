from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
import hmac
import ipaddress
import logging
from typing import Literal, Optional
import uuid

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from .analytics import get_analytics_summary, get_business_stats, get_platform_stats
from .businesses import BusinessCreate, BusinessUpdate, create_business, list_owner_businesses, update_business
from .categories import list_categories
from .config import Config, load_config
from .dashboard import build_dashboard
from .db import Database
from .errors import DirectoryError, NotFoundError
from .leads import LeadCreate, create_lead, get_owner_lead, lead_summary, owner_leads, update_lead_priority, update_lead_status
from .models import BusinessStatus, LeadPriority, LeadStatus, PlanType, User
from .moderation import (
    AbuseReportCreate,
    change_business_status,
    delete_review,
    list_admin_actions,
    report_abuse,
    require_admin,
    resolve_abuse_report,
    set_review_visibility,
)
from .notifications import EmailSender, deliver_quietly, send_status_notice, send_welcome_email
from .pagination import clamp_limit
from .reviews import create_review, list_business_reviews, respond_to_review
from .search import (
    SearchParams,
    SortKey,
    get_business_by_slug,
    get_businesses_by_category,
    get_featured_businesses,
    search_businesses,
)

logger = logging.getLogger(__name__)

# Input validation limits
MAX_QUERY_LENGTH = 200
MAX_SLUG_LENGTH = 100
MAX_LOCATION_LENGTH = 100


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        return response


def _is_loopback_host(host: Optional[str]) -> bool:
    if not host:
        return False
    candidate = host.strip()
    if not candidate:
        return False
    if candidate == "localhost":
        return True
    try:
        return ipaddress.ip_address(candidate).is_loopback
    except ValueError:
        return False


def require_mutation_auth(
    request: Request,
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    authorization: Optional[str] = Header(default=None),
) -> None:
    config: Config = request.app.state.config
    client_host = request.client.host if request.client else None
    if config.mutation_localhost_bypass and _is_loopback_host(client_host):
        return

    token = x_api_key
    if not token and authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()

    expected = config.admin_api_key
    if not expected:
        raise HTTPException(status_code=401, detail="Mutation API key is required")
    if not token or not hmac.compare_digest(token, expected):
        raise HTTPException(status_code=401, detail="Invalid mutation API key")


def _validate_string_param(value: Optional[str], param_name: str, max_length: int = 100) -> None:
    """Validate string query parameters to prevent abuse.

    Empty or whitespace-only strings are treated as None (no filter applied).
    """
    if value is None:
        return
    if not value.strip():
        return
    if len(value) > max_length:
        raise HTTPException(status_code=400, detail=f"Parameter '{param_name}' exceeds maximum length of {max_length}")
    if any(c in "\x00\n\r" for c in value):
        raise HTTPException(
            status_code=400,
            detail=f"Parameter '{param_name}' contains control characters (null bytes, newlines, or carriage returns) which are not allowed",
        )


def _parse_uuid(value: Optional[str], param_name: str) -> Optional[uuid.UUID]:
    if value is None or not value.strip():
        return None
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Parameter '{param_name}' must be a UUID")


def _actor(session: Session, user_id: Optional[str]) -> User:
    """Resolve the X-User-Id header forwarded by the auth proxy."""
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    try:
        key = uuid.UUID(user_id.strip())
    except ValueError:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = session.get(User, key)
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class ReviewCreateRequest(RequestModel):
    business_id: uuid.UUID
    rating: int = Field(..., ge=1, le=5)
    content: str = Field(..., min_length=10, max_length=1000)
    title: Optional[str] = Field(None, max_length=200)


class ReviewResponseRequest(RequestModel):
    review_id: uuid.UUID
    response: str = Field(..., min_length=1, max_length=1000)


class LeadUpdateRequest(RequestModel):
    status: Optional[LeadStatus] = None
    priority: Optional[LeadPriority] = None

    @model_validator(mode="after")
    def _needs_change(self):
        if self.status is None and self.priority is None:
            raise ValueError("status or priority is required")
        return self


class BusinessStatusRequest(RequestModel):
    business_id: uuid.UUID
    status: BusinessStatus
    reason: Optional[str] = Field(None, max_length=1000)
    send_email: bool = True


class ReviewModerationRequest(RequestModel):
    is_hidden: bool
    admin_note: Optional[str] = Field(None, max_length=1000)


class AbuseReportResolutionRequest(RequestModel):
    status: Literal["RESOLVED", "DISMISSED"]


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DirectoryError)
    async def directory_error(_: Request, exc: DirectoryError):
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(_: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(_: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path")),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return _error(400, "Validation failed", details=details)

    @app.exception_handler(SQLAlchemyError)
    async def persistence_error(request: Request, exc: SQLAlchemyError):
        logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, "Internal server error")


def create_app(
    database: Optional[Database] = None,
    email_sender: Optional[EmailSender] = None,
    config: Optional[Config] = None,
) -> FastAPI:
    config = config or load_config()
    owns_database = database is None
    database = database or Database.from_config(config)
    email_sender = email_sender or EmailSender.from_config(config)
    rating_sort = config.rating_sort_mode

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        try:
            yield
        finally:
            if owns_database:
                database.dispose()

    app = FastAPI(title="Business Directory API", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.database = database
    app.state.email_sender = email_sender

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.frontend_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key", "X-User-Id"],
    )
    _install_error_handlers(app)

    def _limit(limit: Optional[int]) -> int:
        return clamp_limit(limit, config.search_default_limit, config.search_max_limit)

    def _search(
        query: Optional[str],
        category: Optional[str],
        category_id: Optional[str],
        location: Optional[str],
        city: Optional[str],
        country: Optional[str],
        plan: Optional[PlanType],
        tags: Optional[str],
        min_rating: Optional[float],
        sort_by: SortKey,
        page: int,
        limit: Optional[int],
    ) -> dict:
        _validate_string_param(query, "query", max_length=MAX_QUERY_LENGTH)
        _validate_string_param(category, "category", max_length=MAX_SLUG_LENGTH)
        _validate_string_param(location, "location", max_length=MAX_LOCATION_LENGTH)
        _validate_string_param(city, "city", max_length=MAX_LOCATION_LENGTH)
        _validate_string_param(country, "country", max_length=MAX_LOCATION_LENGTH)
        _validate_string_param(tags, "tags", max_length=MAX_QUERY_LENGTH)
        params = SearchParams(
            query=query,
            category_slug=category,
            category_id=_parse_uuid(category_id, "categoryId"),
            location=location,
            city=city,
            country=country,
            plan_type=plan,
            tags=tags,
            min_rating=min_rating,
            sort_by=sort_by,
            page=page,
            limit=_limit(limit),
            rating_sort=rating_sort,
        )
        with database.session_scope() as session:
            return search_businesses(session, params)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/api/search")
    def api_search(
        query: Optional[str] = Query(default=None),
        category: Optional[str] = Query(default=None),
        category_id: Optional[str] = Query(default=None, alias="categoryId"),
        location: Optional[str] = Query(default=None),
        city: Optional[str] = Query(default=None),
        country: Optional[str] = Query(default=None),
        tags: Optional[str] = Query(default=None, description="Comma-separated; any of them matches"),
        min_rating: Optional[float] = Query(default=None, alias="minRating", ge=1, le=5),
        sort_by: SortKey = Query(default="relevance", alias="sortBy"),
        page: int = Query(default=1, ge=1),
        limit: Optional[int] = Query(default=None, ge=1, le=100),
    ) -> dict:
        return _search(query, category, category_id, location, city, country, None, tags, min_rating, sort_by, page, limit)

    @app.get("/api/businesses")
    def api_businesses(
        q: Optional[str] = Query(default=None),
        category: Optional[str] = Query(default=None),
        category_id: Optional[str] = Query(default=None, alias="categoryId"),
        location: Optional[str] = Query(default=None),
        city: Optional[str] = Query(default=None),
        country: Optional[str] = Query(default=None),
        plan: Optional[PlanType] = Query(default=None),
        tags: Optional[str] = Query(default=None, description="Comma-separated; any of them matches"),
        min_rating: Optional[float] = Query(default=None, alias="minRating", ge=1, le=5),
        sort_by: SortKey = Query(default="relevance", alias="sortBy"),
        page: int = Query(default=1, ge=1),
        limit: Optional[int] = Query(default=None, ge=1, le=100),
    ) -> dict:
        return _search(q, category, category_id, location, city, country, plan, tags, min_rating, sort_by, page, limit)

    @app.post("/api/businesses", status_code=201, dependencies=[Depends(require_mutation_auth)])
    def api_create_business(
        payload: BusinessCreate,
        background_tasks: BackgroundTasks,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            owner = _actor(session, x_user_id)
            first_listing = owner.role == "VISITOR"
            created = create_business(session, owner, payload)
            recipient = owner.email
            recipient_name = owner.name or owner.email.split("@")[0]
        # Queued only once the listing has committed.
        if first_listing and recipient:
            background_tasks.add_task(
                deliver_quietly, send_welcome_email, email_sender, recipient, recipient_name, created["name"]
            )
        return created

    @app.get("/api/businesses/featured")
    def api_featured_businesses(limit: int = Query(default=6, ge=1, le=24)) -> dict:
        with database.session_scope() as session:
            return {"businesses": get_featured_businesses(session, limit=limit)}

    @app.get("/api/businesses/{slug}")
    def api_business_by_slug(slug: str) -> dict:
        _validate_string_param(slug, "slug", max_length=MAX_SLUG_LENGTH)
        with database.session_scope() as session:
            business = get_business_by_slug(session, slug)
        if business is None:
            raise NotFoundError("Business not found")
        return business

    @app.patch("/api/businesses/{business_id}", dependencies=[Depends(require_mutation_auth)])
    def api_update_business(
        business_id: uuid.UUID,
        payload: BusinessUpdate,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            actor = _actor(session, x_user_id)
            return update_business(session, actor, business_id, payload)

    @app.get("/api/categories")
    def api_categories(
        include_count: bool = Query(default=True, alias="includeCount"),
        parent_id: Optional[str] = Query(default=None, alias="parentId"),
    ) -> list[dict]:
        parent = _parse_uuid(parent_id, "parentId")
        with database.session_scope() as session:
            return list_categories(
                session,
                parent_id=parent,
                roots_only=parent is None,
                include_children=parent is None,
                include_count=include_count,
            )

    @app.get("/api/categories/{slug}/businesses")
    def api_category_businesses(
        slug: str,
        page: int = Query(default=1, ge=1),
        limit: Optional[int] = Query(default=None, ge=1, le=100),
        sort_by: SortKey = Query(default="relevance", alias="sortBy"),
    ) -> dict:
        _validate_string_param(slug, "slug", max_length=MAX_SLUG_LENGTH)
        with database.session_scope() as session:
            result = get_businesses_by_category(
                session, slug, page=page, limit=_limit(limit), sort_by=sort_by, rating_sort=rating_sort
            )
        if result is None:
            raise NotFoundError("Category not found")
        return result

    @app.post("/api/reviews", status_code=201, dependencies=[Depends(require_mutation_auth)])
    def api_create_review(
        payload: ReviewCreateRequest,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            user = _actor(session, x_user_id)
            return create_review(session, user, payload.business_id, payload.rating, payload.content, payload.title)

    @app.get("/api/reviews")
    def api_reviews(
        business_id: uuid.UUID = Query(..., alias="businessId"),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
    ) -> dict:
        with database.session_scope() as session:
            return list_business_reviews(session, business_id, page=page, limit=limit)

    @app.post("/api/leads", dependencies=[Depends(require_mutation_auth)])
    def api_create_lead(payload: LeadCreate) -> dict:
        with database.session_scope() as session:
            return create_lead(session, payload)

    @app.get("/api/leads")
    def api_lead_summary(business_id: uuid.UUID = Query(..., alias="businessId")) -> dict:
        with database.session_scope() as session:
            return lead_summary(session, business_id)

    @app.post("/api/abuse-reports", status_code=201, dependencies=[Depends(require_mutation_auth)])
    def api_report_abuse(
        payload: AbuseReportCreate,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            reporter = _actor(session, x_user_id) if x_user_id else None
            return report_abuse(session, payload, reporter)

    @app.get("/api/stats")
    def api_stats() -> dict:
        with database.session_scope() as session:
            return get_platform_stats(session)

    @app.get("/api/dashboard")
    def api_dashboard(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> dict:
        with database.session_scope() as session:
            return build_dashboard(session, _actor(session, x_user_id))

    @app.get("/api/dashboard/businesses")
    def api_dashboard_businesses(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> dict:
        with database.session_scope() as session:
            owner = _actor(session, x_user_id)
            return {"businesses": list_owner_businesses(session, owner.id)}

    @app.get("/api/dashboard/businesses/{business_id}/stats")
    def api_dashboard_business_stats(
        business_id: uuid.UUID,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            return get_business_stats(session, _actor(session, x_user_id), business_id)

    @app.get("/api/dashboard/leads/{business_id}")
    def api_dashboard_leads(
        business_id: uuid.UUID,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            return owner_leads(session, _actor(session, x_user_id), business_id)

    @app.get("/api/dashboard/leads/{business_id}/{lead_id}")
    def api_dashboard_lead(
        business_id: uuid.UUID,
        lead_id: uuid.UUID,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            return get_owner_lead(session, _actor(session, x_user_id), business_id, lead_id)

    @app.patch("/api/dashboard/leads/{business_id}/{lead_id}", dependencies=[Depends(require_mutation_auth)])
    def api_dashboard_update_lead(
        business_id: uuid.UUID,
        lead_id: uuid.UUID,
        payload: LeadUpdateRequest,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            owner = _actor(session, x_user_id)
            result: dict = {"success": True}
            if payload.status is not None:
                result = update_lead_status(session, owner, business_id, lead_id, payload.status)
            if payload.priority is not None:
                result = {**result, **update_lead_priority(session, owner, business_id, lead_id, payload.priority)}
            return result

    @app.post("/api/dashboard/reviews/{business_id}/respond", dependencies=[Depends(require_mutation_auth)])
    def api_dashboard_respond(
        business_id: uuid.UUID,
        payload: ReviewResponseRequest,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            owner = _actor(session, x_user_id)
            return respond_to_review(session, owner, business_id, payload.review_id, payload.response)

    @app.post("/api/admin/business-status", dependencies=[Depends(require_mutation_auth)])
    def api_admin_business_status(
        payload: BusinessStatusRequest,
        background_tasks: BackgroundTasks,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            admin = _actor(session, x_user_id)
            result, notice = change_business_status(
                session,
                admin,
                payload.business_id,
                payload.status,
                reason=payload.reason,
                send_email=payload.send_email,
            )
        if notice is not None:
            background_tasks.add_task(deliver_quietly, send_status_notice, email_sender, notice)
        return result

    @app.patch("/api/admin/reviews/{review_id}", dependencies=[Depends(require_mutation_auth)])
    def api_admin_review_visibility(
        review_id: uuid.UUID,
        payload: ReviewModerationRequest,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            admin = _actor(session, x_user_id)
            return set_review_visibility(session, admin, review_id, payload.is_hidden, payload.admin_note)

    @app.delete("/api/admin/reviews/{review_id}", dependencies=[Depends(require_mutation_auth)])
    def api_admin_delete_review(
        review_id: uuid.UUID,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            return delete_review(session, _actor(session, x_user_id), review_id)

    @app.patch("/api/admin/abuse-reports/{report_id}", dependencies=[Depends(require_mutation_auth)])
    def api_admin_resolve_report(
        report_id: uuid.UUID,
        payload: AbuseReportResolutionRequest,
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            return resolve_abuse_report(session, _actor(session, x_user_id), report_id, payload.status)

    @app.get("/api/admin/analytics")
    def api_admin_analytics(
        date_from: Optional[date] = Query(default=None, alias="dateFrom"),
        date_to: Optional[date] = Query(default=None, alias="dateTo"),
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> dict:
        with database.session_scope() as session:
            require_admin(_actor(session, x_user_id))
            return get_analytics_summary(session, date_from, date_to)

    @app.get("/api/admin/actions")
    def api_admin_actions(
        limit: int = Query(default=50, ge=1, le=500),
        x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    ) -> list[dict]:
        with database.session_scope() as session:
            require_admin(_actor(session, x_user_id))
            return list_admin_actions(session, limit=limit)

    return app
