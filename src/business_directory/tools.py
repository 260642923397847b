"""Newline-delimited JSON tool server.

Each input line is one request object:

    {"method": "tools/list"}
    {"method": "tools/call", "params": {"name": "...", "arguments": {...}}}

and produces exactly one output line. Success is ``{"tools": [...]}`` or
``{"content": [{"type": "text", "text": <json>}]}``. Every failure, including
a line that is not JSON at all, uses one envelope:

    {"error": {"code": int, "message": str},
     "content": [{"type": "text", "text": "Error: <message>"}],
     "isError": true}

Messages are handled one at a time; stdout carries protocol frames only.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import IO, Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from .analytics import get_analytics_summary
from .categories import list_categories
from .db import Database
from .errors import DirectoryError, NotFoundError
from .leads import search_leads
from .models import BusinessStatus, LeadPriority, LeadStatus, PlanType, UserRole
from .reviews import search_reviews
from .search import RatingSortMode, SearchParams, SortKey, get_business_details, search_businesses
from .users import get_user_analytics, get_user_by_email, get_user_details, get_users_by_role, search_users

logger = logging.getLogger(__name__)

PARSE_ERROR = -1
UNKNOWN_METHOD = -2
UNKNOWN_TOOL = -3
INVALID_ARGUMENTS = -4
TOOL_FAILURE = -5
NOT_FOUND = -6


class ToolError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def error_response(code: int, message: str) -> dict:
    return {
        "error": {"code": code, "message": message},
        "content": [{"type": "text", "text": f"Error: {message}"}],
        "isError": True,
    }


def text_response(result: Any) -> dict:
    return {"content": [{"type": "text", "text": json.dumps(result, indent=2)}]}


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class SearchBusinessesArgs(ToolArgs):
    query: Optional[str] = Field(None, max_length=200, description="Search term for name, description, services or tags")
    category: Optional[str] = Field(None, max_length=100, description="Category slug to filter by")
    location: Optional[str] = Field(None, max_length=100, description="Matches city, state or country")
    city: Optional[str] = Field(None, max_length=100, description="City to filter by")
    country: Optional[str] = Field(None, max_length=100, description="Country to filter by")
    status: Optional[BusinessStatus] = Field(None, description="Business status to filter by; any status when omitted")
    plan_type: Optional[PlanType] = Field(None, description="Plan type to filter by")
    tags: Optional[list[str]] = Field(None, description="Match businesses carrying any of these tags")
    min_rating: Optional[float] = Field(None, ge=1, le=5, description="Minimum displayed rating (1-5)")
    sort_by: SortKey = "relevance"
    limit: int = Field(10, ge=1, le=100, description="Number of results to return (1-100)")
    offset: int = Field(0, ge=0, description="Number of results to skip")


class BusinessIdArgs(ToolArgs):
    business_id: uuid.UUID = Field(..., description="Business ID")


class ListCategoriesArgs(ToolArgs):
    parent_id: Optional[uuid.UUID] = Field(None, description="Parent category ID (for subcategories)")
    include_business_count: bool = Field(False, description="Include active business count for each category")


class SearchReviewsArgs(ToolArgs):
    business_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    is_hidden: Optional[bool] = None
    limit: int = Field(10, ge=1, le=100)
    offset: int = Field(0, ge=0)


class SearchLeadsArgs(ToolArgs):
    business_id: Optional[uuid.UUID] = None
    status: Optional[LeadStatus] = None
    priority: Optional[LeadPriority] = None
    source: Optional[str] = Field(None, max_length=50)
    limit: int = Field(10, ge=1, le=100)
    offset: int = Field(0, ge=0)


class SearchUsersArgs(ToolArgs):
    email: Optional[str] = Field(None, max_length=254, description="Email to search for (partial match)")
    role: Optional[UserRole] = None
    name: Optional[str] = Field(None, max_length=100, description="Name to search for (partial match)")
    has_businesses: Optional[bool] = None
    has_reviews: Optional[bool] = None
    limit: int = Field(10, ge=1, le=100)
    offset: int = Field(0, ge=0)


class UserDetailsArgs(ToolArgs):
    user_id: uuid.UUID
    include_businesses: bool = True
    include_reviews: bool = True
    include_activity: bool = True


class UserByEmailArgs(ToolArgs):
    email: str = Field(..., max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    include_businesses: bool = True


class UserAnalyticsArgs(ToolArgs):
    user_id: uuid.UUID
    date_from: Optional[date] = Field(None, description="Start date (YYYY-MM-DD)")
    date_to: Optional[date] = Field(None, description="End date (YYYY-MM-DD)")


class UsersByRoleArgs(ToolArgs):
    role: UserRole
    include_stats: bool = True
    limit: int = Field(20, ge=1, le=100)
    offset: int = Field(0, ge=0)


class DateRangeArgs(ToolArgs):
    date_from: Optional[date] = Field(None, description="Start date (YYYY-MM-DD)")
    date_to: Optional[date] = Field(None, description="End date (YYYY-MM-DD)")


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    args_model: type[ToolArgs]
    handler: Callable[[Session, Any, RatingSortMode], Any]

    def describe(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.args_model.model_json_schema(by_alias=True),
        }


def _search_businesses(session: Session, args: SearchBusinessesArgs, rating_sort: RatingSortMode) -> dict:
    params = SearchParams(
        query=args.query,
        category_slug=args.category,
        location=args.location,
        city=args.city,
        country=args.country,
        status=args.status,
        plan_type=args.plan_type,
        tags=args.tags,
        min_rating=args.min_rating,
        sort_by=args.sort_by,
        limit=args.limit,
        offset=args.offset,
        rating_sort=rating_sort,
    )
    return search_businesses(session, params)


def _list_categories(session: Session, args: ListCategoriesArgs, _: RatingSortMode) -> list[dict]:
    return list_categories(
        session,
        parent_id=args.parent_id,
        roots_only=args.parent_id is None,
        include_children=True,
        include_count=args.include_business_count,
    )


TOOLS: tuple[Tool, ...] = (
    Tool(
        "search_businesses",
        "Search and filter businesses in the directory",
        SearchBusinessesArgs,
        _search_businesses,
    ),
    Tool(
        "get_business_details",
        "Get detailed information about a specific business",
        BusinessIdArgs,
        lambda session, args, _: get_business_details(session, args.business_id),
    ),
    Tool(
        "list_categories",
        "List business categories",
        ListCategoriesArgs,
        _list_categories,
    ),
    Tool(
        "search_reviews",
        "Search and filter reviews",
        SearchReviewsArgs,
        lambda session, args, _: search_reviews(session, **args.model_dump()),
    ),
    Tool(
        "search_leads",
        "Search and filter leads",
        SearchLeadsArgs,
        lambda session, args, _: search_leads(session, **args.model_dump()),
    ),
    Tool(
        "search_users",
        "Search and filter users by email, role, and activity",
        SearchUsersArgs,
        lambda session, args, _: search_users(session, **args.model_dump()),
    ),
    Tool(
        "get_user_details",
        "Get detailed information about a specific user",
        UserDetailsArgs,
        lambda session, args, _: get_user_details(session, **args.model_dump()),
    ),
    Tool(
        "get_user_by_email",
        "Find a user by their email address",
        UserByEmailArgs,
        lambda session, args, _: get_user_by_email(session, **args.model_dump()),
    ),
    Tool(
        "get_user_analytics",
        "Get analytics for a specific user's activity",
        UserAnalyticsArgs,
        lambda session, args, _: get_user_analytics(session, **args.model_dump()),
    ),
    Tool(
        "get_users_by_role",
        "Get all users with a specific role",
        UsersByRoleArgs,
        lambda session, args, _: get_users_by_role(session, **args.model_dump()),
    ),
    Tool(
        "get_analytics_summary",
        "Get analytics summary for the platform",
        DateRangeArgs,
        lambda session, args, _: get_analytics_summary(session, **args.model_dump()),
    ),
)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "arguments"
        parts.append(f"{field}: {error['msg']}")
    return "Invalid arguments: " + "; ".join(parts)


class ToolDispatcher:
    def __init__(self, database: Database, rating_sort: RatingSortMode = "page", tools: tuple[Tool, ...] = TOOLS) -> None:
        self.database = database
        self.rating_sort = rating_sort
        self.tools = {tool.name: tool for tool in tools}

    def list_tools(self) -> dict:
        return {"tools": [tool.describe() for tool in self.tools.values()]}

    def call_tool(self, name: Any, arguments: Any) -> dict:
        tool = self.tools.get(name) if isinstance(name, str) else None
        if tool is None:
            logger.warning("Unknown tool requested: %r", name)
            raise ToolError(UNKNOWN_TOOL, f"Unknown tool: {name}")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ToolError(INVALID_ARGUMENTS, "Invalid arguments: arguments must be an object")
        try:
            args = tool.args_model.model_validate(arguments)
        except ValidationError as exc:
            raise ToolError(INVALID_ARGUMENTS, _validation_message(exc)) from exc

        try:
            with self.database.session_scope() as session:
                result = tool.handler(session, args, self.rating_sort)
        except NotFoundError as exc:
            raise ToolError(NOT_FOUND, exc.message) from exc
        except DirectoryError as exc:
            raise ToolError(INVALID_ARGUMENTS, exc.message) from exc
        except Exception as exc:
            logger.exception("Tool %s failed", name)
            raise ToolError(TOOL_FAILURE, f"Tool {name} failed: {exc}") from exc
        return text_response(result)

    def handle_message(self, message: Any) -> dict:
        if not isinstance(message, dict):
            raise ToolError(PARSE_ERROR, "Request must be a JSON object")
        method = message.get("method")
        if method == "tools/list":
            return self.list_tools()
        if method == "tools/call":
            params = message.get("params") or {}
            if not isinstance(params, dict):
                raise ToolError(INVALID_ARGUMENTS, "Invalid arguments: params must be an object")
            return self.call_tool(params.get("name"), params.get("arguments"))
        logger.warning("Unknown method requested: %r", method)
        raise ToolError(UNKNOWN_METHOD, f"Unknown method: {method}")

    def handle_line(self, line: str) -> Optional[dict]:
        """Answer one input line. Blank lines produce no response."""
        if not line.strip():
            return None
        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            return error_response(PARSE_ERROR, f"Invalid JSON: {exc.msg}")
        except (ValueError, RecursionError) as exc:
            # Nesting too deep for the decoder, or an unpaired surrogate.
            return error_response(PARSE_ERROR, f"Invalid JSON: {type(exc).__name__}")
        try:
            return self.handle_message(message)
        except ToolError as exc:
            return error_response(exc.code, exc.message)

    def serve(self, stdin: IO[str], stdout: IO[str]) -> int:
        handled = 0
        for line in stdin:
            try:
                response = self.handle_line(line)
            except Exception as exc:
                logger.exception("Unhandled failure answering a message")
                response = error_response(TOOL_FAILURE, f"Request failed: {exc}")
            if response is None:
                continue
            stdout.write(json.dumps(response) + "\n")
            stdout.flush()
            handled += 1
        logger.info("Input closed after %d messages", handled)
        return handled
