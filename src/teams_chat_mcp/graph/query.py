"""OData query translation for Graph chat listings.

Turns ``ListOptions`` and ``MessageFilter`` values into the query string Graph
expects: ``$top`` clamped to the endpoint maximum, ``$filter`` synthesized from
structured predicates, list-valued options joined with commas. Nothing here
touches the network or mutates its inputs.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote

from .exceptions import ToolValidationError
from .models import Importance, ListOptions, MessageFilter

logger = logging.getLogger(__name__)

DEFAULT_TOP = 50
CHAT_LIST_MAX_TOP = 50
MESSAGE_LIST_MAX_TOP = 1000
DEFAULT_MESSAGE_ORDERBY: Tuple[str, ...] = ("createdDateTime desc",)

SKIP_UNSUPPORTED_WARNING = (
    "$skip is not honored by Microsoft Graph for /me/chats; "
    "results may not be offset. Use nextLink to page instead."
)

# Characters left literal in query values. Single quotes are already doubled.
ODATA_SAFE_CHARS = "$,'()/:"

_GUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def odata_quote(value: str) -> str:
    """Wrap a value in single quotes, doubling embedded quotes."""
    return "'" + str(value).replace("'", "''") + "'"


def format_odata_datetime(value: datetime) -> str:
    """Format a datetime as an OData DateTimeOffset literal in UTC.

    Naive datetimes are taken to be UTC already.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def clamp_top(top: Optional[int], default: int = DEFAULT_TOP, maximum: int = DEFAULT_TOP) -> int:
    """Apply the default page size and clamp to the endpoint maximum."""
    if top is None:
        top = default
    if top < 1:
        raise ToolValidationError(f"top must be a positive integer, got {top}")
    return min(top, maximum)


def _sender_clause(sender: str) -> str:
    if _GUID_RE.match(sender):
        return f"from/user/id eq {odata_quote(sender)}"
    return f"from/user/displayName eq {odata_quote(sender)}"


def build_message_filter(message_filter: Optional[MessageFilter], raw: Optional[str] = None) -> Optional[str]:
    """Build a compound ``$filter`` from structured message predicates.

    Clauses are emitted in a fixed order (sender, importance, created_after,
    created_before, contains) and joined with ``and``. A raw filter, when also
    given, is prepended in parentheses. ``is_read`` never appears here.

    Raises:
        ToolValidationError: If ``importance`` is not a known value or the date
            range is inverted.
    """
    clauses: List[str] = []
    if raw and raw.strip():
        clauses.append(f"({raw.strip()})")

    if message_filter is not None:
        if message_filter.sender:
            clauses.append(_sender_clause(message_filter.sender))

        if message_filter.importance:
            importance = str(message_filter.importance)
            allowed = [i.value for i in Importance]
            if importance not in allowed:
                raise ToolValidationError(
                    f"importance must be one of {', '.join(allowed)}; got '{importance}'"
                )
            clauses.append(f"importance eq {odata_quote(importance)}")

        after = message_filter.created_after
        before = message_filter.created_before
        if after is not None and before is not None and _as_utc(after) > _as_utc(before):
            raise ToolValidationError("created_after must not be later than created_before")
        if after is not None:
            clauses.append(f"createdDateTime ge {format_odata_datetime(after)}")
        if before is not None:
            clauses.append(f"createdDateTime le {format_odata_datetime(before)}")

        if message_filter.contains:
            clauses.append(f"contains(body/content, {odata_quote(message_filter.contains)})")

    return " and ".join(clauses) if clauses else None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _join(values: Iterable[str]) -> str:
    return ",".join(v.strip() for v in values if v and v.strip())


def build_query_params(
    options: ListOptions,
    *,
    default_top: int = DEFAULT_TOP,
    max_top: int = DEFAULT_TOP,
    filter_expr: Optional[str] = None,
    default_orderby: Sequence[str] = (),
    default_expand: Sequence[str] = (),
) -> Dict[str, str]:
    """Map list options to ordered OData parameters.

    ``filter_expr`` overrides ``options.filter`` when given; it is how callers
    pass a synthesized compound filter.
    """
    params: Dict[str, str] = {"$top": str(clamp_top(options.top, default_top, max_top))}

    if options.skip is not None:
        if options.skip < 0:
            raise ToolValidationError(f"skip must not be negative, got {options.skip}")
        if options.skip:
            params["$skip"] = str(options.skip)

    expr = filter_expr if filter_expr is not None else options.filter
    if expr:
        params["$filter"] = expr

    orderby = _join(options.orderby or default_orderby)
    if orderby:
        params["$orderby"] = orderby

    select = _join(options.select)
    if select:
        params["$select"] = select

    expand = _join(options.expand or default_expand)
    if expand:
        params["$expand"] = expand

    return params


def encode_query(params: Dict[str, str]) -> str:
    """Percent-encode OData parameters into a query string.

    Keys are kept literal (``$top``) so the URL stays readable in logs.
    """
    return "&".join(
        f"{key}={quote(str(value), safe=ODATA_SAFE_CHARS)}" for key, value in params.items()
    )


def translate_chat_list(
    options: ListOptions,
    *,
    default_top: int = DEFAULT_TOP,
    max_top: int = CHAT_LIST_MAX_TOP,
    default_expand: Sequence[str] = (),
) -> Tuple[str, List[str]]:
    """Build the query string for ``GET /me/chats``.

    Returns:
        ``(query_string, warnings)``. A warning is emitted when ``skip`` is
        requested because Graph ignores ``$skip`` on this endpoint.
    """
    warnings: List[str] = []
    params = build_query_params(
        options,
        default_top=default_top,
        max_top=max_top,
        default_expand=default_expand,
    )
    if "$skip" in params:
        logger.warning("skip=%s requested for /me/chats: %s", params["$skip"], SKIP_UNSUPPORTED_WARNING)
        warnings.append(SKIP_UNSUPPORTED_WARNING)
    return encode_query(params), warnings


def translate_message_list(
    options: ListOptions,
    message_filter: Optional[MessageFilter] = None,
    *,
    default_top: int = DEFAULT_TOP,
    max_top: int = MESSAGE_LIST_MAX_TOP,
) -> str:
    """Build the query string for ``GET /chats/{id}/messages``."""
    filter_expr = build_message_filter(message_filter, options.filter)
    params = build_query_params(
        options,
        default_top=default_top,
        max_top=max_top,
        filter_expr=filter_expr or "",
        default_orderby=DEFAULT_MESSAGE_ORDERBY,
    )
    return encode_query(params)
