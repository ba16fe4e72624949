"""Tests for OData query translation.

Verifies:
- $top defaults and clamps per endpoint, and rejects non-positive values.
- Structured message predicates become one and-joined clause each, in a fixed
  order, with single quotes doubled.
- A raw $filter is combined with the structured clauses, not replaced.
- isRead never reaches $filter.
- $skip on chat listings is passed through with a warning.
"""

from datetime import datetime, timedelta, timezone

import pytest

from teams_chat_mcp.graph.exceptions import ToolValidationError
from teams_chat_mcp.graph.models import ListOptions, MessageFilter
from teams_chat_mcp.graph.query import (
    SKIP_UNSUPPORTED_WARNING,
    build_message_filter,
    build_query_params,
    clamp_top,
    encode_query,
    format_odata_datetime,
    odata_quote,
    translate_chat_list,
    translate_message_list,
)

GUID = "8b081ef6-4792-4def-b2c9-c363a1bf41d5"


# ---------------------------------------------------------------------------
# Literals
# ---------------------------------------------------------------------------

class TestLiterals:

    def test_odata_quote_doubles_single_quotes(self):
        assert odata_quote("O'Brien") == "'O''Brien'"

    def test_format_datetime_converts_to_utc(self):
        value = datetime(2024, 3, 1, 12, 30, tzinfo=timezone(timedelta(hours=2)))
        assert format_odata_datetime(value) == "2024-03-01T10:30:00Z"

    def test_format_naive_datetime_taken_as_utc(self):
        assert format_odata_datetime(datetime(2024, 3, 1, 8, 0, 5)) == "2024-03-01T08:00:05Z"


# ---------------------------------------------------------------------------
# clamp_top
# ---------------------------------------------------------------------------

class TestClampTop:

    def test_default_when_missing(self):
        assert clamp_top(None, default=50, maximum=1000) == 50

    def test_clamps_to_maximum(self):
        assert clamp_top(5000, default=50, maximum=1000) == 1000

    def test_value_within_range_kept(self):
        assert clamp_top(25, default=50, maximum=50) == 25

    @pytest.mark.parametrize("top", [0, -1])
    def test_non_positive_rejected(self, top):
        with pytest.raises(ToolValidationError):
            clamp_top(top)


# ---------------------------------------------------------------------------
# build_message_filter
# ---------------------------------------------------------------------------

class TestBuildMessageFilter:

    def test_no_predicates(self):
        assert build_message_filter(None) is None
        assert build_message_filter(MessageFilter()) is None

    def test_one_clause_per_predicate_in_order(self):
        mf = MessageFilter(
            contains="it's done",
            importance="high",
            sender="O'Brien",
            created_before=datetime(2024, 2, 1, tzinfo=timezone.utc),
            created_after=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )

        expr = build_message_filter(mf)

        assert expr == (
            "from/user/displayName eq 'O''Brien'"
            " and importance eq 'high'"
            " and createdDateTime ge 2024-01-01T00:00:00Z"
            " and createdDateTime le 2024-02-01T00:00:00Z"
            " and contains(body/content, 'it''s done')"
        )
        assert expr.count(" and ") == 4

    def test_guid_sender_matches_user_id(self):
        assert build_message_filter(MessageFilter(sender=GUID)) == f"from/user/id eq '{GUID}'"

    def test_raw_filter_combined_in_parentheses(self):
        expr = build_message_filter(MessageFilter(importance="urgent"), raw="messageType eq 'message'")
        assert expr == "(messageType eq 'message') and importance eq 'urgent'"

    def test_raw_filter_alone(self):
        assert build_message_filter(None, raw="  importance eq 'high' ") == "(importance eq 'high')"

    def test_is_read_is_not_translated(self):
        assert build_message_filter(MessageFilter(is_read=False)) is None

    def test_unknown_importance_rejected(self):
        with pytest.raises(ToolValidationError, match="importance"):
            build_message_filter(MessageFilter(importance="critical"))

    def test_inverted_range_rejected(self):
        mf = MessageFilter(
            created_after=datetime(2024, 2, 1, tzinfo=timezone.utc),
            created_before=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        with pytest.raises(ToolValidationError):
            build_message_filter(mf)


# ---------------------------------------------------------------------------
# build_query_params / encode_query
# ---------------------------------------------------------------------------

class TestBuildQueryParams:

    def test_parameter_order(self):
        options = ListOptions(
            top=10,
            skip=5,
            filter="chatType eq 'group'",
            orderby=("lastUpdatedDateTime desc",),
            select=("id", "topic"),
            expand=("members",),
        )

        params = build_query_params(options, max_top=50)

        assert list(params) == ["$top", "$skip", "$filter", "$orderby", "$select", "$expand"]
        assert params["$select"] == "id,topic"

    def test_zero_skip_omitted(self):
        assert "$skip" not in build_query_params(ListOptions(skip=0))

    def test_negative_skip_rejected(self):
        with pytest.raises(ToolValidationError):
            build_query_params(ListOptions(skip=-1))

    def test_defaults_apply_when_lists_empty(self):
        params = build_query_params(
            ListOptions(),
            default_orderby=("createdDateTime desc",),
            default_expand=("members",),
        )
        assert params["$orderby"] == "createdDateTime desc"
        assert params["$expand"] == "members"

    def test_explicit_lists_override_defaults(self):
        params = build_query_params(ListOptions(expand=("lastMessagePreview",)), default_expand=("members",))
        assert params["$expand"] == "lastMessagePreview"

    def test_encode_keeps_keys_and_quotes_literal(self):
        query = encode_query({"$top": "5", "$filter": "topic eq 'a b'"})
        assert query == "$top=5&$filter=topic%20eq%20'a%20b'"

    def test_encode_reserved_characters_in_contains(self):
        query = translate_message_list(ListOptions(), MessageFilter(contains="a&b#c+d%e"))

        assert query == (
            "$top=50"
            "&$filter=contains(body/content,%20'a%26b%23c%2Bd%25e')"
            "&$orderby=createdDateTime%20desc"
        )
        assert query.count("&") == 2


# ---------------------------------------------------------------------------
# translate_chat_list / translate_message_list
# ---------------------------------------------------------------------------

class TestTranslateChatList:

    def test_defaults(self):
        query, warnings = translate_chat_list(ListOptions(), default_expand=("members", "lastMessagePreview"))
        assert query == "$top=50&$expand=members,lastMessagePreview"
        assert warnings == []

    def test_top_clamped_to_chat_maximum(self):
        query, _ = translate_chat_list(ListOptions(top=500))
        assert query.startswith("$top=50")

    def test_skip_passed_through_with_warning(self):
        query, warnings = translate_chat_list(ListOptions(skip=10))
        assert "$skip=10" in query
        assert warnings == [SKIP_UNSUPPORTED_WARNING]

    def test_options_not_mutated(self):
        options = ListOptions(top=500, skip=3)
        translate_chat_list(options)
        assert options == ListOptions(top=500, skip=3)


class TestTranslateMessageList:

    def test_defaults(self):
        query = translate_message_list(ListOptions())
        assert query == "$top=50&$orderby=createdDateTime%20desc"

    def test_top_clamped_to_message_maximum(self):
        query = translate_message_list(ListOptions(top=5000))
        assert query.startswith("$top=1000&")

    def test_raw_and_structured_filters_appear_once(self):
        query = translate_message_list(
            ListOptions(filter="messageType eq 'message'"),
            MessageFilter(importance="high"),
        )
        assert query.count("messageType") == 1
        assert "$filter=(messageType%20eq%20'message')%20and%20importance%20eq%20'high'" in query

    def test_read_state_only_sends_no_filter(self):
        query = translate_message_list(ListOptions(), MessageFilter(is_read=True))
        assert "$filter" not in query
