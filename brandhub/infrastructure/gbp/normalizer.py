"""
Response Normalizer - Vendor JSON to Canonical Records
======================================================

The legacy (v4) and current (v1) API generations describe the same things
with different field names:

    concept            v1 (business information)        v4 (legacy)
    ----------------   ------------------------------   -------------------
    display name       title                            locationName
    phone              phoneNumbers.primaryPhone        primaryPhone
    website            websiteUri                       websiteUrl
    categories         categories.primaryCategory       primaryCategory
    verification       verificationState                state.status

The mapping table is keyed by (operation, generation). Missing optional
fields become None; an empty envelope ({}) is an empty list. Anything that
cannot be mapped raises MalformedResponse; nothing is silently dropped.
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .catalog import V1, V4, Operation
from .errors import InvalidRequest, MalformedResponse
from .models import (
    Account,
    CallToAction,
    Coordinates,
    InsightSeries,
    Location,
    Post,
    Review,
    ReviewReply,
)

logger = logging.getLogger(__name__)

RATING_WORDS = {
    "STAR_RATING_UNSPECIFIED": 0,
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}

_TIMESTAMP = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})?$"
)


def normalize_rating(value: Any) -> int:
    """
    Map a star rating to the 0-5 integer scale.

    Accepts the enumerated words ("ONE".."FIVE") and integers 0-5 (also as
    digit strings or integral floats). Anything else, including None, is 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, str):
        word = value.strip().upper()
        if word in RATING_WORDS:
            return RATING_WORDS[word]
        if word.isascii() and word.isdigit():
            value = int(word)
        else:
            return 0
    if isinstance(value, float):
        if not value.is_integer():
            return 0
        value = int(value)
    if isinstance(value, int) and 0 <= value <= 5:
        return value
    return 0


def parse_timestamp(value: Any, field_name: str = "timestamp") -> Optional[datetime]:
    """Parse an RFC 3339 timestamp (nanosecond precision allowed) as aware UTC."""
    if value in (None, ""):
        return None
    match = _TIMESTAMP.match(value) if isinstance(value, str) else None
    if not match:
        raise MalformedResponse(f"unparseable {field_name}: {value!r}")
    base, fraction, zone = match.groups()
    text = base
    if fraction:
        text += "." + fraction[:6].ljust(6, "0")
    text += "+00:00" if zone in (None, "Z") else zone
    try:
        return datetime.fromisoformat(text).astimezone(timezone.utc)
    except ValueError:
        raise MalformedResponse(f"impossible {field_name}: {value!r}")


def _get(item: Any, *path: str) -> Any:
    """Nested lookup that yields None instead of raising."""
    for key in path:
        if not isinstance(item, dict):
            return None
        item = item.get(key)
    return item


def _list(value: Any, field_name: str) -> list:
    """A list-valued field; absent is empty, any other type is malformed."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedResponse(f"'{field_name}' is {type(value).__name__}, expected a list")
    return value


def _require_id(item: Mapping, *keys: str) -> str:
    for key in keys:
        if item.get(key):
            return str(item[key])
    raise MalformedResponse(f"record without {' or '.join(keys)}: {sorted(item)}")


def _account_from_name(name: str) -> Optional[str]:
    match = re.match(r"^(accounts/[^/]+)/", name)
    return match.group(1) if match else None


def _location_from_name(name: str) -> Optional[str]:
    match = re.match(r"^(accounts/[^/]+/locations/[^/]+)/", name)
    return match.group(1) if match else None


def _coordinates(latlng: Any) -> Optional[Coordinates]:
    lat, lng = _get(latlng, "latitude"), _get(latlng, "longitude")
    if isinstance(lat, (int, float)) and isinstance(lng, (int, float)):
        return Coordinates(float(lat), float(lng))
    return None


def _category_names(primary: Any, additional: Any) -> Tuple[str, Tuple[str, ...]]:
    primary_name = _get(primary, "displayName") or ""
    names = [primary_name] if primary_name else []
    for category in _list(additional, "additionalCategories"):
        name = _get(category, "displayName")
        if name:
            names.append(name)
    return primary_name, tuple(names)


# ── Single-record mappers: (item, context) -> record ───────────────

def _account_v1(item: Mapping, context: Mapping) -> Account:
    return Account(
        id=_require_id(item, "name"),
        display_name=item.get("accountName") or "",
        kind=item.get("type") or "",
        role=item.get("role") or "",
        verification_state=item.get("verificationState"),
    )


def _account_v4(item: Mapping, context: Mapping) -> Account:
    return Account(
        id=_require_id(item, "name"),
        display_name=item.get("accountName") or "",
        kind=item.get("type") or "",
        role=item.get("role") or "",
        verification_state=_get(item, "state", "status"),
    )


def _location_v1(item: Mapping, context: Mapping) -> Location:
    name = _require_id(item, "name")
    primary, categories = _category_names(
        _get(item, "categories", "primaryCategory"),
        _get(item, "categories", "additionalCategories"),
    )
    return Location(
        id=name,
        parent_account_id=_account_from_name(name) or context.get("account_id"),
        display_name=item.get("title") or "",
        primary_category=primary,
        categories=categories,
        phone=_get(item, "phoneNumbers", "primaryPhone"),
        website_url=item.get("websiteUri"),
        coordinates=_coordinates(item.get("latlng")),
        open_state=_get(item, "openInfo", "status") or "OPEN_FOR_BUSINESS_UNSPECIFIED",
        store_code=item.get("storeCode"),
    )


def _location_v4(item: Mapping, context: Mapping) -> Location:
    name = _require_id(item, "name")
    primary, categories = _category_names(item.get("primaryCategory"), item.get("additionalCategories"))
    return Location(
        id=name,
        parent_account_id=_account_from_name(name) or context.get("account_id"),
        display_name=item.get("locationName") or "",
        primary_category=primary,
        categories=categories,
        phone=item.get("primaryPhone"),
        website_url=item.get("websiteUrl"),
        coordinates=_coordinates(item.get("latlng")),
        open_state=_get(item, "openInfo", "status") or "OPEN_FOR_BUSINESS_UNSPECIFIED",
        store_code=item.get("storeCode"),
    )


def _review_v4(item: Mapping, context: Mapping) -> Review:
    review_id = _require_id(item, "name", "reviewId")
    created_at = parse_timestamp(item.get("createTime"), "createTime")
    if created_at is None:
        raise MalformedResponse(f"review {review_id} has no createTime")
    return Review(
        id=review_id,
        location_id=_location_from_name(review_id) or context.get("location_id") or "",
        author_name=_get(item, "reviewer", "displayName") or "",
        author_photo_url=_get(item, "reviewer", "profilePhotoUrl"),
        star_rating=normalize_rating(item.get("starRating")),
        comment=item.get("comment"),
        created_at=created_at,
        updated_at=parse_timestamp(item.get("updateTime"), "updateTime") or created_at,
        reply_comment=_get(item, "reviewReply", "comment"),
    )


def _reply_v4(item: Mapping, context: Mapping) -> ReviewReply:
    comment = item.get("comment")
    if not isinstance(comment, str):
        raise MalformedResponse("review reply without comment")
    return ReviewReply(comment=comment, updated_at=parse_timestamp(item.get("updateTime"), "updateTime"))


def _post(item: Mapping, context: Mapping) -> Post:
    name = _require_id(item, "name")
    action = item.get("callToAction")
    call_to_action = None
    if isinstance(action, dict) and action.get("actionType"):
        call_to_action = CallToAction(action_type=action["actionType"], url=action.get("url"))
    return Post(
        id=name,
        location_id=_location_from_name(name) or context.get("location_id") or "",
        topic_type=item.get("topicType") or "STANDARD",
        state=item.get("state") or "LOCAL_POST_STATE_UNSPECIFIED",
        summary=item.get("summary"),
        call_to_action=call_to_action,
        created_at=parse_timestamp(item.get("createTime"), "createTime"),
    )


def _dated_value(entry: Any) -> Tuple[date, int]:
    parts = _get(entry, "date")
    try:
        day = date(int(parts["year"]), int(parts["month"]), int(parts["day"]))
    except (TypeError, KeyError, ValueError):
        raise MalformedResponse(f"insight value without a valid date: {entry!r}")
    # The vendor omits "value" on days with zero activity
    raw = entry.get("value", 0)
    try:
        return day, int(raw)
    except (TypeError, ValueError):
        raise MalformedResponse(f"non-integer insight value {raw!r} on {day}")


# ── Payload-level mappers: (payload, context) -> list ──────────────

Mapper = Callable[[Mapping, Mapping], Any]


def _envelope(key: str, mapper: Mapper) -> Callable[[Any, Mapping], List[Any]]:
    def normalize(payload: Any, context: Mapping) -> List[Any]:
        records = []
        for item in _list(payload.get(key), key):
            if not isinstance(item, dict):
                raise MalformedResponse(f"'{key}' entry is {type(item).__name__}, expected an object")
            records.append(mapper(item, context))
        return records
    return normalize


def _single(mapper: Mapper) -> Callable[[Any, Mapping], List[Any]]:
    def normalize(payload: Any, context: Mapping) -> List[Any]:
        return [mapper(payload, context)]
    return normalize


def _nothing(payload: Any, context: Mapping) -> List[Any]:
    return []


def _insights_v1(payload: Any, context: Mapping) -> List[InsightSeries]:
    location_id = context.get("location_id") or ""
    series = []
    for group in _list(payload.get("multiDailyMetricTimeSeries"), "multiDailyMetricTimeSeries"):
        if not isinstance(group, dict):
            raise MalformedResponse(f"metric group is {type(group).__name__}, expected an object")
        for metric in _list(_get(group, "dailyMetricTimeSeries"), "dailyMetricTimeSeries"):
            name = _get(metric, "dailyMetric")
            if not name:
                raise MalformedResponse(f"metric series without dailyMetric: {metric!r}")
            values = [_dated_value(v) for v in _list(_get(metric, "timeSeries", "datedValues"), "datedValues")]
            series.append(InsightSeries(
                location_id=location_id,
                metric_name=name,
                daily_values=tuple(sorted(values, key=lambda pair: pair[0])),
            ))
    return series


_TABLE: Dict[Tuple[Operation, str], Callable[[Any, Mapping], List[Any]]] = {
    (Operation.LIST_ACCOUNTS, V1): _envelope("accounts", _account_v1),
    (Operation.CHECK_CONNECTION, V1): _envelope("accounts", _account_v1),
    (Operation.CHECK_CONNECTION, V4): _envelope("accounts", _account_v4),
    (Operation.LIST_LOCATIONS, V1): _envelope("locations", _location_v1),
    (Operation.LIST_LOCATIONS, V4): _envelope("locations", _location_v4),
    (Operation.GET_LOCATION, V1): _single(_location_v1),
    (Operation.GET_LOCATION, V4): _single(_location_v4),
    (Operation.UPDATE_LOCATION, V1): _single(_location_v1),
    (Operation.CREATE_LOCATION, V1): _single(_location_v1),
    (Operation.LIST_REVIEWS, V4): _envelope("reviews", _review_v4),
    (Operation.REPLY_REVIEW, V4): _single(_reply_v4),
    (Operation.LIST_POSTS, V4): _envelope("localPosts", _post),
    (Operation.CREATE_POST, V1): _single(_post),
    (Operation.CREATE_POST, V4): _single(_post),
    (Operation.DELETE_POST, V4): _nothing,
    (Operation.FETCH_INSIGHTS, V1): _insights_v1,
}


class ResponseNormalizer:
    """
    Maps a successful vendor payload to canonical records.

    USAGE:
        normalizer = ResponseNormalizer()
        locations = normalizer.normalize(
            Operation.LIST_LOCATIONS, "v4", payload, account_id="accounts/123"
        )
    """

    def __init__(self, table: Optional[Mapping[Tuple[Operation, str], Callable]] = None):
        self._table = dict(_TABLE if table is None else table)

    def normalize(self, operation: Operation, generation: str, payload: Any, **context: Any) -> List[Any]:
        """
        Returns:
            List of canonical records (one element for single-record
            operations, empty for deletes).

        Raises:
            MalformedResponse: the payload does not match the expected shape.
        """
        mapper = self._table.get((operation, generation))
        try:
            if mapper is None:
                raise MalformedResponse(f"no mapping for {generation} payloads")
            if not isinstance(payload, dict):
                raise MalformedResponse(f"expected a JSON object, got {type(payload).__name__}")
            return mapper(payload, context)
        except MalformedResponse as e:
            logger.error(f"[{operation.value}] malformed {generation} payload: {e.detail}")
            raise MalformedResponse(e.detail, operation=operation.value) from e


# ── Canonical -> vendor request bodies ─────────────────────────────

def _location_patch(changes: Mapping[str, Any]) -> Dict[str, Tuple[str, Any]]:
    """canonical name -> (update mask path, body fragment)"""
    fragments = {}
    for name, value in changes.items():
        if name == "display_name":
            fragments[name] = ("title", {"title": value})
        elif name == "store_code":
            fragments[name] = ("storeCode", {"storeCode": value})
        elif name == "phone":
            fragments[name] = ("phoneNumbers.primaryPhone", {"phoneNumbers": {"primaryPhone": value}})
        elif name == "website_url":
            fragments[name] = ("websiteUri", {"websiteUri": value})
        elif name == "primary_category":
            # value is a category resource name such as "categories/gcid:pizza_restaurant"
            fragments[name] = (
                "categories.primaryCategory",
                {"categories": {"primaryCategory": {"name": value}}},
            )
        elif name == "coordinates":
            if isinstance(value, Coordinates):
                value = {"latitude": value.latitude, "longitude": value.longitude}
            fragments[name] = ("latlng", {"latlng": dict(value)})
        elif name == "language_code":
            fragments[name] = ("languageCode", {"languageCode": value})
        else:
            raise InvalidRequest(f"unsupported location field: {name}")
    return fragments


def denormalize_location(changes: Mapping[str, Any]) -> Tuple[Dict[str, Any], str]:
    """
    Build a business information v1 location body from canonical fields.

    Returns:
        (request body, comma-separated updateMask)
    """
    if not changes:
        raise InvalidRequest("no location fields given")
    body: Dict[str, Any] = {}
    mask = []
    for path, fragment in _location_patch(changes).values():
        for key, value in fragment.items():
            if isinstance(value, dict) and isinstance(body.get(key), dict):
                body[key].update(value)
            else:
                body[key] = value
        mask.append(path)
    return body, ",".join(mask)


def post_body(
    summary: str,
    topic_type: str = "STANDARD",
    call_to_action: Optional[CallToAction] = None,
    language_code: str = "en",
) -> Dict[str, Any]:
    """Build a local-post request body."""
    if not summary or not summary.strip():
        raise InvalidRequest("a post needs a summary")
    body: Dict[str, Any] = {
        "languageCode": language_code,
        "summary": summary,
        "topicType": topic_type,
    }
    if call_to_action is not None:
        action = {"actionType": call_to_action.action_type}
        if call_to_action.url:
            action["url"] = call_to_action.url
        body["callToAction"] = action
    return body
