"""
Canonical records returned by BusinessProfileClient.

Vendor field names never appear here; see normalizer.py for the mapping.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class Account:
    """A Business Profile account. Identity is the opaque resource name."""
    id: str
    display_name: str = ""
    kind: str = ""
    role: str = ""
    verification_state: Optional[str] = None


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Location:
    """A storefront listing, referencing its account by id."""
    id: str
    parent_account_id: Optional[str]
    display_name: str = ""
    primary_category: str = ""
    categories: Tuple[str, ...] = ()
    phone: Optional[str] = None
    website_url: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    open_state: str = "OPEN_FOR_BUSINESS_UNSPECIFIED"
    store_code: Optional[str] = None


@dataclass(frozen=True)
class Review:
    """Customer review with the star rating on a 0-5 integer scale."""
    id: str
    location_id: str
    author_name: str
    star_rating: int
    created_at: datetime
    updated_at: datetime
    author_photo_url: Optional[str] = None
    comment: Optional[str] = None
    reply_comment: Optional[str] = None

    @property
    def has_reply(self) -> bool:
        return self.reply_comment is not None


@dataclass(frozen=True)
class ReviewReply:
    comment: str
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CallToAction:
    action_type: str
    url: Optional[str] = None


@dataclass(frozen=True)
class Post:
    """A local post published on a location."""
    id: str
    location_id: str
    topic_type: str = "STANDARD"
    state: str = "LOCAL_POST_STATE_UNSPECIFIED"
    summary: Optional[str] = None
    call_to_action: Optional[CallToAction] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class InsightSeries:
    """One daily metric for one location, ordered by date."""
    location_id: str
    metric_name: str
    daily_values: Tuple[Tuple[date, int], ...] = ()

    @property
    def total(self) -> int:
        return sum(value for _, value in self.daily_values)


@dataclass(frozen=True)
class ConnectionCheck:
    """Which API generation answered the diagnostic account listing."""
    generation: str
    host: str
    accounts: Tuple[Account, ...] = field(default_factory=tuple)
