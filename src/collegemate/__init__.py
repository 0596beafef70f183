"""collegemate - Authenticated, tag-invalidated data access for the CollegeMate API."""

from loguru import logger

# Executor
from collegemate.api import BoundEndpoint, CampusApi, create_api, make_cache_key

# Cache
from collegemate.cache import CacheEntry, Subscription, TagCache

# Reauthenticating client
from collegemate.client import ReauthenticatingClient, RequestState

# Duration parsing
from collegemate.duration import parse_duration

# Errors
from collegemate.errors import (
    AuthenticationError,
    AuthorizationError,
    CollegeMateError,
    HTTPStatusError,
    NetworkError,
    NotFoundError,
    ProtocolError,
    ServerError,
    ValidationError,
    raise_for_response,
)

# Endpoint registry
from collegemate.registry import (
    REGISTRY,
    Endpoint,
    SessionEffect,
    TagRef,
    get_endpoint,
)
from collegemate.session import SessionStore
from collegemate.settings import Settings
from collegemate.tags import make_tag, tag_matches
from collegemate.transport import Transport

# Core types
from collegemate.types import (
    CacheStatus,
    Duration,
    RequestDescriptor,
    Response,
    Session,
    Tag,
)

# Library logging is opt-in: logger.enable("collegemate")
logger.disable("collegemate")

__version__ = "0.1.0"

__all__ = [
    "REGISTRY",
    "AuthenticationError",
    "AuthorizationError",
    "BoundEndpoint",
    "CacheEntry",
    "CacheStatus",
    "CampusApi",
    "CollegeMateError",
    "Duration",
    "Endpoint",
    "HTTPStatusError",
    "NetworkError",
    "NotFoundError",
    "ProtocolError",
    "ReauthenticatingClient",
    "RequestDescriptor",
    "RequestState",
    "Response",
    "ServerError",
    "Session",
    "SessionEffect",
    "SessionStore",
    "Settings",
    "Subscription",
    "Tag",
    "TagCache",
    "TagRef",
    "Transport",
    "ValidationError",
    "create_api",
    "get_endpoint",
    "make_cache_key",
    "make_tag",
    "parse_duration",
    "raise_for_response",
    "tag_matches",
]
