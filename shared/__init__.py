"""Shared utilities for Post Evidence Capture."""

from .url_utils import (
    FACEBOOK_DOMAIN,
    MOBILE_MIRROR,
    BASIC_MIRROR,
    MIRROR_HOSTS,
    InvalidUrl,
    CandidateTarget,
    parse_post_url,
    is_facebook_host,
    normalize_post_url,
    build_candidates,
)

from .cookie_utils import (
    DEFAULT_COOKIE_DOMAIN,
    DEFAULT_SAME_SITE,
    CookieRecord,
    parse_cookies,
    cookie_header,
)

__all__ = [
    # URL utilities
    'FACEBOOK_DOMAIN',
    'MOBILE_MIRROR',
    'BASIC_MIRROR',
    'MIRROR_HOSTS',
    'InvalidUrl',
    'CandidateTarget',
    'parse_post_url',
    'is_facebook_host',
    'normalize_post_url',
    'build_candidates',
    # Cookie utilities
    'DEFAULT_COOKIE_DOMAIN',
    'DEFAULT_SAME_SITE',
    'CookieRecord',
    'parse_cookies',
    'cookie_header',
]
