"""
URL utilities for Post Evidence Capture.

Facebook serves the same post from several hosts with very different markup:
- www.facebook.com: heavy, script-rendered, usually login-walled
- m.facebook.com: mobile markup, often still carries Open Graph tags
- mbasic.facebook.com: plain HTML, least gating

The screenshot pipeline always renders the simplest mirror. The metadata
pipeline tries every host in order, because which one works depends on
upstream bot-detection state.
"""

from dataclasses import dataclass
from typing import Tuple
from urllib.parse import urlparse, urlunparse, ParseResult

FACEBOOK_DOMAIN = 'facebook.com'
MOBILE_MIRROR = 'm.facebook.com'
BASIC_MIRROR = 'mbasic.facebook.com'

# Order matters: fallbacks after the original host
MIRROR_HOSTS = (MOBILE_MIRROR, BASIC_MIRROR)


class InvalidUrl(ValueError):
    """Raised when a post URL is missing or cannot be parsed."""


@dataclass(frozen=True)
class CandidateTarget:
    """One (host, path) pair to attempt. Path includes the query string."""
    host: str
    path: str
    scheme: str = 'https'

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}{self.path}"


def parse_post_url(url) -> ParseResult:
    """
    Parse and validate a post URL.

    Raises:
        InvalidUrl: if the URL is empty, not http(s), has no host or a bad port
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidUrl('Missing url')

    try:
        parsed = urlparse(url.strip())
    except ValueError as e:
        raise InvalidUrl(f'Unparsable url: {e}') from e

    if parsed.scheme.lower() not in ('http', 'https') or not parsed.hostname:
        raise InvalidUrl(f'Not an absolute http(s) url: {url}')

    try:
        parsed.port
    except ValueError as e:
        raise InvalidUrl(f'Bad port in url: {e}') from e

    return parsed


def is_facebook_host(host: str) -> bool:
    """Check if a hostname belongs to facebook.com (any subdomain)."""
    if not host:
        return False
    host = host.lower()
    return host == FACEBOOK_DOMAIN or host.endswith('.' + FACEBOOK_DOMAIN)


def normalize_post_url(url: str) -> str:
    """
    Rewrite a Facebook URL to the basic mirror for rendering.

    Non-Facebook URLs are returned unchanged (stripped).

    Examples:
        >>> normalize_post_url("https://www.facebook.com/page/posts/1?x=2")
        'https://mbasic.facebook.com/page/posts/1?x=2'
    """
    parsed = parse_post_url(url)

    if not is_facebook_host(parsed.hostname):
        return url.strip()

    netloc = BASIC_MIRROR
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def _path_with_query(parsed: ParseResult) -> str:
    path = parsed.path or '/'
    if parsed.params:
        path = f"{path};{parsed.params}"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return path


def build_candidates(url: str) -> Tuple[CandidateTarget, ...]:
    """
    Expand a post URL into the ordered hosts to attempt.

    The original host comes first, then the mobile and basic mirrors.
    Hosts are de-duplicated, so an input already on a mirror is not
    tried twice. Non-Facebook URLs yield only their own host.
    """
    parsed = parse_post_url(url)
    path = _path_with_query(parsed)
    original = parsed.hostname.lower()

    # Other sites are fetched as given, port and plain http included
    if not is_facebook_host(original):
        host = original if parsed.port is None else f"{original}:{parsed.port}"
        return (CandidateTarget(host=host, path=path, scheme=parsed.scheme.lower()),)

    hosts = [original]
    for mirror in MIRROR_HOSTS:
        if mirror not in hosts:
            hosts.append(mirror)

    return tuple(CandidateTarget(host=host, path=path) for host in hosts)
