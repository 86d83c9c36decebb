"""
Post Scraper Cloud Function

Fetches a social-media post page and extracts its preview metadata
(name, caption, image) as evidence for the fact checker.

Responsibilities:
- Expand the post URL into mirror hosts (www -> m -> mbasic)
- Try each host with each identity profile until one answers with real content
- Treat login walls as failures even when they come back as HTTP 200
- Extract Open Graph / Twitter / fallback metadata

Does NOT:
- Render the page or take screenshots (post-screenshot's job)
- Manage login sessions (cookies are supplied by the caller)
- Retry across invocations (caller's job)
"""

import functions_framework
import requests
from bs4 import BeautifulSoup
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse, parse_qs
import codecs
import re
import json
import os
import sys
import time
from typing import Iterable, List, Optional, Tuple

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.url_utils import CandidateTarget, InvalidUrl, build_candidates
from shared.cookie_utils import parse_cookies, cookie_header

# Configuration
FETCH_TIMEOUT_SECONDS = float(os.environ.get('FETCH_TIMEOUT_SECONDS', '8'))
MAX_BODY_BYTES = int(os.environ.get('MAX_BODY_BYTES', str(3 * 1024 * 1024)))
CHUNK_SIZE = 16384

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type',
    'Access-Control-Allow-Methods': 'POST, OPTIONS',
}

# Phrases only present on gated views; matched case-insensitively
LOGIN_WALL_SIGNATURES = (
    'you must log in to continue',
    'you must log in first',
    'log in to continue',
    'log in to facebook',
    'log into facebook',
)

# Image URLs that are never post content
TRACKING_IMAGE_PATTERN = re.compile(r'(pixel|spacer|blank\.gif|transparent\.gif|1x1)', re.I)


@dataclass(frozen=True)
class IdentityProfile:
    """User-agent/header bundle presented for one fetch attempt."""
    name: str
    headers: Tuple[Tuple[str, str], ...]


BROWSER_IDENTITY = IdentityProfile(
    name='browser',
    headers=(
        ('User-Agent', 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36'),
        ('Accept', 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'),
        ('Accept-Language', 'en-US,en;q=0.9'),
        ('Cache-Control', 'no-cache'),
    ),
)

CRAWLER_IDENTITY = IdentityProfile(
    name='crawler',
    headers=(
        ('User-Agent', 'facebookexternalhit/1.1 (+http://www.facebook.com/externalhit_uatext.php)'),
        ('Accept', '*/*'),
        ('Accept-Language', 'en-US,en;q=0.9'),
    ),
)

IDENTITY_PROFILES = (BROWSER_IDENTITY, CRAWLER_IDENTITY)


@dataclass(frozen=True)
class FetchOutcome:
    """Result of one (candidate, identity) attempt. Never raised, always returned."""
    succeeded: bool
    target: CandidateTarget
    identity: str
    status: Optional[int] = None
    final_url: str = ''
    body: str = field(default='', repr=False)
    error: Optional[str] = None


class AttemptTimeout(requests.exceptions.Timeout):
    """The attempt ran past its wall-clock deadline."""


def is_login_wall(html: str) -> bool:
    """Check if an HTML body is a login interstitial."""
    if not html:
        return False
    lowered = html.lower()
    return any(signature in lowered for signature in LOGIN_WALL_SIGNATURES)


def _deadline_passed(deadline: float) -> bool:
    return time.monotonic() > deadline


def _body_encoding(response: requests.Response) -> str:
    encoding = response.encoding
    # requests falls back to ISO-8859-1 for text/* without a charset
    if not encoding or encoding.lower() == 'iso-8859-1':
        return 'utf-8'
    try:
        codecs.lookup(encoding)
    except LookupError:
        print(f"Unknown charset {encoding!r}, decoding as utf-8")
        return 'utf-8'
    return encoding


def _read_body(response: requests.Response, deadline: float) -> str:
    """Read a streamed body, giving up once the attempt deadline passes."""
    chunks = []
    size = 0
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        if _deadline_passed(deadline):
            raise AttemptTimeout('Attempt exceeded deadline while reading body')
        chunks.append(chunk)
        size += len(chunk)
        if size >= MAX_BODY_BYTES:
            break

    return b''.join(chunks).decode(_body_encoding(response), errors='replace')


def _download(url: str, headers: dict, timeout: float, deadline: float, opened: list):
    with requests.get(url, headers=headers, timeout=timeout,
                      allow_redirects=True, stream=True) as response:
        opened.append(response)
        return response.status_code, response.url or url, _read_body(response, deadline)


def _download_within(url: str, headers: dict, timeout: float):
    """
    Run one download under a hard wall-clock limit.

    The socket timeout restarts on every read, so a server dripping bytes
    can outlive it. The download runs on its own worker; once the limit
    passes its socket is shut down, which ends the blocked read.
    """
    deadline = time.monotonic() + timeout
    opened = []
    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(_download, url, headers, timeout, deadline, opened)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            for response in opened:
                response.raw.shutdown()
            raise AttemptTimeout(f'Attempt exceeded {timeout}s')
    finally:
        executor.shutdown(wait=False)


def fetch_candidate(target: CandidateTarget, identity: IdentityProfile,
                    cookie_header_value: Optional[str] = None,
                    timeout: float = FETCH_TIMEOUT_SECONDS) -> FetchOutcome:
    """Fetch one candidate with one identity. Failures come back as succeeded=False."""
    headers = dict(identity.headers)
    if cookie_header_value:
        headers['Cookie'] = cookie_header_value

    outcome = {'target': target, 'identity': identity.name}

    try:
        status, final_url, body = _download_within(target.url, headers, timeout)
    except requests.exceptions.Timeout:
        return FetchOutcome(succeeded=False, error='Request timed out', **outcome)
    except requests.exceptions.RequestException as e:
        return FetchOutcome(succeeded=False, error=f'Request failed: {str(e)}', **outcome)

    outcome.update(status=status, final_url=final_url, body=body)

    if not 200 <= status < 300:
        return FetchOutcome(succeeded=False, error=f'HTTP error: {status}', **outcome)

    if is_login_wall(body):
        return FetchOutcome(succeeded=False, error='Login wall', **outcome)

    return FetchOutcome(succeeded=True, **outcome)


def fetch_first_qualifying(candidates: Iterable[CandidateTarget],
                           identities: Iterable[IdentityProfile] = IDENTITY_PROFILES,
                           cookie_header_value: Optional[str] = None,
                           timeout: float = FETCH_TIMEOUT_SECONDS) -> Tuple[Optional[FetchOutcome], List[str]]:
    """
    Try candidate x identity pairs in row-major order.

    All identities are tried for the first candidate before moving to the
    next one. Stops at the first qualifying outcome.

    Returns:
        Tuple of (outcome or None, tried) where tried lists every attempt
        as "url [identity]"
    """
    identities = tuple(identities)
    tried = []

    for target in candidates:
        for identity in identities:
            tried.append(f"{target.url} [{identity.name}]")
            outcome = fetch_candidate(target, identity, cookie_header_value, timeout)

            if outcome.succeeded:
                print(f"Fetched {target.url} as {identity.name} (status {outcome.status})")
                return outcome, tried

            print(f"Attempt failed for {target.url} as {identity.name}: {outcome.error}")

    return None, tried


def _meta_content(soup: BeautifulSoup, key: str) -> str:
    """Content of a meta tag matched by property or name."""
    tag = (
        soup.find('meta', attrs={'property': key}) or
        soup.find('meta', attrs={'name': key})
    )
    content = tag.get('content') if tag else None
    return content.strip() if content else ''


def _resolve_url(url: str, base_url: str) -> str:
    try:
        return urljoin(base_url or '', url.strip())
    except ValueError:
        return ''


def unwrap_image_url(url: str) -> str:
    """
    Replace a Facebook safe_image.php proxy URL with the image it wraps.

    Examples:
        >>> unwrap_image_url("https://external.fbcdn.net/safe_image.php?d=1&url=https%3A%2F%2Fcdn.example.com%2Fa.jpg")
        'https://cdn.example.com/a.jpg'
    """
    if not url:
        return url

    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    if not parsed.path.endswith('safe_image.php'):
        return url

    original = parse_qs(parsed.query).get('url', [''])[0]
    if urlparse(original).scheme in ('http', 'https'):
        return original
    return url


def _is_content_image(url: str) -> bool:
    """Exclude data URIs, tracking pixels/spacers and SVGs."""
    if not url or url.lower().startswith('data:'):
        return False

    path = urlparse(url).path.lower()
    if path.endswith('.svg'):
        return False
    if TRACKING_IMAGE_PATTERN.search(path):
        return False
    return True


def _first_content_image(soup: BeautifulSoup, base_url: str) -> str:
    for img in soup.find_all('img'):
        src = img.get('data-src') or img.get('src')
        if not src or not src.strip():
            continue
        resolved = _resolve_url(src, base_url)
        if _is_content_image(resolved):
            return unwrap_image_url(resolved)
    return ''


def extract_metadata(html: str, base_url: str) -> dict:
    """
    Extract post metadata from HTML.

    Every field is a string; missing signals are ''.
    BeautifulSoup decodes HTML entities in both attributes and text.
    """
    metadata = {
        'name': '',
        'caption': '',
        'imageUrl': '',
        'rawTitle': '',
        'ogTitle': '',
        'ogDesc': '',
    }

    if not html:
        return metadata

    soup = BeautifulSoup(html, 'html.parser')

    og_site = _meta_content(soup, 'og:site_name')
    og_title = _meta_content(soup, 'og:title')
    title_tag = soup.find('title')
    raw_title = title_tag.get_text(strip=True) if title_tag else ''

    og_desc = _meta_content(soup, 'og:description')
    twitter_desc = _meta_content(soup, 'twitter:description')
    meta_desc = _meta_content(soup, 'description')

    metadata['rawTitle'] = raw_title
    metadata['ogTitle'] = og_title
    metadata['ogDesc'] = og_desc
    metadata['name'] = og_site or og_title or raw_title
    metadata['caption'] = og_desc or twitter_desc or meta_desc

    # Image: og:image variants first, then the first real <img>
    for key in ('og:image', 'og:image:secure_url', 'og:image:url'):
        candidate = _meta_content(soup, key)
        if candidate:
            metadata['imageUrl'] = unwrap_image_url(_resolve_url(candidate, base_url))
            break
    else:
        metadata['imageUrl'] = _first_content_image(soup, base_url)

    return metadata


def _json_response(body: dict, status: int = 200):
    headers = {'Content-Type': 'application/json', **CORS_HEADERS}
    return (json.dumps(body), status, headers)


def _failure(reason: str, status: int = 200, **extra):
    body = {'ok': False, 'reason': reason, 'name': 'unknown', 'caption': '', 'imageUrl': ''}
    body.update(extra)
    return _json_response(body, status)


@functions_framework.http
def scrape_post(request):
    """
    Main Cloud Function entry point.

    Expected JSON input:
    {
        "url": "https://www.facebook.com/somepage/posts/123",
        "cookies": "c_user=...; xs=..."   (optional; string or list)
    }

    Unreachable posts are reported as ok=false with HTTP 200; that is an
    expected outcome against a login-walled site, not a server error.

    A missing or invalid url is rejected with HTTP 400 (the previous
    endpoint answered 200). The body keeps the same {ok: false, reason, ...}
    shape, so callers that only read 'ok' and 'reason' are unaffected.
    """
    if request.method == 'OPTIONS':
        return ('', 204, {**CORS_HEADERS, 'Access-Control-Max-Age': '3600'})

    if request.method != 'POST':
        return _json_response({'error': 'Method Not Allowed'}, 405)

    try:
        request_json = request.get_json(silent=True)
        if not isinstance(request_json, dict):
            request_json = {}

        url = request_json.get('url')
        if not url:
            return _failure('missing-url', 400)

        try:
            candidates = build_candidates(url)
        except InvalidUrl as e:
            return _failure('invalid-url', 400, details=str(e))

        cookies = parse_cookies(request_json.get('cookies'))
        header_value = cookie_header(cookies) if cookies else None

        outcome, tried = fetch_first_qualifying(candidates, IDENTITY_PROFILES, header_value)

        if outcome is None:
            return _failure('fetch-failed', tried=tried)

        meta = extract_metadata(outcome.body, outcome.final_url)
        return _json_response({
            'ok': True,
            'inputUrl': url,
            'finalUrl': outcome.final_url,
            'name': meta['name'] or 'unknown',
            'caption': meta['caption'],
            'imageUrl': meta['imageUrl'],
            'tried': tried,
        })

    except Exception as e:
        print(f"Scrape error: {e}")
        return _failure('exception', details=str(e))
