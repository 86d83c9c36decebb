"""
Cookie parsing utilities for Post Evidence Capture.

Callers hand over session cookies in whatever shape they exported them:
- a list of cookie objects (browser extension export)
- the same list as a JSON string
- a raw "name=value; name2=value2" Cookie header

Everything is normalized to CookieRecord. Parsing never raises; input that
cannot be understood produces an empty list.
"""

import json
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_COOKIE_DOMAIN = '.facebook.com'
DEFAULT_SAME_SITE = 'Lax'

_SAME_SITE_VALUES = {
    'strict': 'Strict',
    'lax': 'Lax',
    'none': 'None',
    'no_restriction': 'None',
    'unspecified': 'Lax',
}


@dataclass(frozen=True)
class CookieRecord:
    name: str
    value: str
    domain: str = DEFAULT_COOKIE_DOMAIN
    path: str = '/'
    httpOnly: bool = False
    secure: bool = True
    sameSite: str = DEFAULT_SAME_SITE
    expires: Optional[float] = None

    def to_playwright(self) -> dict:
        """Shape accepted by BrowserContext.add_cookies()."""
        cookie = {
            'name': self.name,
            'value': self.value,
            'domain': self.domain,
            'path': self.path,
            'httpOnly': self.httpOnly,
            'secure': self.secure,
            'sameSite': self.sameSite,
        }
        if self.expires is not None:
            cookie['expires'] = self.expires
        return cookie

    def to_header(self) -> str:
        return f"{self.name}={self.value}"


def _as_bool(value, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def _normalize_same_site(value) -> str:
    if not isinstance(value, str):
        return DEFAULT_SAME_SITE
    return _SAME_SITE_VALUES.get(value.strip().lower(), DEFAULT_SAME_SITE)


def _normalize_expires(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        expires = float(value)
    except (TypeError, ValueError):
        return None
    # Session cookies are exported as -1 or 0
    return expires if expires > 0 else None


def _record_from_dict(raw: dict, default_domain: str) -> Optional[CookieRecord]:
    """Build a CookieRecord from one cookie-like dict, or None if unusable."""
    name = str(raw.get('name') or '').strip()
    if not name:
        return None

    value = raw.get('value')
    value = '' if value is None else str(value).strip()

    domain = str(raw.get('domain') or '').strip() or default_domain
    path = str(raw.get('path') or '').strip() or '/'

    return CookieRecord(
        name=name,
        value=value,
        domain=domain,
        path=path,
        httpOnly=_as_bool(raw.get('httpOnly'), False),
        secure=_as_bool(raw.get('secure'), True),
        sameSite=_normalize_same_site(raw.get('sameSite')),
        expires=_normalize_expires(raw.get('expires', raw.get('expirationDate'))),
    )


def _parse_header_string(header: str) -> List[dict]:
    """Split a "k=v; k2=v2" header into cookie dicts."""
    if header.lower().startswith('cookie:'):
        header = header[len('cookie:'):]

    pairs = []
    for part in header.split(';'):
        if '=' not in part:
            continue
        name, value = part.split('=', 1)
        pairs.append({'name': name, 'value': value})
    return pairs


def parse_cookies(cookies, default_domain: str = DEFAULT_COOKIE_DOMAIN) -> List[CookieRecord]:
    """
    Normalize caller-supplied cookies into CookieRecords.

    Args:
        cookies: list of dicts, JSON string of such a list (or one object),
                 or a "k=v; k2=v2" header string
        default_domain: domain applied when a cookie does not name one

    Returns:
        List of CookieRecord (empty on malformed input)

    Examples:
        >>> [c.to_header() for c in parse_cookies("a=b; c=d")]
        ['a=b', 'c=d']
    """
    if not cookies:
        return []

    raw_items = cookies
    if isinstance(cookies, str):
        text = cookies.strip()
        if text.startswith('[') or text.startswith('{'):
            try:
                raw_items = json.loads(text)
            except ValueError:
                return []
        else:
            raw_items = _parse_header_string(text)

    if isinstance(raw_items, dict):
        raw_items = [raw_items]

    if not isinstance(raw_items, (list, tuple)):
        return []

    records = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        record = _record_from_dict(raw, default_domain)
        if record:
            records.append(record)

    return records


def cookie_header(records: List[CookieRecord]) -> str:
    """Join cookie records into a Cookie request header value."""
    return '; '.join(record.to_header() for record in records)
