"""
Post Screenshot Cloud Function

Renders a social-media post in a headless browser and returns a cropped
JPEG of the post as a base64 data URL.

Responsibilities:
- Render the basic (lowest-markup) mirror of the post
- Apply caller-supplied session cookies before loading the post
- Block images/fonts/media/stylesheets to keep inside the time budget
- Crop to the post container, or capture the full page when none is found

Does NOT:
- Extract text metadata (post-scraper's job)
- Manage login sessions (cookies are supplied by the caller)
"""

import functions_framework
from playwright.sync_api import sync_playwright
from urllib.parse import urlparse
import base64
import json
import os
import shutil
import sys
from typing import Optional

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
from shared.url_utils import InvalidUrl, normalize_post_url
from shared.cookie_utils import parse_cookies

# Configuration
# Kept well under the function timeout so failures surface before the platform kills us
NAVIGATION_TIMEOUT_MS = int(os.environ.get('SCREENSHOT_TIMEOUT_MS', '10000'))
SETTLE_DELAY_MS = int(os.environ.get('SETTLE_DELAY_MS', '1200'))
CHROMIUM_EXECUTABLE_PATH = os.environ.get('CHROMIUM_EXECUTABLE_PATH')

VIEWPORT = {'width': 640, 'height': 1024}
MOBILE_USER_AGENT = 'Mozilla/5.0 (iPhone; CPU iPhone OS 16_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.0 Mobile/15E148 Safari/604.1'
JPEG_QUALITY = 80
CLIP_MARGIN = 8

# Env vars set by the hosted runtimes we deploy to
SERVERLESS_ENV_VARS = ('K_SERVICE', 'FUNCTION_TARGET', 'AWS_LAMBDA_FUNCTION_NAME', 'NETLIFY')

# Flags for running Chromium inside a sandboxed function container
SANDBOX_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-gpu',
    '--no-zygote',
    '--single-process',
]

BLOCKED_RESOURCE_TYPES = {'image', 'font', 'media', 'stylesheet', 'other'}

HIDE_CHROME_CSS = """
#header, header, [role="banner"], [data-cookiebanner], [data-nosnippet], [data-testid="cookie-policy-banner"],
div[role="dialog"], ._53iv, ._5hn6 { display: none !important; }
html, body { background: #fff !important; }
"""

# Post container selectors, most specific first
REGION_SELECTORS = (
    'article',
    '#m_story_permalink_view',
    '.userContentWrapper',
    '[data-ft]',
    '[role="main"]',
)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Headers': 'Content-Type',
    'Access-Control-Allow-Methods': 'POST, OPTIONS',
}


class RenderFailure(RuntimeError):
    """Browser launch or navigation failed. The session is already closed."""


def is_serverless_runtime() -> bool:
    """Check if we're running inside a hosted function container."""
    return any(os.environ.get(name) for name in SERVERLESS_ENV_VARS)


def local_engine_available(playwright) -> bool:
    """Check for a Playwright-managed Chromium we can launch directly."""
    if is_serverless_runtime():
        return False
    path = playwright.chromium.executable_path
    return bool(path) and os.path.exists(path)


def _bundled_executable() -> Optional[str]:
    if CHROMIUM_EXECUTABLE_PATH:
        return CHROMIUM_EXECUTABLE_PATH
    return shutil.which('chromium') or shutil.which('chromium-browser') or shutil.which('headless_shell')


def select_engine(playwright) -> dict:
    """
    Pick the browser to launch.

    Local development uses the Playwright-managed Chromium as-is. Anywhere
    else (or when that binary is missing) use the bundled, sandbox-friendly
    build with container flags.

    Returns:
        dict with 'name' ('local' or 'bundled') and 'launch_options'
    """
    if local_engine_available(playwright):
        return {'name': 'local', 'launch_options': {'headless': True}}

    launch_options = {'headless': True, 'args': list(SANDBOX_ARGS)}
    executable = _bundled_executable()
    if executable:
        launch_options['executable_path'] = executable
    else:
        print("No Chromium found (set CHROMIUM_EXECUTABLE_PATH or install chromium); "
              "falling back to the Playwright default binary")
    return {'name': 'bundled', 'launch_options': launch_options}


def block_nonessential(route):
    """Route handler: only documents, scripts and XHR/fetch go through."""
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        route.abort()
    else:
        route.continue_()


def _site_root(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}/"


def open_post_page(browser, url: str, cookies=None):
    """
    Open a page on an already launched browser and navigate it to the post.

    Cookies need a matching origin, so with cookies we load the site root,
    add them, then load the post. Closing the browser is the caller's job.
    """
    context = browser.new_context(
        viewport=VIEWPORT,
        user_agent=MOBILE_USER_AGENT,
        ignore_https_errors=True,
    )
    context.set_default_timeout(NAVIGATION_TIMEOUT_MS)
    context.set_default_navigation_timeout(NAVIGATION_TIMEOUT_MS)
    context.route('**/*', block_nonessential)

    page = context.new_page()

    if cookies:
        page.goto(_site_root(url), wait_until='domcontentloaded')
        context.add_cookies([cookie.to_playwright() for cookie in cookies])
        print(f"Applied {len(cookies)} cookies")

    page.goto(url, wait_until='domcontentloaded')

    # Hide banners and dialogs so they don't end up in the capture
    page.add_style_tag(content=HIDE_CHROME_CSS)
    page.wait_for_timeout(SETTLE_DELAY_MS)

    return page


def detect_region(page) -> Optional[dict]:
    """
    Find the post container and return a padded clip rectangle.

    Returns None (capture the full page) when no selector matches, the
    match has no area, or the lookup fails.
    """
    try:
        for selector in REGION_SELECTORS:
            element = page.query_selector(selector)
            if element is None:
                continue

            box = element.bounding_box()
            if not box or box['width'] <= 0 or box['height'] <= 0:
                return None

            return {
                'x': max(0, box['x'] - CLIP_MARGIN),
                'y': max(0, box['y'] - CLIP_MARGIN),
                'width': box['width'] + CLIP_MARGIN * 2,
                'height': box['height'] + CLIP_MARGIN * 2,
            }
    except Exception as e:
        print(f"Region detection failed, using full page: {e}")

    return None


def encode_data_url(buffer: bytes, mime_type: str = 'image/jpeg') -> str:
    """Encode raw image bytes as a base64 data URL."""
    return f"data:{mime_type};base64,{base64.b64encode(buffer).decode('ascii')}"


def capture(page, clip: Optional[dict] = None) -> dict:
    """Screenshot the clip (or the whole page) as JPEG and encode it."""
    options = {'type': 'jpeg', 'quality': JPEG_QUALITY, 'full_page': True}
    if clip:
        options['clip'] = clip

    buffer = page.screenshot(**options)
    return {
        'encodedImage': encode_data_url(buffer),
        'url': page.url,
    }


def capture_post_screenshot(url: str, cookies=None, playwright_factory=None) -> dict:
    """
    Render a post and return {'encodedImage', 'url'}.

    Raises:
        InvalidUrl: if the URL cannot be parsed
        RenderFailure: if launch, navigation or capture fails
    """
    target_url = normalize_post_url(url)
    cookie_records = parse_cookies(cookies)
    playwright_factory = playwright_factory or sync_playwright

    with playwright_factory() as playwright:
        engine = select_engine(playwright)
        print(f"Launching {engine['name']} browser for {target_url}")

        try:
            browser = playwright.chromium.launch(**engine['launch_options'])
        except Exception as e:
            raise RenderFailure(f"Browser launch failed ({engine['name']}): {e}") from e

        try:
            page = open_post_page(browser, target_url, cookie_records)
            clip = detect_region(page)
            if clip is None:
                print("No post container found, capturing full page")
            return capture(page, clip)
        except Exception as e:
            raise RenderFailure(str(e)) from e
        finally:
            browser.close()


@functions_framework.http
def screenshot_post(request):
    """
    Main Cloud Function entry point.

    Expected JSON input:
    {
        "url": "https://www.facebook.com/somepage/posts/123",
        "cookies": [{"name": "c_user", "value": "..."}]   (optional)
    }
    """
    if request.method == 'OPTIONS':
        return ('', 204, {**CORS_HEADERS, 'Access-Control-Max-Age': '3600'})

    headers = {'Content-Type': 'application/json', **CORS_HEADERS}

    if request.method != 'POST':
        return (json.dumps({'error': 'Method Not Allowed'}), 405, headers)

    request_json = request.get_json(silent=True)
    if not isinstance(request_json, dict):
        request_json = {}

    url = str(request_json.get('url') or '').strip()

    try:
        result = capture_post_screenshot(url, request_json.get('cookies'))
    except InvalidUrl as e:
        return (json.dumps({
            'error': {
                'stage': 'input',
                'message': 'Invalid request body. Expected JSON with { url }.',
                'details': str(e),
                'recoverable': False
            }
        }), 400, headers)
    except Exception as e:
        print(f"Screenshot error: {e}")
        return (json.dumps({
            'error': {
                'stage': 'render',
                'message': 'Failed to screenshot',
                'details': str(e),
                'recoverable': True
            }
        }), 500, headers)

    return (json.dumps(result), 200, {**headers, 'Cache-Control': 'no-store'})
