"""
Shared pytest fixtures for Post Evidence Capture tests.
"""

import pytest
import sys
import importlib.util
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from unittest.mock import MagicMock

# Project root for finding Cloud Function modules
PROJECT_ROOT = Path(__file__).parent.parent


def _load_module_from_path(module_name: str, file_path: Path):
    """Load a module from a specific file path."""
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


# Load Cloud Function modules with unique names at module load time
_post_scraper_module = _load_module_from_path(
    'post_scraper_main',
    PROJECT_ROOT / 'post-scraper' / 'main.py'
)

_post_screenshot_module = _load_module_from_path(
    'post_screenshot_main',
    PROJECT_ROOT / 'post-screenshot' / 'main.py'
)


# ============================================================================
# Post Scraper Fixtures
# ============================================================================

@pytest.fixture
def scraper():
    """Returns the post-scraper module."""
    return _post_scraper_module


@pytest.fixture
def extract_metadata():
    """Returns extract_metadata function from post-scraper."""
    return _post_scraper_module.extract_metadata


@pytest.fixture
def unwrap_image_url():
    """Returns unwrap_image_url function from post-scraper."""
    return _post_scraper_module.unwrap_image_url


@pytest.fixture
def is_login_wall():
    """Returns is_login_wall function from post-scraper."""
    return _post_scraper_module.is_login_wall


@pytest.fixture
def fetch_candidate():
    """Returns fetch_candidate function from post-scraper."""
    return _post_scraper_module.fetch_candidate


@pytest.fixture
def fetch_first_qualifying():
    """Returns fetch_first_qualifying function from post-scraper."""
    return _post_scraper_module.fetch_first_qualifying


@pytest.fixture
def scrape_post():
    """Returns main entry point from post-scraper."""
    return _post_scraper_module.scrape_post


# ============================================================================
# Post Screenshot Fixtures
# ============================================================================

@pytest.fixture
def screenshot():
    """Returns the post-screenshot module."""
    return _post_screenshot_module


@pytest.fixture
def screenshot_post():
    """Returns main entry point from post-screenshot."""
    return _post_screenshot_module.screenshot_post


# ============================================================================
# HTML Fixtures
# ============================================================================

@pytest.fixture
def og_post_html():
    """Post page with a full set of Open Graph tags."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
        <title>Facebook</title>
        <meta property="og:title" content="Tom &amp; Jerry&#39;s Page">
        <meta property="og:description" content="Breaking: &quot;cats&quot; &lt;3 dogs">
        <meta property="og:image" content="https://scontent.xx.fbcdn.net/v/post.jpg">
        <meta name="twitter:description" content="Twitter text">
    </head>
    <body>
        <img src="/other.jpg">
    </body>
    </html>
    """


@pytest.fixture
def title_only_html():
    """Page with only a <title> and one content image."""
    return """
    <html>
    <head><title>Example</title></head>
    <body><img src="/a.jpg"></body>
    </html>
    """


@pytest.fixture
def login_wall_html():
    """Gated view returned with HTTP 200."""
    return """
    <html>
    <head><title>Log into Facebook</title></head>
    <body>
        <div>You must log in to continue.</div>
        <form id="login_form" action="/login/?next=%2Fsomepage"></form>
    </body>
    </html>
    """


@pytest.fixture
def mock_flask_request():
    """Factory for creating mock Flask request objects."""
    class MockRequest:
        def __init__(self, json_data=None, method='POST'):
            self._json = json_data
            self.method = method
            self.data = b''

        def get_json(self, force=False, silent=False):
            return self._json

    return MockRequest


@pytest.fixture
def drip_server():
    """Local HTTP server that sends headers, then one body byte every 50ms.

    Yields the "host:port" to fetch from.
    """
    stop = threading.Event()

    class DripHandler(BaseHTTPRequestHandler):
        def do_GET(self):
            self.send_response(200)
            self.send_header('Content-Type', 'text/html')
            self.send_header('Content-Length', '100000')
            self.end_headers()
            try:
                while not stop.is_set():
                    self.wfile.write(b'x')
                    self.wfile.flush()
                    stop.wait(0.05)
            except (BrokenPipeError, ConnectionResetError):
                pass

        def log_message(self, format, *args):
            pass

    server = ThreadingHTTPServer(('127.0.0.1', 0), DripHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield f"127.0.0.1:{server.server_address[1]}"

    stop.set()
    server.shutdown()
    server.server_close()


# ============================================================================
# Browser Fixtures
# ============================================================================

@pytest.fixture
def fake_page():
    """Playwright page double with no matching post container."""
    page = MagicMock()
    page.url = 'https://mbasic.facebook.com/somepage/posts/123'
    page.query_selector.return_value = None
    page.screenshot.return_value = b'\xff\xd8\xff\xe0jpeg'
    return page


@pytest.fixture
def fake_browser(fake_page):
    """Playwright browser double whose context yields fake_page."""
    browser = MagicMock()
    context = browser.new_context.return_value
    context.new_page.return_value = fake_page
    return browser


@pytest.fixture
def fake_playwright_factory(fake_browser):
    """Callable standing in for sync_playwright()."""
    playwright = MagicMock()
    playwright.chromium.executable_path = '/nonexistent/chromium'
    playwright.chromium.launch.return_value = fake_browser

    factory = MagicMock()
    factory.return_value.__enter__.return_value = playwright
    factory.return_value.__exit__.return_value = False
    factory.playwright = playwright
    return factory
