"""
Paste routes.
Handles create, fetch (API, counts a view), and view (HTML, does not count a view).
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import HTMLResponse

from pastestore.clock import TimeAuthority, to_iso
from pastestore.config import Settings
from pastestore.database import PasteStore
from pastestore.exceptions import NotFoundOrUnavailable
from pastestore.models import ErrorResponse, PasteCreate, PasteResponse, PasteView
from pastestore.routes.deps import get_clock, get_settings, get_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/api/pastes",
    response_model=PasteResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
)
def create_paste(
    paste: PasteCreate,
    x_test_now_ms: Optional[str] = Header(None),
    store: PasteStore = Depends(get_store),
    clock: TimeAuthority = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> PasteResponse:
    """
    Create a new paste.

    Args:
        paste: Paste data (content, optional ttl_seconds, optional max_views)
        x_test_now_ms: Optional test timestamp (TEST_MODE only), used for expiry math

    Returns:
        Paste ID and shareable URL

    Raises:
        ValidationError: If input is invalid (mapped to 400)
        StorageFailure: If the paste could not be saved (mapped to 500)
    """
    paste_id = store.create(
        paste.content,
        ttl_seconds=paste.ttl_seconds,
        max_views=paste.max_views,
        now=clock.resolve(x_test_now_ms),
        created_at=clock.wall(),
    )

    base_url = settings.APP_DOMAIN.rstrip("/")
    return PasteResponse(id=paste_id, url=f"{base_url}/p/{paste_id}")


@router.get(
    "/api/pastes/{paste_id}",
    response_model=PasteView,
    responses={404: {"model": ErrorResponse}},
)
def fetch_paste(
    paste_id: str,
    x_test_now_ms: Optional[str] = Header(None),
    store: PasteStore = Depends(get_store),
    clock: TimeAuthority = Depends(get_clock),
) -> PasteView:
    """
    Fetch a paste (API endpoint).
    Each successful fetch consumes one view.

    Raises:
        NotFoundOrUnavailable: If paste not found, expired, or view limit exceeded (404)
    """
    result = store.consume(paste_id, clock.resolve(x_test_now_ms))
    if not result.available:
        raise NotFoundOrUnavailable(paste_id)

    return PasteView(
        content=result.content,
        remaining_views=result.remaining_views,
        expires_at=to_iso(result.expires_at),
    )


@router.get("/p/{paste_id}", response_class=HTMLResponse)
def view_paste(
    paste_id: str,
    x_test_now_ms: Optional[str] = Header(None),
    store: PasteStore = Depends(get_store),
    clock: TimeAuthority = Depends(get_clock),
) -> HTMLResponse:
    """
    View a paste as HTML.
    Rendering never counts as a view.

    Returns:
        HTML page with paste content, or a 404 page
    """
    result = store.peek(paste_id, clock.resolve(x_test_now_ms))
    if not result.available:
        return HTMLResponse(render_404_page(), status_code=404)

    return HTMLResponse(render_paste_page(paste_id, result.content))


def escape_html(text: str) -> str:
    """Escape HTML entities for safe display."""
    return (
        text
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
    )


PAGE_STYLE = """
        body {
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Arial, sans-serif;
            margin: 1.5rem;
            color: #333;
        }
        pre {
            background: #f5f5f5;
            border: 1px solid #ddd;
            border-radius: 5px;
            padding: 1rem;
            font-family: "Courier New", monospace;
            white-space: pre-wrap;
            word-wrap: break-word;
        }
"""


def render_paste_page(paste_id: str, content: str) -> str:
    """Render a paste as a standalone HTML page."""
    safe_id = escape_html(paste_id)
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Paste {safe_id}</title>
    <style>{PAGE_STYLE}</style>
</head>
<body>
    <h1>Paste {safe_id}</h1>
    <pre>{escape_html(content)}</pre>
</body>
</html>"""


def render_404_page() -> str:
    """Render a 404 error page."""
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>Not Found</title>
    <style>{PAGE_STYLE}</style>
</head>
<body>
    <h1>404</h1>
    <p>This paste was not found or is no longer available.</p>
</body>
</html>"""
