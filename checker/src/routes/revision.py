"""
Latest revision endpoint.
"""

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["revision"])

@router.get("/", response_class=PlainTextResponse)
async def latest_revision(request: Request):
    """200 with the commit hash, or 404 until the first fetch succeeded."""
    revision = request.app.state.checker.latest_revision()
    if not revision:
        return PlainTextResponse("revision not found", status_code=404)
    return PlainTextResponse(revision)
