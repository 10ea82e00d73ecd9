from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])

@router.get("/healthz")
async def health_check():
    return {"status": "healthy", "service": "sitex-operator"}

@router.get("/readyz")
async def ready_check(request: Request):
    """Ready once the WebSite cache has completed its first list."""
    cache = request.app.state.cache
    if not cache.synced:
        return JSONResponse(status_code=503, content={"status": "unready", "cache": "syncing"})
    return {
        "status": "ready",
        "websites": len(cache.list()),
        "queue_length": request.app.state.queue_length(),
    }

def create_health_app(cache, queue_length) -> FastAPI:
    app = FastAPI(title="SiteX Operator", version="0.1.0")
    app.state.cache = cache
    app.state.queue_length = queue_length
    app.include_router(router)
    return app
