from checker.src.routes.revision import router as revision_router

__all__ = ["revision_router"]
