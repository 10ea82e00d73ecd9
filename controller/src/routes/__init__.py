from controller.src.routes.health import router as health_router, create_health_app

__all__ = ["health_router", "create_health_app"]
