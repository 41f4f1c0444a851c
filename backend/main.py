"""
GradeSense API: main entry point.
Builds the FastAPI app: settings, lifespan (service wiring), CORS, routes.

Run with:  uvicorn main:create_app --factory
"""

from typing import Optional

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware

from app.config import CORS_ALLOW_HEADERS, Settings, get_version_info, load_settings, logger
from app.routes import register_all_routes
from app.services import Services, build_services


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Create the app. Missing configuration raises ConfigurationError here,
    before the server accepts any request.
    """
    if services is not None:
        settings = services.settings
    elif settings is None:
        settings = load_settings()

    async def lifespan(app: FastAPI):
        logger.info("🚀 FastAPI app starting up...")
        owns_services = services is None
        app.state.services = services if services is not None else build_services(settings)
        logger.info("REGISTERED ROUTES: %s", [r.path for r in app.routes])
        logger.info("=" * 60)

        yield

        logger.info("🛑 FastAPI app shutting down...")
        if owns_services:
            app.state.services.close()

    app = FastAPI(title="GradeSense API", lifespan=lifespan)

    api_router = APIRouter(prefix="/api")

    @api_router.get("/version")
    async def get_version():
        """Public version endpoint for deployment verification"""
        return get_version_info()

    register_all_routes(api_router)
    app.include_router(api_router)

    @app.get("/health")
    async def root_health_check():
        """Health check for Kubernetes liveness/readiness probes"""
        return {"status": "healthy", "service": "GradeSense API"}

    # Pre-flight requests get the fixed permissive header set
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=settings.cors_origins != ["*"],
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=CORS_ALLOW_HEADERS,
    )

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8000)
