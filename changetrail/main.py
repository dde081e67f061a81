"""Main FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from changetrail.api.routes import router
from changetrail.config import settings
from changetrail.database import Base, engine
# Import records to register them with SQLAlchemy Base
from changetrail.models import records  # noqa: F401
from changetrail.services.resolvers import ResolverRegistry

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    Base.metadata.create_all(bind=engine)
    missing = app.state.registry.missing_kinds()
    if missing:
        logger.warning("No resolvers registered for: %s", ", ".join(missing))
    yield


def create_app(registry: ResolverRegistry = None) -> FastAPI:
    """Build the app. Hosts register their entity resolvers on the registry."""
    app = FastAPI(
        title="changetrail",
        description="Audit trail of site changes: field-level before/after events.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = registry or ResolverRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API routes
    app.include_router(router, prefix="/api", tags=["Events"])

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": "changetrail"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
