from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Routers
from .routers.profile import router as profile_router

# Core modules
from .core.config import settings
from .core.errors import ProfileError, profile_error_handler, validation_error_handler
from .core.logging import configure_logging, CorrelationIdMiddleware
from .core.metrics import PromMiddleware, metrics_endpoint
from .services.profile_service import ProfileService

def create_app(service: ProfileService | None = None) -> FastAPI:
    """
    App factory so tests and ASGI servers can instantiate cleanly.
    Tests pass a ProfileService wired to fake providers.
    """
    configure_logging()  # Set up JSON logs + correlation-id filter

    app = FastAPI(
        title="House Profile API",
        version="1.0.0",
        description="Aggregated property profile for a French address: risks, energy, market, surroundings.",
    )
    # One service (and cache) per process
    app.state.profile_service = service or ProfileService()

    app.add_exception_handler(ProfileError, profile_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # CORS: the public front end calls the API directly.
    allow_origins = [o.strip() for o in settings.ALLOW_ORIGINS.split(",")] if settings.ALLOW_ORIGINS else ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["ETag", "X-Cache", "X-Request-Id"],
    )

    # Observability middlewares
    app.add_middleware(CorrelationIdMiddleware)  # Adds/propagates X-Request-Id
    if settings.PROMETHEUS_ENABLED:
        app.add_middleware(PromMiddleware)       # Records req/latency metrics

    # Meta routes
    @app.get("/v1/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    if settings.PROMETHEUS_ENABLED:
        # Standard Prometheus scrape endpoint
        app.add_route("/v1/metrics", metrics_endpoint, methods=["GET"])

    # Business routes
    app.include_router(profile_router, prefix="/v1", tags=["profile"])

    return app

app = create_app()
