"""
FastAPI Gateway for the SA School Recommender
Marks form validation, institution recommendations and counselor chat over Gemini
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import uvicorn
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST, Counter

from . import dependencies
from .config import GatewaySettings
from .models import HealthResponse
from .routes import sessions as sessions_router
from .services.demo_mode import DemoGateway, DemoMode
from .services.gemini_gateway import GeminiClient, GeminiGateway
from .services.session_registry import SessionRegistry

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

try:
    http_requests_total = Counter(
        'http_requests_total',
        'Total HTTP requests by method, path template, and status',
        ['method', 'route', 'status']
    )
except ValueError:
    # metrics already registered (uvicorn --reload)
    from prometheus_client import REGISTRY
    http_requests_total = REGISTRY._names_to_collectors['http_requests_total']

settings = GatewaySettings.from_env()

# Initialize FastAPI app
app = FastAPI(
    title="SA School Recommender Gateway",
    description="Validates student marks and brokers recommendation and counselor calls to Gemini",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def http_request_counter_middleware(request, call_next):
    """Count all HTTP requests with method, route template, and status labels"""
    response = await call_next(request)

    route = request.url.path
    if request.scope.get("route"):
        route = request.scope["route"].path

    http_requests_total.labels(
        method=request.method,
        route=route,
        status=str(response.status_code)
    ).inc()

    return response

# Shared provider client (None in demo mode)
gemini_client: Optional[GeminiClient] = None

def build_session_registry(cfg: GatewaySettings) -> SessionRegistry:
    """Wire the gateway factory for new sessions from settings"""
    global gemini_client

    if cfg.demo_mode or DemoMode.is_enabled():
        logger.info("🎬 Demo mode: sessions use the deterministic gateway")
        factory = DemoGateway
    else:
        gemini_client = GeminiClient.from_settings(cfg)
        client = gemini_client
        factory = lambda: GeminiGateway(client)
        logger.info(f"Gemini gateway ready: model={cfg.model}")

    return SessionRegistry(
        gateway_factory=factory,
        maxsize=cfg.session_max,
        ttl_seconds=cfg.session_ttl_seconds,
    )

@app.on_event("startup")
async def startup_event():
    """Initialize services on startup"""
    logger.info("Initializing SA School Recommender Gateway...")
    try:
        dependencies.set_session_registry(build_session_registry(settings))
        logger.info("All services initialized successfully")
    except Exception as e:
        logger.exception(f"Failed to initialize services: {e}")
        raise

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown - prevents connection leaks"""
    global gemini_client

    logger.info("Shutting down SA School Recommender Gateway...")
    try:
        if gemini_client:
            await gemini_client.close()
            logger.info("Gemini client connections closed")
    except Exception as e:
        logger.error(f"Error closing Gemini client: {e}")
    gemini_client = None
    dependencies.set_session_registry(None)
    logger.info("Shutdown complete")

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    services = {"sessions": dependencies.session_registry is not None}
    overall_status = "healthy" if services["sessions"] else "unhealthy"

    if gemini_client is not None:
        provider = await gemini_client.health_check()
        services["gemini"] = provider.get("status") == "healthy"
        if not services["gemini"] and overall_status == "healthy":
            overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        services=services,
        timestamp=datetime.now(timezone.utc).isoformat()
    )

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

app.include_router(sessions_router.router)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Handle request validation errors with structured 422 responses"""
    error_details = []
    for error in exc.errors():
        error_details.append({
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(f"Request validation failed: {error_details}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {
                    "validation_errors": error_details,
                    "error_count": len(error_details)
                }
            }
        }
    )

@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": "HTTP_ERROR",
                "message": exc.detail,
                "details": {"status_code": exc.status_code}
            }
        }
    )

@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler for unhandled errors"""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
                "details": {"error": str(exc)}
            }
        }
    )

if __name__ == "__main__":
    uvicorn.run(
        "school_recommender.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
