import logging

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse

from richlink_api.configurations.config import settings
from richlink_api.configurations.health_check_config import setup_health_checks
from richlink_api.configurations.logging_config import setup_logging
from richlink_api.lifespan import lifespan
from richlink_api.routes import link_previews

setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(lifespan=lifespan)


def allowed_api_keys() -> list[str]:
    # Comma-separated list of keys in settings.api_secret_key
    return [k.strip() for k in (settings.api_secret_key or "").split(",") if k.strip()]


class APIKeyMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request.state.user_id = request.headers.get("x-user-id") or None

        if request.url.path == "/health":
            return await call_next(request)

        x_api_key = request.headers.get("x-api-key") or "unknown"
        if x_api_key not in allowed_api_keys():
            logger.warning(f"Rejected request to {request.url.path}: invalid x-api-key")
            return JSONResponse(
                {"detail": "Invalid or missing x-api-key"},
                status_code=401,
            )
        return await call_next(request)


app.add_middleware(APIKeyMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(link_previews.router)

setup_health_checks(app)
