"""CORS for the web client origins."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from unibits.config import Settings

EXPOSED_HEADERS = ["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"]


def setup_cors(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=EXPOSED_HEADERS,
    )
