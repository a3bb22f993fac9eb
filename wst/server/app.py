"""FastAPI ingestion service for distributions pushed by other collectors.

Endpoints:
  PUT /collected-stats  -> store ``{id, stats|rawDistributions, config}`` on the collector
  GET /health           -> liveness plus collector counters
  GET /alerts/report    -> current JSON alert report

Auth: HTTP basic ``admin:<secret>`` on the ingestion endpoint when a secret is
configured. Request bodies may be gzip encoded (``Content-Encoding: gzip``).
"""
from __future__ import annotations

import gzip
import secrets
import zlib
from typing import TYPE_CHECKING, Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ..error_handling import ErrorCategory, ErrorSeverity, get_error_handler
from ..exporters.push import PUSH_USERNAME
from ..version import get_version

if TYPE_CHECKING:
    from ..collector import StatsCollector


class RawDistribution(BaseModel):
    model_config = ConfigDict(extra="ignore")

    all: list[float | None] = Field(default_factory=list)
    byHost: dict[str, list[float | None]] = Field(default_factory=dict)
    byCodec: dict[str, list[float | None]] = Field(default_factory=dict)
    byParticipantAndTrack: dict[str, float | None] = Field(default_factory=dict)


class PushConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str = ""
    pages: int = 0


class CollectedStatsPush(BaseModel):
    id: str
    stats: dict[str, RawDistribution] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("stats", "rawDistributions"),
    )
    config: PushConfig = Field(default_factory=PushConfig)


_basic = HTTPBasic(auto_error=False)


def _decode_body(body: bytes, encoding: str) -> bytes:
    encoding = encoding.strip().lower()
    try:
        if encoding == "gzip":
            return gzip.decompress(body)
        if encoding == "deflate":
            return zlib.decompress(body)
    except (OSError, zlib.error, EOFError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"invalid {encoding} body: {e}") from e
    return body


def create_app(collector: StatsCollector, secret: str | None = None) -> FastAPI:
    """Build the ingestion app bound to ``collector``."""
    app = FastAPI(title="wst stats collector", version=get_version())
    app.state.collector = collector

    def require_auth(credentials: HTTPBasicCredentials | None = Depends(_basic)) -> None:
        if not secret:
            return
        ok = credentials is not None and secrets.compare_digest(
            credentials.username.encode(), PUSH_USERNAME.encode()
        ) and secrets.compare_digest(credentials.password.encode(), secret.encode())
        if not ok:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="invalid credentials",
                headers={"WWW-Authenticate": "Basic"},
            )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        get_error_handler().handle_error(
            exception=exc,
            category=ErrorCategory.EXTERNAL_STATS,
            severity=ErrorSeverity.LOW,
            component="server.app",
            function_name=str(request.url.path),
            message="Pushed stats validation failed",
        )
        return JSONResponse({"error": "validation_failed", "detail": exc.errors()}, status_code=422)

    @app.put("/collected-stats", dependencies=[Depends(require_auth)])
    async def put_collected_stats(request: Request) -> dict[str, Any]:
        body = _decode_body(await request.body(), request.headers.get("content-encoding", ""))
        try:
            push = CollectedStatsPush.model_validate_json(body)
        except ValidationError as e:
            raise RequestValidationError(e.errors(include_url=False, include_context=False, include_input=False)) from e
        stats = {name: dist.model_dump() for name, dist in push.stats.items()}
        collector.add_external_stats(push.id, stats, push.config.model_dump())
        return {"message": f"stats from {push.id} added", "metrics": len(stats)}

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok" if collector.running else "stopped",
            "sessions": len(collector.sessions),
            "external": len(collector.external_stats),
            "dropped_samples": collector.dropped_samples,
        }

    @app.get("/alerts/report")
    async def alerts_report() -> dict[str, Any]:
        return collector.alert_report()

    return app


__all__ = ["CollectedStatsPush", "PushConfig", "RawDistribution", "create_app"]
