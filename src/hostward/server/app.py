"""HTTP API for custom domains.

Run:
    hostward serve --port 8000
    # or
    uvicorn hostward.server.app:create_app --factory --port 8000

The caller's identity is an opaque owner id passed in the ``X-Owner-Id``
header by the upstream auth layer.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from hostward import __version__, registrars
from hostward.core.config import HostwardConfig, get_config
from hostward.core.exceptions import (
    ConfigurationError,
    DomainNotFoundError,
    HostwardError,
    InvalidInputError,
    ProvisioningError,
    RegistrarErrorKind,
    StorageUnavailableError,
    TransientNetworkError,
    format_error_for_user,
)
from hostward.diagnostics import DiagnosticService
from hostward.domains.manager import DomainManager
from hostward.observability.metrics import generate_metrics, get_content_type

logger = structlog.get_logger()

_REGISTRAR_STATUS = {
    RegistrarErrorKind.UNKNOWN_REGISTRAR: 400,
    RegistrarErrorKind.UNSUPPORTED: 400,
    RegistrarErrorKind.AUTHENTICATION: 401,
    RegistrarErrorKind.ZONE_NOT_FOUND: 404,
    RegistrarErrorKind.TRANSPORT: 504,
    RegistrarErrorKind.API: 502,
}


class AddDomainRequest(BaseModel):
    domain: str = Field(min_length=1)
    attach: bool = True


class RegistrarCredentialBody(BaseModel):
    registrar: str = Field(min_length=1)
    api_key: str | None = None
    api_secret: str | None = None
    user_id: str | None = None
    zone: str | None = None
    client_ip: str | None = None

    def to_credential(self) -> registrars.RegistrarCredential:
        return registrars.RegistrarCredential(
            registrar_code=self.registrar,
            api_key=self.api_key,
            api_secret=self.api_secret,
            user_id=self.user_id,
            zone=self.zone,
            client_ip=self.client_ip,
        )


class RegistrarRecordsRequest(RegistrarCredentialBody):
    domain: str = Field(min_length=1)


def _status_for(error: HostwardError) -> int:
    if isinstance(error, InvalidInputError):
        return 400
    if isinstance(error, DomainNotFoundError):
        return 404
    if isinstance(error, (ConfigurationError, StorageUnavailableError)):
        return 503
    if isinstance(error, TransientNetworkError):
        return 504
    if isinstance(error, ProvisioningError):
        return error.status_code if error.status_code and error.status_code < 500 else 502
    return 500


def get_manager(request: Request) -> DomainManager:
    return request.app.state.manager


def get_owner_id(x_owner_id: str | None = Header(default=None)) -> str:
    if not x_owner_id:
        raise InvalidInputError("X-Owner-Id header is required")
    return x_owner_id


def create_app(
    manager: DomainManager | None = None,
    config: HostwardConfig | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        manager: Pre-built manager (tests inject one). If None, one is
            built from configuration and closed on shutdown.
        config: Configuration. If None, loads from environment.
    """
    config = config or get_config()
    owns_manager = manager is None
    manager = manager or DomainManager.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await manager.initialize()
        logger.info("Hostward API started", version=__version__)
        yield
        if owns_manager:
            await manager.close()

    app = FastAPI(title="Hostward", version=__version__, lifespan=lifespan)
    app.state.manager = manager
    app.state.diagnostics = DiagnosticService(
        manager.provisioning.config,
        manager.provisioning,
        manager.engine.resolver,
    )

    @app.exception_handler(HostwardError)
    async def hostward_error_handler(request: Request, exc: HostwardError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.warning(
                "Request failed", path=request.url.path, code=exc.code, error=exc.message
            )
        return JSONResponse(
            status_code=status,
            content={"success": False, "code": exc.code, "error": format_error_for_user(exc)},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_metrics(), media_type=get_content_type())

    @app.post("/domains", status_code=201)
    async def add_domain(
        body: AddDomainRequest,
        owner_id: str = Depends(get_owner_id),
        manager: DomainManager = Depends(get_manager),
    ):
        provisioned = await manager.provision_domain(owner_id, body.domain, attach=body.attach)
        return JSONResponse(
            status_code=201 if provisioned.created else 200,
            content={"success": True, **provisioned.to_dict()},
        )

    @app.get("/domains")
    async def list_domains(
        owner_id: str = Depends(get_owner_id),
        manager: DomainManager = Depends(get_manager),
    ):
        domains = await manager.list_domains(owner_id)
        return {"domains": [domain.to_dict() for domain in domains]}

    @app.get("/domains/{domain_id}")
    async def get_domain(
        domain_id: str,
        owner_id: str = Depends(get_owner_id),
        manager: DomainManager = Depends(get_manager),
    ):
        domain = await manager.get_domain(domain_id, owner_id)
        return {
            "domain": domain.to_dict(),
            "dns_records": [record.to_dict() for record in manager.dns_instructions(domain)],
        }

    @app.post("/domains/{domain_id}/validate")
    async def validate_domain(
        domain_id: str,
        owner_id: str = Depends(get_owner_id),
        manager: DomainManager = Depends(get_manager),
    ):
        await manager.get_domain(domain_id, owner_id)
        outcome = await manager.request_validation(domain_id, manual=True)
        return JSONResponse(status_code=outcome.status_code, content=outcome.to_dict())

    @app.get("/domains/{domain_id}/logs")
    async def list_logs(
        domain_id: str,
        limit: int = Query(default=20, ge=0),
        owner_id: str = Depends(get_owner_id),
        manager: DomainManager = Depends(get_manager),
    ):
        logs = await manager.list_logs(domain_id, owner_id, limit=limit)
        return {"logs": [log.to_dict() for log in logs]}

    @app.delete("/domains/{domain_id}")
    async def delete_domain(
        domain_id: str,
        owner_id: str = Depends(get_owner_id),
        manager: DomainManager = Depends(get_manager),
    ):
        deleted = await manager.delete_domain(domain_id, owner_id)
        return {"success": True, "deleted": deleted}

    @app.post("/domains/{domain_id}/records")
    async def push_records(
        domain_id: str,
        body: RegistrarCredentialBody,
        owner_id: str = Depends(get_owner_id),
        manager: DomainManager = Depends(get_manager),
    ):
        result = await manager.push_records(domain_id, body.to_credential(), owner_id)
        status = _REGISTRAR_STATUS[result.error.kind] if result.error else 200
        return JSONResponse(status_code=status, content=result.to_dict())

    @app.post("/registrars/records")
    async def registrar_records(body: RegistrarRecordsRequest):
        result = await registrars.list_records(
            body.domain,
            body.to_credential(),
            timeout=config.hosting.http_timeout,
        )
        status = _REGISTRAR_STATUS[result.error.kind] if result.error else 200
        return JSONResponse(status_code=status, content=result.to_dict())

    @app.get("/registrars/detect")
    async def detect_registrar(request: Request, domain: str):
        manager: DomainManager = request.app.state.manager
        detection = await registrars.detect_registrar(domain, manager.engine.resolver)
        return detection.to_dict()

    @app.get("/diagnostics")
    async def diagnostics(request: Request, domain: str | None = None):
        report = await request.app.state.diagnostics.diagnose(domain)
        return report.to_dict()

    return app
