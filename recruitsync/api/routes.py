"""
FastAPI routes for the recruitsync service.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Any, Callable, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from recruitsync.core.errors import (
    ExchangeFailedError,
    KeyNotFoundError,
    NotAuthenticatedError,
    NotConnectedError,
    PersistenceError,
    RateLimitedError,
    RecruitSyncError,
    UnsupportedServiceError,
    UpstreamServiceError,
)
from recruitsync.dependencies import (
    SettingsDependency,
    get_admin_session,
    get_audit_log,
    get_credential_vault,
    get_crm_proxy,
    get_job_catalog,
    get_oauth_session_manager,
    get_optional_session,
    get_session,
    get_sync_engine_factory,
    rate_limit,
)
from recruitsync.models.records import EntityType, SecurityEvent
from recruitsync.schemas import (
    AuthorizationUrlResponse,
    ConnectionResponse,
    ConnectionStatusResponse,
    JobItem,
    JobListingResponse,
    KeyTestResponse,
    ListKeysResponse,
    OAuthCallbackPayload,
    ProxyRequest,
    ProxyResponse,
    RetrieveKeyResponse,
    ServiceKeyRequest,
    StoreKeyRequest,
    StoreKeyResponse,
    SyncSummary,
    VaultKeyItem,
)
from recruitsync.services import (
    KeyNotFound,
    ProxySuccess,
    RateLimited,
    SessionContext,
    SyncDirection,
    SyncEngine,
)

router = APIRouter()
logger = logging.getLogger(__name__)

OptionalSession = Annotated[Optional[SessionContext], Depends(get_optional_session)]
RequiredSession = Annotated[SessionContext, Depends(get_session)]


def _http_error(exc: RecruitSyncError) -> HTTPException:
    """Map a domain error onto the HTTP status the front-end expects."""
    if isinstance(exc, NotAuthenticatedError):
        return HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, NotConnectedError):
        return HTTPException(status_code=HTTPStatus.CONFLICT, detail=str(exc))
    if isinstance(exc, ExchangeFailedError):
        return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))
    if isinstance(exc, KeyNotFoundError):
        return HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc))
    if isinstance(exc, UnsupportedServiceError):
        return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))
    if isinstance(exc, RateLimitedError):
        return HTTPException(
            status_code=HTTPStatus.TOO_MANY_REQUESTS,
            detail=str(exc),
            headers={"Retry-After": str(int(exc.retry_after))},
        )
    if isinstance(exc, UpstreamServiceError):
        return HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc))
    if isinstance(exc, PersistenceError):
        logger.error("Datastore write failed", extra={"reason": str(exc)})
        return HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail="Failed to save changes."
        )
    return HTTPException(status_code=HTTPStatus.INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(settings: SettingsDependency) -> dict:
    """Simple health endpoint for monitoring."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "data_source_mode": settings.data_source_mode,
    }


@router.get("/auth/jobadder/authorize", status_code=HTTPStatus.OK)
async def start_jobadder_oauth_flow(
    request: Request,
    session: OptionalSession,
    manager: Annotated[Any, Depends(get_oauth_session_manager)],
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the JobAdder consent screen.",
    ),
) -> Any:
    """Return the vendor consent URL, optionally as a redirect."""
    authorization_url = await manager.get_authorization_url(session)

    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    if redirect or wants_html:
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)

    return AuthorizationUrlResponse(authorization_url=authorization_url)


@router.post(
    "/auth/jobadder/callback",
    response_model=ConnectionResponse,
    dependencies=[Depends(rate_limit("auth_attempts"))],
)
async def handle_jobadder_oauth_callback(
    payload: OAuthCallbackPayload,
    session: OptionalSession,
    manager: Annotated[Any, Depends(get_oauth_session_manager)],
) -> ConnectionResponse:
    """Complete the exchange server-side; the response never carries tokens."""
    try:
        confirmation = await manager.exchange_code_for_tokens(
            session, payload.code, state=payload.state
        )
    except RecruitSyncError as exc:
        raise _http_error(exc) from exc

    return ConnectionResponse(
        status=confirmation.status,
        expires_at=confirmation.expires_at,
        instance=confirmation.instance,
        account=confirmation.account,
    )


@router.get("/auth/jobadder/status", response_model=ConnectionStatusResponse)
async def jobadder_connection_status(
    session: RequiredSession,
    manager: Annotated[Any, Depends(get_oauth_session_manager)],
) -> ConnectionStatusResponse:
    status = await manager.connection_status(session)
    return ConnectionStatusResponse(
        connected=status.connected,
        expires_at=status.expires_at,
        instance=status.instance,
        account=status.account,
    )


@router.delete("/auth/jobadder", status_code=HTTPStatus.NO_CONTENT)
async def disconnect_jobadder(
    session: RequiredSession,
    manager: Annotated[Any, Depends(get_oauth_session_manager)],
) -> Response:
    """Delete stored tokens and tell the browser to drop any cached remnants."""
    await manager.clear_tokens(session)
    return Response(
        status_code=HTTPStatus.NO_CONTENT,
        headers={"Clear-Site-Data": '"storage"'},
    )


@router.post(
    "/vault/keys",
    response_model=StoreKeyResponse,
    dependencies=[Depends(rate_limit("api_key_operations"))],
)
async def store_api_key(
    payload: StoreKeyRequest,
    session: OptionalSession,
    vault: Annotated[Any, Depends(get_credential_vault)],
) -> StoreKeyResponse:
    try:
        service_name = vault.store(
            session, payload.service_name, payload.api_key, label=payload.key_label
        )
    except ValueError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc
    except RecruitSyncError as exc:
        raise _http_error(exc) from exc
    return StoreKeyResponse(service_name=service_name)


@router.get(
    "/vault/keys",
    response_model=ListKeysResponse,
    dependencies=[Depends(rate_limit("api_key_operations"))],
)
async def list_api_keys(
    session: OptionalSession,
    vault: Annotated[Any, Depends(get_credential_vault)],
) -> ListKeysResponse:
    try:
        summaries = vault.list(session)
    except RecruitSyncError as exc:
        raise _http_error(exc) from exc
    return ListKeysResponse(
        api_keys=[
            VaultKeyItem(
                service_name=item.service_name,
                key_label=item.label,
                created_at=item.created_at,
                updated_at=item.updated_at,
            )
            for item in summaries
        ]
    )


@router.post(
    "/vault/keys/retrieve",
    response_model=RetrieveKeyResponse,
    dependencies=[Depends(rate_limit("api_key_operations"))],
)
async def retrieve_api_key(
    payload: ServiceKeyRequest,
    session: OptionalSession,
    vault: Annotated[Any, Depends(get_credential_vault)],
) -> RetrieveKeyResponse:
    try:
        api_key = vault.retrieve(session, payload.service_name)
    except RecruitSyncError as exc:
        raise _http_error(exc) from exc
    return RetrieveKeyResponse(service_name=payload.service_name.strip().lower(), api_key=api_key)


@router.delete(
    "/vault/keys/{service_name}",
    status_code=HTTPStatus.OK,
    dependencies=[Depends(rate_limit("api_key_operations"))],
)
async def delete_api_key(
    service_name: str,
    session: OptionalSession,
    vault: Annotated[Any, Depends(get_credential_vault)],
) -> dict:
    try:
        vault.delete(session, service_name)
    except RecruitSyncError as exc:
        raise _http_error(exc) from exc
    return {"success": True, "message": "API key deleted successfully"}


@router.post(
    "/vault/keys/{service_name}/test",
    response_model=KeyTestResponse,
    dependencies=[Depends(rate_limit("api_key_operations"))],
)
async def test_api_key(
    service_name: str,
    session: OptionalSession,
    vault: Annotated[Any, Depends(get_credential_vault)],
) -> KeyTestResponse:
    try:
        result = await vault.test(session, service_name)
    except RecruitSyncError as exc:
        raise _http_error(exc) from exc
    return KeyTestResponse(
        success=result.valid,
        service_name=result.service_name,
        message=result.message,
        status=result.status,
    )


@router.post(
    "/proxy",
    response_model=ProxyResponse,
    dependencies=[Depends(rate_limit("api_calls"))],
)
async def forward_crm_request(
    payload: ProxyRequest,
    session: RequiredSession,
    proxy: Annotated[Any, Depends(get_crm_proxy)],
) -> JSONResponse:
    """Forward one call to a secondary CRM using the caller's stored key."""
    try:
        result = await proxy.forward(
            session,
            payload.service_name,
            payload.endpoint,
            payload.method,
            body=payload.body,
            headers=payload.headers,
        )
    except ValueError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    headers: dict[str, str] = {}
    if isinstance(result, ProxySuccess):
        body = ProxyResponse(success=True, data=result.data, status=result.status)
        status_code = HTTPStatus.OK
    elif isinstance(result, RateLimited):
        body = ProxyResponse(
            success=False,
            error="Rate limit exceeded",
            status=result.status,
            retry_after=result.retry_after,
        )
        status_code = HTTPStatus.TOO_MANY_REQUESTS
        headers["Retry-After"] = str(int(result.retry_after))
    elif isinstance(result, KeyNotFound):
        body = ProxyResponse(
            success=False,
            error=f"API key not found for {result.service_name}",
            status=result.status,
        )
        status_code = HTTPStatus.NOT_FOUND
    else:
        body = ProxyResponse(
            success=False,
            error=f"{payload.service_name} API error",
            status=result.status,
            details=result.body,
        )
        status_code = result.status or HTTPStatus.BAD_GATEWAY

    return JSONResponse(
        content=body.model_dump(mode="json", exclude_none=True),
        status_code=status_code,
        headers=headers,
    )


@router.post("/sync/{system}/{entity_type}", response_model=SyncSummary)
async def run_sync(
    system: str,
    entity_type: EntityType,
    session: RequiredSession,
    engine_factory: Annotated[Callable[[str], SyncEngine], Depends(get_sync_engine_factory)],
    direction: SyncDirection = Query(default=SyncDirection.BIDIRECTIONAL),
) -> SyncSummary:
    """Run one push, pull or push-then-pull batch and return its counts."""
    try:
        engine = engine_factory(system)
    except UnsupportedServiceError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc

    try:
        counts = await engine.run(session, entity_type, direction)
    except RecruitSyncError as exc:
        raise _http_error(exc) from exc
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY, detail=f"{system} is unreachable."
        ) from exc

    return SyncSummary(
        local_to_remote=counts.local_to_remote,
        remote_to_local=counts.remote_to_local,
        failed=counts.failed,
    )


@router.get("/jobs", response_model=JobListingResponse)
async def list_jobs(
    session: RequiredSession,
    catalog: Annotated[Any, Depends(get_job_catalog)],
    search: str | None = Query(default=None, description="Free-text filter on job titles."),
) -> JobListingResponse:
    try:
        listing = await catalog.list_jobs(session, search)
    except RecruitSyncError as exc:
        raise _http_error(exc) from exc
    except httpx.HTTPError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_GATEWAY, detail="Job listing API is unreachable."
        ) from exc
    return JobListingResponse(
        source=listing.source.value,
        notice=listing.notice,
        items=[
            JobItem(
                external_id=item.external_id,
                title=item.title,
                status=item.status,
                description=item.description,
            )
            for item in listing.items
        ],
    )


@router.get("/security/events", response_model=list[SecurityEvent])
async def list_security_events(
    session: Annotated[SessionContext, Depends(get_admin_session)],
    audit_log: Annotated[Any, Depends(get_audit_log)],
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[SecurityEvent]:
    return audit_log.list_events(limit=limit)


__all__ = ["router"]
