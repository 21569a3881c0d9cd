"""Viewer API router: nonce minting, document info, page images."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Response
from fastapi.responses import JSONResponse

from pageguard.common.exceptions import InvalidPageError, PageGuardError, RateLimitedError
from pageguard.common.schemas import ErrorResponse
from pageguard.common.security import ClientInfo, resolve_client
from pageguard.viewer.schemas import (
    ClientEventRequest,
    DocumentInfoResponse,
    MintRequest,
    MintResponse,
)

router = APIRouter()

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse},
}


def _get_service():
    from pageguard.deps import get_viewer_service
    return get_viewer_service()


def _error_response(e: PageGuardError) -> JSONResponse:
    headers = dict(NO_STORE_HEADERS)
    if isinstance(e, RateLimitedError):
        headers["X-RateLimit-Remaining"] = "0"
        if e.reset_at is not None:
            headers["X-RateLimit-Reset"] = e.reset_at.isoformat()
    return JSONResponse(status_code=e.status_code, content=e.to_body(), headers=headers)


@router.post("/nonces/mint", response_model=MintResponse, responses=_ERRORS)
async def mint_nonce(
    body: MintRequest,
    response: Response,
    client: ClientInfo = Depends(resolve_client),
):
    svc = _get_service()
    try:
        result = await svc.mint(body.doc_id, client, password=body.password)
    except PageGuardError as e:
        return _error_response(e)

    response.headers["X-RateLimit-Remaining"] = str(result.rate_limit.remaining)
    response.headers.update(NO_STORE_HEADERS)
    return MintResponse(
        nonce=result.grant.nonce,
        session_id=result.grant.session_id,
        issued_at=result.grant.issued_at,
    )


@router.get("/docs/{doc_id}/info", response_model=DocumentInfoResponse, responses=_ERRORS)
async def document_info(
    doc_id: str,
    response: Response,
    x_nonce: Optional[str] = Header(None, alias="X-Nonce"),
    client: ClientInfo = Depends(resolve_client),
):
    svc = _get_service()
    try:
        info = await svc.document_info(doc_id, x_nonce, client)
    except PageGuardError as e:
        return _error_response(e)

    response.headers.update(NO_STORE_HEADERS)
    return DocumentInfoResponse(
        doc_id=info.doc_id,
        title=info.title,
        page_count=info.page_count,
        session_id=info.session_id,
    )


@router.get(
    "/docs/{doc_id}/pages/{page}",
    response_class=Response,
    responses={200: {"content": {"image/png": {}}}, **_ERRORS},
)
async def get_page(
    doc_id: str,
    page: str,
    nonce: Optional[str] = Query(None),
    x_nonce: Optional[str] = Header(None, alias="X-Nonce"),
    client: ClientInfo = Depends(resolve_client),
):
    svc = _get_service()
    try:
        # int() also takes "0_2", padding and non-ASCII digits
        if not (page.isascii() and page.isdigit()):
            raise InvalidPageError()
        page_number = int(page)
        release = await svc.release_page(doc_id, page_number, nonce or x_nonce, client)
    except PageGuardError as e:
        return _error_response(e)

    headers = dict(NO_STORE_HEADERS)
    headers["X-Page"] = str(release.page)
    headers["X-Total-Pages"] = str(release.total_pages)
    return Response(content=release.image, media_type=release.content_type, headers=headers)


@router.post("/docs/{doc_id}/events", status_code=204, responses=_ERRORS)
async def client_event(
    doc_id: str,
    body: ClientEventRequest,
    x_nonce: Optional[str] = Header(None, alias="X-Nonce"),
    client: ClientInfo = Depends(resolve_client),
):
    svc = _get_service()
    try:
        await svc.record_client_event(
            doc_id, x_nonce, body.action, client, metadata=body.metadata,
        )
    except PageGuardError as e:
        return _error_response(e)
    return Response(status_code=204)
