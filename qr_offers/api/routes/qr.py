from __future__ import annotations

import asyncio
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from qr_offers.api.routes.route_helpers import assert_admin_access, domain_http_error
from qr_offers.core.config import get_settings
from qr_offers.core.errors import DomainError
from qr_offers.db.session import SessionLocal
from qr_offers.registry.images import build_token_url, render_qr_data_url, render_qr_png
from qr_offers.registry.service import TokenRegistry
from qr_offers.registry.types import ClaimStatus

router = APIRouter(prefix="/api/qr", tags=["qr"])


def _render_data_urls(urls: list[str]) -> list[str]:
    return [render_qr_data_url(url) for url in urls]


class GenerateBatchRequest(BaseModel):
    count: int = Field(ge=1)
    layout_variant: str = Field(min_length=1, max_length=16)
    created_by: str = Field(default="admin", min_length=1, max_length=64)
    include_images: bool = False


class GeneratedTokenResponse(BaseModel):
    token_id: str
    url: str
    image_data_url: str | None = None


class GenerateBatchResponse(BaseModel):
    batch_id: int
    layout_variant: str
    created_at: datetime
    tokens: list[GeneratedTokenResponse]


class TokenResponse(BaseModel):
    token_id: str
    layout_variant: str
    claim_status: str
    claimed_by_vendor_id: UUID | None = None
    claimed_at: datetime | None = None
    created_at: datetime


class TokenListResponse(BaseModel):
    tokens: list[TokenResponse]


class TokenValidationResponse(BaseModel):
    token_id: str
    valid: bool
    claimed: bool
    vendor_id: UUID | None = None


@router.post("/generate-batch", response_model=GenerateBatchResponse)
async def generate_batch(payload: GenerateBatchRequest, request: Request) -> GenerateBatchResponse:
    assert_admin_access(request)
    settings = get_settings()

    try:
        async with SessionLocal.begin() as session:
            batch = await TokenRegistry.generate_batch(
                session,
                count=payload.count,
                layout_variant=payload.layout_variant,
                created_by=payload.created_by,
                max_count=settings.qr_batch_max_count,
            )
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    urls = [
        build_token_url(public_base_url=settings.public_base_url, token_id=token_id)
        for token_id in batch.token_ids
    ]
    image_data_urls: list[str | None] = [None] * len(urls)
    if payload.include_images:
        # PNG encoding is CPU bound; keep it off the event loop.
        image_data_urls = list(await asyncio.to_thread(_render_data_urls, urls))

    tokens = [
        GeneratedTokenResponse(token_id=token_id, url=url, image_data_url=image_data_url)
        for token_id, url, image_data_url in zip(batch.token_ids, urls, image_data_urls)
    ]
    return GenerateBatchResponse(
        batch_id=batch.batch_id,
        layout_variant=batch.layout_variant.value,
        created_at=batch.created_at,
        tokens=tokens,
    )


@router.get("", response_model=TokenListResponse)
async def list_tokens(
    request: Request,
    claim_status: ClaimStatus | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
) -> TokenListResponse:
    assert_admin_access(request)

    async with SessionLocal.begin() as session:
        tokens = await TokenRegistry.list_tokens(session, claim_status=claim_status, limit=limit)

    return TokenListResponse(
        tokens=[
            TokenResponse(
                token_id=token.id,
                layout_variant=token.layout_variant,
                claim_status=token.claim_status,
                claimed_by_vendor_id=token.claimed_by_vendor_id,
                claimed_at=token.claimed_at,
                created_at=token.created_at,
            )
            for token in tokens
        ]
    )


@router.get("/validate/{token_id}", response_model=TokenValidationResponse)
async def validate_token(token_id: str) -> TokenValidationResponse:
    try:
        async with SessionLocal.begin() as session:
            validation = await TokenRegistry.validate(session, token_id=token_id)
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    return TokenValidationResponse(
        token_id=validation.token_id,
        valid=validation.valid,
        claimed=validation.claimed,
        vendor_id=validation.vendor_id,
    )


@router.get("/{token_id}/image")
async def get_token_image(token_id: str) -> Response:
    try:
        async with SessionLocal.begin() as session:
            validation = await TokenRegistry.validate(session, token_id=token_id)
    except DomainError as exc:
        raise domain_http_error(exc) from exc

    url = build_token_url(
        public_base_url=get_settings().public_base_url,
        token_id=validation.token_id,
    )
    png = await asyncio.to_thread(render_qr_png, url)
    return Response(content=png, media_type="image/png")
