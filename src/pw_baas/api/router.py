"""pw_baas REST API: provider webhooks, card issuance and widget links."""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_baas.application.factory import get_configured_provider
from src.pw_baas.application.ingest import BaasEventIngestor
from src.pw_baas.application.schemas import WebhookResponse
from src.pw_baas.domain.provider import BaasProvider
from src.pw_common.database import get_db_session
from src.pw_common.response import ApiResponse, success_response
from src.pw_wallet.api.dependencies import get_member_directory
from src.pw_wallet.application.guards import ensure_card_members
from src.pw_wallet.domain.directory import MemberDirectoryProtocol

router = APIRouter(prefix="/baas", tags=["baas"])

_ingestor = BaasEventIngestor()


@router.post("/webhooks")
async def receive_webhook(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    provider: Annotated[BaasProvider, Depends(get_configured_provider)],
    request: Request,
    x_baas_signature: Annotated[str | None, Header()] = None,
) -> ApiResponse:
    event = provider.verify_webhook(await request.body(), x_baas_signature)
    outcome = await _ingestor.handle(db, directory, event)
    data = WebhookResponse.from_outcome(outcome).model_dump()
    message = "processed" if outcome.processed else "ignored"
    return success_response(data, message=message, request=request)


@router.post("/cards/{card_id}/widget-url")
async def issue_widget_url(
    card_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    provider: Annotated[BaasProvider, Depends(get_configured_provider)],
    request: Request,
    wallet_id: str = Query(..., min_length=1),
    user_id: str = Query(..., min_length=1),
) -> ApiResponse:
    await ensure_card_members(directory, db, wallet_id, card_id, [user_id])
    url = await provider.issue_widget_url(card_id, user_id)
    return success_response({"card_id": card_id, "widget_url": url}, request=request)


@router.post("/cards/{card_id}")
async def create_card(
    card_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    provider: Annotated[BaasProvider, Depends(get_configured_provider)],
    request: Request,
    wallet_id: str = Query(..., min_length=1),
    user_id: str = Query(..., min_length=1),
) -> ApiResponse:
    await ensure_card_members(directory, db, wallet_id, card_id, [user_id])
    issued = await provider.create_card(card_id, user_id)
    data = {
        "card_id": issued.card_id,
        "provider_card_id": issued.provider_card_id,
        "status": issued.status,
    }
    return success_response(data, request=request)
