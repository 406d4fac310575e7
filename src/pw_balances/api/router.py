"""pw_balances REST API: card balances, wallet balances, card entries."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_balances.application.projector import BalanceProjector
from src.pw_balances.application.schemas import CardBalancesResponse, WalletBalancesResponse
from src.pw_common.database import get_db_session
from src.pw_common.response import ApiResponse, success_response
from src.pw_ledger.application.schemas import EntryItem
from src.pw_wallet.api.dependencies import get_member_directory
from src.pw_wallet.application.guards import ensure_card_in_wallet
from src.pw_wallet.domain.directory import MemberDirectoryProtocol

router = APIRouter(tags=["balances"])

_projector = BalanceProjector()


@router.get("/cards/{card_id}/balances")
async def get_card_balances(
    card_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
    wallet_id: str = Query(..., min_length=1),
) -> ApiResponse:
    await ensure_card_in_wallet(directory, db, wallet_id, card_id)
    view = await _projector.card_balances(db, card_id)
    return success_response(CardBalancesResponse.from_view(view).model_dump(), request=request)


@router.get("/wallets/{wallet_id}/balances")
async def get_wallet_balances(
    wallet_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
) -> ApiResponse:
    view = await _projector.wallet_balances(db, directory, wallet_id)
    return success_response(WalletBalancesResponse.from_view(view).model_dump(), request=request)


@router.get("/cards/{card_id}/entries")
async def list_card_entries(
    card_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
    wallet_id: str = Query(..., min_length=1),
) -> ApiResponse:
    await ensure_card_in_wallet(directory, db, wallet_id, card_id)
    entries = await _projector.card_entries(db, card_id)
    data = {"items": [EntryItem.from_entry(e).model_dump() for e in entries]}
    return success_response(data, request=request)
