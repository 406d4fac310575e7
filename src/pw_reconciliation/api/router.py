"""pw_reconciliation REST API: card and wallet consistency reports."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.database import get_db_session
from src.pw_common.response import ApiResponse, success_response
from src.pw_reconciliation.application.schemas import (
    CardReconciliationResponse,
    WalletReconciliationResponse,
)
from src.pw_reconciliation.application.service import ReconciliationService
from src.pw_wallet.api.dependencies import get_member_directory
from src.pw_wallet.application.guards import ensure_card_in_wallet
from src.pw_wallet.domain.directory import MemberDirectoryProtocol

router = APIRouter(tags=["reconciliation"])

_service = ReconciliationService()


@router.get("/cards/{card_id}/reconciliation")
async def reconcile_card(
    card_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
    wallet_id: str = Query(..., min_length=1),
) -> ApiResponse:
    await ensure_card_in_wallet(directory, db, wallet_id, card_id)
    report = await _service.reconcile(db, card_id)
    data = CardReconciliationResponse.from_report(report).model_dump()
    return success_response(data, request=request)


@router.get("/wallets/{wallet_id}/reconciliation")
async def reconcile_wallet(
    wallet_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
) -> ApiResponse:
    report = await _service.reconcile_wallet(db, directory, wallet_id)
    data = WalletReconciliationResponse.from_report(report).model_dump()
    return success_response(data, request=request)
