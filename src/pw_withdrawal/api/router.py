"""pw_withdrawal REST API: request, finalize, reverse, get, list."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.database import get_db_session
from src.pw_common.enums import WithdrawalStatus
from src.pw_common.response import ApiResponse, success_response
from src.pw_wallet.api.dependencies import get_member_directory
from src.pw_wallet.application.guards import ensure_card_in_wallet, ensure_card_members
from src.pw_wallet.domain.directory import MemberDirectoryProtocol
from src.pw_withdrawal.application.schemas import (
    WithdrawalCreateRequest,
    WithdrawalResolveRequest,
    WithdrawalResponse,
    WithdrawalResultResponse,
)
from src.pw_withdrawal.application.service import WithdrawalService

router = APIRouter(prefix="/withdrawals", tags=["withdrawals"])

_service = WithdrawalService()


@router.post("")
async def request_withdrawal(
    body: WithdrawalCreateRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
) -> ApiResponse:
    await ensure_card_members(directory, db, body.wallet_id, body.card_id, [body.user_id])
    result = await _service.request_withdrawal(db, body.to_command())
    data = WithdrawalResultResponse.from_result(result).model_dump()
    return success_response(data, request=request)


@router.post("/{withdrawal_id}/finalize")
async def finalize_withdrawal(
    withdrawal_id: str,
    body: WithdrawalResolveRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
) -> ApiResponse:
    existing = await _service.get_withdrawal(db, withdrawal_id)
    await ensure_card_in_wallet(directory, db, body.wallet_id, existing.card_id)
    result = await _service.finalize_withdrawal(db, body.transaction_id, withdrawal_id)
    data = WithdrawalResultResponse.from_result(result).model_dump()
    return success_response(data, request=request)


@router.post("/{withdrawal_id}/reverse")
async def reverse_withdrawal(
    withdrawal_id: str,
    body: WithdrawalResolveRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
) -> ApiResponse:
    existing = await _service.get_withdrawal(db, withdrawal_id)
    await ensure_card_in_wallet(directory, db, body.wallet_id, existing.card_id)
    result = await _service.reverse_withdrawal(db, body.transaction_id, withdrawal_id)
    data = WithdrawalResultResponse.from_result(result).model_dump()
    return success_response(data, request=request)


@router.get("/{withdrawal_id}")
async def get_withdrawal(
    withdrawal_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
    wallet_id: str = Query(..., min_length=1),
) -> ApiResponse:
    withdrawal = await _service.get_withdrawal(db, withdrawal_id)
    await ensure_card_in_wallet(directory, db, wallet_id, withdrawal.card_id)
    data = WithdrawalResponse.from_request(withdrawal).model_dump()
    return success_response(data, request=request)


@router.get("")
async def list_withdrawals(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
    wallet_id: str = Query(..., min_length=1),
    card_id: str = Query(..., min_length=1),
    status: WithdrawalStatus | None = Query(None, description="Filter by status"),
) -> ApiResponse:
    await ensure_card_in_wallet(directory, db, wallet_id, card_id)
    items = await _service.list_withdrawals(db, card_id, status.value if status else None)
    return success_response(
        {"items": [WithdrawalResponse.from_request(w).model_dump() for w in items]},
        request=request,
    )
