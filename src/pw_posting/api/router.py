"""pw_posting REST API: deposits and captures."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.database import get_db_session
from src.pw_common.response import ApiResponse, success_response
from src.pw_posting.application.schemas import CaptureRequest, DepositRequest, PostingResponse
from src.pw_posting.application.service import PostingEngine
from src.pw_wallet.api.dependencies import get_member_directory
from src.pw_wallet.application.guards import ensure_card_members
from src.pw_wallet.domain.directory import MemberDirectoryProtocol

router = APIRouter(prefix="/ledger", tags=["posting"])

_service = PostingEngine()


@router.post("/deposits")
async def post_deposit(
    body: DepositRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
) -> ApiResponse:
    await ensure_card_members(directory, db, body.wallet_id, body.card_id, [body.user_id])
    result = await _service.post_deposit(db, body.to_command())
    return success_response(PostingResponse.from_result(result).model_dump(), request=request)


@router.post("/captures")
async def post_capture(
    body: CaptureRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    directory: Annotated[MemberDirectoryProtocol, Depends(get_member_directory)],
    request: Request,
) -> ApiResponse:
    await ensure_card_members(
        directory, db, body.wallet_id, body.card_id, [s.user_id for s in body.splits]
    )
    result = await _service.post_capture(db, body.to_command())
    return success_response(PostingResponse.from_result(result).model_dump(), request=request)
