"""Gateway webhook endpoint — no bearer token; the body HMAC is the credential."""

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import get_db_session
from src.mk_common.response import ApiResponse, success_response
from src.mk_settlement.api.dependencies import get_settlement_service
from src.mk_settlement.application.service import SettlementService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    service: Annotated[SettlementService, Depends(get_settlement_service)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
    x_razorpay_signature: Annotated[str | None, Header()] = None,
) -> ApiResponse:
    # HMAC is over the exact bytes received, so read the body raw
    raw_body = await request.body()
    order = await service.handle_webhook(raw_body, x_razorpay_signature, db)
    data = {"order_id": order.id, "status": order.status} if order else None
    return success_response(data, request)
