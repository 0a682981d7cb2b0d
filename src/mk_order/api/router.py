"""mk_order REST API — all endpoints require JWT authentication.

The payment callback is authenticated twice: the buyer's bearer token gets
the request in, the gateway signature decides whether the payment counts.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.mk_common.database import get_db_session
from src.mk_common.enums import OrderStatus
from src.mk_common.response import ApiResponse, success_response
from src.mk_gateway.auth.dependencies import get_principal
from src.mk_gateway.auth.principal import Principal
from src.mk_order.application.schemas import (
    CancelOrderRequest,
    CreateOrderRequest,
    CreateOrderResponse,
    OrderListResponse,
    OrderResponse,
    PaymentCallbackRequest,
    PaymentIntentResponse,
)
from src.mk_settlement.api.dependencies import get_settlement_service
from src.mk_settlement.application.service import SettlementService

router = APIRouter(prefix="/orders", tags=["orders"])

Service = Annotated[SettlementService, Depends(get_settlement_service)]
CurrentPrincipal = Annotated[Principal, Depends(get_principal)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("", status_code=201)
async def create_order(
    body: CreateOrderRequest,
    principal: CurrentPrincipal,
    service: Service,
    db: Db,
    request: Request,
) -> ApiResponse:
    created = await service.create_order(
        principal,
        [line.to_domain() for line in body.lines],
        body.shipping_address.to_domain(),
        body.payment_method,
        db,
    )
    data = CreateOrderResponse(
        order=OrderResponse.from_domain(created.order),
        payment=PaymentIntentResponse.from_domain(created.intent, created.upi_link),
    )
    return success_response(data.model_dump(mode="json"), request)


@router.post("/{order_id}/payment-callback")
async def payment_callback(
    order_id: str,
    body: PaymentCallbackRequest,
    principal: CurrentPrincipal,
    service: Service,
    db: Db,
    request: Request,
) -> ApiResponse:
    order = await service.confirm_payment(
        order_id, body.gateway_order_id, body.gateway_payment_id, body.signature, db
    )
    return success_response(OrderResponse.from_domain(order).model_dump(mode="json"), request)


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    principal: CurrentPrincipal,
    service: Service,
    db: Db,
    request: Request,
    body: CancelOrderRequest | None = None,
) -> ApiResponse:
    reason = body.reason if body else None
    order = await service.cancel_order(order_id, principal, reason, db)
    return success_response(OrderResponse.from_domain(order).model_dump(mode="json"), request)


@router.post("/{order_id}/complete")
async def complete_order(
    order_id: str,
    principal: CurrentPrincipal,
    service: Service,
    db: Db,
    request: Request,
) -> ApiResponse:
    order = await service.complete_order(order_id, principal, db)
    return success_response(OrderResponse.from_domain(order).model_dump(mode="json"), request)


@router.get("")
async def list_orders(
    principal: CurrentPrincipal,
    service: Service,
    db: Db,
    request: Request,
    buyer_id: str | None = Query(None, description="Filter by buyer"),
    seller_id: str | None = Query(None, description="Filter by seller"),
    status: OrderStatus | None = Query(None, description="Filter by order status"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    cursor: str | None = Query(None, description="Pagination cursor (order ID)"),
) -> ApiResponse:
    page = await service.list_orders(principal, buyer_id, seller_id, status, limit, cursor, db)
    data = OrderListResponse(
        items=[OrderResponse.from_domain(o) for o in page.orders],
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )
    return success_response(data.model_dump(mode="json"), request)


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    principal: CurrentPrincipal,
    service: Service,
    db: Db,
    request: Request,
) -> ApiResponse:
    order = await service.get_order(order_id, principal, db)
    return success_response(OrderResponse.from_domain(order).model_dump(mode="json"), request)
