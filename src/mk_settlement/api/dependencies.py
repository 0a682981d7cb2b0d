"""FastAPI dependency for the settlement service built in the app lifespan."""

from starlette.requests import Request

from src.mk_settlement.application.service import SettlementService


def get_settlement_service(request: Request) -> SettlementService:
    return request.app.state.settlement_service
