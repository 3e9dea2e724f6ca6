"""Health check routes."""

import structlog
from fastapi import APIRouter

from app.core.dependencies import LedgerClientDep, SettlementDep
from app.schemas.v1.health import HealthResponse, ReadyResponse
from app.utils.clock import utc_timestamp

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health_check(settlement: SettlementDep):
    """Liveness with the custodial account's public identity."""
    return HealthResponse(
        status="OK",
        timestamp=utc_timestamp(),
        wallet=str(settlement.custodian_pubkey),
    )


@router.get("/health/ready", response_model=ReadyResponse)
async def readiness_check(settlement: SettlementDep, ledger: LedgerClientDep):
    """Readiness: is the ledger RPC node reachable and healthy."""
    ledger_ok = await ledger.health_check()
    if not ledger_ok:
        logger.warning("Ledger RPC readiness check failed")
    return ReadyResponse(
        status="ready" if ledger_ok else "degraded",
        wallet=str(settlement.custodian_pubkey),
        dependencies={"ledger_rpc": ledger_ok},
    )
