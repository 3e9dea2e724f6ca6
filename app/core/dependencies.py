"""Dependency injection for route handlers.

Collaborators are built once in the application lifespan and stored on
``app.state``; tests swap them through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends, Request

from app.agents.settlement import SettlementAuthority
from app.clients.ledger_client import LedgerClient
from app.services.audit_service import AuditService


def get_audit_service(request: Request) -> AuditService:
    return request.app.state.audit_service


def get_settlement_authority(request: Request) -> SettlementAuthority:
    return request.app.state.settlement


def get_ledger_client(request: Request) -> LedgerClient:
    return request.app.state.ledger_client


AuditServiceDep = Annotated[AuditService, Depends(get_audit_service)]
SettlementDep = Annotated[SettlementAuthority, Depends(get_settlement_authority)]
LedgerClientDep = Annotated[LedgerClient, Depends(get_ledger_client)]

__all__ = [
    "AuditServiceDep",
    "LedgerClientDep",
    "SettlementDep",
    "get_audit_service",
    "get_ledger_client",
    "get_settlement_authority",
]
