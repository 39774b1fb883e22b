"""
Cadastro API — Liveness & Database Status Routes
==================================================

    GET /        → process is up (never touches the database)
    GET /status  → database round trip, returns the database clock

Load balancers should poll GET /; GET /status is for operators checking
that DATABASE_URL and TLS settings are right.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.usuario import ErrorResponse, MessageResponse, StatusResponse
from app.services.usuario_service import UsuarioService, get_usuario_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/",
    response_model=MessageResponse,
    summary="Liveness check",
)
async def root() -> MessageResponse:
    return MessageResponse(message="Servidor funcionando!")


@router.get(
    "/status",
    response_model=StatusResponse,
    responses={500: {"description": "Database unreachable", "model": ErrorResponse}},
    summary="Database connectivity check",
    description="Runs SELECT now() against the database and returns the result as serverTime.",
)
async def status(
    db: AsyncSession = Depends(get_db_session),
    service: UsuarioService = Depends(get_usuario_service),
) -> StatusResponse:
    server_time = await service.server_time(db)
    return StatusResponse(serverTime=server_time)
