"""
Cadastro API — Login Route
============================

POST /login with {"email", "senha"}.

    200 {"mensagem": "Login realizado com sucesso", "usuario": {...}}
    400 email or senha missing
    404 unknown email
    401 wrong password

No token or session is issued; the caller receives the sanitized user.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.usuario import ErrorResponse, LoginRequest, LoginResponse
from app.services.usuario_service import UsuarioService, get_usuario_service

router = APIRouter(tags=["Auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        400: {"description": "email or senha missing", "model": ErrorResponse},
        401: {"description": "Wrong password", "model": ErrorResponse},
        404: {"description": "Unknown email", "model": ErrorResponse},
        500: {"description": "Database error", "model": ErrorResponse},
    },
    summary="Authenticate with email and password",
)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
    service: UsuarioService = Depends(get_usuario_service),
) -> LoginResponse:
    return await service.authenticate(db, credentials)
