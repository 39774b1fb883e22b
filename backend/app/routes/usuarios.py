"""
Cadastro API — Usuario Route Handlers
=======================================

    GET   /users        list every user (sanitized)
    POST  /users        register            201 | 400 | 409 | 500
    PUT   /users/{id}   full replacement    200 | 400 | 404 | 409 | 500
    PATCH /users/{id}   partial update      200 | 400 | 404 | 409 | 500

Routes stay thin: they hand the parsed body to UsuarioService and let the
global exception handlers in main.py produce error responses. Every
response_model is UsuarioResponse, which has no senha_hash field.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.schemas.usuario import ErrorResponse, UsuarioPayload, UsuarioResponse
from app.services.usuario_service import UsuarioService, get_usuario_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Usuarios"])


@router.get(
    "",
    response_model=List[UsuarioResponse],
    responses={500: {"description": "Database error", "model": ErrorResponse}},
    summary="List users",
)
async def list_usuarios(
    db: AsyncSession = Depends(get_db_session),
    service: UsuarioService = Depends(get_usuario_service),
) -> List[UsuarioResponse]:
    return await service.list_usuarios(db)


@router.post(
    "",
    status_code=201,
    response_model=UsuarioResponse,
    responses={
        400: {"description": "Missing required field", "model": ErrorResponse},
        409: {"description": "cpf or username already registered", "model": ErrorResponse},
        500: {"description": "Database error", "model": ErrorResponse},
    },
    summary="Register a user",
    description=(
        "Creates a user. nome, cpf, email, username and senha are required. "
        "The password is stored as a bcrypt digest and never returned."
    ),
)
async def create_usuario(
    payload: UsuarioPayload,
    db: AsyncSession = Depends(get_db_session),
    service: UsuarioService = Depends(get_usuario_service),
) -> UsuarioResponse:
    return await service.create_usuario(db, payload)


@router.put(
    "/{usuario_id}",
    response_model=UsuarioResponse,
    responses={
        400: {"description": "Missing required field", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
        409: {"description": "cpf or username taken by another user", "model": ErrorResponse},
        500: {"description": "Database error", "model": ErrorResponse},
    },
    summary="Replace a user",
    description=(
        "Overwrites every field of the user. senha is required and is always "
        "re-hashed. Use PATCH to change fields without resending the password."
    ),
)
async def update_usuario(
    payload: UsuarioPayload,
    usuario_id: int = Path(..., description="User id"),
    db: AsyncSession = Depends(get_db_session),
    service: UsuarioService = Depends(get_usuario_service),
) -> UsuarioResponse:
    return await service.update_usuario(db, usuario_id, payload)


@router.patch(
    "/{usuario_id}",
    response_model=UsuarioResponse,
    responses={
        400: {"description": "Required field sent empty", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
        409: {"description": "cpf or username taken by another user", "model": ErrorResponse},
        500: {"description": "Database error", "model": ErrorResponse},
    },
    summary="Partially update a user",
    description="Changes only the fields present in the body. senha is optional here.",
)
async def patch_usuario(
    payload: UsuarioPayload,
    usuario_id: int = Path(..., description="User id"),
    db: AsyncSession = Depends(get_db_session),
    service: UsuarioService = Depends(get_usuario_service),
) -> UsuarioResponse:
    return await service.patch_usuario(db, usuario_id, payload)
