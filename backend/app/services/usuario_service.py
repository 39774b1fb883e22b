"""
Cadastro API — Usuario Service (Business Logic)
=================================================

What:  Registration, authentication, listing, update and datastore health.
Why:   Keeps validation and credential handling out of the route handlers so
       it can be tested with a mocked AsyncSession.
How:   Stateless apart from its collaborators (PasswordHasher, timeout). The
       AsyncSession is passed into every call by the route layer.

Registration Flow (POST /users):
    ┌──────────┐   ┌──────────────┐   ┌──────────┐   ┌───────────────┐
    │ Validate │──▶│ cpf/username │──▶│  bcrypt  │──▶│ INSERT+COMMIT │
    │ required │   │ lookup (409) │   │  hash    │   │ (UNIQUE → 409)│
    └──────────┘   └──────────────┘   └──────────┘   └───────────────┘

    The lookup and the insert share one transaction, and the UNIQUE
    constraints on cpf/username reject the loser of a concurrent race.

Error mapping:
    Our own CadastroError subclasses propagate unchanged. IntegrityError from
    a write becomes ConflictError. Anything else (connection loss, timeout,
    bcrypt failure) becomes DatastoreError with an operation-specific message.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Iterable, List, Mapping, TypeVar

from fastapi import Request
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    AuthenticationError,
    CadastroError,
    ConflictError,
    DatastoreError,
    NotFoundError,
    ValidationError,
)
from app.models.usuario import Usuario
from app.schemas.usuario import (
    LoginRequest,
    LoginResponse,
    UsuarioPayload,
    UsuarioResponse,
)
from app.services.password_service import PasswordHasher

logger = logging.getLogger(__name__)

T = TypeVar("T")

REQUIRED_FIELDS = ("nome", "cpf", "email", "username", "senha")

# Columns a caller may write. senha is handled separately (hashed).
PROFILE_FIELDS = ("nome", "data_nascimento", "cpf", "email", "telefone", "endereco", "username")


def require_fields(
    data: Mapping[str, Any],
    fields: Iterable[str],
    message: str = "Campos obrigatórios ausentes",
) -> None:
    """Raise ValidationError listing every field that is absent, None or empty."""
    missing = [name for name in fields if not data.get(name)]
    if missing:
        raise ValidationError(message=message, fields=missing)


class UsuarioService:
    """
    Orchestrates every operation on the `usuarios` table.

    Args:
        hasher:   bcrypt wrapper used for new digests and login checks
        timeout:  seconds allowed for any single datastore call
    """

    def __init__(self, hasher: PasswordHasher, timeout: float = 10.0):
        self.hasher = hasher
        self.timeout = timeout

    async def _run(self, awaitable: Awaitable[T]) -> T:
        # asyncio.TimeoutError is caught by the callers' generic handler
        return await asyncio.wait_for(awaitable, timeout=self.timeout)

    async def _rollback(self, db: AsyncSession) -> None:
        try:
            await db.rollback()
        except Exception as e:
            logger.error("Rollback failed: %s", type(e).__name__)

    # ── Health ────────────────────────────────────────────────────────────

    async def server_time(self, db: AsyncSession) -> datetime:
        """
        Round-trip to the database and return its current time.

        Query: SELECT now()  (CURRENT_TIMESTAMP on SQLite)
        """
        try:
            result = await self._run(db.execute(select(func.now())))
            return result.scalar_one()
        except Exception as e:
            logger.error("Database unreachable: %s", type(e).__name__, exc_info=True)
            raise DatastoreError(
                message="Erro ao conectar ao banco de dados",
                context={"error_type": type(e).__name__},
            )

    # ── Listing ───────────────────────────────────────────────────────────

    async def list_usuarios(self, db: AsyncSession) -> List[UsuarioResponse]:
        try:
            result = await self._run(db.execute(select(Usuario).order_by(Usuario.id)))
            usuarios = result.scalars().all()
        except Exception as e:
            logger.error("Database error listing usuarios: %s", type(e).__name__, exc_info=True)
            raise DatastoreError(
                message="Erro ao buscar usuários",
                context={"error_type": type(e).__name__},
            )
        return [UsuarioResponse.model_validate(u) for u in usuarios]

    # ── Registration ──────────────────────────────────────────────────────

    async def create_usuario(self, db: AsyncSession, payload: UsuarioPayload) -> UsuarioResponse:
        """
        Register a new user.

        Workflow Steps:
            1. Required fields present (else ValidationError, no query issued)
            2. No existing row with the same cpf OR username (else ConflictError)
            3. Hash senha with bcrypt
            4. INSERT, flush to obtain the id, COMMIT
            5. Return the sanitized entity

        Raises:
            ValidationError: nome/cpf/email/username/senha missing
            ConflictError:   cpf or username already registered
            DatastoreError:  query, commit, timeout or hashing failure
        """
        require_fields(payload.model_dump(), REQUIRED_FIELDS)

        try:
            existing = await self._run(
                db.execute(
                    select(Usuario.id)
                    .where(or_(Usuario.cpf == payload.cpf, Usuario.username == payload.username))
                    .limit(1)
                )
            )
            if existing.first() is not None:
                raise ConflictError(context={"username": payload.username})

            senha_hash = await self.hasher.hash(payload.senha)

            usuario = Usuario(
                nome=payload.nome,
                data_nascimento=payload.data_nascimento,
                cpf=payload.cpf,
                email=payload.email,
                telefone=payload.telefone,
                endereco=payload.endereco,
                username=payload.username,
                senha_hash=senha_hash,
            )
            db.add(usuario)
            await self._run(db.flush())
            await self._run(db.commit())

        except CadastroError:
            raise
        except IntegrityError:
            # Lost a race against a concurrent registration
            await self._rollback(db)
            logger.warning("Unique constraint rejected registration for username=%s", payload.username)
            raise ConflictError(context={"username": payload.username})
        except Exception as e:
            await self._rollback(db)
            logger.error("Error creating usuario: %s", type(e).__name__, exc_info=True)
            raise DatastoreError(
                message="Erro ao criar usuário",
                context={"error_type": type(e).__name__},
            )

        logger.info("Usuario %s created (username=%s)", usuario.id, usuario.username)
        return UsuarioResponse.model_validate(usuario)

    # ── Authentication ────────────────────────────────────────────────────

    async def authenticate(self, db: AsyncSession, credentials: LoginRequest) -> LoginResponse:
        """
        Check email + senha and return the sanitized user.

        Raises:
            ValidationError:     email or senha missing
            NotFoundError:       no user with that email
            AuthenticationError: senha does not match the stored digest
            DatastoreError:      query or bcrypt failure
        """
        require_fields(
            credentials.model_dump(),
            ("email", "senha"),
            message="Email e senha são obrigatórios",
        )

        try:
            result = await self._run(
                db.execute(
                    select(Usuario)
                    .where(Usuario.email == credentials.email)
                    .order_by(Usuario.id)
                    .limit(1)
                )
            )
            usuario = result.scalars().first()
            if usuario is None:
                raise NotFoundError()

            senha_valida = await self.hasher.verify(credentials.senha, usuario.senha_hash)

        except CadastroError:
            raise
        except Exception as e:
            logger.error("Error during login: %s", type(e).__name__, exc_info=True)
            raise DatastoreError(
                message="Erro ao realizar login",
                context={"error_type": type(e).__name__},
            )

        if not senha_valida:
            logger.info("Rejected login for usuario %s", usuario.id)
            raise AuthenticationError(context={"usuario_id": usuario.id})

        logger.info("Usuario %s logged in", usuario.id)
        return LoginResponse(usuario=UsuarioResponse.model_validate(usuario))

    # ── Update ────────────────────────────────────────────────────────────

    async def update_usuario(
        self, db: AsyncSession, usuario_id: int, payload: UsuarioPayload
    ) -> UsuarioResponse:
        """
        Full replacement of a user (PUT semantics).

        Every column is overwritten with the payload, including fields the
        caller left out (optional ones become NULL). senha is required and is
        always re-hashed, even when it equals the current password.

        Raises:
            ValidationError: nome/cpf/email/username/senha missing
            NotFoundError:   no user with that id
            ConflictError:   new cpf/username belongs to another user
            DatastoreError:  query, commit, timeout or hashing failure
        """
        require_fields(payload.model_dump(), REQUIRED_FIELDS)

        try:
            senha_hash = await self.hasher.hash(payload.senha)

            usuario = await self._run(db.get(Usuario, usuario_id))
            if usuario is None:
                raise NotFoundError(resource_id=str(usuario_id))

            for name in PROFILE_FIELDS:
                setattr(usuario, name, getattr(payload, name))
            usuario.senha_hash = senha_hash

            await self._run(db.flush())
            await self._run(db.commit())

        except CadastroError:
            raise
        except IntegrityError:
            await self._rollback(db)
            logger.warning("Unique constraint rejected update of usuario %s", usuario_id)
            raise ConflictError(context={"usuario_id": usuario_id})
        except Exception as e:
            await self._rollback(db)
            logger.error("Error updating usuario %s: %s", usuario_id, type(e).__name__, exc_info=True)
            raise DatastoreError(
                message="Erro ao atualizar usuário",
                context={"usuario_id": usuario_id, "error_type": type(e).__name__},
            )

        logger.info("Usuario %s replaced", usuario_id)
        return UsuarioResponse.model_validate(usuario)

    async def patch_usuario(
        self, db: AsyncSession, usuario_id: int, payload: UsuarioPayload
    ) -> UsuarioResponse:
        """
        Partial update (PATCH semantics).

        Only fields present in the request body change. senha is optional:
        when present it is re-hashed, when absent the stored digest is kept.
        A required field that is present must not be empty or null.
        """
        changes = payload.model_dump(exclude_unset=True)
        require_fields(changes, [name for name in REQUIRED_FIELDS if name in changes])

        try:
            usuario = await self._run(db.get(Usuario, usuario_id))
            if usuario is None:
                raise NotFoundError(resource_id=str(usuario_id))

            for name in PROFILE_FIELDS:
                if name in changes:
                    setattr(usuario, name, changes[name])
            if "senha" in changes:
                usuario.senha_hash = await self.hasher.hash(changes["senha"])

            await self._run(db.flush())
            await self._run(db.commit())

        except CadastroError:
            raise
        except IntegrityError:
            await self._rollback(db)
            logger.warning("Unique constraint rejected patch of usuario %s", usuario_id)
            raise ConflictError(context={"usuario_id": usuario_id})
        except Exception as e:
            await self._rollback(db)
            logger.error("Error patching usuario %s: %s", usuario_id, type(e).__name__, exc_info=True)
            raise DatastoreError(
                message="Erro ao atualizar usuário",
                context={"usuario_id": usuario_id, "error_type": type(e).__name__},
            )

        logger.info("Usuario %s updated (%s)", usuario_id, ", ".join(sorted(changes)) or "no changes")
        return UsuarioResponse.model_validate(usuario)


def get_usuario_service(request: Request) -> UsuarioService:
    """FastAPI dependency returning the service built by create_app()."""
    return request.app.state.usuario_service
