"""
Cadastro API — Pydantic Request/Response Schemas
==================================================

What:  The JSON contract of the API.
Why:   Field names (nome, cpf, senha, ...) are the contract the existing
       frontend already speaks, so they stay in Portuguese.

Request models:
    Every field is Optional. A missing required field must
    produce our 400 ("Campos obrigatórios ausentes"), not FastAPI's
    automatic 422, so presence is checked by the service layer.

Response models:
    UsuarioResponse has no senha_hash field. Every endpoint that returns a
    user goes through it, which is what keeps the digest out of responses.
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class UsuarioPayload(BaseModel):
    """
    Body of POST /users, PUT /users/{id} and PATCH /users/{id}.

    data_nascimento accepts an ISO date ("1990-05-01"); an empty string is
    treated as "not informed". Numeric cpf/telefone values sent by
    JavaScript clients are coerced to strings.

    Surrounding whitespace is trimmed from the profile fields only. senha is
    hashed exactly as sent, so " pw1 " and "pw1" are different passwords.

    max_length mirrors the column sizes in models/usuario.py, so an
    oversized value is a 400 here instead of a database error.
    """

    model_config = ConfigDict(coerce_numbers_to_str=True)

    nome: Optional[str] = Field(default=None, max_length=255, description="Nome completo")
    data_nascimento: Optional[date] = Field(default=None, description="Data de nascimento (YYYY-MM-DD)")
    cpf: Optional[str] = Field(default=None, max_length=14, description="CPF, único por usuário")
    email: Optional[str] = Field(default=None, max_length=255, description="E-mail usado no login")
    telefone: Optional[str] = Field(default=None, max_length=30)
    endereco: Optional[str] = Field(default=None)
    username: Optional[str] = Field(default=None, max_length=100, description="Nome de usuário, único")
    senha: Optional[str] = Field(default=None, description="Senha em texto puro (nunca armazenada)")

    @field_validator("nome", "cpf", "email", "telefone", "endereco", "username", mode="before")
    @classmethod
    def strip_profile_fields(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("data_nascimento", mode="before")
    @classmethod
    def empty_date_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class LoginRequest(BaseModel):
    """Body of POST /login. Only email is trimmed; senha is compared as sent."""

    email: Optional[str] = None
    senha: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class UsuarioResponse(BaseModel):
    """A sanitized user: every column except senha_hash."""

    id: int
    nome: str
    data_nascimento: Optional[date] = None
    cpf: str
    email: str
    telefone: Optional[str] = None
    endereco: Optional[str] = None
    username: str

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    mensagem: str = Field(default="Login realizado com sucesso")
    usuario: UsuarioResponse


class StatusResponse(BaseModel):
    serverTime: datetime = Field(description="Current time reported by the database")


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """
    Error body shared by every endpoint.

    Example:
        {"error": "Usuário já cadastrado"}

    The request id is returned in the X-Request-ID header, not in the body.
    """

    error: str = Field(description="Human-readable error description")
