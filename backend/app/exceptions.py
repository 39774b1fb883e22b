"""
Cadastro API — Custom Exception Hierarchy
==========================================

What:  Application-specific exceptions for every failure the API can report.
Why:   Each class maps to exactly one HTTP status code. Services raise them,
       global handlers in main.py turn them into JSON responses.
How:   Every exception carries a user-facing message and an optional context
       dict. The message is returned to the client; the context is only logged.
Who:   Raised by UsuarioService and the password hasher; caught by main.py.

Exception Hierarchy:
    CadastroError (base)
    ├── ValidationError       → 400 Bad Request
    ├── AuthenticationError   → 401 Unauthorized
    ├── NotFoundError         → 404 Not Found
    ├── ConflictError         → 409 Conflict
    └── DatastoreError        → 500 Internal Server Error

Messages are in Portuguese because they are part of the public API contract
consumed by the existing frontend ({"error": "Usuário já cadastrado"}).
"""

from typing import Any, Dict, Optional


class CadastroError(Exception):
    """
    Base exception for all Cadastro API errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500

    def __init__(
        self,
        message: str = "Erro interno do servidor",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CadastroError):
    """
    Raised when the request is missing a required field or carries bad data.

    HTTP:    400 Bad Request
    When:    nome/cpf/email/username/senha absent or empty, login without
             email or senha, malformed JSON body.

    Raised before any datastore query is issued, so a rejected request
    never leaves partial state behind.
    """

    status_code = 400

    def __init__(
        self,
        message: str = "Campos obrigatórios ausentes",
        fields: Optional[list] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if fields:
            ctx["fields"] = fields
        super().__init__(message=message, context=ctx)
        self.fields = fields or []


class AuthenticationError(CadastroError):
    """Password did not match the stored digest. HTTP 401."""

    status_code = 401

    def __init__(
        self,
        message: str = "Senha incorreta",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(CadastroError):
    """
    Raised when no user matches the lookup key (id or email).

    HTTP:    404 Not Found

    SQLAlchemy returns None (or rowcount 0) for missing rows rather than
    raising. The service layer converts that into this exception.
    """

    status_code = 404

    def __init__(
        self,
        message: str = "Usuário não encontrado",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(CadastroError):
    """
    Raised when cpf or username is already taken.

    HTTP:    409 Conflict

    Two sources:
        1. The explicit pre-insert lookup (cpf = :cpf OR username = :username)
        2. A UNIQUE constraint violation from the database, which catches
           concurrent registrations that both passed the lookup
    """

    status_code = 409

    def __init__(
        self,
        message: str = "Usuário já cadastrado",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatastoreError(CadastroError):
    """
    Raised when a database query, connection, timeout or hash call fails.

    HTTP:    500 Internal Server Error

    Security Note:
        The message is a fixed, operation-specific sentence
        ("Erro ao criar usuário"). The underlying exception type and any
        identifiers go into `context`, which is logged server-side only.
    """

    status_code = 500

    def __init__(
        self,
        message: str = "Erro ao acessar o banco de dados",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
