"""
Cadastro API — UsuarioService Unit Tests
==========================================

Uses a mocked AsyncSession; no database involved.

What we test:
    ✅ Registration: validation before any query, conflict before insert,
       digest stored instead of plaintext, unique-violation race → 409
    ✅ Login: missing fields, unknown email, wrong password, sanitized success
    ✅ Update: unconditional re-hash, not found leaves the session untouched
    ✅ Patch: senha optional, blank required field rejected
    ✅ Datastore failures and timeouts → DatastoreError
"""

import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.exceptions import (
    AuthenticationError,
    ConflictError,
    DatastoreError,
    NotFoundError,
    ValidationError,
)
from app.models.usuario import Usuario
from app.schemas.usuario import LoginRequest, UsuarioPayload
from app.services.usuario_service import UsuarioService, require_fields


def make_result(first=None, scalars=None, scalar=None):
    """Build a mock of SQLAlchemy's Result for the access pattern under test."""
    result = MagicMock()
    result.first.return_value = first
    result.scalars.return_value.first.return_value = scalars[0] if scalars else None
    result.scalars.return_value.all.return_value = scalars or []
    result.scalar_one.return_value = scalar
    return result


def make_usuario(hasher, senha="pw1", **overrides):
    fields = {
        "id": 1,
        "nome": "Ana",
        "data_nascimento": date(1990, 5, 1),
        "cpf": "111",
        "email": "a@x.com",
        "telefone": None,
        "endereco": None,
        "username": "ana",
        "senha_hash": hasher.hash_sync(senha),
    }
    fields.update(overrides)
    return Usuario(**fields)


def payload(**overrides) -> UsuarioPayload:
    data = {
        "nome": "Ana",
        "cpf": "111",
        "email": "a@x.com",
        "username": "ana",
        "senha": "pw1",
    }
    data.update(overrides)
    return UsuarioPayload(**{k: v for k, v in data.items() if v is not None})


class TestRequireFields:

    def test_all_present(self):
        require_fields({"a": "x", "b": "y"}, ("a", "b"))

    def test_reports_every_missing_field(self):
        with pytest.raises(ValidationError) as exc_info:
            require_fields({"a": "", "b": None}, ("a", "b", "c"))
        assert exc_info.value.fields == ["a", "b", "c"]
        assert exc_info.value.message == "Campos obrigatórios ausentes"


class TestCreateUsuario:

    @pytest.fixture(autouse=True)
    def _service(self, hasher):
        self.hasher = hasher
        self.service = UsuarioService(hasher, timeout=1.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["nome", "cpf", "email", "username", "senha"])
    async def test_missing_required_field_never_queries(self, mock_db_session, missing):
        with pytest.raises(ValidationError):
            await self.service.create_usuario(mock_db_session, payload(**{missing: ""}))

        mock_db_session.execute.assert_not_awaited()
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_cpf_or_username_conflicts_before_insert(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(first=(1,))

        with pytest.raises(ConflictError) as exc_info:
            await self.service.create_usuario(mock_db_session, payload())

        assert exc_info.value.message == "Usuário já cadastrado"
        mock_db_session.add.assert_not_called()
        mock_db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success_stores_digest_and_returns_sanitized(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(first=None)

        def assign_id():
            mock_db_session.add.call_args[0][0].id = 7

        mock_db_session.flush = AsyncMock(side_effect=assign_id)

        result = await self.service.create_usuario(mock_db_session, payload())

        stored = mock_db_session.add.call_args[0][0]
        assert stored.senha_hash != "pw1"
        assert self.hasher.verify_sync("pw1", stored.senha_hash)
        assert result.id == 7
        assert "senha_hash" not in result.model_dump()
        assert "senha" not in result.model_dump()
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unique_violation_from_race_is_conflict(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(first=None)
        mock_db_session.flush = AsyncMock(
            side_effect=IntegrityError("INSERT INTO usuarios", {}, Exception("UNIQUE constraint failed"))
        )

        with pytest.raises(ConflictError):
            await self.service.create_usuario(mock_db_session, payload())

        mock_db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_failure_is_datastore_error(self, mock_db_session):
        mock_db_session.execute = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("connection refused"))
        )

        with pytest.raises(DatastoreError) as exc_info:
            await self.service.create_usuario(mock_db_session, payload())

        assert exc_info.value.message == "Erro ao criar usuário"

    @pytest.mark.asyncio
    async def test_slow_database_times_out(self, mock_db_session, hasher):
        service = UsuarioService(hasher, timeout=0.05)

        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        mock_db_session.execute = AsyncMock(side_effect=hang)

        with pytest.raises(DatastoreError) as exc_info:
            await service.create_usuario(mock_db_session, payload())

        assert exc_info.value.context["error_type"] == "TimeoutError"


class TestAuthenticate:

    @pytest.fixture(autouse=True)
    def _service(self, hasher):
        self.hasher = hasher
        self.service = UsuarioService(hasher, timeout=1.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"email": "a@x.com"}, {"senha": "pw1"}, {}])
    async def test_missing_credentials(self, mock_db_session, body):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.authenticate(mock_db_session, LoginRequest(**body))

        assert exc_info.value.message == "Email e senha são obrigatórios"
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_email(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(scalars=[])

        with pytest.raises(NotFoundError):
            await self.service.authenticate(
                mock_db_session, LoginRequest(email="nobody@x.com", senha="pw1")
            )

    @pytest.mark.asyncio
    async def test_wrong_password(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(scalars=[make_usuario(self.hasher)])

        with pytest.raises(AuthenticationError) as exc_info:
            await self.service.authenticate(
                mock_db_session, LoginRequest(email="a@x.com", senha="wrong")
            )

        assert exc_info.value.message == "Senha incorreta"

    @pytest.mark.asyncio
    async def test_success_is_sanitized(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(scalars=[make_usuario(self.hasher)])

        result = await self.service.authenticate(
            mock_db_session, LoginRequest(email="a@x.com", senha="pw1")
        )

        assert result.mensagem == "Login realizado com sucesso"
        assert result.usuario.username == "ana"
        assert "senha_hash" not in result.model_dump()["usuario"]


class TestUpdateUsuario:

    @pytest.fixture(autouse=True)
    def _service(self, hasher):
        self.hasher = hasher
        self.service = UsuarioService(hasher, timeout=1.0)

    @pytest.mark.asyncio
    async def test_requires_senha(self, mock_db_session):
        with pytest.raises(ValidationError):
            await self.service.update_usuario(mock_db_session, 1, payload(senha=""))

        mock_db_session.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found_writes_nothing(self, mock_db_session):
        mock_db_session.get.return_value = None

        with pytest.raises(NotFoundError):
            await self.service.update_usuario(mock_db_session, 99, payload())

        mock_db_session.flush.assert_not_awaited()
        mock_db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_full_replacement_rehashes(self, mock_db_session):
        usuario = make_usuario(self.hasher, telefone="123", endereco="Rua A")
        old_digest = usuario.senha_hash
        mock_db_session.get.return_value = usuario

        result = await self.service.update_usuario(
            mock_db_session, 1, payload(nome="Ana Maria", senha="pw1")
        )

        assert result.nome == "Ana Maria"
        # Omitted optional fields are cleared by a full replacement
        assert result.telefone is None
        assert result.endereco is None
        assert usuario.senha_hash != old_digest
        assert self.hasher.verify_sync("pw1", usuario.senha_hash)
        mock_db_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unique_violation_is_conflict(self, mock_db_session):
        mock_db_session.get.return_value = make_usuario(self.hasher)
        mock_db_session.flush = AsyncMock(
            side_effect=IntegrityError("UPDATE usuarios", {}, Exception("duplicate key"))
        )

        with pytest.raises(ConflictError):
            await self.service.update_usuario(mock_db_session, 1, payload(username="bia"))

        mock_db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_failure(self, mock_db_session):
        mock_db_session.get = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with pytest.raises(DatastoreError) as exc_info:
            await self.service.update_usuario(mock_db_session, 1, payload())

        assert exc_info.value.message == "Erro ao atualizar usuário"


class TestPatchUsuario:

    @pytest.fixture(autouse=True)
    def _service(self, hasher):
        self.hasher = hasher
        self.service = UsuarioService(hasher, timeout=1.0)

    @pytest.mark.asyncio
    async def test_without_senha_keeps_digest(self, mock_db_session):
        usuario = make_usuario(self.hasher, telefone="123")
        old_digest = usuario.senha_hash
        mock_db_session.get.return_value = usuario

        result = await self.service.patch_usuario(
            mock_db_session, 1, UsuarioPayload(endereco="Rua B, 2")
        )

        assert result.endereco == "Rua B, 2"
        assert result.telefone == "123"
        assert usuario.senha_hash == old_digest

    @pytest.mark.asyncio
    async def test_with_senha_rehashes(self, mock_db_session):
        usuario = make_usuario(self.hasher)
        mock_db_session.get.return_value = usuario

        await self.service.patch_usuario(mock_db_session, 1, UsuarioPayload(senha="nova"))

        assert self.hasher.verify_sync("nova", usuario.senha_hash)
        assert not self.hasher.verify_sync("pw1", usuario.senha_hash)

    @pytest.mark.asyncio
    async def test_blank_required_field_rejected(self, mock_db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.patch_usuario(mock_db_session, 1, UsuarioPayload(nome=""))

        assert exc_info.value.fields == ["nome"]
        mock_db_session.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_found(self, mock_db_session):
        mock_db_session.get.return_value = None

        with pytest.raises(NotFoundError):
            await self.service.patch_usuario(mock_db_session, 5, UsuarioPayload(nome="X"))


class TestListAndStatus:

    @pytest.fixture(autouse=True)
    def _service(self, hasher):
        self.hasher = hasher
        self.service = UsuarioService(hasher, timeout=1.0)

    @pytest.mark.asyncio
    async def test_list_is_sanitized(self, mock_db_session):
        mock_db_session.execute.return_value = make_result(
            scalars=[make_usuario(self.hasher), make_usuario(self.hasher, id=2, cpf="222", username="bia")]
        )

        result = await self.service.list_usuarios(mock_db_session)

        assert [u.username for u in result] == ["ana", "bia"]
        assert all("senha_hash" not in u.model_dump() for u in result)

    @pytest.mark.asyncio
    async def test_list_failure(self, mock_db_session):
        mock_db_session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

        with pytest.raises(DatastoreError) as exc_info:
            await self.service.list_usuarios(mock_db_session)

        assert exc_info.value.message == "Erro ao buscar usuários"

    @pytest.mark.asyncio
    async def test_server_time(self, mock_db_session):
        now = datetime.now(timezone.utc)
        mock_db_session.execute.return_value = make_result(scalar=now)

        assert await self.service.server_time(mock_db_session) == now

    @pytest.mark.asyncio
    async def test_server_time_failure(self, mock_db_session):
        mock_db_session.execute = AsyncMock(side_effect=ConnectionRefusedError())

        with pytest.raises(DatastoreError) as exc_info:
            await self.service.server_time(mock_db_session)

        assert exc_info.value.message == "Erro ao conectar ao banco de dados"
