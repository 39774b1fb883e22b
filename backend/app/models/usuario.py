"""
Cadastro API — Usuario SQLAlchemy Model
=========================================

What:  ORM model for the `usuarios` table.
Who:   UsuarioService for all reads and writes; Database.create_tables().

Table Design:
    - id: integer identity assigned by the database, used in /users/{id}
    - cpf, username: UNIQUE. The service checks both before inserting, and
      these constraints catch concurrent registrations that race past the check
    - email: indexed, it is the login lookup key (not unique, matching the
      existing data; login uses the first match)
    - senha_hash: bcrypt digest. The plaintext password is never stored
"""

from datetime import date
from typing import Optional

from sqlalchemy import Date, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Usuario(Base):
    """
    A registered user.

    Lifecycle:
        1. Created by POST /users (digest computed before insert)
        2. Read by GET /users and POST /login
        3. Replaced by PUT /users/{id}, or partially changed by PATCH
        4. Never deleted through the API
    """

    __tablename__ = "usuarios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    nome: Mapped[str] = mapped_column(String(255), nullable=False)

    data_nascimento: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # 14 chars fits both "12345678901" and "123.456.789-01"
    cpf: Mapped[str] = mapped_column(String(14), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    telefone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    endereco: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    username: Mapped[str] = mapped_column(String(100), nullable=False)

    senha_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("cpf", name="uq_usuarios_cpf"),
        UniqueConstraint("username", name="uq_usuarios_username"),
    )

    def __repr__(self) -> str:
        # no senha_hash: repr output ends up in logs
        return f"<Usuario(id={self.id}, username='{self.username}')>"
