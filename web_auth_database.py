"""
Autenticação: hash de senhas, tokens JWT e operações de usuário
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, JWT_SECRET_KEY
from database import DatabaseError
from web_database import WebDatabaseService
from web_models import UserCreate, UserUpdate, new_id

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Exceção customizada para erros de autenticação"""
    pass


class TokenExpiredError(AuthenticationError):
    pass


# Utilidades de hash
def hash_password(password: str) -> str:
    """Gera hash da senha usando bcrypt"""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, hashed: str) -> bool:
    """Verifica se a senha confere com o hash"""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        return False


# Funções JWT
def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Cria token de acesso JWT com o id do usuário"""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"user_id": user_id, "exp": expire, "type": "access"}
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decodifica e valida o token

    Levanta TokenExpiredError para token expirado e AuthenticationError
    para qualquer outro token inválido.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token expirado")
    except jwt.PyJWTError:
        raise AuthenticationError("Token inválido")

    if payload.get("type") != "access" or not payload.get("user_id"):
        raise AuthenticationError("Token inválido")
    return payload


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Remove senha do retorno"""
    return {k: v for k, v in user.items() if k != "password_hash"}


# Operações de usuário
def register_user(db: WebDatabaseService, user_data: UserCreate) -> Dict[str, Any]:
    """Cria novo usuário; email duplicado levanta DatabaseError"""
    if db.get_user_by_email(user_data.email):
        raise DatabaseError("Usuário já existe com este email")

    now = datetime.now(timezone.utc).isoformat()
    user = db.create_user({
        "id": new_id(),
        "name": user_data.name,
        "email": user_data.email,
        "password_hash": hash_password(user_data.password),
        "role": "user",
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    })
    logger.info("Usuário %s registrado", user["id"])
    return user


def authenticate_user(db: WebDatabaseService, email: str, password: str) -> Optional[Dict[str, Any]]:
    """Retorna o usuário se email e senha conferem, senão None"""
    user = db.get_user_by_email(email)
    if not user or not verify_password(password, user.get("password_hash", "")):
        return None

    if not user.get("is_active", False):
        raise AuthenticationError("Conta desativada")

    try:
        db.update_user(user["id"], {"last_login": datetime.now(timezone.utc).isoformat()})
    except DatabaseError as e:
        # Não falha o login se não conseguir atualizar o último login
        logger.warning("Erro ao atualizar último login de %s: %s", user["id"], e)
    return user


def update_profile(db: WebDatabaseService, user_id: str, user_data: UserUpdate) -> Dict[str, Any]:
    """Atualiza nome e email do usuário"""
    updates = user_data.model_dump(exclude_unset=True, exclude_none=True)

    if "email" in updates:
        existing = db.get_user_by_email(updates["email"])
        if existing and existing["id"] != user_id:
            raise DatabaseError("Email já está em uso")

    if not updates:
        user = db.get_user_by_id(user_id)
        if not user:
            raise DatabaseError("Usuário não encontrado")
        return user

    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    return db.update_user(user_id, updates)
