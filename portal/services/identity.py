"""身份与角色闸门。

令牌格式沿用 ``base64(payload).hex(hmac_sha256)``，无外部 JWT 依赖；
密码使用带随机盐的 PBKDF2。过期、伪造、格式错误一律返回
``Unauthenticated``，调用方无法区分具体原因。
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from portal.errors import Forbidden, Unauthenticated
from portal.models import UserRole

PBKDF2_ITERATIONS = 260_000


@dataclass(frozen=True)
class Caller:
    """经过验证的调用方身份。"""

    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("ascii"), PBKDF2_ITERATIONS
    )
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        algorithm, iterations, salt, expected = hashed_password.split("$")
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", plain_password.encode("utf-8"), salt.encode("ascii"), rounds
    )
    return hmac.compare_digest(digest.hex(), expected)


class TokenService:
    """签发与校验访问令牌。"""

    def __init__(self, secret_key: str, expire_hours: int = 24) -> None:
        self._secret = secret_key.encode("utf-8")
        self.expire_hours = expire_hours

    def _sign(self, payload_b64: str) -> str:
        return hmac.new(self._secret, payload_b64.encode(), hashlib.sha256).hexdigest()

    def create_token(self, user_id: int, role: UserRole, now: Optional[datetime] = None) -> str:
        issued = now or datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "role": role.value,
            "exp": (issued + timedelta(hours=self.expire_hours)).isoformat(),
        }
        payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
        return f"{payload_b64}.{self._sign(payload_b64)}"

    def verify(self, token: str, now: Optional[datetime] = None) -> Caller:
        """校验令牌，返回 ``Caller``；任何失败都抛出 ``Unauthenticated``。"""

        parts = token.split(".")
        if len(parts) != 2:
            raise Unauthenticated()
        payload_b64, signature = parts
        if not hmac.compare_digest(signature, self._sign(payload_b64)):
            raise Unauthenticated()
        try:
            payload = json.loads(base64.urlsafe_b64decode(payload_b64.encode()).decode())
            expires_at = datetime.fromisoformat(payload["exp"])
            caller = Caller(user_id=int(payload["sub"]), role=UserRole(payload["role"]))
        except (ValueError, KeyError, TypeError):
            raise Unauthenticated() from None
        if (now or datetime.now(timezone.utc)) > expires_at:
            raise Unauthenticated()
        return caller


def ensure_role(caller: Caller, *roles: UserRole, message: str = "权限不足") -> None:
    """要求调用方属于给定角色之一，否则抛出 ``Forbidden``。"""

    if caller.role not in roles:
        raise Forbidden(message)
