"""
身份验证 - 从请求凭证解析调用者ID
"""

import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from jot.config import settings
from jot.core.exceptions import AuthenticationException
from loguru import logger

# HTTP Bearer token schema
security = HTTPBearer(auto_error=False)


class AuthService:
    """身份验证服务（仅校验令牌，不管理账号）"""

    def __init__(self):
        self.secret_key = settings.secret_key
        self.algorithm = settings.algorithm

    def create_access_token(
        self, user_id: str, expires_delta: Optional[timedelta] = None
    ) -> str:
        """创建访问令牌"""
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
        to_encode = {"sub": user_id, "exp": expire, "type": "access"}
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """验证令牌"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None

        if payload.get("type") != "access" or not payload.get("sub"):
            return None
        return payload


auth_service = AuthService()


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """解析调用者ID，失败时返回401"""
    if not credentials:
        raise AuthenticationException()

    payload = auth_service.verify_token(credentials.credentials)
    if not payload:
        raise AuthenticationException("Invalid or expired token")

    return str(payload["sub"])
