import secrets
from typing import Any, Dict, Optional

from jose import JWTError, jwt


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        return None


def create_token(claims: Dict[str, Any], secret: str, algorithm: str = "HS256") -> str:
    return jwt.encode(claims, secret, algorithm=algorithm)


def verify_basic_credentials(username: str, password: str, expected_username: str, expected_password: str) -> bool:
    user_ok = secrets.compare_digest(username.encode("utf-8"), expected_username.encode("utf-8"))
    pass_ok = secrets.compare_digest(password.encode("utf-8"), expected_password.encode("utf-8"))
    return user_ok and pass_ok
