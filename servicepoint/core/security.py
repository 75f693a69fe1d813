# servicepoint/core/security.py
import secrets
import time
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError
from passlib.context import CryptContext

from servicepoint.core.config import get_settings
from servicepoint.core.exceptions import TokenExpired, TokenMalformed, TokenNotYetValid

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().bcrypt_rounds,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def generate_placeholder_password() -> str:
    return secrets.token_urlsafe(6)


def new_session_id() -> str:
    # timestamp + random suffix; unique enough for tracing, not a security boundary
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class TokenService:
    """Issues and verifies signed, time-bounded bearer tokens.

    Tokens are stateless: there is no server-side session table, so a token
    stays valid until it expires or the secret is rotated.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        default_ttl: timedelta = timedelta(hours=2),
        leeway: int = 0,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.default_ttl = default_ttl
        self.leeway = leeway

    def issue(self, claims: dict, ttl: Optional[timedelta] = None, now: Optional[float] = None) -> str:
        issued_at = int(now if now is not None else time.time())
        ttl = ttl or self.default_ttl

        payload = dict(claims)
        payload.update(
            {
                "iat": issued_at,
                "nbf": issued_at,
                "exp": issued_at + int(ttl.total_seconds()),
                "session_id": new_session_id(),
            }
        )
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"leeway": self.leeway},
            )
        except ExpiredSignatureError:
            raise TokenExpired()
        except JWTClaimsError as e:
            if "not yet valid" in str(e):
                raise TokenNotYetValid()
            raise TokenMalformed()
        except JWTError:
            raise TokenMalformed()

        # exp is enforced without leeway; iat may not lie in the future
        current = time.time()
        exp = payload.get("exp")
        if exp is not None and exp < current:
            raise TokenExpired()
        iat = payload.get("iat")
        if iat is not None and iat > current + self.leeway:
            raise TokenNotYetValid()

        return payload

    def verify_signature(self, token: str) -> dict:
        """Check the signature only; timestamps are left to the caller."""
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_nbf": False, "verify_iat": False},
            )
        except JWTError:
            raise TokenMalformed()

    def token_age(self, payload: dict, now: Optional[float] = None) -> float:
        current = now if now is not None else time.time()
        return current - (payload.get("iat") or 0)


@lru_cache
def get_token_service() -> TokenService:
    settings = get_settings()
    return TokenService(
        secret=settings.secret_key,
        algorithm=settings.jwt_algorithm,
        default_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
        leeway=settings.token_leeway_seconds,
    )
