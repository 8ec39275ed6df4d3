"""
Session token issuance and verification.

Tokens are HS256 JWTs carrying only ``sub``, ``iat`` and ``exp``. The
service keeps no record of issued tokens: validity is decided entirely by
signature and expiry at verification time.
"""

import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from jose import jwt
from jose.exceptions import JWTError

from shared.errors import TokenInvalid
from shared.logging import get_logger


class SessionTokenIssuer:
    """Mints and checks session tokens.

    The first secret signs; every secret in the ordered list is accepted
    when verifying, which lets an operator rotate the signing secret while
    tokens signed with the previous one are still in circulation.
    """

    def __init__(
        self,
        secrets: Iterable[str],
        ttl_seconds: int = 3600,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        self.secrets: List[str] = [s for s in secrets if s]
        if not self.secrets:
            raise ValueError("at least one token signing secret is required")
        self.ttl_seconds = ttl_seconds
        self.algorithm = algorithm
        self.clock = clock
        self.logger = get_logger("auth.tokens")

    def issue(self, identifier: str) -> str:
        """Issue a token whose subject is ``identifier``."""
        issued_at = int(self.clock())
        claims = {
            "sub": identifier,
            "iat": issued_at,
            "exp": issued_at + self.ttl_seconds,
        }
        return jwt.encode(claims, self.secrets[0], algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """Return the verified claims of ``token`` or raise TokenInvalid."""
        claims = self._decode_with_any_secret(token)

        subject = claims.get("sub")
        expires_at = claims.get("exp")
        if not isinstance(subject, str) or not subject:
            raise TokenInvalid("Session token has no subject")
        if not isinstance(expires_at, int) or not isinstance(claims.get("iat"), int):
            raise TokenInvalid("Session token has malformed timestamps")
        if self.clock() >= expires_at:
            raise TokenInvalid("Session token expired", details={"exp": expires_at})

        return claims

    def verify(self, token: str) -> str:
        """Return the subject of a valid token or raise TokenInvalid."""
        return self.decode(token)["sub"]

    def _decode_with_any_secret(self, token: str) -> Dict[str, Any]:
        last_error: Optional[JWTError] = None
        for secret in self.secrets:
            try:
                # Expiry is checked against the injected clock in decode()
                return jwt.decode(
                    token,
                    secret,
                    algorithms=[self.algorithm],
                    options={"verify_exp": False, "verify_aud": False}
                )
            except JWTError as e:
                last_error = e
            except (ValueError, TypeError) as e:
                raise TokenInvalid("Session token is malformed") from e

        self.logger.debug("Token rejected", error=str(last_error))
        raise TokenInvalid("Session token signature is invalid") from last_error
