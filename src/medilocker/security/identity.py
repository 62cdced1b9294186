"""Identity verification.

Callers present a bearer credential; the provider resolves it to an
``Identity`` or raises ``AuthenticationError``. ``JWTIdentityProvider``
verifies HMAC-signed tokens carrying ``sub``, ``role``, ``verified`` and
``name`` claims.
"""

import calendar
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from medilocker.core.exceptions import AuthenticationError
from medilocker.models.profile import UserRole
from medilocker.utils.logging import get_logger
from medilocker.utils.time import Clock, utcnow

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Identity:
    """An authenticated caller."""

    id: str
    role: UserRole
    verified: bool = False
    display_name: Optional[str] = None

    @property
    def is_doctor(self) -> bool:
        """Check if the caller is a doctor."""
        return self.role == UserRole.DOCTOR

    @property
    def is_patient(self) -> bool:
        """Check if the caller is a patient."""
        return self.role == UserRole.PATIENT


class IdentityProvider(ABC):
    """Resolves a credential to an authenticated identity."""

    @abstractmethod
    def authenticate(self, credential: str) -> Identity:
        """Verify a credential.

        Raises:
            AuthenticationError: if the credential is missing, malformed,
                expired or not signed by this provider
        """


class JWTIdentityProvider(IdentityProvider):
    """Identity provider backed by signed JSON Web Tokens."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: str = "medilocker",
        clock: Clock = utcnow,
    ):
        """Initialize the provider with its signing configuration."""
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.issuer = issuer
        self.clock = clock

    def issue_token(
        self, identity: Identity, expires_in: timedelta = timedelta(hours=1)
    ) -> str:
        """Sign a token for an identity."""
        issued_at = self.clock()
        claims: Dict[str, Any] = {
            "sub": identity.id,
            "role": identity.role.value,
            "verified": identity.verified,
            "iss": self.issuer,
            "iat": calendar.timegm(issued_at.utctimetuple()),
            "exp": calendar.timegm((issued_at + expires_in).utctimetuple()),
        }
        if identity.display_name:
            claims["name"] = identity.display_name
        return str(jwt.encode(claims, self.secret_key, algorithm=self.algorithm))

    def authenticate(self, credential: str) -> Identity:
        """Verify a bearer token and build the caller's identity."""
        token = (credential or "").lstrip()
        if token.startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX) :]
        token = token.strip()
        if not token:
            raise AuthenticationError("Not authorized, no token.")

        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"verify_aud": False, "verify_exp": False},
            )
        except JWTError as e:
            logger.info("token_rejected", reason=str(e))
            raise AuthenticationError("Not authorized, token failed.") from e

        # Expiry is judged by the provider's clock
        expires_at = claims.get("exp")
        if expires_at is None:
            raise AuthenticationError("Token has no expiry.")
        if int(expires_at) <= calendar.timegm(self.clock().utctimetuple()):
            raise AuthenticationError("Token has expired.")

        subject = claims.get("sub")
        try:
            role = UserRole(claims.get("role"))
        except ValueError as e:
            raise AuthenticationError("Token carries an unknown role.") from e
        if not subject:
            raise AuthenticationError("Token has no subject.")

        return Identity(
            id=str(subject),
            role=role,
            verified=bool(claims.get("verified", False)),
            display_name=claims.get("name"),
        )

