"""JWT verification for access tokens issued by the hosted auth provider.

The auth provider signs access tokens with a shared HS256 secret. This
service only verifies them; ``create_access_token`` exists for tooling and
tests that need a locally signed token.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional
from uuid import UUID

import jwt

from wellness.config import settings


class JWTAuth:
    """JWT authentication handler with shared-secret signing."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        audience: Optional[str] = None,
    ):
        """Initialize JWT auth from settings unless overridden."""
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.audience = audience if audience is not None else settings.jwt_audience
        self.access_token_expire_minutes = 60  # 1 hour

    def create_access_token(
        self,
        user_id: UUID,
        email: str,
        role: str,
        additional_claims: Optional[Dict] = None,
    ) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User UUID
            email: User email
            role: User role (admin, staff, patient)
            additional_claims: Additional JWT claims

        Returns:
            Encoded JWT token
        """
        now = datetime.utcnow()
        expire = now + timedelta(minutes=self.access_token_expire_minutes)

        claims = {
            "sub": str(user_id),  # Subject (user ID)
            "email": email,
            "role": role,
            "iat": now,  # Issued at
            "exp": expire,  # Expiration
        }
        if self.audience:
            claims["aud"] = self.audience

        if additional_claims:
            claims.update(additional_claims)

        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_access_token(self, token: str) -> Dict:
        """
        Verify and decode an access token.

        Args:
            token: Encoded JWT

        Returns:
            Decoded claims

        Raises:
            jwt.ExpiredSignatureError: If the token has expired
            jwt.InvalidTokenError: If the token is invalid
        """
        options = {"require": ["exp", "sub"]}
        if not self.audience:
            options["verify_aud"] = False

        return jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            audience=self.audience or None,
            options=options,
        )


# Global JWT auth instance
jwt_auth = JWTAuth()
