import logging
from abc import ABC, abstractmethod
from typing import Optional

from fastapi import Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)


class SessionProvider(ABC):
    """Source of the current user's bearer token. Tokens are consumed, never minted here."""

    @abstractmethod
    async def get_access_token(self) -> Optional[str]:
        """Returns the access token of the active session, or None when signed out."""
        ...


class StaticSessionProvider(SessionProvider):
    def __init__(self, access_token: Optional[str] = None):
        self.access_token = access_token

    async def get_access_token(self) -> Optional[str]:
        return self.access_token

    def sign_out(self):
        self.access_token = None


BEARER = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(BEARER)
) -> Optional[str]:
    """
    Token the API caller presented. Forwarded to the executor so the job runs
    under the caller's session; a missing token is not rejected here because
    the trigger reports it as an AuthError alongside the created job.
    """
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials
