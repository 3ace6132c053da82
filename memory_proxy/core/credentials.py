"""
Credential providers for the Google Sheets store backend.
"""

import base64
import binascii
import json
import os
from abc import ABC, abstractmethod
from typing import Optional

from .errors import AuthError


class CredentialProvider(ABC):
    """Supplies the opaque bearer token used to reach the durable store."""

    @abstractmethod
    def get_credentials(self) -> str:
        """Return an access token or raise AuthError."""
        pass


class StaticCredentialProvider(CredentialProvider):
    """Returns a fixed token. Used when the token is minted outside the process."""

    def __init__(self, token: str):
        self._token = token

    def get_credentials(self) -> str:
        if not self._token:
            raise AuthError("No access token configured")
        return self._token


class EnvCredentialProvider(CredentialProvider):
    """Reads a bearer token from the environment.

    Priority order:
    1. SHEETS_ACCESS_TOKEN (raw token)
    2. GOOGLE_APPLICATION_CREDENTIALS_B64 (base64 JSON with "access_token" or "token")
    """

    def __init__(self, token_var: str = "SHEETS_ACCESS_TOKEN",
                 b64_var: str = "GOOGLE_APPLICATION_CREDENTIALS_B64"):
        self.token_var = token_var
        self.b64_var = b64_var

    def get_credentials(self) -> str:
        token = os.getenv(self.token_var)
        if token:
            return token

        encoded = os.getenv(self.b64_var)
        if not encoded:
            raise AuthError(f"Missing {self.token_var} or {self.b64_var} env var")

        token = self._decode_token(encoded)
        if not token:
            raise AuthError(f"{self.b64_var} does not contain an access_token")
        return token

    def _decode_token(self, encoded: str) -> Optional[str]:
        try:
            decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
            creds = json.loads(decoded)
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise AuthError(f"Could not decode {self.b64_var}: {e}") from e

        if not isinstance(creds, dict):
            return None
        return creds.get("access_token") or creds.get("token")
