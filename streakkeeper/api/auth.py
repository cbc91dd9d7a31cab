"""Bearer API key authentication"""
import logging
from typing import Optional
from fastapi import Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from streakkeeper.config import settings
from streakkeeper.exceptions import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

# Missing credentials are reported through AuthenticationError, not by HTTPBearer
bearer_scheme = HTTPBearer(auto_error=False)


async def verify_api_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)
) -> str:
    """
    Check the bearer token against the configured API keys

    Returns:
        The accepted API key

    Raises:
        ConfigurationError: No API keys are configured (every request is refused)
        AuthenticationError: Missing or unknown key
    """
    valid_keys = settings.api_key_list
    if not valid_keys:
        raise ConfigurationError(
            "No API keys configured; refusing request",
            config_key="API_KEYS",
            operation="verify_api_key"
        )

    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token", operation="verify_api_key")

    api_key = credentials.credentials
    if api_key not in valid_keys:
        raise AuthenticationError(
            f"Unknown API key {api_key[:4]}...",
            operation="verify_api_key"
        )

    return api_key
