"""
Shared API key authentication helpers for Huddle services.

Each service defines its own API_KEY_CONFIGS and get_settings function and
passes them to these helpers.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from fastapi import Request

from services.common.http_errors import AuthError, ErrorCode
from services.common.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class APIKeyConfig:
    client: str
    service: str
    permissions: List[str]
    settings_key: str  # The key name in settings to look up the actual API key value


def build_api_key_mapping(
    api_key_configs: Dict[str, APIKeyConfig], get_settings: Callable[[], Any]
) -> Dict[str, APIKeyConfig]:
    """
    Build a mapping from actual API key values to their configurations.
    """
    settings = get_settings()
    api_key_mapping = {}
    for config in api_key_configs.values():
        actual_key_value = getattr(settings, config.settings_key, None)
        if actual_key_value:
            api_key_mapping[actual_key_value] = config
        else:
            logger.warning(f"API key not found in settings: {config.settings_key}")
    return api_key_mapping


def get_api_key_from_request(request: Request) -> Optional[str]:
    """
    Extract API key from request headers (supports X-API-Key and Authorization: Bearer).
    """
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return api_key
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return None


def verify_api_key(
    api_key: str, api_key_mapping: Dict[str, APIKeyConfig]
) -> Optional[str]:
    """
    Verify an API key and return the service name it's authorized for.
    """
    if not api_key:
        return None
    key_config = api_key_mapping.get(api_key)
    if not key_config:
        return None
    return key_config.service


def make_verify_service_authentication(
    api_key_configs: Dict[str, APIKeyConfig], get_settings: Callable[[], Any]
) -> Callable[[Request], str]:
    def verify_service_authentication(request: Request) -> str:
        """Verify the API key from the request and return the client name."""
        api_key = get_api_key_from_request(request)
        if not api_key:
            logger.warning("Missing API key in request headers")
            raise AuthError(message="API key required")
        api_key_mapping = build_api_key_mapping(api_key_configs, get_settings)
        if not verify_api_key(api_key, api_key_mapping):
            logger.warning(f"Invalid API key: {api_key[:4]}...")
            raise AuthError(message="Invalid API key", code=ErrorCode.TOKEN_INVALID)
        client_name = api_key_mapping[api_key].client
        request.state.client_name = client_name
        return client_name

    return verify_service_authentication
