from .client import AuthClient, ClientError, ClientResult, HttpAuthClient, ServerAuthClient
from .flow import LoginFlow, LoginState

__all__ = [
    "AuthClient",
    "ClientError",
    "ClientResult",
    "HttpAuthClient",
    "LoginFlow",
    "LoginState",
    "ServerAuthClient",
]
