from .backend import InMemoryBackend, SessionBackend
from .dynamodb import DynamoDBSessionBackend
from .middleware import SessionMiddleware, get_ui_session

__all__ = [
    "SessionBackend",
    "InMemoryBackend",
    "DynamoDBSessionBackend",
    "SessionMiddleware",
    "get_ui_session",
]
