from .settings import settings
from .database import async_session_manager, create_engine, create_session_maker
from .table_names import TableNames

__all__ = [
    "settings",
    "async_session_manager",
    "create_engine",
    "create_session_maker",
    "TableNames",
]
