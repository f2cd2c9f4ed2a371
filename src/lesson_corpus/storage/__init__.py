from .factory import create_remote_store
from .local_cache import JsonFileCache, LocalCache
from .postgrest import PostgrestRemoteStore
from .remote_store import OfflineRemoteStore, RemoteStore

__all__ = [
    "JsonFileCache",
    "LocalCache",
    "OfflineRemoteStore",
    "PostgrestRemoteStore",
    "RemoteStore",
    "create_remote_store",
]
