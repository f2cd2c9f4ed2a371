from __future__ import annotations

import logging

from lesson_corpus.config.schema import RemoteConfig

from .postgrest import PostgrestRemoteStore
from .remote_store import OfflineRemoteStore, RemoteStore

logger = logging.getLogger(__name__)


def create_remote_store(config: RemoteConfig) -> RemoteStore:
    """
    Instantiate the remote mirror described by the configuration.

    Parameters
    ----------
    config : RemoteConfig
        Remote section of the settings. When ``enabled`` is false the planner runs fully
        offline against the local cache.

    Returns
    -------
    RemoteStore
        ``PostgrestRemoteStore`` when enabled, ``OfflineRemoteStore`` otherwise.
    """
    if not config.enabled:
        logger.info("Remote store disabled; running against the local cache only")
        return OfflineRemoteStore()
    logger.info("Using PostgREST remote store at %s", config.url)
    return PostgrestRemoteStore(config)
