from .events import SyncEvent, SyncEventBus
from .gateway import StagedWrite, SyncGateway

__all__ = ["StagedWrite", "SyncEvent", "SyncEventBus", "SyncGateway"]
