from loki_downloader.state.base import StateHandle, StateStore
from loki_downloader.state.json_store import JsonStateHandle, JsonStateStore

__all__ = [
    "JsonStateHandle",
    "JsonStateStore",
    "StateHandle",
    "StateStore",
]
