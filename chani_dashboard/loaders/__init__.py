"""Record store clients for the transcriptions table."""

from .transcriptions import (
    ChangeEvent,
    ChangeFeed,
    FetchFailure,
    TranscriptionSource,
    TranscriptionStore,
    connect_store,
)

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "FetchFailure",
    "TranscriptionSource",
    "TranscriptionStore",
    "connect_store",
]
