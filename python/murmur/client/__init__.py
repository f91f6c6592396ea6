"""Desktop client runtime.

The native shell (window, microphone capture, clipboard) pushes events into
the RecorderOrchestrator and executes the commands it sends back. Everything
in this package is asyncio code that never blocks a thread.
"""

from murmur.client.chat import ChatStreamError, ChatThread
from murmur.client.config import ClientSettings, create_http_client, get_client_settings
from murmur.client.dispatch import DispatchError, DispatchRouter
from murmur.client.recorder import (
    CaptureMode,
    RecorderOrchestrator,
    RecorderSession,
    RecorderState,
    reduce,
)
from murmur.client.transcription import TranscriptionClient, TranscriptionError

__all__ = [
    "CaptureMode",
    "ChatStreamError",
    "ChatThread",
    "ClientSettings",
    "DispatchError",
    "DispatchRouter",
    "RecorderOrchestrator",
    "RecorderSession",
    "RecorderState",
    "TranscriptionClient",
    "TranscriptionError",
    "create_http_client",
    "get_client_settings",
    "reduce",
]
