"""bluelink - recursive [[link]] resolution for markdown LLM chats."""

from bluelink.classifier import FileCategory
from bluelink.classifier import classify
from bluelink.client import ChatCompletionsClient
from bluelink.config import BlueLinkSettings
from bluelink.config import ChatConfig
from bluelink.config import EndpointConfig
from bluelink.config import ResolutionConfig
from bluelink.events import ResolutionEvent
from bluelink.events import ResolutionEventBus
from bluelink.exceptions import BlueLinkError
from bluelink.exceptions import ChatExecutionError
from bluelink.exceptions import LLMError
from bluelink.executor import ChatExecutionResult
from bluelink.executor import ChatExecutorProtocol
from bluelink.executor import TranscriptChatExecutor
from bluelink.links import LinkSyntax
from bluelink.links import scan_links
from bluelink.models import AudioFragment
from bluelink.models import ImageFragment
from bluelink.models import RequestMessage
from bluelink.models import ResolvedContent
from bluelink.models import TextFragment
from bluelink.resolver import ContentResolver
from bluelink.runner import ChatRunner
from bluelink.store import FileHandle
from bluelink.store import FileStoreProtocol
from bluelink.store import VaultFileStore
from bluelink.tree import ResolutionContext
from bluelink.tree import create_root

__version__ = "0.1.0"

__all__ = [
    "ContentResolver",
    "ResolutionConfig",
    "ResolutionContext",
    "create_root",
    "ChatRunner",
    "ChatExecutorProtocol",
    "ChatExecutionResult",
    "TranscriptChatExecutor",
    "ChatCompletionsClient",
    "EndpointConfig",
    "ChatConfig",
    "BlueLinkSettings",
    "FileHandle",
    "FileStoreProtocol",
    "VaultFileStore",
    "FileCategory",
    "classify",
    "LinkSyntax",
    "scan_links",
    "TextFragment",
    "ImageFragment",
    "AudioFragment",
    "RequestMessage",
    "ResolvedContent",
    "ResolutionEvent",
    "ResolutionEventBus",
    "BlueLinkError",
    "ChatExecutionError",
    "LLMError",
]
