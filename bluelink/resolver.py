"""Recursive resolution of [[links]] inside chat messages.

Given one message's text, every link is resolved concurrently and spliced
back at its original position:

- dangling links stay verbatim
- links back into the current branch become a circular-dependency marker
- ``Note#Heading`` / ``Note#^block`` inline that excerpt, itself resolved
- images and audio in user messages become inline media fragments
- pending chats (last turn is an unanswered user message) are executed and
  replaced by the reply they produce
- any other file is inlined with its own links resolved one level deeper

Nothing raised while resolving one link escapes it: failures render as an
inline ``(Error: ...)`` marker so sibling links and messages still resolve.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from bluelink.chat.transcript import DEFAULT_ROLE_HEADER
from bluelink.chat.transcript import ChatMessage
from bluelink.classifier import MEDIA_ROLES
from bluelink.classifier import FileCategory
from bluelink.classifier import classify
from bluelink.classifier import is_media_file
from bluelink.config import ResolutionConfig
from bluelink.events import RESOLUTION_CACHE_HIT
from bluelink.events import RESOLUTION_COMPLETE
from bluelink.events import RESOLUTION_CYCLE
from bluelink.events import RESOLUTION_DEPTH_LIMIT
from bluelink.events import RESOLUTION_ERROR
from bluelink.events import RESOLUTION_START
from bluelink.events import ResolutionEvent
from bluelink.events import ResolutionEventBus
from bluelink.events import ResolutionStatus
from bluelink.exceptions import ChatExecutionError
from bluelink.exceptions import CircularDependencyError
from bluelink.links import LinkOccurrence
from bluelink.links import scan_links
from bluelink.media import encode_base64
from bluelink.media import encode_data_url
from bluelink.media import m4a_to_wav
from bluelink.media import mime_for_extension
from bluelink.models import AudioFragment
from bluelink.models import ImageFragment
from bluelink.models import RequestMessage
from bluelink.models import ResolvedContent
from bluelink.models import TextFragment
from bluelink.models import is_media
from bluelink.tree import ResolutionContext
from bluelink.tree import create_root

if TYPE_CHECKING:
    from bluelink.executor import ChatExecutorProtocol
    from bluelink.store import FileHandle
    from bluelink.store import FileStoreProtocol

logger = logging.getLogger(__name__)

CIRCULAR_MARKER = "(Error: Circular dependency)"

Fragment = TextFragment | ImageFragment | AudioFragment


def circular_marker(path: str) -> str:
    return f"[[{path}]] {CIRCULAR_MARKER}"


def error_marker(path: str, error: BaseException | str) -> str:
    message = str(error) or type(error).__name__
    return f"[[{path}]] (Error: {message})"


def has_prose(text: str, occurrences: Sequence[LinkOccurrence]) -> bool:
    """True if ``text`` has non-whitespace content outside the link spans."""
    last = 0
    for occurrence in occurrences:
        if text[last : occurrence.start].strip():
            return True
        last = occurrence.end
    return bool(text[last:].strip())


def merge_fragments(
    text: str,
    occurrences: Sequence[LinkOccurrence],
    fragments: Sequence[Fragment],
) -> ResolvedContent:
    """Stitch resolved fragments back into one message payload.

    A message made only of links, at least one of which resolved to media,
    becomes a fragment list (adjacent text coalesced, blank text dropped).
    Anything else becomes a string: each fragment's text replaces its link
    span and surrounding prose is kept verbatim. Media cannot live in a flat
    string, so a media fragment leaves its original link text in place.
    """
    if not has_prose(text, occurrences) and any(is_media(fragment) for fragment in fragments):
        parts: list[Fragment] = []
        for fragment in fragments:
            if isinstance(fragment, TextFragment):
                if not fragment.text.strip():
                    continue
                if parts and isinstance(parts[-1], TextFragment):
                    parts[-1] = TextFragment(text=f"{parts[-1].text}\n{fragment.text}")
                    continue
            parts.append(fragment)
        return parts

    pieces: list[str] = []
    last = 0
    for occurrence, fragment in zip(occurrences, fragments, strict=True):
        pieces.append(text[last : occurrence.start])
        pieces.append(fragment.text if isinstance(fragment, TextFragment) else occurrence.raw)
        last = occurrence.end
    pieces.append(text[last:])
    return "".join(pieces)


class ContentResolver:
    """Resolves the links of chat messages against a file store.

    Args:
        store: Where link targets are looked up and read.
        executor: Runs pending chats. Without one, pending chats are inlined
            like any other note.
        config: Resolution settings.
        role_header: Role header template used to recognise chat files.
        events: Optional bus receiving per-file resolution events.
    """

    def __init__(
        self,
        store: FileStoreProtocol,
        executor: ChatExecutorProtocol | None = None,
        config: ResolutionConfig | None = None,
        *,
        role_header: str = DEFAULT_ROLE_HEADER,
        events: ResolutionEventBus | None = None,
    ) -> None:
        self.store = store
        self.executor = executor
        self.config = config or ResolutionConfig()
        self.role_header = role_header
        self.events = events

    def create_context(self, root_path: str) -> ResolutionContext:
        """Start a top-level resolution rooted at ``root_path``."""
        return create_root(root_path)

    async def resolve_message_content(
        self,
        text: str,
        source_path: str,
        role: str,
        context: ResolutionContext | None = None,
    ) -> ResolvedContent:
        """Resolve one outbound message.

        Args:
            text: Message content as written.
            source_path: Vault path of the file the message belongs to.
            role: Message role; only user messages inline media.
            context: Resolution context to join; a new root context for
                ``source_path`` when omitted.

        Returns:
            The resolved string, or a fragment list for pure media messages.
        """
        if context is None:
            context = self.create_context(source_path)
        return await self.resolve(text, source_path, role, context, context.depth)

    async def resolve_messages(
        self,
        messages: Sequence[ChatMessage],
        source_path: str,
        context: ResolutionContext,
    ) -> list[RequestMessage]:
        """Resolve every message of a transcript concurrently, keeping order."""
        contents = await asyncio.gather(
            *(self.resolve_message_content(message.content, source_path, message.role, context) for message in messages)
        )
        return [
            RequestMessage(role=message.role, content=content)
            for message, content in zip(messages, contents, strict=True)
        ]

    async def resolve(
        self,
        text: str,
        source_path: str,
        role: str,
        context: ResolutionContext,
        depth: int,
    ) -> ResolvedContent:
        occurrences = scan_links(text, self.config.link_syntax)
        if not occurrences:
            return text

        if depth >= self.config.max_depth:
            logger.debug(f"Max depth ({self.config.max_depth}) reached at: {source_path}")
            await self._emit(RESOLUTION_DEPTH_LIMIT, context)
            return text

        inline_media = role in MEDIA_ROLES and not has_prose(text, occurrences)
        fragments = await asyncio.gather(
            *(
                self._resolve_occurrence(occurrence, source_path, role, context, depth, inline_media)
                for occurrence in occurrences
            )
        )
        return merge_fragments(text, occurrences, fragments)

    async def _resolve_occurrence(
        self,
        occurrence: LinkOccurrence,
        source_path: str,
        role: str,
        context: ResolutionContext,
        depth: int,
        inline_media: bool,
    ) -> Fragment:
        try:
            handle = self.store.resolve_link(occurrence.target, occurrence.subpath, source_path)
        except Exception as e:
            # Unresolvable lookups count as dangling
            logger.warning(f"Could not resolve [[{occurrence.target}]] from {source_path}: {e}")
            handle = None
        if handle is None:
            return TextFragment(text=occurrence.raw)
        if is_media_file(handle) and not inline_media:
            return TextFragment(text=occurrence.raw)

        child = context.child(handle.path)
        if context.is_ancestor(handle.path):
            return await self._cycle(child)

        try:
            return await self._resolve_handle(handle, occurrence, role, child, depth)
        except CircularDependencyError:
            return await self._cycle(child)
        except Exception as e:
            logger.error(f"Error resolving file {handle.path}: {e}")
            await self._emit(RESOLUTION_ERROR, child, "error", error=str(e) or type(e).__name__)
            return TextFragment(text=error_marker(handle.path, e))

    async def _cycle(self, context: ResolutionContext) -> Fragment:
        logger.error(f"Circular dependency detected: {context.file_path}")
        await self._emit(RESOLUTION_CYCLE, context, "cycle-detected")
        return TextFragment(text=circular_marker(context.file_path))

    async def _resolve_handle(
        self,
        handle: FileHandle,
        occurrence: LinkOccurrence,
        role: str,
        context: ResolutionContext,
        depth: int,
    ) -> Fragment:
        category = classify(handle, role, occurrence.subpath, role_header=self.role_header)
        if category is FileCategory.IMAGE:
            await self._emit(RESOLUTION_START, context, "resolving")
            data = await self.store.read_binary(handle)
            fragment: Fragment = ImageFragment(url=encode_data_url(data, mime_for_extension(handle.extension)))
        elif category is FileCategory.AUDIO:
            await self._emit(RESOLUTION_START, context, "resolving")
            fragment = await self._encode_audio(handle)
        else:
            fragment = await self._resolve_text_file(handle, occurrence.subpath, role, context, depth)

        status: ResolutionStatus = "cached" if context.tree.status(context.node) == "cached" else "complete"
        await self._emit(RESOLUTION_COMPLETE, context, status)
        return fragment

    async def _encode_audio(self, handle: FileHandle) -> AudioFragment:
        data = await self.store.read_binary(handle)
        audio_format = handle.extension
        if audio_format == "m4a":
            data = await m4a_to_wav(data)
            audio_format = "wav"
        return AudioFragment(data=encode_base64(data), format=audio_format)

    async def _resolve_text_file(
        self,
        handle: FileHandle,
        subpath: str | None,
        role: str,
        context: ResolutionContext,
        depth: int,
    ) -> TextFragment:
        content = await self.store.read_text(handle)

        excerpt = await self._excerpt(handle, content, subpath)
        if excerpt is not None:
            await self._emit(RESOLUTION_START, context, "resolving")
            return TextFragment(text=await self._resolve_nested(excerpt, handle, role, context, depth, fallback=excerpt))

        pending = (
            self.config.enabled
            and self.executor is not None
            and classify(handle, role, None, content, self.role_header) is FileCategory.PENDING_CHAT
        )
        await self._emit(
            RESOLUTION_START,
            context,
            "resolving",
            is_pending_chat=pending,
            is_chat_file=True if pending else None,
        )
        if not self.config.enabled:
            return TextFragment(text=content)
        if pending:
            return TextFragment(text=await self._execute(handle, context))
        # Inlined notes are textual; a pure-media note contributes nothing
        return TextFragment(text=await self._resolve_nested(content, handle, role, context, depth, fallback=""))

    async def _excerpt(self, handle: FileHandle, content: str, subpath: str | None) -> str | None:
        if not subpath:
            return None
        bounds = await self.store.resolve_section(handle, subpath, content)
        if bounds is None:
            logger.debug(f"Subpath #{subpath} not found in {handle.path}; using whole file")
            return None
        start, end = bounds
        return content[start:end].strip()

    async def _resolve_nested(
        self,
        text: str,
        handle: FileHandle,
        role: str,
        context: ResolutionContext,
        depth: int,
        fallback: str,
    ) -> str:
        """Resolve a linked file's text one level deeper; a fragment-list result yields ``fallback``."""
        if not self.config.enabled:
            return text
        nested = await self.resolve(text, handle.path, role, context, depth + 1)
        return nested if isinstance(nested, str) else fallback

    async def _execute(self, handle: FileHandle, context: ResolutionContext) -> str:
        """Run a pending chat, sharing one execution per path when caching."""
        path = handle.path
        if not self.config.enable_caching:
            return await self._run_execution(handle, context)

        cached = context.cache_lookup(path)
        if cached is not None:
            if cached.done():
                logger.debug(f"Cache hit for: {path}")
                await self._emit(RESOLUTION_CACHE_HIT, context, "cached", is_pending_chat=True, is_chat_file=True)
                return cached.result()
            if context.cache.would_deadlock(path, context.executions):
                raise CircularDependencyError(path)
            logger.debug(f"Awaiting in-flight execution of: {path}")
            context.cache.begin_wait(context.executions, path)
            try:
                return await asyncio.shield(cached)
            finally:
                context.cache.end_wait(context.executions, path)

        # Store before the first await so siblings find this execution
        task = asyncio.ensure_future(self._run_execution(handle, context))
        context.cache_store(path, task)
        return await asyncio.shield(task)

    async def _run_execution(self, handle: FileHandle, context: ResolutionContext) -> str:
        if self.executor is None:
            raise ChatExecutionError("No chat executor configured", file_path=handle.path)
        logger.info(f"Executing pending chat: {handle.path}")
        try:
            result = await self.executor.execute_pending_chat(handle, context.executing())
        except BaseException:
            if self.config.enable_caching:
                context.cache_evict(handle.path, asyncio.current_task())
            raise

        if self.config.write_intermediate_results and handle.path != context.root_path:
            try:
                await self.store.write_text(handle, result.full_transcript_markdown)
                logger.info(f"Wrote intermediate result to: {handle.path}")
            except OSError as e:
                logger.error(f"Failed to write intermediate result to {handle.path}: {e}")
        return result.newest_reply

    async def _emit(
        self,
        name: str,
        context: ResolutionContext,
        status: ResolutionStatus | None = None,
        *,
        is_pending_chat: bool = False,
        is_chat_file: bool | None = None,
        error: str | None = None,
    ) -> None:
        if status is not None:
            context.tree.set_status(context.node, status, error)
        if self.events is None or not self.events.has_handlers:
            return
        parent = context.node.parent
        await self.events.emit(
            name,
            ResolutionEvent(
                file_path=context.file_path,
                parent_path=parent.file_path if parent is not None else None,
                depth=context.depth,
                status=context.tree.status(context.node),
                is_pending_chat=is_pending_chat,
                is_chat_file=is_chat_file,
                error=error,
            ),
        )
