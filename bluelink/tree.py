"""Resolution tree and per-invocation cache.

One top-level resolution ("resolve this message" or "complete this chat")
owns one ResolutionTree and one ResolutionCache. Every file visit adds an
immutable node whose parent chain is the branch that led to it, so cycle
checks see only their own branch: ``A→B, A→C`` both succeed while
``A→B→A`` is caught.

The cache maps a file path to the future of its chat execution. Entries are
stored before the first await so that concurrent siblings linking the same
chat share one execution. Sharing futures across branches can deadlock in a
way no single ancestor chain shows (B awaits C's execution while C awaits
B's), so the cache also keeps a wait-for graph between in-flight executions.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections import Counter
from collections.abc import Collection
from collections.abc import Iterable
from collections.abc import Iterator
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace

from bluelink.events import ResolutionStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ResolutionNode:
    """One visit of one file along one resolution branch.

    The tree owns its nodes; a node only holds a weak reference to its parent.
    """

    file_path: str
    depth: int
    node_id: int
    _parent_ref: weakref.ReferenceType[ResolutionNode] | None = field(default=None, repr=False)

    @property
    def parent(self) -> ResolutionNode | None:
        return self._parent_ref() if self._parent_ref is not None else None

    def lineage(self) -> Iterator[ResolutionNode]:
        """This node, then each ancestor up to the root."""
        node: ResolutionNode | None = self
        while node is not None:
            yield node
            node = node.parent

    def has_ancestor(self, path: str) -> bool:
        """True when ``path`` is this node's file or any ancestor's (a cycle)."""
        return any(node.file_path == path for node in self.lineage())

    def ancestor_paths(self) -> list[str]:
        return [node.file_path for node in self.lineage()]


class ResolutionTree:
    """Arena of every node created during one top-level resolution."""

    def __init__(self, root_path: str) -> None:
        self.nodes: list[ResolutionNode] = []
        self._children: dict[int, list[ResolutionNode]] = {}
        self._status: dict[int, ResolutionStatus] = {}
        self._errors: dict[int, str] = {}
        self.root = self.add_node(root_path, None)

    def add_node(self, file_path: str, parent: ResolutionNode | None) -> ResolutionNode:
        node = ResolutionNode(
            file_path=file_path,
            depth=parent.depth + 1 if parent is not None else 0,
            node_id=len(self.nodes),
            _parent_ref=weakref.ref(parent) if parent is not None else None,
        )
        self.nodes.append(node)
        self._children[node.node_id] = []
        self._status[node.node_id] = "idle"
        if parent is not None:
            self._children[parent.node_id].append(node)
        return node

    def children(self, node: ResolutionNode) -> list[ResolutionNode]:
        return list(self._children.get(node.node_id, []))

    def status(self, node: ResolutionNode) -> ResolutionStatus:
        return self._status[node.node_id]

    def error(self, node: ResolutionNode) -> str | None:
        return self._errors.get(node.node_id)

    def set_status(self, node: ResolutionNode, status: ResolutionStatus, error: str | None = None) -> None:
        self._status[node.node_id] = status
        if error is not None:
            self._errors[node.node_id] = error

    def __len__(self) -> int:
        return len(self.nodes)


class ResolutionCache:
    """Chat-execution futures keyed by file path, plus their wait-for graph."""

    def __init__(self) -> None:
        self._entries: dict[str, asyncio.Future[str]] = {}
        self._waiting_on: dict[str, Counter[str]] = {}

    def lookup(self, path: str) -> asyncio.Future[str] | None:
        return self._entries.get(path)

    def store(self, path: str, future: asyncio.Future[str]) -> None:
        self._entries[path] = future

    def evict(self, path: str, future: asyncio.Future[str] | None = None) -> None:
        """Drop the entry for ``path``; with ``future``, only if it is still that entry."""
        current = self._entries.get(path)
        if current is None or (future is not None and current is not future):
            return
        del self._entries[path]
        logger.debug(f"Evicted cache entry: {path}")

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def would_deadlock(self, path: str, executions: Collection[str]) -> bool:
        """True if awaiting ``path`` could wait, transitively, on one of ``executions``.

        Args:
            path: In-flight execution about to be awaited.
            executions: Executions the awaiting branch is running inside of.
        """
        if not executions:
            return False
        seen: set[str] = set()
        stack = [path]
        while stack:
            current = stack.pop()
            if current in executions:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._waiting_on.get(current, ()))
        return False

    def begin_wait(self, executions: Iterable[str], path: str) -> None:
        for waiter in executions:
            self._waiting_on.setdefault(waiter, Counter())[path] += 1

    def end_wait(self, executions: Iterable[str], path: str) -> None:
        for waiter in executions:
            edges = self._waiting_on.get(waiter)
            if edges is None:
                continue
            edges[path] -= 1
            if edges[path] <= 0:
                del edges[path]
            if not edges:
                del self._waiting_on[waiter]


@dataclass(frozen=True)
class ResolutionContext:
    """Where a resolution currently is: active node plus the shared state.

    Contexts are values. ``child`` returns a new context and never mutates
    this one, so sibling branches can run concurrently from the same parent.
    """

    tree: ResolutionTree
    node: ResolutionNode
    cache: ResolutionCache
    executions: tuple[str, ...] = ()  # chat executions this branch runs inside of

    @property
    def root_path(self) -> str:
        return self.tree.root.file_path

    @property
    def file_path(self) -> str:
        return self.node.file_path

    @property
    def depth(self) -> int:
        return self.node.depth

    def child(self, file_path: str) -> ResolutionContext:
        return replace(self, node=self.tree.add_node(file_path, self.node))

    def executing(self) -> ResolutionContext:
        """Context for running this node's file as a chat execution."""
        return replace(self, executions=(*self.executions, self.node.file_path))

    def is_ancestor(self, path: str) -> bool:
        return self.node.has_ancestor(path)

    def cache_lookup(self, path: str) -> asyncio.Future[str] | None:
        return self.cache.lookup(path)

    def cache_store(self, path: str, future: asyncio.Future[str]) -> None:
        self.cache.store(path, future)

    def cache_evict(self, path: str, future: asyncio.Future[str] | None = None) -> None:
        self.cache.evict(path, future)


def create_root(root_path: str) -> ResolutionContext:
    """Start a top-level resolution: fresh tree, empty cache, single root node."""
    tree = ResolutionTree(root_path)
    return ResolutionContext(tree=tree, node=tree.root, cache=ResolutionCache())
