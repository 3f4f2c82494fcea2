"""
Document store contract used by every service.

Paths are ``/`` separated keys into a JSON tree. The only safe way to claim a
slot that other requests may race for is ``conditional_set``; everything else
is a plain last-write-wins operation.
"""

import copy
import secrets
import threading
import time
from typing import Any, List, NamedTuple, Optional, Protocol


PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class Document(NamedTuple):
    key: str
    value: Any


class ConditionalResult(NamedTuple):
    committed: bool
    current: Any


class DocumentStore(Protocol):
    def read(self, path: str) -> Any: ...

    def write(self, path: str, value: Any) -> None: ...

    def update(self, path: str, fields: dict) -> None: ...

    def delete(self, path: str) -> None: ...

    def range_query(
        self,
        path: str,
        order_field: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Optional[int] = None,
        last: bool = False,
    ) -> List[Document]: ...

    def conditional_set(self, path: str, value: Any) -> ConditionalResult: ...

    def push_key(self, path: str) -> str: ...


def join_path(*parts: str) -> str:
    return "/".join(str(part).strip("/") for part in parts if str(part).strip("/"))


def split_path(path: str) -> List[str]:
    return [segment for segment in path.split("/") if segment]


class PushIdGenerator:
    """
    Generates 20 character keys that sort in creation order.

    The first 8 characters encode the millisecond timestamp; the remaining 12
    are random, and are incremented instead of re-rolled when two keys are
    generated within the same millisecond (or the clock moves backwards).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last_time = 0
        self._last_random = [0] * 12

    def __call__(self) -> str:
        with self._lock:
            now = int(time.time() * 1000)

            if now <= self._last_time:
                now = self._last_time
                for index in range(11, -1, -1):
                    if self._last_random[index] == 63:
                        self._last_random[index] = 0
                        continue
                    self._last_random[index] += 1
                    break
            else:
                self._last_random = [secrets.randbelow(64) for _ in range(12)]

            self._last_time = now

            time_chars = []
            for _ in range(8):
                time_chars.append(PUSH_CHARS[now % 64])
                now //= 64

            random_chars = [PUSH_CHARS[value] for value in self._last_random]
            return "".join(reversed(time_chars)) + "".join(random_chars)


generate_push_id = PushIdGenerator()


def _order_value(value: Any, order_field: str):
    if isinstance(value, dict):
        return value.get(order_field)
    return None


class MemoryStore:
    """In-process store for development and tests."""

    def __init__(self, initial: Optional[dict] = None):
        self._root = copy.deepcopy(initial) if initial else {}
        self._lock = threading.RLock()

    def _node(self, segments):
        node = self._root
        for segment in segments:
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return node

    def read(self, path: str) -> Any:
        with self._lock:
            return copy.deepcopy(self._node(split_path(path)))

    def write(self, path: str, value: Any) -> None:
        if value is None:
            self.delete(path)
            return

        segments = split_path(path)
        if not segments:
            raise ValueError("Cannot overwrite the store root.")

        with self._lock:
            node = self._root
            for segment in segments[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    child = {}
                    node[segment] = child
                node = child
            node[segments[-1]] = copy.deepcopy(value)

    def update(self, path: str, fields: dict) -> None:
        with self._lock:
            for key, value in fields.items():
                self.write(join_path(path, key), value)

    def delete(self, path: str) -> None:
        segments = split_path(path)
        if not segments:
            return

        with self._lock:
            trail = []
            node = self._root
            for segment in segments[:-1]:
                if not isinstance(node, dict) or segment not in node:
                    return
                trail.append((node, segment))
                node = node[segment]

            if isinstance(node, dict):
                node.pop(segments[-1], None)

            # prune parents left empty
            for parent, segment in reversed(trail):
                if parent[segment]:
                    break
                del parent[segment]

    def range_query(
        self,
        path: str,
        order_field: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Optional[int] = None,
        last: bool = False,
    ) -> List[Document]:
        with self._lock:
            node = self._node(split_path(path))
            if not isinstance(node, dict):
                return []
            children = [(key, copy.deepcopy(value)) for key, value in node.items()]

        if start is not None or end is not None:
            children = [
                (key, value)
                for key, value in children
                if _order_value(value, order_field) is not None
                and (start is None or _order_value(value, order_field) >= start)
                and (end is None or _order_value(value, order_field) <= end)
            ]

        # children missing the field sort first; keys break ties
        children.sort(
            key=lambda item: (
                _order_value(item[1], order_field) is not None,
                str(_order_value(item[1], order_field) or ""),
                item[0],
            )
        )

        if limit is not None:
            if last:
                children = children[max(len(children) - limit, 0):]
            else:
                children = children[:limit]

        return [Document(key, value) for key, value in children]

    def conditional_set(self, path: str, value: Any) -> ConditionalResult:
        with self._lock:
            current = self._node(split_path(path))
            if current is not None:
                return ConditionalResult(False, copy.deepcopy(current))
            self.write(path, value)
            return ConditionalResult(True, copy.deepcopy(value))

    def push_key(self, path: str) -> str:
        return generate_push_id()
