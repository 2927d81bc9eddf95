"""Closed-key dispatch shared by both processes.

A route key is `(kind, action)`. Lookup tries the exact pair, then `(kind, "")`
as the catch-all for that kind. Unknown keys are logged and ignored. The
editor side keys on (MessageType, payload action); the hook side keys on
(HookEvent, ToolName). Each side registers its own disjoint handler set.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar, Union


M = TypeVar("M")
R = TypeVar("R")

Key = Tuple[str, str]
Handler = Callable[[M], R]


def _k(value: Union[str, Enum]) -> str:
    return str(value.value if isinstance(value, Enum) else value or "")


class Router(Generic[M, R]):
    def __init__(
        self,
        name: str,
        *,
        key: Callable[[M], Key],
        on_handler_error: Optional[Callable[[M, BaseException], None]] = None,
    ) -> None:
        self.name = name
        self._key = key
        self._routes: Dict[Key, Callable[[M], R]] = {}
        self._on_handler_error = on_handler_error
        self._logger = logging.getLogger(f"artifact_bridge.router.{name}")

    def register(self, kind: Union[str, Enum], handler: Callable[[M], R], *, action: Union[str, Enum] = "") -> None:
        key = (_k(kind), _k(action))
        if key in self._routes:
            raise ValueError(f"duplicate route {key} on router {self.name}")
        self._routes[key] = handler

    def route(self, kind: Union[str, Enum], action: Union[str, Enum] = "") -> Callable[[Callable[[M], R]], Callable[[M], R]]:
        def _decorator(fn: Callable[[M], R]) -> Callable[[M], R]:
            self.register(kind, fn, action=action)
            return fn

        return _decorator

    def resolve(self, message: M) -> Optional[Callable[[M], R]]:
        kind, action = self._key(message)
        return self._routes.get((kind, action)) or self._routes.get((kind, ""))

    def handles(self, kind: Union[str, Enum], action: Union[str, Enum] = "") -> bool:
        return (_k(kind), _k(action)) in self._routes

    def dispatch(self, message: M) -> Optional[R]:
        """Run the matching handler. Unknown keys and handler failures return None."""
        handler = self.resolve(message)
        if handler is None:
            kind, action = self._key(message)
            self._logger.warning("no handler for %s/%s", kind, action or "-")
            return None
        try:
            return handler(message)
        except Exception as e:
            self._logger.exception("handler failed for %s", self._key(message))
            if self._on_handler_error is not None:
                self._on_handler_error(message, e)
            return None
