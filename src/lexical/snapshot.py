# ABOUTME: Holds the active lexical index as a versioned, swap-on-rebuild snapshot.
# ABOUTME: Readers always see a complete index; rebuilds never mutate the published one.

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from loguru import logger

from .pmi import LexicalConfig, LexicalRelationIndex


@dataclass(frozen=True)
class CorpusSnapshot:
    version: str
    index: LexicalRelationIndex
    built_at: datetime


class LexicalIndexCache:
    """Owns the current ``CorpusSnapshot``; create one per host, pass it explicitly."""

    def __init__(self, config: Optional[LexicalConfig] = None) -> None:
        self.config = config or LexicalConfig()
        self._lock = threading.Lock()
        self._snapshot: Optional[CorpusSnapshot] = None

    def current(self) -> Optional[CorpusSnapshot]:
        return self._snapshot

    def rebuild(self, tokens: Iterable[str], version: str) -> CorpusSnapshot:
        # Build outside the lock; only the pointer swap is serialised.
        index = LexicalRelationIndex.build(tokens, self.config)
        snapshot = CorpusSnapshot(version=str(version), index=index, built_at=datetime.now())
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
        logger.info(
            "Lexical index swapped to version {} (previous: {})",
            snapshot.version,
            previous.version if previous else "none",
        )
        return snapshot
