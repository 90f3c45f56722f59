from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from crud_engine.metrics import observe_reference_fallback


logger = logging.getLogger("crud_engine.adapter")

ReferenceLoader = Callable[[], Awaitable[Iterable[Mapping[str, Any]]]]


class ReferenceDataCache:
    """id -> display name lookup owned by exactly one adapter instance.

    The cache is filled on first use and then left alone. ``invalidate`` empties
    it so the next ``ensure_loaded`` call goes back to the catalog.
    """

    def __init__(self, entity_type: str, defaults: Mapping[str, str] | None = None) -> None:
        self.entity_type = entity_type
        self._defaults = dict(defaults or {})
        self._values: dict[str, str] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get(self, key: Any, default: str | None = None) -> str | None:
        if key is None:
            return default
        return self._values.get(str(key), default)

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)

    def __contains__(self, key: object) -> bool:
        return str(key) in self._values

    def __len__(self) -> int:
        return len(self._values)

    def invalidate(self) -> None:
        self._values.clear()
        self._loaded = False

    async def ensure_loaded(self, loader: ReferenceLoader | None) -> None:
        if self._loaded:
            return
        async with self._lock:
            if self._loaded:
                return
            await self._load(loader)
            self._loaded = True

    async def _load(self, loader: ReferenceLoader | None) -> None:
        if loader is not None:
            try:
                for item in await loader():
                    item_id = item.get("id")
                    name = item.get("name")
                    if item_id is None or name is None:
                        continue
                    self._values[str(item_id)] = str(name)
            except Exception as exc:
                self._values.clear()
                logger.warning(
                    "reference.load_failed",
                    extra={"entity_type": self.entity_type, "error": str(exc)},
                )

        if not self._values and self._defaults:
            self._values.update(self._defaults)
            observe_reference_fallback(self.entity_type)
            logger.info(
                "reference.defaults_applied",
                extra={"entity_type": self.entity_type, "count": len(self._defaults)},
            )
        else:
            logger.debug(
                "reference.loaded",
                extra={"entity_type": self.entity_type, "count": len(self._values)},
            )
