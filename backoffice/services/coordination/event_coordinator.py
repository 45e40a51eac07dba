import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, Field

from backoffice.core.logging import log_audit_event
from backoffice.models.shared.enums import CoordinationEventType, ModuleName

logger = logging.getLogger(__name__)

# Events that make another module's cached view of units stale
CACHE_INVALIDATING_EVENTS = frozenset({
    CoordinationEventType.UNIT_CREATED,
    CoordinationEventType.UNIT_UPDATED,
    CoordinationEventType.BARCODE_GENERATED,
    CoordinationEventType.SYNC_REQUESTED,
})


class CoordinationEvent(BaseModel):
    type: CoordinationEventType
    source: ModuleName
    entity_id: Optional[int] = None
    barcode: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[CoordinationEvent], Any]


class ModuleViewCache:
    """Keyed in-process cache of a module's view of units and barcodes.

    Loaders are awaited on miss; ``invalidate`` drops entries and fires the
    refetch hooks so the owning view reloads its data.
    """

    def __init__(self, module: ModuleName):
        self.module = module
        self._entries: Dict[str, Any] = {}
        self._refetch_hooks: List[Callable[[], Any]] = []
        self.invalidations = 0

    def get(self, key: str, default: Any = None) -> Any:
        return self._entries.get(key, default)

    def set(self, key: str, value: Any):
        self._entries[key] = value

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        if key not in self._entries:
            self._entries[key] = await loader()
        return self._entries[key]

    def on_refetch(self, hook: Callable[[], Any]) -> Callable[[], None]:
        self._refetch_hooks.append(hook)

        def remove():
            if hook in self._refetch_hooks:
                self._refetch_hooks.remove(hook)

        return remove

    def invalidate(self, key: Optional[str] = None):
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)
        self.invalidations += 1
        for hook in list(self._refetch_hooks):
            try:
                hook()
            except Exception as e:
                logger.error(f"Refetch hook failed for {self.module.value} cache: {e}")


class EventCoordinator:
    """In-process fan-out of cross-module coordination events.

    One instance lives for the whole application. Delivery is synchronous and
    fire-and-forget: a failing listener is logged and skipped, and never
    prevents the remaining listeners from running.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._listeners: List[tuple] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_event_listener(
        self,
        listener: Listener,
        event_types: Optional[Iterable[CoordinationEventType]] = None,
    ) -> Callable[[], None]:
        """Register a listener, optionally filtered by event type. Returns an unsubscribe callable."""
        types: Optional[Set[CoordinationEventType]] = set(event_types) if event_types else None
        entry = (listener, types)
        self._listeners.append(entry)

        def unsubscribe():
            # Identity match so equal listeners registered twice stay independent
            for index, current in enumerate(self._listeners):
                if current is entry:
                    del self._listeners[index]
                    return

        return unsubscribe

    def notify_event(self, event: CoordinationEvent) -> int:
        """Deliver an event to every matching listener; returns how many succeeded."""
        self.logger.debug(
            f"Coordination event {event.type.value} from {event.source.value}",
            extra={"event": event.type.value, "entity_id": event.entity_id},
        )

        if event.type == CoordinationEventType.PRINT_REQUESTED:
            try:
                log_audit_event(
                    "print_requested",
                    "barcode",
                    event.entity_id,
                    source=event.source.value,
                    barcode=event.barcode,
                    metadata=event.metadata,
                )
            except Exception as e:
                self.logger.error(
                    f"❌ Print audit failed for {event.barcode}: {e}",
                    extra={"event": event.type.value, "entity_id": event.entity_id},
                )

        delivered = 0
        for listener, types in list(self._listeners):
            if types is not None and event.type not in types:
                continue
            try:
                listener(event)
                delivered += 1
            except Exception as e:
                self.logger.error(
                    f"❌ Listener failed for {event.type.value}: {e}",
                    extra={"event": event.type.value, "entity_id": event.entity_id},
                )
        return delivered

    def emit(
        self,
        event_type: CoordinationEventType,
        source: ModuleName,
        entity_id: Optional[int] = None,
        barcode: Optional[str] = None,
        **metadata: Any,
    ) -> int:
        return self.notify_event(
            CoordinationEvent(
                type=event_type,
                source=source,
                entity_id=entity_id,
                barcode=barcode,
                metadata=metadata,
            )
        )

    def subscribe_module_cache(self, module: ModuleName, cache: ModuleViewCache) -> Callable[[], None]:
        """Invalidate ``cache`` whenever another module changes units or barcodes."""

        def invalidate_on_foreign_change(event: CoordinationEvent):
            if event.source != module:
                cache.invalidate()

        return self.add_event_listener(invalidate_on_foreign_change, CACHE_INVALIDATING_EVENTS)
