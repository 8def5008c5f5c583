"""Partition an order's line items into one group per fulfilling store.

Pure functions over item dicts and the list of active stores. An item is
attributed to a store by, in order: its ``store_id`` when that id is a
registered store, its ``main_store`` name, its ``main_store_name``, the
order-level ``main_store_name``, and finally the "Unknown store" sentinel.
Groups keep the order in which their first item appeared.
"""

from dataclasses import dataclass, field

from dispatch.order.order import line_total
from dispatch.order.statuses import UNKNOWN_STORE
from dispatch.store.store import normalize_store_name


@dataclass
class StoreGroup:
    key: str
    store_name: str
    store_id: str | None = None
    items: list[dict] = field(default_factory=list)

    @property
    def total(self) -> float:
        return round(sum(line_total(item) for item in self.items), 2)

    @property
    def is_resolved(self) -> bool:
        return self.store_id is not None


def name_key(store_name: str | None) -> str:
    return f"name:{normalize_store_name(store_name)}"


def resolve_store_name(item: dict, order_main_store_name: str | None = None) -> str:
    for candidate in (item.get("main_store"), item.get("main_store_name"), order_main_store_name):
        if candidate and candidate.strip():
            return candidate.strip()
    return UNKNOWN_STORE


def group_items(items: list[dict], order_main_store_name: str | None, stores: list) -> list[StoreGroup]:
    """Group ``items`` by store. ``stores`` are the active Store records."""
    by_id = {str(store.id): store for store in stores}
    by_name = {normalize_store_name(store.name): store for store in stores}

    groups: dict[str, StoreGroup] = {}
    for item in items:
        name = resolve_store_name(item, order_main_store_name)
        store = by_id.get(str(item["store_id"])) if item.get("store_id") else None
        if store is None:
            store = by_name.get(normalize_store_name(name))

        if store is not None:
            key, display_name, store_id = str(store.id), store.name, str(store.id)
        else:
            key, display_name, store_id = name_key(name), name, None

        if key not in groups:
            groups[key] = StoreGroup(key=key, store_name=display_name, store_id=store_id)
        groups[key].items.append(item)

    return list(groups.values())
