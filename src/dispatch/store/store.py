"""Store aggregate: the vendors that fulfill divisions.

Stores are matched by name when items only carry a name attribution, so
lookups trim and case-fold before comparing. Inactive stores never match.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import DateTime, String
from protean.utils.globals import current_domain

from dispatch.domain import dispatch


class StoreStatus(Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def normalize_store_name(name: str | None) -> str:
    return (name or "").strip().casefold()


@dispatch.aggregate
class Store:
    name = String(required=True, max_length=255)
    owner_email = String(max_length=255)
    status = String(choices=StoreStatus, default=StoreStatus.ACTIVE.value)
    created_at = DateTime()

    @classmethod
    def register(cls, name: str, owner_email: str | None = None):
        if not name or not name.strip():
            raise ValidationError({"name": ["Store name cannot be blank"]})
        return cls(
            name=name.strip(),
            owner_email=owner_email,
            status=StoreStatus.ACTIVE.value,
            created_at=datetime.now(UTC),
        )

    @property
    def is_active(self) -> bool:
        return self.status == StoreStatus.ACTIVE.value

    def deactivate(self) -> None:
        self.status = StoreStatus.INACTIVE.value


@dispatch.command(part_of="Store")
class RegisterStore:
    name = String(required=True, max_length=255)
    owner_email = String(max_length=255)


@dispatch.command_handler(part_of=Store)
class RegisterStoreHandler:
    @handle(RegisterStore)
    def register_store(self, command):
        if find_store_by_name(command.name) is not None:
            raise ValidationError({"name": [f"Store '{command.name.strip()}' is already registered"]})
        store = Store.register(name=command.name, owner_email=command.owner_email)
        current_domain.repository_for(Store).add(store)
        return str(store.id)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def active_stores() -> list:
    results = current_domain.repository_for(Store)._dao.query.all()
    return [s for s in results.items if s.is_active]


def find_store_by_name(name: str | None):
    """Active store whose trimmed, case-folded name equals ``name``, or None."""
    wanted = normalize_store_name(name)
    if not wanted:
        return None
    for store in active_stores():
        if normalize_store_name(store.name) == wanted:
            return store
    return None


def find_store_by_id(store_id: str | None):
    if not store_id:
        return None
    try:
        store = current_domain.repository_for(Store).get(str(store_id))
    except ObjectNotFoundError:
        return None
    return store if store.is_active else None
