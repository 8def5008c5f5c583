"""Routing outcomes, shared by the remote and the local split paths."""

from dataclasses import dataclass, field

from dispatch.errors import PartialSplitFailure


@dataclass(frozen=True)
class GroupOutcome:
    """What happened to one store group."""

    store_name: str
    success: bool
    order_id: str | None = None
    error: str | None = None
    warning: str | None = None

    def to_dict(self) -> dict:
        data = {"store_name": self.store_name, "success": self.success}
        for key in ("order_id", "error", "warning"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GroupOutcome":
        return cls(
            store_name=data.get("store_name") or "",
            success=bool(data.get("success")),
            order_id=str(data["order_id"]) if data.get("order_id") else None,
            error=data.get("error"),
            warning=data.get("warning"),
        )


@dataclass(frozen=True)
class SplitOutcome:
    """Result of routing an order, identical in shape for every path.

    ``path`` is ``transfer`` for a single-store order, ``remote`` when the
    remote procedure did the split and ``local`` for the step-by-step split.
    """

    success: bool
    total_stores: int
    successful_splits: int
    path: str
    results: tuple[GroupOutcome, ...] = field(default_factory=tuple)

    @classmethod
    def from_results(cls, results: list[GroupOutcome], path: str) -> "SplitOutcome":
        successful = sum(1 for r in results if r.success)
        return cls(
            success=bool(results) and successful == len(results),
            total_stores=len(results),
            successful_splits=successful,
            path=path,
            results=tuple(results),
        )

    @classmethod
    def from_payload(cls, payload: dict, path: str = "remote") -> "SplitOutcome":
        results = tuple(GroupOutcome.from_dict(r) for r in payload.get("results") or [])
        return cls(
            success=bool(payload.get("success")),
            total_stores=int(payload.get("total_stores") or len(results)),
            successful_splits=int(payload.get("successful_splits") or sum(1 for r in results if r.success)),
            path=path,
            results=results,
        )

    @property
    def failures(self) -> list[GroupOutcome]:
        return [r for r in self.results if not r.success]

    def raise_for_failures(self, order_id: str) -> None:
        if self.failures:
            raise PartialSplitFailure(order_id, [r.to_dict() for r in self.failures])

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "total_stores": self.total_stores,
            "successful_splits": self.successful_splits,
            "path": self.path,
            "results": [r.to_dict() for r in self.results],
        }
