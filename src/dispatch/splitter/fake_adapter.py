"""Fake split procedure adapters for testing and for deployments without one."""

from dispatch.errors import RemoteProcedureUnavailable
from dispatch.splitter.port import SplitProcedurePort


class LocalOnlySplitProcedure(SplitProcedurePort):
    """No remote procedure is deployed; every split runs locally."""

    def split(self, original_order_id: str) -> dict:
        raise RemoteProcedureUnavailable("No remote split procedure configured")


class FakeSplitProcedure(SplitProcedurePort):
    """Records calls and returns a configured payload."""

    def __init__(self):
        self.calls: list[str] = []
        self.should_succeed = True
        self.failure_reason = "Split procedure unavailable"
        self.response: dict | None = None

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Split procedure unavailable",
        response: dict | None = None,
    ):
        """Configure the fake procedure behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.response = response

    def split(self, original_order_id: str) -> dict:
        self.calls.append(original_order_id)
        if not self.should_succeed:
            raise RemoteProcedureUnavailable(self.failure_reason)
        if self.response is not None:
            return self.response
        return {"success": True, "successful_splits": 0, "total_stores": 0, "results": []}

    def reset(self):
        self.calls.clear()
        self.should_succeed = True
        self.failure_reason = "Split procedure unavailable"
        self.response = None
