"""HTTP split procedure adapter: calls a remote split function over HTTP."""

import httpx
import structlog

from dispatch.errors import RemoteProcedureUnavailable
from dispatch.splitter.port import SplitProcedurePort

logger = structlog.get_logger(__name__)


class HttpSplitProcedure(SplitProcedurePort):
    """Posts ``{"original_order_id": ...}`` to the configured endpoint.

    Transport errors, timeouts, non-2xx responses and unparseable bodies all
    raise RemoteProcedureUnavailable.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._transport = transport

    def split(self, original_order_id: str) -> dict:
        try:
            with httpx.Client(timeout=self.timeout, headers=self.headers, transport=self._transport) as client:
                response = client.post(self.url, json={"original_order_id": original_order_id})
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as e:
            logger.warning("Split procedure call failed", order_id=original_order_id, error=str(e))
            raise RemoteProcedureUnavailable(f"Split procedure call failed: {e}") from e
        except ValueError as e:
            raise RemoteProcedureUnavailable("Split procedure returned an unreadable body") from e

        if not isinstance(payload, dict):
            raise RemoteProcedureUnavailable("Split procedure returned an unexpected body")
        return payload
