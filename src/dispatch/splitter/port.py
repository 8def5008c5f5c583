"""Split procedure port: abstract interface for a remote compute-and-commit split.

The planner asks the procedure to split an order in one call and falls back
to its own step-by-step split whenever the procedure cannot be used.
"""

from abc import ABC, abstractmethod


class SplitProcedurePort(ABC):
    """Abstract interface for split procedure adapters."""

    @abstractmethod
    def split(self, original_order_id: str) -> dict:
        """Split the order remotely.

        Returns:
            dict with keys: success (bool), successful_splits (int), total_stores (int),
            results (list of {store_name, success, order_id?, error?})

        Raises:
            RemoteProcedureUnavailable when the call could not be completed.
        """
        ...
