"""Split procedure abstraction: optional remote acceleration for order splits."""

import os

_procedure_instance = None


def get_split_procedure():
    """Return the configured split procedure adapter (singleton).

    Uses LocalOnlySplitProcedure by default, so every split runs through the
    local saga. Configure via the SPLIT_PROCEDURE_ADAPTER environment variable
    (``local``, ``http`` or ``fake``).
    """
    global _procedure_instance
    if _procedure_instance is None:
        adapter = os.environ.get("SPLIT_PROCEDURE_ADAPTER", "local")
        if adapter == "local":
            from dispatch.splitter.fake_adapter import LocalOnlySplitProcedure

            _procedure_instance = LocalOnlySplitProcedure()
        elif adapter == "fake":
            from dispatch.splitter.fake_adapter import FakeSplitProcedure

            _procedure_instance = FakeSplitProcedure()
        elif adapter == "http":
            from dispatch.splitter.http_adapter import HttpSplitProcedure

            url = os.environ.get("SPLIT_PROCEDURE_URL")
            if not url:
                raise ValueError("SPLIT_PROCEDURE_URL must be set for the http split procedure")
            _procedure_instance = HttpSplitProcedure(
                url=url,
                timeout=float(os.environ.get("SPLIT_PROCEDURE_TIMEOUT", "10")),
                token=os.environ.get("SPLIT_PROCEDURE_TOKEN"),
            )
        else:
            raise ValueError(f"Unknown split procedure adapter: {adapter}")
    return _procedure_instance


def set_split_procedure(procedure) -> None:
    """Install a specific adapter instance (tests, custom wiring)."""
    global _procedure_instance
    _procedure_instance = procedure


def reset_split_procedure():
    """Reset the split procedure singleton (useful for testing)."""
    global _procedure_instance
    _procedure_instance = None
