"""Budget and cancellation supervision for skill runs."""

from .runtime import result_from_error, run_agent

__all__ = ["result_from_error", "run_agent"]
