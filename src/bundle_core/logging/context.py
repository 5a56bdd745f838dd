"""Log context propagation using contextvars.

Context set inside a worker task stays with that task, so concurrently
running download workers each log under their own batch.
"""

from contextvars import ContextVar
from typing import Dict, Optional

_domain: ContextVar[Optional[str]] = ContextVar("domain", default=None)
_stage: ContextVar[Optional[str]] = ContextVar("stage", default=None)
_worker_id: ContextVar[Optional[str]] = ContextVar("worker_id", default=None)
_batch_start: ContextVar[Optional[int]] = ContextVar("batch_start", default=None)


def set_log_context(
    domain: Optional[str] = None,
    stage: Optional[str] = None,
    worker_id: Optional[str] = None,
    batch_start: Optional[int] = None,
) -> None:
    """
    Set logging context variables.

    Only the arguments that are not None are updated.
    """
    if domain is not None:
        _domain.set(domain)
    if stage is not None:
        _stage.set(stage)
    if worker_id is not None:
        _worker_id.set(worker_id)
    if batch_start is not None:
        _batch_start.set(batch_start)


def get_log_context() -> Dict[str, Optional[object]]:
    """Get current logging context."""
    return {
        "domain": _domain.get(),
        "stage": _stage.get(),
        "worker_id": _worker_id.get(),
        "batch_start": _batch_start.get(),
    }


def clear_log_context() -> None:
    """Reset all logging context variables."""
    _domain.set(None)
    _stage.set(None)
    _worker_id.set(None)
    _batch_start.set(None)
