"""
Deadlines and cancellation for collaborator calls.

Inference, duplicate checks and shipment creation are wrapped with
run_with_deadline so a slow collaborator cannot stall an import run.
A CancellationToken is checked by the commit loop between rows.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, TypeVar
import threading
import structlog

from exceptions import CollaboratorTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Shared pool; abandoned calls keep their worker until they return
_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="collaborator")


def run_with_deadline(
    name: str,
    fn: Callable[..., T],
    timeout_seconds: float,
    *args: Any,
    **kwargs: Any
) -> T:
    """
    Run fn(*args, **kwargs) and wait at most timeout_seconds for it.

    Exceptions raised by fn propagate unchanged.

    Args:
        name: Collaborator name used in logs and errors
        fn: Callable to run
        timeout_seconds: Deadline in seconds

    Returns:
        Whatever fn returns

    Raises:
        CollaboratorTimeoutError: If fn did not finish in time
    """
    future = _executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout_seconds)
    except FutureTimeoutError:
        future.cancel()
        logger.warning(
            "collaborator_deadline_exceeded",
            collaborator=name,
            timeout_seconds=timeout_seconds
        )
        raise CollaboratorTimeoutError(name, timeout_seconds)


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and a run.

    Usage:
        token = CancellationToken()
        service.commit(request, cancel_token=token)
        # elsewhere, e.g. when the client disconnects
        token.cancel()
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
