from __future__ import annotations

import contextlib
import logging

from marketplace.db import DB_ERRORS, INTEGRITY_ERRORS
from marketplace.errors import AppError, ConflictError, LifecycleWriteError
from marketplace.observability import observe_lifecycle_write_failed


logger = logging.getLogger("marketplace.lifecycle")


@contextlib.contextmanager
def lifecycle_step(operation: str, step: str, *, conflict: ConflictError | None = None):
    """Name one write of a multi-step operation.

    A unique-constraint violation becomes ``conflict`` when one is given; any
    other database failure becomes a LifecycleWriteError naming the step. The
    surrounding transaction rolls back in both cases.
    """
    try:
        yield
    except AppError:
        raise
    except INTEGRITY_ERRORS as exc:
        if conflict is not None:
            raise conflict from exc
        _report(operation, step, exc)
        raise LifecycleWriteError(operation, step, details=str(exc)) from exc
    except DB_ERRORS as exc:
        _report(operation, step, exc)
        raise LifecycleWriteError(operation, step, details=str(exc)) from exc


def _report(operation: str, step: str, exc: Exception) -> None:
    observe_lifecycle_write_failed(operation)
    logger.error(
        "lifecycle_write_failed",
        extra={"operation": operation, "failed_step": step, "error_type": type(exc).__name__},
    )
