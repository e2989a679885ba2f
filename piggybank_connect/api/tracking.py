"""Per-operation outcome metrics and logs for route handlers"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from piggybank_connect.domain.exceptions import DomainError, ErrorKind
from piggybank_connect.infrastructure.observability.logging import log_operation
from piggybank_connect.infrastructure.observability.metrics import record_operation


@contextmanager
def tracked(request_id: str, owner_id: Optional[str], operation: str) -> Iterator[None]:
    """Count and log the outcome of one operation; errors propagate unchanged"""
    start_time = time.time()
    try:
        yield
    except DomainError as e:
        duration_ms = (time.time() - start_time) * 1000
        record_operation(operation, e.kind.value)
        log_operation(request_id, owner_id, operation, e.kind.value, duration_ms, code=e.code)
        raise
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        record_operation(operation, ErrorKind.UNKNOWN.value)
        log_operation(request_id, owner_id, operation, ErrorKind.UNKNOWN.value, duration_ms, code=type(e).__name__)
        raise
    duration_ms = (time.time() - start_time) * 1000
    record_operation(operation, "ok")
    log_operation(request_id, owner_id, operation, "ok", duration_ms)
