"""One OpenTelemetry span per object store call.

Span attributes hold the store-relative path, never the absolute path
under the storage root.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from restserver.observability.tracing import tracing_enabled
from restserver.storage.models import ObjectInfo

_tracer = trace.get_tracer("restserver.object_store")

StoreMethod = TypeVar("StoreMethod", bound=Callable[..., Any])


def traced_storage_operation(operation: str) -> Callable[[StoreMethod], StoreMethod]:
    """Wrap an ObjectStore method whose first argument is the store path.

    The span is named restserver.object_store.<operation>. Failures set the
    span status to ERROR and record error.type before re-raising.
    """

    def decorate(method: StoreMethod) -> StoreMethod:
        @wraps(method)
        def traced(self: Any, path: str, *args: Any, **kwargs: Any) -> Any:
            if not tracing_enabled():
                return method(self, path, *args, **kwargs)

            attributes = {
                "restserver.storage_path": path,
                "storage.backend": getattr(self, "backend_name", "unknown"),
            }
            with _tracer.start_as_current_span(
                f"restserver.object_store.{operation}",
                attributes=attributes,
                record_exception=False,
                set_status_on_exception=False,
            ) as span:
                try:
                    result = method(self, path, *args, **kwargs)
                except Exception as exc:
                    span.set_attribute("error.type", type(exc).__name__)
                    span.set_status(Status(StatusCode.ERROR))
                    raise

                if isinstance(result, ObjectInfo):
                    span.set_attribute("restserver.object_size_bytes", result.size_bytes)
                elif operation == "list_dir":
                    span.set_attribute("restserver.entry_count", len(result))
                return result

        return traced  # type: ignore[return-value]

    return decorate
