"""Request correlation ids.

Every response carries ``X-Request-ID``: echoed from the client when sent,
generated otherwise. The same id is picked up by the structlog processor in
``app.core.logging``.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI


def setup_correlation_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name="X-Request-ID",
        generator=lambda: str(uuid.uuid4()),
        validator=None,
    )


def get_correlation_id() -> str | None:
    """Current request's correlation id, or None outside a request."""
    return correlation_id.get(None)


__all__ = ["setup_correlation_middleware", "get_correlation_id"]
