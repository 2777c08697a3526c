from __future__ import annotations

from contextvars import ContextVar

from fastapi.routing import APIRoute
from starlette.requests import Request


# "<METHOD> <path template>" of the request being served, read by the slow-query logger
current_endpoint: ContextVar[str] = ContextVar('ledger_endpoint', default='background')


class EndpointNameRoute(APIRoute):
    """Labels each request so slow-query logs can name the ledger endpoint that issued the SQL."""

    def get_route_handler(self):
        original_handler = super().get_route_handler()

        async def labelled_handler(request: Request):
            token = current_endpoint.set(f"{request.method} {self.path}")
            try:
                return await original_handler(request)
            finally:
                current_endpoint.reset(token)

        return labelled_handler
