"""Mock implementations used by the pytest suite."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import requests

__all__ = [
    "FakeHttpResponse",
    "FakeSession",
]


class FakeHttpResponse:
    """Minimal response object for mocked HTTP calls."""

    def __init__(self, payload: Any, status_code: int = 200, *, invalid_json: bool = False) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = ""
        self._invalid_json = invalid_json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        if self._invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


Route = Union[FakeHttpResponse, Exception, Callable[[Dict[str, Any]], FakeHttpResponse]]


class FakeSession:
    """``requests.Session`` stand-in routing GETs by URL suffix and recording calls."""

    def __init__(self, routes: Optional[Dict[str, Route]] = None) -> None:
        self.routes: Dict[str, Route] = dict(routes or {})
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, **kwargs: Any) -> FakeHttpResponse:
        params = dict(params or {})
        self.calls.append((url, params))
        for suffix, route in self.routes.items():
            if url.endswith(suffix):
                if isinstance(route, Exception):
                    raise route
                if callable(route) and not isinstance(route, FakeHttpResponse):
                    return route(params)
                return route
        return FakeHttpResponse({"success": False, "data": None})
