import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import pytest
import requests

from rejimde.services.api import ApiClient
from rejimde.services.events import EventService
from rejimde.session import SessionStorage

BASE_URL = "http://api.test/wp-json"


def make_response(status: int = 200, body: Any = None, text: Optional[str] = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    if text is not None:
        response._content = text.encode("utf-8")
    elif body is None:
        response._content = b""
    else:
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    return response


class FakeSession:
    """
    Stand-in for requests.Session.

    Routes are matched on method and URL path suffix. A route registered with
    several responses returns them in order and then repeats the last one.
    """

    def __init__(self):
        self.routes: Dict[tuple, List[Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def add(self, method: str, path: str, status: int = 200, body: Any = None,
            text: Optional[str] = None, exc: Optional[Exception] = None):
        outcome = exc if exc is not None else (status, body, text)
        self.routes.setdefault((method.upper(), path), []).append(outcome)
        return self

    def request(self, method, url, params=None, json=None, files=None, headers=None, timeout=None):
        self.calls.append({
            "method": method,
            "url": url,
            "params": params,
            "json": json,
            "files": files,
            "headers": headers or {},
            "timeout": timeout,
        })
        path = urlsplit(url).path
        for (route_method, route_path), outcomes in self.routes.items():
            if route_method == method.upper() and path.endswith(route_path):
                outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
                if isinstance(outcome, Exception):
                    raise outcome
                return make_response(*outcome)
        return make_response(404, {"code": "rest_no_route", "message": "No route"})

    def calls_to(self, path: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if urlsplit(call["url"]).path.endswith(path)]

    def close(self):
        self.closed = True


@pytest.fixture
def http():
    return FakeSession()


@pytest.fixture
def storage():
    return SessionStorage({
        "jwt_token": "test-token",
        "user_id": "7",
        "user_slug": "ayse-kaya",
        "user_name": "Ayşe Kaya",
        "user_role": "rejimde_user",
    })


@pytest.fixture
def anon_storage():
    return SessionStorage({})


@pytest.fixture
def client(http, storage):
    return ApiClient(storage=storage, base_url=BASE_URL, http=http)


@pytest.fixture
def anon_client(http, anon_storage):
    return ApiClient(storage=anon_storage, base_url=BASE_URL, http=http)


@pytest.fixture
def events(client):
    return EventService(client)
