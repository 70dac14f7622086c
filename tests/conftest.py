"""Shared fixtures: a fake upstream session and a relay app wired to it."""

from unittest.mock import MagicMock

import pytest
import requests

from main import create_app

BASES = (
    "https://a.example.test",
    "https://b.example.test",
    "https://c.example.test",
)


def make_response(status: int, body=b"", headers=None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = body if isinstance(body, bytes) else body.encode("utf-8")
    resp.headers.update(headers or {})
    return resp


def by_base(outcomes: dict):
    """side_effect that answers per base URL; exception values are raised."""

    def handler(*args, **kwargs):
        url = kwargs.get("url") or next(a for a in args if a.startswith("http"))
        for base, outcome in outcomes.items():
            if url.startswith(base):
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        raise AssertionError(f"unexpected upstream call to {url}")

    return handler


def called_bases(mock_method) -> list:
    urls = []
    for call in mock_method.call_args_list:
        urls.append(call.kwargs.get("url") or next(a for a in call.args if a.startswith("http")))
    return [next(b for b in BASES if u.startswith(b)) for u in urls]


@pytest.fixture
def session() -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.__enter__.return_value = session
    return session


@pytest.fixture
def static_root(tmp_path):
    (tmp_path / "index.html").write_text("<h1>relay</h1>", encoding="utf-8")
    (tmp_path / "style.css").write_text("body {}", encoding="utf-8")
    return tmp_path


@pytest.fixture
def app(session, static_root):
    app = create_app(base_urls=BASES, session_factory=lambda: session, static_root=str(static_root))
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def pool(app):
    return app.extensions["host_pool"]
