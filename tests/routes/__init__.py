import unittest
from typing import Any

import httpx
from fastapi.testclient import TestClient

from paim.app import create_app
from paim.settings import AppConfig
from tests import (
    CLIENT_ID,
    ISSUER,
    FakeRemote,
    launch_claims,
    make_config,
    make_id_token,
)


class AppTestCase(unittest.TestCase):
    """Runs the app against a ``FakeRemote`` platform and WordPress."""

    def make_config(self) -> AppConfig:
        return make_config()

    def setUp(self) -> None:
        self.remote = FakeRemote()
        app = create_app(self.make_config(), http_client=self.remote.client())
        self.client = self.enterContext(
            TestClient(app, base_url="https://testserver", follow_redirects=False)
        )

    def login(self, **params: str) -> dict[str, str]:
        """Starts a login and returns the authorization request parameters."""
        query = {
            "iss": ISSUER,
            "login_hint": "hint-u1",
            "client_id": CLIENT_ID,
            "target_link_uri": "https://tool.example/lti/launch",
        }
        query.update(params)
        r = self.client.get("/lti/login", params=query)
        self.assertEqual(r.status_code, 302, r.text)
        location = httpx.URL(r.headers["location"])
        return dict(location.params)

    def launch(
        self,
        claims: dict[str, Any] | None = None,
        *,
        nonce: str | None = None,
        **overrides: Any,
    ) -> httpx.Response:
        """Runs a login followed by a launch with a freshly signed IDToken.

        The IDToken carries the nonce of the login unless ``nonce`` is given.
        """
        auth_params = self.login()
        claims = dict(claims or launch_claims(**overrides))
        claims["nonce"] = nonce or auth_params["nonce"]
        token = make_id_token(claims)
        return self.client.post(
            "/lti/launch", data={"id_token": token, "state": auth_params["state"]}
        )

    def assertError(self, r: httpx.Response, status: int, error: str) -> None:
        self.assertEqual(r.status_code, status, r.text)
        self.assertEqual(r.json()["error"], error)
        self.assertEqual(r.headers["cache-control"], "no-store")
