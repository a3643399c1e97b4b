# ICN PAIM LTI Tool
# Copyright (c) 2024-2025  ICN PAIM Project Team
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.


import json

import httpx

from paim.lti import messages
from tests import (
    AUTH_URL,
    CLIENT_ID,
    INSTRUCTOR,
    ISSUER,
    JWKS_URL,
    LEARNER,
    OTHER_KEY,
    PLATFORM_KEY,
    launch_claims,
    make_config,
    make_id_token,
)
from tests.routes import AppTestCase

ROLES = messages.MESSAGE_ROLES_KEY
JWKS_PATH = httpx.URL(JWKS_URL).path


class LoginTestCase(AppTestCase):
    def test_login_redirect(self) -> None:
        r = self.client.get(
            "/lti/login",
            params={
                "iss": ISSUER,
                "login_hint": "hint-u1",
                "client_id": CLIENT_ID,
                "lti_message_hint": "msg-hint",
                "target_link_uri": "https://evil.example/steal",
            },
        )
        self.assertEqual(r.status_code, 302)
        self.assertEqual(r.headers["cache-control"], "no-store")
        self.assertEqual(r.headers["x-frame-options"], "DENY")

        location = httpx.URL(r.headers["location"])
        self.assertEqual(r.headers["location"].split("?")[0], AUTH_URL)
        params = location.params
        self.assertEqual(params["response_type"], "id_token")
        self.assertEqual(params["response_mode"], "form_post")
        self.assertEqual(params["scope"], "openid")
        self.assertEqual(params["client_id"], CLIENT_ID)
        self.assertEqual(params["redirect_uri"], "https://tool.example/lti/launch")
        self.assertEqual(params["login_hint"], "hint-u1")
        self.assertEqual(params["lti_message_hint"], "msg-hint")
        self.assertEqual(params["prompt"], "none")
        self.assertEqual(len(params["state"]), 43)
        self.assertEqual(len(params["nonce"]), 43)
        self.assertNotEqual(params["state"], params["nonce"])

        cookie = r.headers["set-cookie"].lower()
        self.assertTrue(cookie.startswith("paim.sid="))
        self.assertIn("httponly", cookie)
        self.assertIn("secure", cookie)
        self.assertIn("samesite=none", cookie)

    def test_login_without_message_hint(self) -> None:
        params = self.login()
        self.assertNotIn("lti_message_hint", params)

    def test_login_post(self) -> None:
        r = self.client.post(
            "/lti/login",
            data={"iss": ISSUER, "login_hint": "hint-u1", "client_id": CLIENT_ID},
        )
        self.assertEqual(r.status_code, 302)
        self.assertTrue(r.headers["location"].startswith(AUTH_URL))

    def test_login_without_client_id(self) -> None:
        params = self.login(client_id="")
        self.assertEqual(params["client_id"], CLIENT_ID)

    def test_login_unique_state(self) -> None:
        first = self.login()
        second = self.login()
        self.assertNotEqual(first["state"], second["state"])
        self.assertNotEqual(first["nonce"], second["nonce"])

    def test_missing_parameters(self) -> None:
        r = self.client.get("/lti/login", params={"login_hint": "hint-u1"})
        self.assertError(r, 400, "invalid_request")
        r = self.client.get("/lti/login", params={"iss": ISSUER})
        self.assertError(r, 400, "invalid_request")

    def test_unknown_client(self) -> None:
        r = self.client.get(
            "/lti/login",
            params={"iss": ISSUER, "login_hint": "h", "client_id": "other"},
        )
        self.assertError(r, 400, "unauthorized_client")
        r = self.client.get(
            "/lti/login", params={"iss": "https://other.example", "login_hint": "h"}
        )
        self.assertError(r, 400, "unauthorized_client")


class LaunchTestCase(AppTestCase):
    def test_learner_launch(self) -> None:
        r = self.launch()
        self.assertEqual(r.status_code, 303, r.text)
        self.assertEqual(r.headers["location"], "/student-dashboard")
        self.assertEqual(r.headers["cache-control"], "no-store")
        self.assertIn("paim.sid=", r.headers["set-cookie"])

        r = self.client.get("/api/user")
        self.assertEqual(r.status_code, 200, r.text)
        user = r.json()
        self.assertEqual(user["subject"], "u1")
        self.assertEqual(user["displayName"], "Ana Rojas")
        self.assertEqual(user["email"], "ana.rojas@example.edu")
        self.assertListEqual(user["roles"], [LEARNER])
        self.assertEqual(user["courseContext"]["id"], "_123_1")
        self.assertEqual(user["resourceLink"]["id"], "_456_1")
        self.assertEqual(user["issuer"], ISSUER)
        self.assertEqual(user["clientId"], CLIENT_ID)

    def test_session_id_rotated(self) -> None:
        self.login()
        login_sid = self.client.cookies["paim.sid"]
        self.launch()
        self.assertNotEqual(self.client.cookies["paim.sid"], login_sid)

    def test_instructor_launch(self) -> None:
        r = self.launch(**{ROLES: [INSTRUCTOR]})
        self.assertEqual(r.status_code, 303, r.text)
        self.assertEqual(r.headers["location"], "/admin-dashboard")

    def test_instructor_and_learner_launch(self) -> None:
        r = self.launch(**{ROLES: [LEARNER, INSTRUCTOR]})
        self.assertEqual(r.headers["location"], "/admin-dashboard")

    def test_unknown_role_launch(self) -> None:
        for role_list in (
            [],
            ["http://purl.imsglobal.org/vocab/lis/v2/membership#Mentor"],
            ["urn:custom#Pirate"],
        ):
            with self.subTest(roles=role_list):
                r = self.launch(**{ROLES: role_list})
                self.assertEqual(r.status_code, 303, r.text)
                self.assertEqual(r.headers["location"], "/welcome")
                self.assertEqual(self.client.get("/api/user").status_code, 200)

    def test_jwks_cached_between_launches(self) -> None:
        self.launch()
        self.launch()
        self.assertEqual(self.remote.count(JWKS_PATH), 1)

    def test_state_mismatch(self) -> None:
        params = self.login()
        token = make_id_token(launch_claims(nonce=params["nonce"]))
        r = self.client.post(
            "/lti/launch", data={"id_token": token, "state": "not-the-state"}
        )
        self.assertError(r, 400, "invalid_state")

        # the pending launch was consumed by the failed attempt
        r = self.client.post(
            "/lti/launch", data={"id_token": token, "state": params["state"]}
        )
        self.assertError(r, 400, "invalid_state")
        self.assertEqual(self.client.get("/api/user").status_code, 401)

    def test_launch_without_login(self) -> None:
        token = make_id_token()
        r = self.client.post("/lti/launch", data={"id_token": token, "state": "s"})
        self.assertError(r, 400, "invalid_state")

    def test_replay(self) -> None:
        params = self.login()
        token = make_id_token(launch_claims(nonce=params["nonce"]))
        data = {"id_token": token, "state": params["state"]}
        self.assertEqual(self.client.post("/lti/launch", data=data).status_code, 303)

        r = self.client.post("/lti/launch", data=data)
        self.assertError(r, 400, "invalid_state")

    def test_missing_token(self) -> None:
        params = self.login()
        r = self.client.post(
            "/lti/launch",
            data={
                "state": params["state"],
                "error": "login_required",
                "error_description": "user is not logged in",
            },
        )
        self.assertError(r, 400, "invalid_request")

    def test_wrong_nonce(self) -> None:
        r = self.launch(nonce="another-nonce")
        self.assertError(r, 400, "invalid_nonce")
        self.assertEqual(self.client.get("/api/user").status_code, 401)

    def test_bad_signature(self) -> None:
        params = self.login()
        token = make_id_token(launch_claims(nonce=params["nonce"]), key=OTHER_KEY)
        r = self.client.post(
            "/lti/launch", data={"id_token": token, "state": params["state"]}
        )
        self.assertError(r, 400, "invalid_token")
        self.assertNotIn("bad_signature", r.text)
        self.assertEqual(self.client.get("/api/user").status_code, 401)

    def test_expired_token(self) -> None:
        r = self.launch(exp=1, iat=0)
        self.assertError(r, 400, "invalid_token")

    def test_wrong_audience(self) -> None:
        r = self.launch(aud="another-client")
        self.assertError(r, 400, "invalid_token")

    def test_deployment_mismatch(self) -> None:
        r = self.launch(**{messages.MESSAGE_DEPLOYMENT_ID_KEY: "other-deployment"})
        self.assertError(r, 400, "invalid_claims")
        self.assertEqual(self.client.get("/api/user").status_code, 401)

    def test_deployment_missing(self) -> None:
        claims = launch_claims()
        del claims[messages.MESSAGE_DEPLOYMENT_ID_KEY]
        r = self.launch(claims)
        self.assertError(r, 400, "invalid_claims")

    def test_wrong_message_type(self) -> None:
        r = self.launch(**{messages.MESSAGE_TYPE_KEY: "LtiDeepLinkingRequest"})
        self.assertError(r, 400, "invalid_claims")

    def test_jwks_unavailable(self) -> None:
        self.remote.jwks_status = 503
        r = self.launch()
        self.assertError(r, 400, "invalid_token")

    def test_logout(self) -> None:
        self.launch()
        self.assertEqual(self.client.get("/api/user").status_code, 200)
        sid = self.client.cookies["paim.sid"]

        r = self.client.post("/lti/logout")
        self.assertEqual(r.status_code, 204)
        self.assertIn("max-age=0", r.headers["set-cookie"].lower())
        self.assertEqual(self.client.get("/api/user").status_code, 401)

        # the old cookie no longer names a session
        r = self.client.get("/api/user", headers={"Cookie": f"paim.sid={sid}"})
        self.assertEqual(r.status_code, 401)


class ConfigurationTestCase(AppTestCase):
    def make_config(self):
        return make_config(platform={"issuer": ISSUER, "client_id": CLIENT_ID})

    def test_partial_platform(self) -> None:
        r = self.client.get(
            "/lti/login", params={"iss": ISSUER, "login_hint": "h"}
        )
        self.assertError(r, 503, "configuration_error")
        r = self.client.post("/lti/launch", data={"id_token": "x", "state": "s"})
        self.assertError(r, 503, "configuration_error")

    def test_health_reports_problems(self) -> None:
        r = self.client.get("/lti/health")
        self.assertEqual(r.status_code, 200)
        lti = r.json()["lti"]
        self.assertFalse(lti["configured"])
        self.assertIn("LTI_JWKS_URL is not set", lti["problems"])


class NoBaseUrlTestCase(AppTestCase):
    def make_config(self):
        return make_config(base_url=None)

    def test_login_not_configured(self) -> None:
        r = self.client.get(
            "/lti/login",
            params={"iss": ISSUER, "login_hint": "h", "client_id": CLIENT_ID},
        )
        self.assertError(r, 503, "configuration_error")


class HealthTestCase(AppTestCase):
    def test_health(self) -> None:
        r = self.client.get("/lti/health")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertEqual(data["status"], "ok")
        self.assertEqual(data["environment"], "local")
        self.assertIn("version", data)
        self.assertIn("timestamp", data)
        self.assertTrue(data["lti"]["configured"])
        self.assertEqual(data["lti"]["launch_url"], "https://tool.example/lti/launch")
        self.assertEqual(data["lti"]["login_url"], "https://tool.example/lti/login")
        self.assertEqual(data["lti"]["platforms"][0]["client_id"], CLIENT_ID)
        self.assertTrue(data["integrations"]["wordpress"])
        self.assertNotIn("secret", r.text.lower())

    def test_request_id(self) -> None:
        r = self.client.get("/lti/health", headers={"X-Request-Id": "abc123"})
        self.assertEqual(r.headers["x-request-id"], "abc123")
        r = self.client.get("/lti/health")
        self.assertEqual(len(r.headers["x-request-id"]), 32)

    def test_jwks_empty(self) -> None:
        r = self.client.get("/.well-known/jwks.json")
        self.assertEqual(r.status_code, 200)
        self.assertDictEqual(r.json(), {"keys": []})


class ToolKeySetTestCase(AppTestCase):
    def make_config(self):
        key_set = {"keys": [PLATFORM_KEY.as_dict(private=True)]}
        return make_config(tool_jwks=json.dumps(key_set))

    def test_jwks_public_only(self) -> None:
        r = self.client.get("/.well-known/jwks.json")
        (key,) = r.json()["keys"]
        self.assertEqual(key["kid"], "bb-key-1")
        self.assertEqual(key["use"], "sig")
        self.assertNotIn("d", key)


class DatabaseSessionTestCase(AppTestCase):
    def make_config(self):
        return make_config(session_backend="database")

    def test_launch(self) -> None:
        r = self.launch()
        self.assertEqual(r.status_code, 303, r.text)
        self.assertEqual(self.client.get("/api/user").json()["subject"], "u1")
        self.assertEqual(self.client.post("/lti/logout").status_code, 204)
        self.assertEqual(self.client.get("/api/user").status_code, 401)
