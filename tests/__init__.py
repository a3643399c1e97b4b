import os
import pathlib
import tempfile
import time
from collections.abc import Callable, Mapping
from typing import Any

# Configure the environment before any ``paim`` module reads it.
_DB_DIR = tempfile.mkdtemp(prefix="paim-tests-")
os.environ.setdefault("PAIM_ENV", "local")
os.environ.setdefault("PAIM_DB_URL", f"sqlite+aiosqlite:///{_DB_DIR}/paim_test.sqlite")

import httpx  # noqa: E402
import joserfc.jwk  # noqa: E402
import joserfc.jwt  # noqa: E402

from paim.settings import (  # noqa: E402
    AppConfig,
    GatewaySettings,
    PlatformSettings,
    ToolSettings,
)

TEST_DIR = pathlib.Path(__file__).parent
TEST_DATA_DIR = TEST_DIR / "data"

ISSUER = "https://blackboard.com"
CLIENT_ID = "d8b7c8a2-7f0e-4c4b-9d5e-2a1f3b6c9e01"
DEPLOYMENT_ID = "5e1f9d3a-6b2c-4e8f-a1d7-0c9b8a7f6e54"
AUTH_URL = "https://developer.blackboard.com/api/v1/gateway/oidcauth"
JWKS_URL = "https://developer.blackboard.com/api/v1/management/applications/jwks.json"
TOOL_URL = "https://tool.example"
WORDPRESS_URL = "https://wp.example"
SESSION_SECRET = "test-session-secret-with-at-least-32-characters"

LEARNER = "http://purl.imsglobal.org/vocab/lis/v2/membership#Learner"
INSTRUCTOR = "http://purl.imsglobal.org/vocab/lis/v2/membership#Instructor"

PLATFORM_KEY = joserfc.jwk.RSAKey.generate_key(2048, parameters={"kid": "bb-key-1"})
OTHER_KEY = joserfc.jwk.RSAKey.generate_key(2048, parameters={"kid": "bb-key-1"})
ROTATED_KEY = joserfc.jwk.RSAKey.generate_key(2048, parameters={"kid": "bb-key-2"})


def load_text_file(path: str, encoding: str = "utf-8") -> str:
    return (TEST_DATA_DIR / path).read_text(encoding=encoding)


def public_jwks(*keys: joserfc.jwk.RSAKey) -> dict[str, Any]:
    return {"keys": [k.as_dict(private=False) for k in keys]}


def launch_claims(**overrides: Any) -> dict[str, Any]:
    """Returns the claims of a valid Resource Link launch."""
    now = int(time.time())
    claims: dict[str, Any] = {
        "iss": ISSUER,
        "aud": CLIENT_ID,
        "sub": "u1",
        "iat": now,
        "exp": now + 300,
        "nonce": "test-nonce",
        "name": "Ana Rojas",
        "email": "ana.rojas@example.edu",
        "https://purl.imsglobal.org/spec/lti/claim/message_type": (
            "LtiResourceLinkRequest"
        ),
        "https://purl.imsglobal.org/spec/lti/claim/version": "1.3.0",
        "https://purl.imsglobal.org/spec/lti/claim/deployment_id": DEPLOYMENT_ID,
        "https://purl.imsglobal.org/spec/lti/claim/roles": [LEARNER],
        "https://purl.imsglobal.org/spec/lti/claim/context": {
            "id": "_123_1",
            "label": "MAT101",
            "title": "Matematica I",
        },
        "https://purl.imsglobal.org/spec/lti/claim/resource_link": {
            "id": "_456_1",
            "title": "PAIM",
        },
    }
    claims.update(overrides)
    return claims


def make_id_token(
    claims: Mapping[str, Any] | None = None,
    key: joserfc.jwk.RSAKey = PLATFORM_KEY,
    alg: str = "RS256",
) -> str:
    header = {"alg": alg, "kid": key.kid, "typ": "JWT"}
    return joserfc.jwt.encode(header, dict(claims or launch_claims()), key)


def make_config(
    platform: Mapping[str, Any] | None = None,
    wordpress: bool = True,
    **tool_overrides: Any,
) -> AppConfig:
    tool_values: dict[str, Any] = {
        "env": "local",
        "base_url": TOOL_URL,
        "session_secret": SESSION_SECRET,
        "session_backend": "memory",
    }
    tool_values.update(tool_overrides)
    if platform is None:
        platform = {
            "name": "Blackboard Test",
            "issuer": ISSUER,
            "client_id": CLIENT_ID,
            "deployment_id": DEPLOYMENT_ID,
            "auth_url": AUTH_URL,
            "jwks_url": JWKS_URL,
        }
    return AppConfig(
        tool=ToolSettings(**tool_values),
        platform=PlatformSettings(**platform),
        gateway=GatewaySettings(url=WORDPRESS_URL if wordpress else None),
    )


class FakeRemote:
    """Serves the platform JWKS and the WordPress API over ``MockTransport``."""

    def __init__(self) -> None:
        self.jwks: dict[str, Any] = public_jwks(PLATFORM_KEY)
        self.jwks_status = 200
        self.units: list[dict[str, Any]] = []
        self.grades: list[dict[str, Any]] = []
        self.courses: list[dict[str, Any]] = []
        self.students: list[dict[str, Any]] = []
        self.wordpress_status = 200
        self.requests: list[httpx.Request] = []
        self.handlers: dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if handler := self.handlers.get(path):
            return handler(request)
        if request.url.host == "developer.blackboard.com":
            return httpx.Response(self.jwks_status, json=self.jwks)
        if self.wordpress_status != 200:
            return httpx.Response(self.wordpress_status, json={"code": "error"})
        if path == "/wp-json/wp/v2/icn_unit":
            course_id = request.url.params.get("meta_value")
            return wp_page(
                request, [u for u in self.units if u["meta"]["course_id"] == course_id]
            )
        if path.startswith("/wp-json/wp/v2/icn_unit/"):
            unit_id = int(path.rsplit("/", 1)[1])
            for unit in self.units:
                if unit["id"] == unit_id:
                    return httpx.Response(200, json=unit)
            return httpx.Response(404, json={"code": "rest_post_invalid_id"})
        if path == "/wp-json/wp/v2/icn_grade" and request.method == "GET":
            student_id = request.url.params.get("meta_value")
            return wp_page(
                request,
                [g for g in self.grades if g["meta"]["student_id"] == student_id],
            )
        if path.startswith("/wp-json/wp/v2/icn_grade") and request.method == "POST":
            return httpx.Response(201, json={"id": 900 + len(self.grades)})
        if path == "/wp-json/wp/v2/icn_course":
            return wp_page(request, active(self.courses))
        if path == "/wp-json/wp/v2/icn_student":
            return wp_page(request, active(self.students))
        return httpx.Response(404)


def active(posts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [p for p in posts if p["meta"]["active"] == "true"]


def wp_page(request: httpx.Request, posts: list[dict[str, Any]]) -> httpx.Response:
    """Returns one page of ``posts`` the way the WordPress REST API does."""
    per_page = int(request.url.params.get("per_page", 10))
    page = int(request.url.params.get("page", 1))
    total_pages = max(1, -(-len(posts) // per_page))
    if page > total_pages:
        return httpx.Response(400, json={"code": "rest_post_invalid_page_number"})
    return httpx.Response(
        200,
        json=posts[(page - 1) * per_page : page * per_page],
        headers={"X-WP-Total": str(len(posts)), "X-WP-TotalPages": str(total_pages)},
    )


def wp_unit(unit_id: int, order: int, course_id: str = "_123_1") -> dict[str, Any]:
    return {
        "id": unit_id,
        "title": {"rendered": f"Unidad {order}"},
        "content": {"rendered": f"<p>Unidad {order}</p>"},
        "meta": {
            "course_id": course_id,
            "unit_type": "lesson",
            "estimated_duration": "30",
            "difficulty_level": "Intermedio",
            "order_index": str(order),
            "unit_content": '[{"type": "text", "value": "hola"}]',
        },
    }


def wp_grade(
    record_id: int,
    unit_id: int,
    score: float,
    completed: bool,
    student_id: str = "u1",
    course_id: str = "_123_1",
) -> dict[str, Any]:
    return {
        "id": record_id,
        "meta": {
            "student_id": student_id,
            "unit_id": str(unit_id),
            "course_id": course_id,
            "completion_percentage": "100" if completed else "40",
            "score": str(score),
            "completed": "true" if completed else "false",
            "last_updated": "2025-03-01T12:00:00+00:00",
        },
    }


def wp_course(post_id: int, course_id: str, active: bool = True) -> dict[str, Any]:
    return {
        "id": post_id,
        "title": {"rendered": f"Curso {course_id}"},
        "meta": {
            "lti_course_id": course_id,
            "context_id": course_id,
            "context_label": "MAT101",
            "platform_id": ISSUER,
            "instructor_id": "i1",
            "active": "true" if active else "false",
            "created_date": "2025-02-01T09:00:00+00:00",
        },
    }


def wp_student(post_id: int, user_id: str, active: bool = True) -> dict[str, Any]:
    return {
        "id": post_id,
        "title": {"rendered": f"Estudiante {user_id}"},
        "meta": {
            "lti_user_id": user_id,
            "email": f"{user_id}@example.edu",
            "wp_user_id": str(post_id + 1000),
            "roles": f'["{LEARNER}"]',
            "platform_id": ISSUER,
            "last_access": "2025-03-01T12:00:00+00:00",
            "active": "true" if active else "false",
        },
    }
