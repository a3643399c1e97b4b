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

"""
JSON Web Keys

Fetches and caches the Platform's JSON Web Key Set and verifies the
IDTokens the Platform signs with it.
"""

import json
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import joserfc.errors
import joserfc.jwk
import joserfc.jws
import joserfc.jwt

logger = logging.getLogger(__name__)

# Asymmetric only, never ``none`` or HS*.
ALLOWED_ALGORITHMS = (
    "RS256",
    "RS384",
    "RS512",
    "PS256",
    "PS384",
    "PS512",
    "ES256",
    "ES384",
    "ES512",
)

JWKS_CACHE_EXPIRY = 600


class VerificationError(Exception):
    """An IDToken failed verification.

    The ``reason`` is for logging only and must not be shown to the
    user-agent.
    """

    MALFORMED = "malformed"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    UNKNOWN_KID = "unknown_kid"
    BAD_SIGNATURE = "bad_signature"
    INVALID_ISSUER = "invalid_issuer"
    INVALID_AUDIENCE = "invalid_audience"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    MISSING_CLAIM = "missing_claim"
    JWKS_UNAVAILABLE = "jwks_unavailable"

    def __init__(self, reason: str, detail: str = "") -> None:
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class CachedKeySet:
    def __init__(
        self,
        key_set: joserfc.jwk.KeySet,
        expire_in: float,
        now: float,
    ) -> None:
        self.key_set = key_set
        self.expires_at = now + expire_in
        self.kids = {k.kid for k in key_set}

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class KeySetCache:
    """Caches Platform key sets by URL.

    Concurrent misses for the same URL may each fetch the key set; the last
    one stored wins. No lock is held while awaiting the network.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        expire_in: float = JWKS_CACHE_EXPIRY,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http_client = http_client
        self.expire_in = expire_in
        self.timeout = timeout
        self.clock = clock
        self._entries: dict[str, CachedKeySet] = {}

    async def get(self, url: str, use_cache: bool = True) -> CachedKeySet:
        """Returns the key set published at ``url``."""
        if use_cache:
            if cks := self._entries.get(url):
                if not cks.is_expired(self.clock()):
                    logger.debug("Returning cached JWKS for %s", url)
                    return cks
                logger.info("Cached JWKS for %s has expired", url)
            else:
                logger.info("Cached JWKS not found for %s", url)

        cks = await self._fetch(url)
        self._entries[url] = cks
        return cks

    async def _fetch(self, url: str) -> CachedKeySet:
        logger.info("Fetching JWKS from %s", url)
        try:
            r = await self.http_client.get(url, timeout=self.timeout)
            jwks_json = r.raise_for_status().json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Failed to fetch JWKS from %s: %r", url, exc)
            raise VerificationError(VerificationError.JWKS_UNAVAILABLE, url) from exc

        try:
            ks = joserfc.jwk.KeySet.import_key_set(jwks_json)
        except (joserfc.errors.JoseError, KeyError, TypeError, ValueError) as exc:
            logger.error("Failed to import key set from %s: %r", url, exc)
            raise VerificationError(VerificationError.JWKS_UNAVAILABLE, url) from exc

        return CachedKeySet(ks, self.expire_in, self.clock())


class TokenVerifier:
    """Verifies signed IDTokens against a remote JSON Web Key Set."""

    def __init__(
        self,
        key_sets: KeySetCache,
        leeway: int = 60,
        algorithms: tuple[str, ...] = ALLOWED_ALGORITHMS,
        now: Callable[[], int] | None = None,
    ) -> None:
        self.key_sets = key_sets
        self.leeway = leeway
        self.algorithms = algorithms
        self.now = now

    async def verify(
        self,
        token: str,
        *,
        issuer: str,
        audience: str,
        jwks_url: str,
    ) -> joserfc.jwt.Claims:
        """Returns the claims of ``token`` else raises ``VerificationError``.

        Checks, in order: the token structure, the ``alg`` header, the
        signature using the key named by ``kid``, and then the ``iss``,
        ``aud``, ``azp``, ``exp``, ``iat`` and ``nbf`` claims.
        """
        header = self._header(token)

        alg = header.get("alg")
        if alg not in self.algorithms:
            raise VerificationError(VerificationError.UNSUPPORTED_ALGORITHM, str(alg))

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            # a missing or non-string kid must not reach the key set lookup
            raise VerificationError(VerificationError.MALFORMED, f"kid [{kid!r}]")

        cks = await self.key_sets.get(jwks_url)
        if kid not in cks.kids:
            # The Platform may have rotated keys since the set was cached.
            logger.info("kid [%s] not in cached JWKS, refreshing %s", kid, jwks_url)
            cks = await self.key_sets.get(jwks_url, use_cache=False)
            if kid not in cks.kids:
                raise VerificationError(VerificationError.UNKNOWN_KID, str(kid))

        try:
            jwt_token = joserfc.jwt.decode(
                value=token,
                key=cks.key_set,
                algorithms=list(self.algorithms),
            )
        except joserfc.errors.BadSignatureError:
            raise VerificationError(VerificationError.BAD_SIGNATURE, str(kid)) from None
        except (joserfc.errors.JoseError, ValueError) as exc:
            raise VerificationError(VerificationError.MALFORMED, repr(exc)) from None

        claims = jwt_token.claims
        logger.debug("IDToken claims: %r", claims)
        self._validate_claims(claims, issuer, audience)
        return claims

    @staticmethod
    def _header(token: str) -> dict[str, Any]:
        try:
            obj = joserfc.jws.extract_compact(token.encode("utf-8"))
        except (joserfc.errors.JoseError, ValueError) as exc:
            raise VerificationError(VerificationError.MALFORMED, repr(exc)) from None
        return dict(obj.headers())

    def _validate_claims(
        self, claims: joserfc.jwt.Claims, issuer: str, audience: str
    ) -> None:
        id_token_opts: dict[str, joserfc.jwt.ClaimsOption] = {
            "iss": {"essential": True, "value": issuer},
            "aud": {"essential": True, "value": audience},
            "exp": {"essential": True},
            "iat": {"essential": True},
        }
        registry = joserfc.jwt.JWTClaimsRegistry(
            now=self.now, leeway=self.leeway, **id_token_opts
        )
        try:
            registry.validate(claims)
        except joserfc.errors.MissingClaimError as exc:
            reason = VerificationError.MISSING_CLAIM
            raise VerificationError(reason, exc.claim) from None
        except joserfc.errors.ExpiredTokenError:
            raise VerificationError(VerificationError.EXPIRED) from None
        except joserfc.errors.InvalidClaimError as exc:
            reason = {
                "iss": VerificationError.INVALID_ISSUER,
                "aud": VerificationError.INVALID_AUDIENCE,
                "iat": VerificationError.NOT_YET_VALID,
                "nbf": VerificationError.NOT_YET_VALID,
            }.get(exc.claim, VerificationError.MALFORMED)
            raise VerificationError(reason, exc.claim) from None

        # With several audiences the authorized party must be this tool.
        aud = claims["aud"]
        if isinstance(aud, list) and len(aud) > 1 and claims.get("azp") != audience:
            raise VerificationError(VerificationError.INVALID_AUDIENCE, "azp")


def tool_key_set(value: str | None) -> dict[str, Any]:
    """Returns the public key set this tool publishes.

    The tool does not sign any messages to the Platform unless a key set is
    configured, so the default is an empty set. ``value`` may be JSON text
    or a path to a JSON file; private members are never published.
    """
    if not value:
        return {"keys": []}
    stripped = value.strip()
    if stripped.startswith("{"):
        data = json.loads(stripped)
    else:
        data = json.loads(Path(stripped).read_text(encoding="utf-8"))
    ks = joserfc.jwk.KeySet.import_key_set(data)
    ks_dict = ks.as_dict(private=False)
    for entry in ks_dict["keys"]:
        if "use" not in entry:
            entry["use"] = "sig"
    return dict(ks_dict)
