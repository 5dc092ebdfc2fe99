from __future__ import annotations

from rolling_upgrade.bench.assert_engine import (
    assert_equal,
    assert_not_equal,
    assert_ok,
    assert_present,
    entity_as_map,
)
from rolling_upgrade.bench.errors import AssertionFailure
from rolling_upgrade.bench.types import Token
from rolling_upgrade.core.logging import get_logger
from rolling_upgrade.sut.client import ClusterClient

logger = get_logger(__name__)

TOKEN_PATH = "/_xpack/security/oauth2/token"
AUTHENTICATE_PATH = "/_xpack/security/_authenticate"

EXPIRED_TOKEN_CHALLENGE = (
    'Bearer realm="security", error="invalid_token", error_description="The access token expired"'
)


class TokenLifecycleProbe:
    """
    Drives the token service through issue / verify / refresh / invalidate and
    asserts on every answer. Nothing here retries: a working token has to
    work on the first call, and a revoked one has to be rejected on the first
    call after the invalidation returned.
    """

    def __init__(self, client: ClusterClient, username: str, password: str) -> None:
        self.client = client
        self.username = username
        self.password = password

    def with_client(self, client: ClusterClient) -> "TokenLifecycleProbe":
        return TokenLifecycleProbe(client, self.username, self.password)

    def issue(self, expect_refresh_token: bool = True) -> Token:
        response = self.client.request("POST", TOKEN_PATH, json={
            "username": self.username,
            "password": self.password,
            "grant_type": "password",
        })
        assert_ok(response)
        token = _token_from(entity_as_map(response))
        assert_present(token.access_token, "access_token")
        if expect_refresh_token:
            assert_present(token.refresh_token, "refresh_token")
        logger.info("token_issued", token=token)
        return token

    def verify_works(self, access_token: str) -> None:
        response = self._authenticate(access_token)
        assert_ok(response)
        assert_equal(entity_as_map(response).get("username"), self.username, "authenticated username")

    def verify_rejected(self, access_token: str) -> None:
        response = self._authenticate(access_token)
        if response.status_code != 401:
            raise AssertionFailure(f"expected 401 for a revoked token, got {response.status_code}")
        assert_equal(response.headers.get("WWW-Authenticate"), EXPIRED_TOKEN_CHALLENGE, "WWW-Authenticate")

    def refresh(self, token: Token) -> Token:
        assert_present(token.refresh_token, "refresh_token to exchange")
        response = self.client.request("POST", TOKEN_PATH, json={
            "refresh_token": token.refresh_token,
            "grant_type": "refresh_token",
        })
        assert_ok(response)
        updated = _token_from(entity_as_map(response))
        assert_present(updated.access_token, "refreshed access_token")
        assert_present(updated.refresh_token, "refreshed refresh_token")

        # rotation is mandatory, the old access token stays valid until revoked
        assert_not_equal(updated.access_token, token.access_token, "access token after refresh")
        assert_not_equal(updated.refresh_token, token.refresh_token, "refresh token after refresh")
        self.verify_works(updated.access_token)
        self.verify_works(token.access_token)
        logger.info("token_refreshed", old=token, new=updated)
        return updated

    def invalidate(self, access_token: str, error_trace: bool = False) -> None:
        params = {"error_trace": "true"} if error_trace else None
        response = self.client.request("DELETE", TOKEN_PATH, json={"token": access_token}, params=params)
        assert_ok(response)
        logger.info("token_invalidated", token=access_token[:8] + "...")

    def _authenticate(self, access_token: str):
        return self.client.request("GET", AUTHENTICATE_PATH, headers={"Authorization": f"Bearer {access_token}"})


def _token_from(body: dict) -> Token:
    return Token(access_token=body.get("access_token"), refresh_token=body.get("refresh_token"))
