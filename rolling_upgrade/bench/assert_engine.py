from typing import Any, Dict

import httpx

from rolling_upgrade.bench.errors import AssertionFailure


def assert_ok(response: httpx.Response) -> None:
    if not 200 <= response.status_code < 300:
        raise AssertionFailure(
            f"{response.request.method} {response.request.url.path} returned "
            f"{response.status_code}: {response.text[:500]}"
        )


def entity_as_map(response: httpx.Response) -> Dict[str, Any]:
    body = response.json()
    if not isinstance(body, dict):
        raise AssertionFailure(f"expected a JSON object from {response.request.url.path}, got {type(body).__name__}")
    return body


def assert_present(value: Any, what: str) -> None:
    if value is None or value == "":
        raise AssertionFailure(f"{what} is missing")


def assert_equal(actual: Any, expected: Any, what: str) -> None:
    if actual != expected:
        raise AssertionFailure(f"{what}: expected {expected!r}, got {actual!r}")


def assert_not_equal(left: Any, right: Any, what: str) -> None:
    if left == right:
        raise AssertionFailure(f"{what}: values must differ")
