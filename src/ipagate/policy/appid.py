from __future__ import annotations

from typing import Any, Mapping

from ..api.models import PolicyDecision
from ..errors import MissingFieldError, WrongTypeError

ENTITLEMENTS_KEY = "Entitlements"
APP_ID_KEY = "application-identifier"


def extract_application_identifier(tree: Mapping[str, Any]) -> str:
    if ENTITLEMENTS_KEY not in tree:
        raise MissingFieldError(f"invalid appid: missing {ENTITLEMENTS_KEY}")
    entitlements = tree[ENTITLEMENTS_KEY]
    if not isinstance(entitlements, Mapping):
        raise WrongTypeError(
            f"invalid appid: {ENTITLEMENTS_KEY} is {type(entitlements).__name__}, expected dict"
        )
    if APP_ID_KEY not in entitlements:
        raise MissingFieldError(f"invalid appid: missing {ENTITLEMENTS_KEY}.{APP_ID_KEY}")
    app_id = entitlements[APP_ID_KEY]
    if not isinstance(app_id, str):
        raise WrongTypeError(
            f"invalid appid: {ENTITLEMENTS_KEY}.{APP_ID_KEY} is {type(app_id).__name__}, expected str"
        )
    return app_id


def check_application_identifier(tree: Mapping[str, Any], expected: str, member: str = "") -> PolicyDecision:
    """Compare Entitlements.application-identifier with ``expected``.

    Shape problems raise; a well-formed mismatch returns a denying decision
    whose reason names both values.
    """
    actual = extract_application_identifier(tree)
    if actual != expected:
        return PolicyDecision(
            allow=False,
            reason=f"invalid appid: `{actual}` but `{expected}` is expected",
            member=member,
            actual=actual,
            expected=expected,
        )
    return PolicyDecision(allow=True, member=member, actual=actual, expected=expected)
