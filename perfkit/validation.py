"""
Response validation with tagged checks and business-error tracking.

Each validation builds a set of named boolean checks
(``"Create_User: status 201"``, ``"Create_User: 'id' is string"``),
evaluates every one of them, reports each result to a
:class:`~perfkit.metrics.CheckRecorder` tagged with the API name, and
returns whether they all passed.  Any response whose status falls
outside ``[200, 300)`` also counts as a business error, which is reported
to the recorder under ``business_errors`` as well.

Key Concepts Demonstrated:
- Declarative check sets instead of ad-hoc ``if`` chains in scenarios
- Per-API tags so results can be aggregated per endpoint
- Observational checks (response time) that are recorded but never fail
  the overall result
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Sequence

from perfkit.config import get_config
from perfkit.metrics import CheckLedger, CheckRecorder, Counter, Rate
from perfkit.responses import body_text, decode_json, response_time_ms, status_of

logger = logging.getLogger(__name__)

Check = Callable[[Any], bool]

# Recorder name for business-error samples; a failed sample is one error.
BUSINESS_ERROR_CHECK = "business_errors"

# JSON type names accepted in a schema, mapped to the Python types that
# ``json.loads`` produces for them.
_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def json_type_matches(value: Any, expected: str) -> bool:
    """Return ``True`` if *value* has JSON type *expected*."""
    types = _JSON_TYPES.get(expected)
    if types is None:
        return False
    if expected == "number" and isinstance(value, bool):
        return False
    return isinstance(value, types)


def _as_list(value: str | Iterable[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def _json_object(response: Any) -> dict[str, Any] | None:
    try:
        data = decode_json(response)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _is_json(response: Any) -> bool:
    try:
        decode_json(response)
    except ValueError:
        return False
    return True


def _faster_than(max_ms: float) -> Check:
    def check(response: Any) -> bool:
        elapsed = response_time_ms(response)
        return elapsed is not None and elapsed < max_ms

    return check


class ResponseValidator:
    """
    Runs check sets and keeps the business-error metrics.

    Args:
        recorder: Receives every individual check result.  Defaults to an
            in-memory :class:`~perfkit.metrics.CheckLedger`.
    """

    def __init__(self, recorder: CheckRecorder | None = None):
        self.recorder = recorder if recorder is not None else CheckLedger()
        self.business_errors = Counter("business_errors")
        self.business_error_rate = Rate("business_error_rate")

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    def _run(
        self,
        response: Any,
        checks: Mapping[str, Check],
        api_name: str,
        observational: Iterable[str] = (),
    ) -> bool:
        """Evaluate every check, record it, and return the conjunction."""
        tags = {"api": api_name}
        skip = set(observational)
        passed_all = True

        for name, check in checks.items():
            try:
                passed = bool(check(response))
            except Exception as exc:  # custom checks may raise on unexpected bodies
                logger.warning("[VALIDATION] Check '%s' raised %r", name, exc)
                passed = False

            self.recorder.record(name, passed, tags)
            if not passed:
                logger.debug("[VALIDATION] Check failed: %s", name)
                if name not in skip:
                    passed_all = False

        return passed_all

    def _track_business_error(self, is_error: bool, api_name: str) -> None:
        if is_error:
            self.business_errors.add(1)
        self.business_error_rate.add(is_error)
        self.recorder.record(BUSINESS_ERROR_CHECK, not is_error, {"api": api_name})

    @staticmethod
    def _is_success_status(response: Any) -> bool:
        status = status_of(response)
        return status is not None and 200 <= status < 300

    # ------------------------------------------------------------------
    # Public validations
    # ------------------------------------------------------------------

    def validate(
        self,
        response: Any,
        api_name: str,
        *,
        expected_status: int = 200,
        expected_statuses: Sequence[int] | None = None,
        check_body: bool = False,
        body_contains: str | Iterable[str] | None = None,
        body_not_contains: str | Iterable[str] | None = None,
        json_schema: Mapping[str, str | None] | None = None,
        custom_checks: Mapping[str, Check] | None = None,
        max_response_time_ms: float | None = None,
    ) -> bool:
        """
        Run the full check set for one response.

        Args:
            response: The HTTP response.
            api_name: Tag attached to every check, e.g. ``"Create_User"``.
            expected_status: Required status when *expected_statuses* is
                not given.
            expected_statuses: Acceptable statuses.
            check_body: Require a non-empty body.
            body_contains: Text (or texts) the body must contain.
            body_not_contains: Text (or texts) the body must not contain.
            json_schema: ``field -> type`` where type is one of ``string``,
                ``number``, ``boolean``, ``array``, ``object`` or ``None``
                for presence only.
            custom_checks: Extra named predicates taking the response.
            max_response_time_ms: Response-time ceiling.  Recorded, but a
                slow response does not fail the result.

        Returns:
            ``True`` if every non-observational check passed.
        """
        if not api_name:
            logger.error("[VALIDATION] API name is required for validation")
            return False

        if max_response_time_ms is None:
            max_response_time_ms = get_config().RESPONSE_TIME_CEILING_MS

        checks: dict[str, Check] = {}
        if expected_statuses is not None:
            allowed = list(expected_statuses)
            label = ",".join(str(s) for s in allowed)
            checks[f"{api_name}: status in [{label}]"] = lambda r: status_of(r) in allowed
        else:
            checks[f"{api_name}: status {expected_status}"] = (
                lambda r: status_of(r) == expected_status
            )

        time_check = f"{api_name}: response time < {max_response_time_ms:g}ms"
        checks[time_check] = _faster_than(max_response_time_ms)

        if check_body or body_contains or json_schema:
            checks[f"{api_name}: has response body"] = lambda r: bool(body_text(r))

        for text in _as_list(body_contains):
            checks[f"{api_name}: body contains '{text}'"] = (
                lambda r, text=text: text in body_text(r)
            )
        for text in _as_list(body_not_contains):
            checks[f"{api_name}: body does not contain '{text}'"] = (
                lambda r, text=text: text not in body_text(r)
            )

        if json_schema:
            checks[f"{api_name}: valid JSON response"] = _is_json
            for field, expected_type in json_schema.items():
                checks[f"{api_name}: has field '{field}'"] = (
                    lambda r, field=field: field in (_json_object(r) or {})
                )
                if expected_type:
                    checks[f"{api_name}: '{field}' is {expected_type}"] = (
                        lambda r, field=field, expected_type=expected_type: json_type_matches(
                            (_json_object(r) or {}).get(field), expected_type
                        )
                    )

        for name, check in (custom_checks or {}).items():
            checks[f"{api_name}: {name}"] = check

        result = self._run(response, checks, api_name, observational=[time_check])
        self._track_business_error(not self._is_success_status(response), api_name)
        return result

    def validate_status(self, response: Any, expected_status: int, api_name: str) -> bool:
        """Check a single expected status code."""
        return self._run(
            response,
            {f"{api_name}: status {expected_status}": lambda r: status_of(r) == expected_status},
            api_name,
        )

    def validate_status_in(
        self, response: Any, acceptable_statuses: Sequence[int], api_name: str
    ) -> bool:
        """Check the status is one of *acceptable_statuses*; count a business error if not."""
        allowed = list(acceptable_statuses)
        label = ",".join(str(s) for s in allowed)
        result = self._run(
            response,
            {f"{api_name}: status in [{label}]": lambda r: status_of(r) in allowed},
            api_name,
        )
        self._track_business_error(status_of(response) not in allowed, api_name)
        return result

    def validate_fields(self, response: Any, required_fields: Iterable[str], api_name: str) -> bool:
        """Check that each field is present in the JSON body and not null."""
        checks = {
            f"{api_name}: has field '{field}'": (
                lambda r, field=field: (_json_object(r) or {}).get(field) is not None
            )
            for field in required_fields
        }
        return self._run(response, checks, api_name)

    def validate_response_time(self, response: Any, max_duration_ms: float, api_name: str) -> bool:
        """Check the response arrived within *max_duration_ms*."""
        return self._run(
            response,
            {f"{api_name}: response time < {max_duration_ms:g}ms": _faster_than(max_duration_ms)},
            api_name,
        )

    def batch_validate(
        self,
        response: Any,
        api_name: str,
        validations: Iterable[tuple[str, Any]],
    ) -> bool:
        """
        Run several narrow validations and return whether all passed.

        Each entry is ``(kind, value)`` with kind ``"status"``,
        ``"field"`` or ``"response_time"``.

        Raises:
            ValueError: For an unknown kind.
        """
        handlers: dict[str, Callable[[Any], bool]] = {
            "status": lambda value: self.validate_status(response, value, api_name),
            "field": lambda value: self.validate_fields(response, [value], api_name),
            "response_time": lambda value: self.validate_response_time(response, value, api_name),
        }

        all_passed = True
        for kind, value in validations:
            handler = handlers.get(kind)
            if handler is None:
                raise ValueError(f"Unknown validation kind: {kind!r}")
            if not handler(value):
                all_passed = False
        return all_passed
