"""Tests for api/base.py - Unified API response format."""

from datetime import timezone

from api.base import (
    APIError,
    success_response,
    error_response,
    ErrorCodes,
)


class TestSuccessResponse:
    """Tests for success_response()."""

    def test_structure(self):
        resp = success_response({"foo": "bar"})
        assert resp.success is True
        assert resp.data == {"foo": "bar"}
        assert resp.errors == []
        assert resp.message == "OK"

    def test_request_id_generated(self):
        resp = success_response({})
        assert resp.meta.request_id is not None
        assert len(resp.meta.request_id) > 0

    def test_request_id_passed_through(self):
        assert success_response({}, request_id="req-12345678").meta.request_id == "req-12345678"

    def test_timestamp_is_utc(self):
        resp = success_response({})
        assert resp.meta.timestamp.tzinfo == timezone.utc


class TestErrorResponse:
    """Tests for error_response()."""

    def test_structure(self):
        resp = error_response("InvalidCode", "invalid code", field="code")
        assert resp.success is False
        assert resp.data is None
        assert resp.message == "invalid code"
        assert resp.errors == [APIError(type="InvalidCode", field="code", message="invalid code")]

    def test_field_defaults_empty(self):
        assert error_response("System", "boom").errors[0].field == ""

    def test_explicit_errors_list(self):
        errors = [
            APIError(type="PasswordPolicy", field="new_secret", message="too short"),
            APIError(type="PasswordPolicy", field="new_secret", message="needs a digit"),
        ]
        resp = error_response("PasswordPolicy", "password rejected", errors=errors)

        assert resp.errors == errors
        assert resp.message == "password rejected"

    def test_timestamp_is_utc(self):
        resp = error_response("ERR", "msg")
        assert resp.meta.timestamp.tzinfo == timezone.utc

    def test_serialized_shape(self):
        body = error_response("ERR", "msg", request_id="abc").model_dump(mode="json")
        assert set(body) == {"success", "message", "data", "errors", "meta"}
        assert set(body["meta"]) == {"timestamp", "request_id"}


class TestErrorCodes:
    """Tests for error types reported outside the auth services."""

    def test_generic_types(self):
        assert ErrorCodes.VALIDATION == "Validation"
        assert ErrorCodes.NOT_FOUND == "NotFound"
        assert ErrorCodes.SYSTEM == "System"

    def test_claim_gate_types(self):
        assert ErrorCodes.MISSING_TOKEN == "MissingToken"
        assert ErrorCodes.INVALID_TOKEN == "InvalidToken"
        assert ErrorCodes.UNKNOWN_CLAIM == "UnknownClaim"
        assert ErrorCodes.CLAIM_ABSENT == "ClaimAbsent"
        assert ErrorCodes.WRONG_TYPE == "WrongType"
