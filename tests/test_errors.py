from __future__ import annotations

import pytest

from quill.errors import (
    AlreadyExistsError,
    ConfigCorruptError,
    IsActiveError,
    NotFoundError,
    PathValidationError,
    QuillError,
    StorageError,
    ValidationError,
    error_response,
    get_exit_code,
)


def test_to_dict_includes_type_and_context() -> None:
    exc = NotFoundError("Content not found: post-1", resource_type="content", resource_id="post-1")

    payload = exc.to_dict()

    assert payload["type"] == "notfound"
    assert payload["message"] == "Content not found: post-1"
    assert payload["recoverable"] is False
    assert payload["resource_type"] == "content"
    assert payload["resource_id"] == "post-1"


def test_to_dict_drops_empty_context_values() -> None:
    payload = StorageError("disk full").to_dict()

    assert "operation" not in payload
    assert "path" not in payload


def test_validation_error_carries_reasons() -> None:
    exc = ValidationError("Invalid slug", field="slug", value="Bad Slug", reasons=["uppercase", "space"])

    assert exc.field == "slug"
    assert exc.reasons == ["uppercase", "space"]
    assert exc.to_dict()["reasons"] == ["uppercase", "space"]
    assert exc.to_dict()["value"] == "Bad Slug"


def test_validation_error_truncates_long_values() -> None:
    exc = ValidationError("Too long", field="title", value="x" * 500)

    assert len(exc.to_dict()["value"]) == 103


def test_path_validation_error_is_a_validation_error() -> None:
    exc = PathValidationError("bad path", path="../etc", reason="traversal")

    assert isinstance(exc, ValidationError)
    assert exc.field == "path"
    assert exc.reasons == ["traversal"]
    assert exc.to_dict()["path"] == "../etc"


def test_config_corrupt_is_recoverable() -> None:
    assert ConfigCorruptError("bad json", path="/tmp/x.json").recoverable is True


@pytest.mark.parametrize(
    "exc, code",
    [
        (NotFoundError("x"), 3),
        (AlreadyExistsError("x"), 4),
        (ValidationError("x"), 5),
        (PathValidationError("x"), 5),
        (IsActiveError("x", database="content.db"), 6),
        (StorageError("x"), 7),
        (ConfigCorruptError("x"), 1),
        (QuillError("x"), 1),
    ],
)
def test_exit_codes(exc: QuillError, code: int) -> None:
    assert get_exit_code(exc) == code


def test_error_response_for_domain_error() -> None:
    response = error_response(IsActiveError("Cannot delete the active database", database="content.db"))

    payload = response.to_dict()
    assert payload["error"]["type"] == "isactive"
    assert payload["error"]["message"] == "Cannot delete the active database"
    assert payload["error"]["details"] == {"database": "content.db"}


def test_error_response_for_unexpected_error() -> None:
    response = error_response(RuntimeError("boom"))

    assert response.error_type == "internal"
    assert response.message == "boom"
    assert "details" not in response.to_dict()["error"]
