"""Tests for typed domain exceptions."""

from src.db.models import TrackingClass
from src.errors import (
    ClaimContentionError,
    ConflictError,
    DomainError,
    IngestionAbortedError,
    NoAvailableTrackingNumberError,
    NotFoundError,
    ValidationError,
)


def test_not_found_message():
    error = NotFoundError("Order", "1042")
    assert str(error) == "Order '1042' not found"
    assert error.resource_type == "Order"
    assert isinstance(error, DomainError)


def test_exhaustion_accepts_enum_class():
    error = NoAvailableTrackingNumberError(TrackingClass.CG, "77")

    assert error.code == "E-3001"
    assert error.tracking_class == "CG"
    assert str(error) == "No available CG tracking numbers for order 77."


def test_exhaustion_without_order():
    error = NoAvailableTrackingNumberError("EG")
    assert "order -" in str(error)


def test_contention_message():
    error = ClaimContentionError(TrackingClass.EG, 5)
    assert error.code == "E-3002"
    assert "after 5 attempts" in str(error)


def test_ingestion_aborted_keeps_context():
    error = IngestionAbortedError("disk full", batch_id="b1", log_file="x.log")

    assert error.code == "E-4001"
    assert str(error) == "Upload rolled back: disk full"
    assert error.reason == "disk full"
    assert error.batch_id == "b1"
    assert error.log_file == "x.log"


def test_validation_from_code():
    error = ValidationError.from_code("E-2004", extension=".txt", expected=".csv")
    assert error.code == "E-2004"
    assert str(error) == "Unsupported file type '.txt'. Expected .csv."


def test_conflict_code_is_optional():
    assert ConflictError("taken").code is None
    assert ConflictError("taken", code="E-3003").code == "E-3003"
