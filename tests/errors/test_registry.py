"""Unit tests for src/errors/registry.py.

Tests verify:
- Every code sits in the category its prefix implies
- Pool and ingestion codes carry the expected titles
"""

import pytest

from src.errors.registry import (
    ERROR_REGISTRY,
    ErrorCategory,
    get_error,
    get_errors_by_category,
)

PREFIX_CATEGORIES = {
    "E-1": ErrorCategory.DATA,
    "E-2": ErrorCategory.VALIDATION,
    "E-3": ErrorCategory.POOL,
    "E-4": ErrorCategory.SYSTEM,
}


@pytest.mark.parametrize(
    "code,category,title",
    [
        ("E-1001", ErrorCategory.DATA, "Empty Tracking Number"),
        ("E-2001", ErrorCategory.VALIDATION, "Invalid Tracking Number Format"),
        ("E-2002", ErrorCategory.VALIDATION, "Duplicate Tracking Number"),
        ("E-2003", ErrorCategory.VALIDATION, "Unknown Tracking Prefix"),
        ("E-3001", ErrorCategory.POOL, "Tracking Pool Exhausted"),
        ("E-3002", ErrorCategory.POOL, "Claim Contention"),
        ("E-4001", ErrorCategory.SYSTEM, "Ingestion Aborted"),
    ],
)
def test_error_codes_registered(code, category, title):
    """Codes used by the services must be registered."""
    error = get_error(code)
    assert error is not None, f"{code} not found in registry"
    assert error.category == category
    assert error.title == title


def test_codes_match_their_category_prefix():
    for code, error in ERROR_REGISTRY.items():
        assert error.code == code
        assert PREFIX_CATEGORIES[code[:3]] == error.category


def test_unknown_code_returns_none():
    assert get_error("E-9999") is None


def test_errors_by_category_filters():
    pool_errors = get_errors_by_category(ErrorCategory.POOL)
    assert {e.code for e in pool_errors} == {"E-3001", "E-3002", "E-3003"}


def test_contention_is_retryable_exhaustion_is_not():
    assert get_error("E-3002").is_retryable is True
    assert get_error("E-3001").is_retryable is False
