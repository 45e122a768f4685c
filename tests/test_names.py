"""Tests for service-name canonicalization."""

from __future__ import annotations

import pytest

from service_matcher.names import names_match, normalize_service_name, underscore_form


def test_headless_variants_share_one_key() -> None:
    """Case, surrounding space and a -headless suffix never change the key."""
    assert normalize_service_name("Foo-Headless") == normalize_service_name("foo") == normalize_service_name("FOO")
    assert normalize_service_name(" foo ") == "foo"


def test_empty_and_none_normalize_to_empty() -> None:
    assert normalize_service_name("") == ""
    assert normalize_service_name(None) == ""


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("billing--api", "billing-api"),
        ("billing   api", "billing api"),
        ("-billing-", "billing"),
        ("headless-billing", "billing"),
        ("billing-headless-headless", "billing"),
        ("headheadlessless", ""),
    ],
)
def test_normalization_rules(raw: str, expected: str) -> None:
    assert normalize_service_name(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["Foo-Headless", "a--b", " x - y ", "headheadlessless-svc", "-headless-", "Svc_Name", "a - headless - b"],
)
def test_normalization_is_idempotent(raw: str) -> None:
    once = normalize_service_name(raw)
    assert normalize_service_name(once) == once


def test_names_match_tolerates_hyphen_underscore() -> None:
    assert names_match("user-profile", "user_profile")
    assert names_match("User-Profile-headless", "user_profile")
    assert not names_match("user-profile", "user-profiles")


def test_empty_names_never_match() -> None:
    assert not names_match("", "")
    assert not names_match("headless", "")
    assert not names_match(None, "svc")


def test_underscore_form() -> None:
    assert underscore_form("User-Profile-headless") == "user_profile"
