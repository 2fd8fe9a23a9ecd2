# tests/notifications/test_matchers.py
"""
Тесты для матчеров получателей.
"""

from __future__ import annotations

from types import SimpleNamespace

from src.common.constants import SubscriberRole
from src.notifications.matchers import (
    AnyOf,
    CorrelationMatcher,
    IdentityMatcher,
    RoleMatcher,
    booking_owner_matcher,
)


def _target(role=None, owner_identity=None, correlation_id=None) -> SimpleNamespace:
    return SimpleNamespace(role=role, owner_identity=owner_identity, correlation_id=correlation_id)


class TestRoleMatcher:
    """Тесты для RoleMatcher."""

    def test_matches_same_role(self) -> None:
        """Совпадает только указанная роль."""
        matcher = RoleMatcher(SubscriberRole.OPERATOR)

        assert matcher.matches(_target(role=SubscriberRole.OPERATOR)) is True
        assert matcher.matches(_target(role=SubscriberRole.CLIENT)) is False
        assert matcher.matches(_target()) is False


class TestIdentityMatcher:
    """Тесты для IdentityMatcher."""

    def test_case_insensitive(self) -> None:
        """Email сравнивается без учёта регистра и пробелов."""
        matcher = IdentityMatcher("Anna.Smith@Example.com")

        assert matcher.matches(_target(owner_identity=" anna.smith@example.com ")) is True
        assert matcher.matches(_target(owner_identity="other@example.com")) is False

    def test_empty_identity_matches_nothing(self) -> None:
        """Пустой адрес ни с чем не совпадает, даже с пустым владельцем."""
        assert IdentityMatcher("").matches(_target(owner_identity=None)) is False
        assert IdentityMatcher("").matches(_target(owner_identity="")) is False


class TestCorrelationMatcher:
    """Тесты для CorrelationMatcher."""

    def test_matches_booking_id(self) -> None:
        """Совпадение по идентификатору бронирования."""
        matcher = CorrelationMatcher("b-1")

        assert matcher.matches(_target(correlation_id="b-1")) is True
        assert matcher.matches(_target(correlation_id="b-2")) is False
        assert matcher.matches(_target()) is False

    def test_target_without_attribute(self) -> None:
        """Объект без correlation_id не совпадает."""
        assert CorrelationMatcher("b-1").matches(object()) is False


class TestAnyOf:
    """Тесты для AnyOf."""

    def test_of_skips_none(self) -> None:
        """None-элементы отбрасываются."""
        matcher = AnyOf.of(RoleMatcher(SubscriberRole.OPERATOR), None)
        assert len(matcher.matchers) == 1

    def test_empty_matches_nothing(self) -> None:
        """Пустой AnyOf ни с чем не совпадает."""
        assert AnyOf.of().matches(_target(role=SubscriberRole.OPERATOR)) is False

    def test_booking_owner_matcher(self) -> None:
        """Оператор, владелец по email или вкладка бронирования."""
        matcher = booking_owner_matcher("b-1", "anna@example.com")

        assert matcher.matches(_target(role=SubscriberRole.OPERATOR)) is True
        assert matcher.matches(_target(role=SubscriberRole.CLIENT, owner_identity="ANNA@example.com")) is True
        assert matcher.matches(_target(role=SubscriberRole.CLIENT, correlation_id="b-1")) is True
        assert matcher.matches(_target(role=SubscriberRole.CLIENT, owner_identity="bob@example.com")) is False

    def test_booking_owner_matcher_without_email(self) -> None:
        """Без email клиента остаются операторы и вкладка бронирования."""
        matcher = booking_owner_matcher("b-1", None)

        assert len(matcher.matchers) == 2
        assert matcher.matches(_target(role=SubscriberRole.CLIENT)) is False
