# src/notifications/matchers.py
"""
Матчеры получателей.

Фильтр адресатов задаётся значением, а не замыканием: по роли,
по идентичности владельца (email, без учёта регистра) или по
идентификатору связанного бронирования. Один и тот же матчер
применяется и к SSE-подписчикам, и к push-подпискам: оба типа
имеют атрибуты role, owner_identity и correlation_id.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from src.common.constants import SubscriberRole


class Matcher(Protocol):
    """Протокол матчера."""

    def matches(self, target: Any) -> bool:
        ...


def _normalize_identity(value: str | None) -> str:
    return (value or "").strip().lower()


@dataclass(frozen=True)
class RoleMatcher:
    """Совпадение по роли."""
    role: SubscriberRole

    def matches(self, target: Any) -> bool:
        return getattr(target, "role", None) == self.role


@dataclass(frozen=True)
class IdentityMatcher:
    """Совпадение по владельцу (email без учёта регистра)."""
    identity: str

    def matches(self, target: Any) -> bool:
        expected = _normalize_identity(self.identity)
        if not expected:
            return False
        return _normalize_identity(getattr(target, "owner_identity", None)) == expected


@dataclass(frozen=True)
class CorrelationMatcher:
    """Совпадение по идентификатору бронирования."""
    correlation_id: str

    def matches(self, target: Any) -> bool:
        if not self.correlation_id:
            return False
        value = getattr(target, "correlation_id", None)
        return value is not None and str(value) == str(self.correlation_id)


@dataclass(frozen=True)
class AnyOf:
    """Совпадение хотя бы с одним из вложенных матчеров."""
    matchers: tuple[Matcher, ...]

    @classmethod
    def of(cls, *matchers: Matcher | None) -> AnyOf:
        """Собирает AnyOf, пропуская None."""
        return cls(tuple(m for m in matchers if m is not None))

    def matches(self, target: Any) -> bool:
        return any(m.matches(target) for m in self.matchers)


def booking_owner_matcher(booking_id: str, email: str | None) -> AnyOf:
    """Операторы, владелец бронирования по email или вкладка этого бронирования."""
    return AnyOf.of(
        RoleMatcher(SubscriberRole.OPERATOR),
        IdentityMatcher(email) if email else None,
        CorrelationMatcher(booking_id),
    )
