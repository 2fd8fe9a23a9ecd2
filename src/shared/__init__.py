# src/shared/__init__.py
"""
Общий код сервиса уведомлений.

Модули:
- models: Pydantic-модели домена и ответов API
"""

__all__: list[str] = []
