"""Gateway dependencies.

Providers are built once from settings; tests swap them through
``app.dependency_overrides``.
"""
from functools import lru_cache

from .services.notifications import NotificationGateway, build_notifier
from .services.rewrite import RewriteGateway, build_rewriter
from .settings.config import settings


@lru_cache(maxsize=1)
def get_notifier() -> NotificationGateway:
    return build_notifier(settings)


@lru_cache(maxsize=1)
def get_rewriter() -> RewriteGateway:
    return build_rewriter(settings)
