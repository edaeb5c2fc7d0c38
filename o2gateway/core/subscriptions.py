"""
O2 Gateway — Subscription Store & Polling Advisory
===================================================
In-memory O2-IMS subscription CRUD and the polling recommendation used by
backends that have no native change notification.

The store is owned by exactly one adapter instance, guarded by a
read/write lock, and cleared when the adapter is closed. Nothing is
persisted; higher layers add durable storage when required.

Usage:
    store = SubscriptionStore(backend="dtias")
    sub = store.create(Subscription(callback="https://smo/notify"))
    store.get(sub.subscription_id)
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass

from o2gateway.core.concurrency import ReadWriteLock
from o2gateway.core.exceptions import (
    AlreadyExistsError,
    InvalidArgumentError,
    NotFoundError,
)
from o2gateway.core.logging import get_logger
from o2gateway.models.ims import Subscription

logger = get_logger(__name__)


class SubscriptionStore:
    """Adapter-local subscription map with read/write locking."""

    def __init__(self, backend: str, id_prefix: str = "") -> None:
        self._backend = backend
        self._id_prefix = id_prefix
        self._lock = ReadWriteLock()
        self._subscriptions: dict[str, Subscription] = {}

    def _new_id(self) -> str:
        return f"{self._id_prefix}{uuid.uuid4()}"

    def _require_callback(self, sub: Subscription, operation: str) -> None:
        if not sub.callback:
            raise InvalidArgumentError(
                "callback URL is required",
                backend=self._backend,
                operation=operation,
                entity_id=sub.subscription_id or None,
            )

    def create(self, sub: Subscription) -> Subscription:
        """
        Store a new subscription.

        A missing identifier is generated. A caller-supplied identifier
        that already exists raises ``AlreadyExistsError`` and leaves the
        stored entry untouched.
        """
        self._require_callback(sub, "create_subscription")
        subscription_id = sub.subscription_id or self._new_id()
        stored = dataclasses.replace(sub, subscription_id=subscription_id)

        with self._lock.write():
            if subscription_id in self._subscriptions:
                raise AlreadyExistsError(
                    "subscription already exists",
                    backend=self._backend,
                    operation="create_subscription",
                    entity_id=subscription_id,
                )
            self._subscriptions[subscription_id] = stored

        logger.info(
            "subscription.created",
            backend=self._backend,
            subscription_id=subscription_id,
            callback=stored.callback,
        )
        return stored

    def get(self, subscription_id: str) -> Subscription:
        with self._lock.read():
            sub = self._subscriptions.get(subscription_id)
        if sub is None:
            raise NotFoundError(
                "subscription not found",
                backend=self._backend,
                operation="get_subscription",
                entity_id=subscription_id,
            )
        return sub

    def update(self, subscription_id: str, sub: Subscription) -> Subscription:
        """Replace callback, consumer id and filter of an existing subscription."""
        self._require_callback(sub, "update_subscription")
        updated = dataclasses.replace(sub, subscription_id=subscription_id)

        with self._lock.write():
            existing = self._subscriptions.get(subscription_id)
            if existing is None:
                raise NotFoundError(
                    "subscription not found",
                    backend=self._backend,
                    operation="update_subscription",
                    entity_id=subscription_id,
                )
            self._subscriptions[subscription_id] = updated

        logger.info(
            "subscription.updated",
            backend=self._backend,
            subscription_id=subscription_id,
            old_callback=existing.callback,
            new_callback=updated.callback,
        )
        return updated

    def delete(self, subscription_id: str) -> None:
        with self._lock.write():
            if self._subscriptions.pop(subscription_id, None) is None:
                raise NotFoundError(
                    "subscription not found",
                    backend=self._backend,
                    operation="delete_subscription",
                    entity_id=subscription_id,
                )
        logger.info(
            "subscription.deleted",
            backend=self._backend,
            subscription_id=subscription_id,
        )

    def list(self) -> list[Subscription]:
        with self._lock.read():
            return list(self._subscriptions.values())

    def clear(self) -> None:
        with self._lock.write():
            self._subscriptions.clear()

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._subscriptions)


# ── Polling Advisory ────────────────────────────────────────────────────


@dataclass(frozen=True)
class PollingEntity:
    """Polling guidance for one entity category."""

    category: str
    interval_seconds: int
    fields_to_diff: tuple[str, ...] = ()


@dataclass(frozen=True)
class PollingRecommendation:
    """
    Advisory substitute for native change notification.

    Tells a caller how often to poll each entity category, which native
    fields to diff between polls, and how to keep polling cheap.
    """

    backend: str
    entities: tuple[PollingEntity, ...]
    optimization_tips: tuple[str, ...] = ()

    def interval_for(self, category: str) -> int | None:
        for entity in self.entities:
            if entity.category == category:
                return entity.interval_seconds
        return None

    def fields_for(self, category: str) -> tuple[str, ...]:
        for entity in self.entities:
            if entity.category == category:
                return entity.fields_to_diff
        return ()


DEFAULT_POLLING_TIPS: tuple[str, ...] = (
    "Use filter parameters to reduce API response sizes",
    "Store ETag or Last-Modified headers to detect changes efficiently",
    "Implement exponential backoff for API rate limiting",
    "Cache resource metadata and only query changed resources",
    "Keep the previously observed state to diff against on the next poll",
)
