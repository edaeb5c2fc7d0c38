"""
O2 Gateway — Subscription Store Tests
======================================
Validates:
- Callback is required
- Missing ids are generated; duplicate ids are rejected without mutation
- Unknown ids raise NotFoundError
- clear() empties the store
"""

from __future__ import annotations

import pytest

from o2gateway.core.exceptions import AlreadyExistsError, InvalidArgumentError, NotFoundError
from o2gateway.core.subscriptions import PollingEntity, PollingRecommendation, SubscriptionStore
from o2gateway.models.ims import Subscription, SubscriptionFilter


@pytest.fixture
def store():
    return SubscriptionStore(backend="dtias", id_prefix="sub-")


def test_create_generates_id(store):
    sub = store.create(Subscription(callback="https://smo/notify"))

    assert sub.subscription_id.startswith("sub-")
    assert store.get(sub.subscription_id) == sub


def test_create_requires_callback(store):
    with pytest.raises(InvalidArgumentError):
        store.create(Subscription(callback=""))
    assert len(store) == 0


def test_duplicate_id_leaves_existing_untouched(store):
    store.create(Subscription(callback="https://a", subscription_id="s1"))

    with pytest.raises(AlreadyExistsError):
        store.create(Subscription(callback="https://b", subscription_id="s1"))

    assert store.get("s1").callback == "https://a"


def test_update_replaces_fields(store):
    store.create(Subscription(callback="https://a", subscription_id="s1"))
    updated = store.update(
        "s1",
        Subscription(
            callback="https://b",
            consumer_subscription_id="c-1",
            filter=SubscriptionFilter(resource_pool_id="pool-1"),
        ),
    )

    assert updated.subscription_id == "s1"
    assert store.get("s1").filter.resource_pool_id == "pool-1"


def test_unknown_ids(store):
    with pytest.raises(NotFoundError):
        store.get("missing")
    with pytest.raises(NotFoundError):
        store.update("missing", Subscription(callback="https://a"))
    with pytest.raises(NotFoundError):
        store.delete("missing")


def test_delete_and_clear(store):
    store.create(Subscription(callback="https://a", subscription_id="s1"))
    store.create(Subscription(callback="https://b", subscription_id="s2"))

    store.delete("s1")
    assert [s.subscription_id for s in store.list()] == ["s2"]

    store.clear()
    assert store.list() == []


def test_polling_recommendation_lookup():
    rec = PollingRecommendation(
        backend="aws",
        entities=(PollingEntity("resources", 30, ("State", "InstanceType")),),
    )

    assert rec.interval_for("resources") == 30
    assert rec.fields_for("resources") == ("State", "InstanceType")
    assert rec.interval_for("resource_pools") is None
    assert rec.fields_for("resource_pools") == ()
