"""
O2 Gateway — Filter & Pagination Tests
=======================================
Validates:
- Offset past the end yields an empty page; limit 0 is unbounded
- Pagination is applied after filtering
- Label filters require every label to match exactly
- Items without a label bag never match a label filter
"""

from __future__ import annotations

import pytest

from o2gateway.core.filtering import (
    apply_pagination,
    filter_and_paginate,
    matches_deployment_filter,
    matches_filter,
    matches_labels,
    paginate,
)
from o2gateway.models.dms import DeploymentFilter, DeploymentStatus
from o2gateway.models.ims import Filter


# ── Pagination ──────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "limit, offset, expected",
    [
        (0, 0, list(range(10))),
        (3, 0, [0, 1, 2]),
        (3, 9, [9]),
        (3, 10, []),
        (0, 7, [7, 8, 9]),
        (5, -2, [0, 1, 2, 3, 4]),
    ],
)
def test_apply_pagination(limit, offset, expected):
    assert apply_pagination(list(range(10)), limit, offset) == expected


def test_paginate_without_filter_returns_everything():
    assert paginate([1, 2, 3], None) == [1, 2, 3]


def test_pagination_happens_after_filtering():
    flt = Filter(limit=2, offset=1)
    evens = filter_and_paginate(range(10), lambda n: n % 2 == 0, flt)
    assert evens == [2, 4]


# ── Labels ──────────────────────────────────────────────────────────────


def test_labels_all_must_match():
    wanted = {"env": "prod", "tier": "edge"}
    assert matches_labels(wanted, {"env": "prod", "tier": "edge", "x": "y"})
    assert not matches_labels(wanted, {"env": "prod"})
    assert not matches_labels(wanted, {"env": "prod", "tier": "core"})


def test_labels_against_missing_bag_never_match():
    assert not matches_labels({"env": "prod"}, None)


def test_empty_label_filter_matches_anything():
    assert matches_labels({}, None)
    assert matches_labels(None, {"env": "prod"})


# ── Inventory Filter ────────────────────────────────────────────────────


def test_matches_filter_fields():
    flt = Filter(resource_pool_id="pool-a", location="dallas")
    assert matches_filter(flt, resource_pool_id="pool-a", location="dallas")
    assert not matches_filter(flt, resource_pool_id="pool-b", location="dallas")
    assert not matches_filter(flt, resource_pool_id="pool-a", location="austin")


def test_matches_filter_none():
    assert matches_filter(None, resource_pool_id="anything")


# ── Deployment Filter ───────────────────────────────────────────────────


def test_matches_deployment_filter():
    flt = DeploymentFilter(namespace="prod", status=DeploymentStatus.DEPLOYED)
    assert matches_deployment_filter(flt, namespace="prod", status=DeploymentStatus.DEPLOYED)
    assert not matches_deployment_filter(flt, namespace="dev", status=DeploymentStatus.DEPLOYED)
    assert not matches_deployment_filter(flt, namespace="prod", status=DeploymentStatus.FAILED)


def test_deployment_label_filter():
    flt = DeploymentFilter(labels={"app": "web"})
    assert matches_deployment_filter(flt, labels={"app": "web"})
    assert not matches_deployment_filter(flt, labels=None)
