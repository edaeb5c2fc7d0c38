"""
O2 Gateway — Filter & Pagination Engine
========================================
Backend-agnostic predicate matching and deterministic slicing.

Adapters push predicates down to the backend query API when it has an
equivalent parameter and run everything else through this module after
the fetch. Pagination is always applied after filtering.

Rules:
- A ``None`` filter matches everything; empty filter fields are ignored.
- Labels require exact value equality for every key. A labels filter
  against an item with no label/metadata bag never matches.
- ``offset`` past the end yields an empty page; ``limit == 0`` is unbounded.

All functions are pure and safe to call concurrently.
"""

from __future__ import annotations

from typing import Callable, Iterable, Mapping, Sequence, TypeVar

from o2gateway.models.dms import DeploymentFilter, DeploymentStatus
from o2gateway.models.ims import Filter

T = TypeVar("T")


def matches_labels(
    wanted: Mapping[str, str] | None,
    actual: Mapping[str, object] | None,
) -> bool:
    """Return True when every wanted label is present with an equal value."""
    if not wanted:
        return True
    if actual is None:
        return False
    for key, value in wanted.items():
        if key not in actual or actual[key] != value:
            return False
    return True


def matches_filter(
    flt: Filter | None,
    *,
    resource_pool_id: str = "",
    resource_type_id: str = "",
    location: str = "",
    labels: Mapping[str, object] | None = None,
) -> bool:
    """Apply the inventory predicates of ``flt`` to one item's attributes."""
    if flt is None:
        return True
    if flt.resource_pool_id and flt.resource_pool_id != resource_pool_id:
        return False
    if flt.resource_type_id and flt.resource_type_id != resource_type_id:
        return False
    if flt.location and flt.location != location:
        return False
    return matches_labels(flt.labels, labels)


def matches_deployment_filter(
    flt: DeploymentFilter | None,
    *,
    namespace: str = "",
    status: DeploymentStatus | None = None,
    labels: Mapping[str, object] | None = None,
) -> bool:
    """Apply the deployment predicates of ``flt`` to one deployment."""
    if flt is None:
        return True
    if flt.namespace and flt.namespace != namespace:
        return False
    if flt.status and flt.status != status:
        return False
    return matches_labels(flt.labels, labels)


def apply_pagination(items: Sequence[T], limit: int, offset: int) -> list[T]:
    """
    Slice ``items`` to one page.

    >>> apply_pagination(list(range(10)), limit=3, offset=9)
    [9]
    >>> apply_pagination(list(range(10)), limit=3, offset=20)
    []
    """
    offset = max(offset, 0)
    if offset >= len(items):
        return []
    if limit <= 0:
        return list(items[offset:])
    return list(items[offset:offset + limit])


def paginate(items: Sequence[T], flt: Filter | DeploymentFilter | None) -> list[T]:
    """Apply the limit/offset carried by ``flt`` (all items when ``None``)."""
    if flt is None:
        return list(items)
    return apply_pagination(items, flt.limit, flt.offset)


def filter_and_paginate(
    items: Iterable[T],
    predicate: Callable[[T], bool],
    flt: Filter | DeploymentFilter | None,
) -> list[T]:
    """Keep items satisfying ``predicate``, then cut the requested page."""
    return paginate([item for item in items if predicate(item)], flt)
