"""Find-or-create with per-field merge rules.

Every webhook handler that mirrors an external record follows the same shape:
look the row up by its external key, insert it when missing, otherwise merge
the freshly received values into the stored ones. The merge is not always a
plain overwrite, so each field can carry a :class:`MergePolicy`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Type

from django.core.exceptions import FieldDoesNotExist
from django.db import IntegrityError, models, transaction

logger = logging.getLogger(__name__)


class MergePolicy(str, Enum):
    OVERWRITE = "overwrite"
    # Never null out a value resolved by an earlier delivery.
    KEEP_EXISTING_IF_NULL = "keep_existing_if_null"
    # Once true, stays true.
    STICKY_TRUE = "sticky_true"


@dataclass(frozen=True)
class UpsertResult:
    instance: models.Model
    created: bool
    changed_fields: tuple = ()


def merge_value(current: Any, incoming: Any, policy: MergePolicy) -> Any:
    if policy is MergePolicy.KEEP_EXISTING_IF_NULL:
        return current if incoming is None else incoming
    if policy is MergePolicy.STICKY_TRUE:
        return bool(current) or bool(incoming)
    return incoming


def _has_field(model: Type[models.Model], name: str) -> bool:
    try:
        model._meta.get_field(name)
    except FieldDoesNotExist:
        return False
    return True


def upsert_by_lookup(
    model: Type[models.Model],
    *,
    lookup: Mapping[str, Any],
    values: Mapping[str, Any],
    policies: Optional[Mapping[str, MergePolicy]] = None,
) -> UpsertResult:
    """Insert ``model(**lookup, **values)`` or merge ``values`` into the row matching ``lookup``.

    A concurrent insert of the same key surfaces as an ``IntegrityError``; the
    lookup is then repeated once and the values merged into the winning row.
    """

    policies = policies or {}

    for attempt in range(2):
        instance = model.objects.filter(**lookup).first()
        if instance is None:
            try:
                with transaction.atomic():
                    instance = model.objects.create(**dict(lookup), **dict(values))
            except IntegrityError:
                if attempt:
                    raise
                logger.info(
                    "Concurrent insert detected for %s %s; retrying as update.",
                    model.__name__,
                    dict(lookup),
                )
                continue
            return UpsertResult(instance=instance, created=True)

        changed: List[str] = []
        for field, incoming in values.items():
            policy = policies.get(field, MergePolicy.OVERWRITE)
            current = getattr(instance, field)
            merged = merge_value(current, incoming, policy)
            if merged != current:
                setattr(instance, field, merged)
                changed.append(field)

        if changed:
            update_fields = list(changed)
            if _has_field(model, "updated_at"):
                update_fields.append("updated_at")
            instance.save(update_fields=update_fields)

        return UpsertResult(instance=instance, created=False, changed_fields=tuple(changed))

    raise RuntimeError("unreachable")  # pragma: no cover
