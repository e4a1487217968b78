"""Scope keys: which purchasable option a design, quote or purchase refers to.

A scope key is the selected variant id for products, the selected package id
for services, and ``"custom"`` when nothing (or nothing applicable) is
selected. Every other workflow component groups records by this key, so
resolution is pure and total: equivalent selections always give the same key.
"""

from __future__ import annotations

import uuid

from src.exceptions import NotFoundException, ValidationException
from src.models.enums import ItemKind
from src.modules.workflow.catalog import ItemSnapshot
from src.modules.workflow.constants import CUSTOM_SCOPE

OptionId = uuid.UUID | str | None


def normalize_option_id(option_id: OptionId) -> str | None:
    """Canonical string form of an option id, ``None`` for absent or blank ids."""
    if option_id is None:
        return None
    text = str(option_id).strip().lower()
    return text or None


def resolve_scope_key(
    item_kind: ItemKind | str,
    variant_id: OptionId = None,
    package_id: OptionId = None,
) -> str:
    """Scope key for an option selection.

    The id that does not apply to the item kind is ignored; use
    :func:`validate_option_selection` to reject it instead.
    """
    kind = ItemKind(item_kind)
    if kind is ItemKind.PRODUCT:
        selected = normalize_option_id(variant_id)
    else:
        selected = normalize_option_id(package_id)
    return selected or CUSTOM_SCOPE


def validate_option_selection(
    item: ItemSnapshot,
    variant_id: OptionId = None,
    package_id: OptionId = None,
) -> str:
    """Resolve a selection against the item and return its scope key.

    Raises ValidationException for a package on a product or a variant on a
    service, and NotFoundException for an option the item does not have.
    """
    if item.kind is ItemKind.PRODUCT and normalize_option_id(package_id):
        raise ValidationException(
            "Packages can only be selected for services",
            context={"item_id": item.id, "item_kind": item.kind},
        )
    if item.kind is ItemKind.SERVICE and normalize_option_id(variant_id):
        raise ValidationException(
            "Variants can only be selected for products",
            context={"item_id": item.id, "item_kind": item.kind},
        )
    scope_key = resolve_scope_key(item.kind, variant_id=variant_id, package_id=package_id)
    return validate_scope_key(item, scope_key)


def validate_scope_key(item: ItemSnapshot, scope_key: str) -> str:
    """Normalize an explicit scope key and make sure the item owns it."""
    normalized = normalize_option_id(scope_key) or CUSTOM_SCOPE
    if normalized != CUSTOM_SCOPE and item.find_option(normalized) is None:
        raise NotFoundException(
            f"Option {normalized} does not belong to item {item.id}",
            context={"item_id": item.id, "scope_key": normalized},
        )
    return normalized


def resolve_requested_scope(
    item: ItemSnapshot,
    scope_key: str | None = None,
    variant_id: OptionId = None,
    package_id: OptionId = None,
) -> str:
    """Scope for an API request that may carry a scope key or an option id.

    An explicit scope key wins; when option ids are sent as well they must
    resolve to the same key.
    """
    from_selection = validate_option_selection(item, variant_id=variant_id, package_id=package_id)
    if normalize_option_id(scope_key) is None:
        return from_selection
    explicit = validate_scope_key(item, scope_key)
    has_selection = normalize_option_id(variant_id) or normalize_option_id(package_id)
    if has_selection and explicit != from_selection:
        raise ValidationException(
            "scope_key does not match the selected option",
            context={"scope_key": explicit, "selected": from_selection},
        )
    return explicit
