"""Lifecycle state machine for media assets.

Transitions only touch the in-memory object; persisting the result is the
caller's job. Lifecycle governs visibility and queryability. Physical removal
of rows and their dependents is a separate concern (``MediaAssetRepository.hard_delete``).
"""
from mediahub.core.base import utcnow
from mediahub.core.errors import InvalidTransition
from mediahub.modules.assets.models import MediaAsset, AssetLifecycle

L = AssetLifecycle

VALID_NEXT: dict[AssetLifecycle, set[AssetLifecycle]] = {
    L.ACTIVE: {L.ORPHANED, L.ARCHIVED, L.PENDING_DELETE},
    L.ARCHIVED: {L.ACTIVE, L.PENDING_DELETE},
    L.ORPHANED: {L.PENDING_DELETE},
    L.PENDING_DELETE: {L.DELETED},
    L.DELETED: set(),
}

def can_transition(current: AssetLifecycle, target: AssetLifecycle) -> bool:
    return target in VALID_NEXT.get(current, set())

def _transition(asset: MediaAsset, target: AssetLifecycle, *, hide: bool) -> bool:
    """Move ``asset`` to ``target``; returns False when it was already there."""
    current = asset.lifecycle or L.ACTIVE
    if current == target:
        return False
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)
    asset.lifecycle = target
    asset.lifecycle_changed_at = utcnow()
    if hide:
        asset.is_public = False
    return True

def archive(asset: MediaAsset) -> bool:
    return _transition(asset, L.ARCHIVED, hide=True)

def restore(asset: MediaAsset) -> bool:
    # visibility stays off; the owner re-publishes explicitly
    return _transition(asset, L.ACTIVE, hide=False)

def mark_orphaned(asset: MediaAsset) -> bool:
    changed = _transition(asset, L.ORPHANED, hide=True)
    if changed:
        asset.user_id = None
    return changed

def mark_for_deletion(asset: MediaAsset) -> bool:
    return _transition(asset, L.PENDING_DELETE, hide=True)

def mark_deleted(asset: MediaAsset) -> bool:
    return _transition(asset, L.DELETED, hide=True)

TRANSITIONS = {
    "archive": archive,
    "restore": restore,
    "orphan": mark_orphaned,
    "mark-for-deletion": mark_for_deletion,
    "delete": mark_deleted,
}
