"""
Idempotent create-or-update of child resources with ownership stamping.
"""

import copy
import logging
from typing import Any, Callable, Dict

from controller.src.models.result import OperationResult

logger = logging.getLogger(__name__)

class AlreadyOwnedError(Exception):
    """Raised when a child is already controlled by a different owner."""
    pass

def object_skeleton(api_version: str, kind: str, namespace: str, name: str) -> Dict[str, Any]:
    return {
        "apiVersion": api_version,
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace},
    }

def set_controller_reference(obj: Dict[str, Any], owner_ref: Dict[str, Any]):
    """
    Make owner_ref the controller reference of obj.

    Re-stamping the same owner is a no-op, so the call is safe on every pass.
    """
    metadata = obj.setdefault("metadata", {})
    refs = list(metadata.get("ownerReferences") or [])

    for ref in refs:
        if ref.get("controller") and ref.get("uid") != owner_ref["uid"]:
            raise AlreadyOwnedError(
                f"{obj.get('kind')} {metadata.get('namespace')}/{metadata.get('name')} "
                f"is already owned by {ref.get('kind')} {ref.get('name')}"
            )

    for index, ref in enumerate(refs):
        if ref.get("uid") == owner_ref["uid"]:
            refs[index] = dict(owner_ref)
            break
    else:
        refs.append(dict(owner_ref))
    metadata["ownerReferences"] = refs

def is_derivative(desired: Any, live: Any) -> bool:
    """
    Subset comparison: every value set in desired must be present and equal in live.

    Unset values (None, "", {} and []) in desired are ignored, as are keys
    that only live has. Non-empty lists must have the same length on both
    sides, so dropping an element from desired is detected.
    """
    if desired is None:
        return True

    if isinstance(desired, dict):
        if not desired:
            return True
        if not isinstance(live, dict):
            return False
        return all(is_derivative(value, live.get(key)) for key, value in desired.items())

    if isinstance(desired, list):
        if not desired:
            return True
        if not isinstance(live, list) or len(desired) != len(live):
            return False
        return all(is_derivative(d, l) for d, l in zip(desired, live))

    if isinstance(desired, str) and desired == "":
        return True

    return desired == live

def create_or_update(
    kube,
    obj: Dict[str, Any],
    mutate: Callable[[Dict[str, Any]], None],
    owner_ref: Dict[str, Any],
) -> OperationResult:
    """
    Converge one child object.

    obj only needs apiVersion, kind, metadata.name and metadata.namespace.
    The live object (or the skeleton when it does not exist yet) is passed
    to mutate, stamped with the owner reference and persisted only when
    something actually changed.
    """
    metadata = obj["metadata"]
    live = kube.get(obj["apiVersion"], obj["kind"], metadata["namespace"], metadata["name"])

    if live is None:
        target = copy.deepcopy(obj)
        mutate(target)
        set_controller_reference(target, owner_ref)
        kube.create(target)
        return OperationResult.CREATED

    before = copy.deepcopy(live)
    mutate(live)
    set_controller_reference(live, owner_ref)

    if live == before:
        return OperationResult.UNCHANGED

    kube.replace(live)
    return OperationResult.UPDATED
