"""
Field mapping and dedup-key derivation.

Converts one raw API item into the flat data dict handed to an output, plus
the ordered list of dedup keys for it. No I/O here; SyncService drives it.

A mapping table maps target field -> dot-path into the item:

    {"subject": "payload.headers.Subject", "snippet": "snippet"}

Every target field is always present in the result; unresolved paths map to
None rather than raising.
"""
import re
from typing import Any, Dict, List, Optional

from pipesync.sync.resolver import resolve, stringify

_KEY_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def apply_mapping(item: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    return {target: resolve(item, path) for target, path in mapping.items()}


def extract_id(item: Dict[str, Any], id_field: str) -> Optional[str]:
    """Resolve an identifier field to its string form, or None."""
    value = resolve(item, id_field)
    if value is None:
        return None
    return stringify(value)


def resolve_natural_key(template: str, data: Dict[str, Any]) -> Optional[str]:
    """Fill a natural-key template ("person:{email}") from mapped data.

    Returns None when the key should be dropped: a placeholder did not
    resolve, the result is empty, or it carries an empty segment (a
    trailing ":" or a "::").
    """
    missing = False

    def _sub(match: "re.Match[str]") -> str:
        nonlocal missing
        value = data.get(match.group(1))
        if value is None:
            missing = True
            return ""
        return stringify(value)

    resolved = _KEY_PLACEHOLDER.sub(_sub, template)
    if missing or not resolved:
        return None
    if ":" in resolved and (resolved.endswith(":") or "::" in resolved):
        return None
    return resolved


def build_keys(
    system: str,
    external_id: str,
    natural_keys: Optional[List[str]],
    data: Dict[str, Any],
) -> List[str]:
    """Dedup keys for one record; the external ref key always comes first."""
    keys = [f"{system}:{external_id}"]
    for template in natural_keys or []:
        key = resolve_natural_key(template, data)
        if key is not None and key not in keys:
            keys.append(key)
    return keys
