"""
Dot-path lookup into decoded JSON.

    resolve({"a": {"b": 1}}, "a.b")                      -> 1
    resolve({"items": [1, 2]}, "items")                  -> [1, 2]
    resolve({"values": {"name": [{"x": 1}]}}, "values.name.0.x") -> 1
    resolve({"a": 1}, "x.y")                             -> None

List indices are ordinary path segments. Lookups never raise: any miss,
non-container intermediate, or bad index yields None.
"""
import json
import re
from typing import Any, Dict

_URL_PLACEHOLDER = re.compile(r"\{([\w.]+)\}")


def resolve(root: Any, path: str) -> Any:
    if not isinstance(root, (dict, list)):
        return None

    current = root
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list):
            if not part.isdigit() or int(part) >= len(current):
                return None
            current = current[int(part)]
        else:
            return None
        if current is None:
            return None
    return current


def stringify(value: Any) -> str:
    """String form of a JSON value (true/false, not True/False)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        # 1.0 -> "1"
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def build_external_url(template: str, item: Dict[str, Any]) -> str:
    """Fill `{field}` placeholders in a URL template from the raw item.

    Unresolved placeholders become empty strings:
        "https://mail.google.com/mail/#inbox/{id}" -> ".../#inbox/18c2..."
    """

    def _sub(match: "re.Match[str]") -> str:
        value = resolve(item, match.group(1))
        return "" if value is None else stringify(value)

    return _URL_PLACEHOLDER.sub(_sub, template)
