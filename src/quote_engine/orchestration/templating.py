"""
{{placeholder}} substitution for step goals.

Rendering is single pass: substituted values are never rescanned, so the
output does not depend on variable ordering. Unknown placeholders are left
in place verbatim and reported to the caller.
"""

import json
import logging
import re
from typing import Any, Dict, List, Mapping, Tuple

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{([A-Za-z0-9_]+)\}\}")


def format_value(value: Any) -> str:
    """Convert a variable value to its goal text form."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def find_placeholders(template: str) -> List[str]:
    """Placeholder names in order of first appearance."""
    seen: Dict[str, None] = {}
    for match in PLACEHOLDER_PATTERN.finditer(template):
        seen.setdefault(match.group(1), None)
    return list(seen)


def missing_placeholders(template: str, variables: Mapping[str, Any]) -> List[str]:
    """Placeholder names with no variable to fill them."""
    return [name for name in find_placeholders(template) if name not in variables]


def render_template(template: str, variables: Mapping[str, Any]) -> Tuple[str, List[str]]:
    """
    Substitute every {{name}} that has a variable.

    Returns:
        Tuple of (rendered text, names left unresolved)
    """
    unresolved: List[str] = []

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in variables:
            return format_value(variables[name])
        if name not in unresolved:
            unresolved.append(name)
        return match.group(0)

    rendered = PLACEHOLDER_PATTERN.sub(_replace, template)
    if unresolved:
        logger.warning(f"Unresolved goal placeholders left verbatim: {', '.join(unresolved)}")
    return rendered, unresolved
