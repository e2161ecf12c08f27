import json
import logging
import re
from datetime import datetime
from typing import Any, Dict

from .facts import MISSING, resolve_path

logger = logging.getLogger(__name__)

NAMESPACES = frozenset({"event", "device", "area", "location", "connector", "schedule"})

_TOKEN_RE = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_PATH_RE = re.compile(r"^[A-Za-z_]\w*(\.[\w\-]+)+$")


def _stringify(value: Any) -> str:
    if value is MISSING or value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class TemplateResolver:
    """
    Substitutes `{{namespace.path}}` tokens. Tokens with a valid shape but an
    unknown namespace or path become an empty string; text that does not fit
    the grammar is logged and left as written.
    """

    def render(self, value: Any, facts: Dict[str, Any]) -> Any:
        if isinstance(value, str):
            return self.render_string(value, facts)
        if isinstance(value, dict):
            return {key: self.render(item, facts) for key, item in value.items()}
        if isinstance(value, list):
            return [self.render(item, facts) for item in value]
        return value

    def render_string(self, template: str, facts: Dict[str, Any]) -> str:
        if "{{" not in template:
            return template

        def _replace(match: re.Match) -> str:
            expression = match.group(1).strip()
            if not _PATH_RE.match(expression):
                logger.warning("Malformed template token %r left as-is", match.group(0))
                return match.group(0)
            namespace = expression.split(".", 1)[0]
            if namespace not in NAMESPACES:
                return ""
            return _stringify(resolve_path(facts, expression))

        rendered = _TOKEN_RE.sub(_replace, template)
        if "{{" in _TOKEN_RE.sub("", template):
            logger.warning("Unterminated template token in %r", template)
        return rendered
