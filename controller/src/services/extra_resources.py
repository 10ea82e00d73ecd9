"""
Render user supplied extra resource templates.
"""

import logging
from typing import Any, Dict

import yaml
from jinja2 import StrictUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment

from controller.src.models.site import WebSite

logger = logging.getLogger(__name__)

# Only {{ }} substitution is live. NUL cannot occur in YAML text, so block
# and comment tags never match and "{%" / "{#" pass through untouched.
_env = SandboxedEnvironment(
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
    block_start_string="\x00{%",
    block_end_string="%}\x00",
    comment_start_string="\x00{#",
    comment_end_string="#}\x00",
)
_env.globals.clear()
_env.filters.clear()
_env.tests.clear()

class ExtraResourceError(Exception):
    """Raised when an extra resource template cannot be rendered or parsed."""
    pass

def render_extra_resource(template_text: str, site: WebSite) -> Dict[str, Any]:
    """
    Render template_text for site and parse it into one object.

    The template sees ResourceName and ResourceNamespace. The returned
    object always lives in the site's namespace, whatever the template says.
    """
    try:
        rendered = _env.from_string(template_text).render(
            ResourceName=site.name,
            ResourceNamespace=site.namespace,
        )
    except TemplateError as e:
        raise ExtraResourceError(f"Failed to render extra resource template: {e}") from e

    try:
        documents = [doc for doc in yaml.safe_load_all(rendered) if doc is not None]
    except yaml.YAMLError as e:
        raise ExtraResourceError(f"Invalid YAML in extra resource: {e}") from e

    if len(documents) != 1:
        raise ExtraResourceError(f"Extra resource must contain exactly one object, got {len(documents)}")

    obj = documents[0]
    if not isinstance(obj, dict):
        raise ExtraResourceError("Extra resource must be a mapping")

    for field in ("apiVersion", "kind"):
        if not isinstance(obj.get(field), str) or not obj[field]:
            raise ExtraResourceError(f"Extra resource missing '{field}'")

    metadata = obj.get("metadata")
    if not isinstance(metadata, dict) or not metadata.get("name"):
        raise ExtraResourceError("Extra resource missing 'metadata.name'")

    metadata["namespace"] = site.namespace
    return obj
