"""Tests for extra resource templating."""

import pytest
from controller.src.models.site import parse_website
from controller.src.services.extra_resources import ExtraResourceError, render_extra_resource

INGRESS = """
apiVersion: networking.k8s.io/v1
kind: Ingress
metadata:
  name: {{ ResourceName }}
  namespace: somewhere-else
spec:
  rules:
  - host: {{ ResourceName }}.{{ ResourceNamespace }}.example.com
"""

def test_render_substitutes_and_forces_namespace(site_factory):
    site = parse_website(site_factory())

    obj = render_extra_resource(INGRESS, site)

    assert obj["kind"] == "Ingress"
    assert obj["metadata"]["name"] == "mysite"
    assert obj["metadata"]["namespace"] == "test"
    assert obj["spec"]["rules"][0]["host"] == "mysite.test.example.com"

def test_render_undefined_variable(site_factory):
    site = parse_website(site_factory())

    with pytest.raises(ExtraResourceError):
        render_extra_resource("apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: {{ Missing }}\n", site)

def test_render_rejects_multiple_documents(site_factory):
    site = parse_website(site_factory())
    text = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: a\n---\napiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: b\n"

    with pytest.raises(ExtraResourceError) as exc_info:
        render_extra_resource(text, site)
    assert "exactly one object" in str(exc_info.value)

def test_render_requires_name(site_factory):
    site = parse_website(site_factory())

    with pytest.raises(ExtraResourceError):
        render_extra_resource("apiVersion: v1\nkind: ConfigMap\nmetadata: {}\n", site)

def test_render_invalid_yaml(site_factory):
    site = parse_website(site_factory())

    with pytest.raises(ExtraResourceError):
        render_extra_resource("apiVersion: [v1\n", site)

def test_render_cannot_reach_python_internals(site_factory):
    site = parse_website(site_factory())
    text = (
        "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: x\ndata:\n"
        "  out: \"{{ cycler.__init__.__globals__.os.popen('id -u').read() }}\"\n"
    )

    with pytest.raises(ExtraResourceError):
        render_extra_resource(text, site)

def test_render_blocks_dunder_access_on_variables(site_factory):
    site = parse_website(site_factory())
    text = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: \"{{ ResourceName.__class__.__mro__ }}\"\n"

    with pytest.raises(ExtraResourceError):
        render_extra_resource(text, site)

def test_render_leaves_block_and_comment_syntax_alone(site_factory):
    site = parse_website(site_factory())
    text = (
        "apiVersion: v1\n"
        "kind: ConfigMap\n"
        "metadata:\n"
        "  name: {{ ResourceName }}-scripts\n"
        "data:\n"
        "  count.sh: |\n"
        "    n=${#items[@]}\n"
        "    echo '{% raw %} {# not a comment #}'\n"
    )

    obj = render_extra_resource(text, site)

    assert obj["metadata"]["name"] == "mysite-scripts"
    assert obj["data"]["count.sh"] == "n=${#items[@]}\necho '{% raw %} {# not a comment #}'\n"
