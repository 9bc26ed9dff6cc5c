"""Turn a host-rendered action subform into a structured field schema.

The host renders each action's parameters as arbitrary HTML. Rather than
re-implementing that rendering, the fragment is parsed (never executed) and
every user-facing control becomes a ``FieldSchema``. Transport fields used by
the host's own subform protocol are dropped.
"""

from __future__ import annotations

import logging

from lxml import etree
from lxml import html as lxml_html

from massive_action_api.api.schemas.fields import FieldOption, FieldSchema
from massive_action_api.core.errors import SchemaDerivationError

logger = logging.getLogger(__name__)

CONTROL_TAGS = ("input", "select", "textarea")
IGNORED_INPUT_TYPES = frozenset({"submit", "button", "hidden"})
INTERNAL_NAMES = frozenset(
    {"action", "container", "is_deleted", "_glpi_csrf_token", "sub_form"}
)
INTERNAL_PREFIXES = ("actions[", "action_filter[", "items[", "initial_items[")
DEFAULT_CHECKED_VALUE = "1"


def is_internal_name(name: str | None) -> bool:
    """Whether ``name`` is host plumbing rather than user data."""
    if not name:
        return True
    return name in INTERNAL_NAMES or name.startswith(INTERNAL_PREFIXES)


def extract_schema(html_fragment: str) -> list[FieldSchema]:
    """Parse ``html_fragment`` and return its user-facing fields.

    Inputs come first, then selects, then textareas, each group in document
    order. Fields are deduplicated by name over that sequence, first
    occurrence wins; this collapses a radio group into its first button.
    """
    if not html_fragment or not html_fragment.strip():
        return []
    root = _parse(html_fragment)

    fields: list[FieldSchema] = []
    seen: set[str] = set()
    for tag in CONTROL_TAGS:
        for element in root.iter(tag):
            field = _field_for(root, element)
            if field is None or field.name in seen:
                continue
            seen.add(field.name)
            fields.append(field)
    logger.debug(f"Derived {len(fields)} field(s) from subform")
    return fields


def _parse(html_fragment: str) -> etree._Element:
    try:
        return lxml_html.fragment_fromstring(html_fragment, create_parent="div")
    except (etree.ParserError, ValueError) as exc:
        raise SchemaDerivationError(f"Unparseable subform HTML: {exc}") from exc


def _field_for(root: etree._Element, element: etree._Element) -> FieldSchema | None:
    name = element.get("name")
    if is_internal_name(name):
        return None

    tag = element.tag
    label = _find_label(root, element) or name
    required = element.get("required") is not None

    if tag == "select":
        return _select_field(element, name, label, required)

    if tag == "textarea":
        return FieldSchema(
            name=name,
            label=label,
            type="textarea",
            required=required,
            default=element.text_content(),
        )

    input_type = (element.get("type") or "text").strip().lower()
    if input_type in IGNORED_INPUT_TYPES:
        return None
    if input_type in ("checkbox", "radio"):
        return FieldSchema(
            name=name,
            label=label,
            type=input_type,
            required=required,
            default=element.get("checked") is not None,
            value=element.get("value") or DEFAULT_CHECKED_VALUE,
        )
    return FieldSchema(
        name=name,
        label=label,
        type=input_type,
        required=required,
        default=element.get("value") or "",
    )


def _select_field(
    element: etree._Element, name: str, label: str, required: bool
) -> FieldSchema:
    options = []
    for option in element.iter("option"):
        text = option.text_content().strip()
        value = option.get("value")
        options.append(
            FieldOption(
                value=value if value is not None else text,
                label=text,
                selected=option.get("selected") is not None,
            )
        )
    multiple = element.get("multiple") is not None
    selected = [opt.value for opt in options if opt.selected]

    if multiple:
        default: str | list[str] = selected
    elif selected:
        default = selected[0]
    else:
        default = options[0].value if options else ""

    return FieldSchema(
        name=name,
        label=label,
        type="select",
        required=required,
        default=default,
        options=options,
        multiple=multiple,
    )


def _find_label(root: etree._Element, control: etree._Element) -> str:
    control_id = control.get("id")
    if control_id:
        for label in root.iter("label"):
            if label.get("for") == control_id:
                text = _label_text(label)
                if text:
                    return text
                break

    # Walk back through preceding siblings, then up through ancestors
    node = control
    while node is not None and node is not root:
        if node.tag == "label":
            return _label_text(node)
        previous = _previous_element(node)
        node = previous if previous is not None else node.getparent()
    return ""


def _label_text(label: etree._Element) -> str:
    """Label's own text nodes, or its full text when it has none."""
    own = [label.text or ""] + [child.tail or "" for child in label]
    text = "".join(own).strip()
    return text or label.text_content().strip()


def _previous_element(node: etree._Element) -> etree._Element | None:
    sibling = node.getprevious()
    while sibling is not None and not isinstance(sibling.tag, str):
        sibling = sibling.getprevious()
    return sibling
