"""``SuppressMessage`` attribute reader over tree-sitter C# syntax nodes.

Only constant string arguments are understood: regular, verbatim and raw
literals, parenthesized or joined with ``+``. Anything else (``nameof``,
interpolation, constants) reads as no value.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models import MetricIdentifier
from ..normalizer import normalize_fully_qualified_method_name, normalize_type_name
from .syntax import Node, child_of_type, compact_name, node_text

ATTRIBUTE_NAMES = frozenset({"SuppressMessage", "SuppressMessageAttribute"})

# Roslyn rules that correspond to a structural metric
RULE_METRIC_MAP: Dict[str, MetricIdentifier] = {
    "CA1505": MetricIdentifier.ROSLYN_MAINTAINABILITY_INDEX,
    "CA1502": MetricIdentifier.ROSLYN_CYCLOMATIC_COMPLEXITY,
    "CA1506": MetricIdentifier.ROSLYN_CLASS_COUPLING,
    "CA1501": MetricIdentifier.ROSLYN_DEPTH_OF_INHERITANCE,
}

TARGET_SCOPES = frozenset({"type", "member"})

GLOBAL_TARGETS = frozenset({"assembly", "module"})

_ARITY_RE = re.compile(r"`\d+")

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}


def _decode_regular(body: str) -> str:
    parts: List[str] = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            escaped = body[i + 1]
            if escaped in "ux":
                digits = re.match(r"[0-9A-Fa-f]{1,4}", body[i + 2 : i + 6])
                if digits and (escaped == "x" or len(digits.group()) == 4):
                    parts.append(chr(int(digits.group(), 16)))
                    i += 2 + len(digits.group())
                    continue
            parts.append(_ESCAPES.get(escaped, escaped))
            i += 2
            continue
        parts.append(ch)
        i += 1
    return "".join(parts)


def _dedent_raw(raw: str) -> str:
    if "\n" not in raw:
        return raw
    lines = raw.split("\n")
    if lines and not lines[0].strip():
        lines = lines[1:]
    indent = ""
    if lines and not lines[-1].strip():
        indent = lines[-1]
        lines = lines[:-1]
    return "\n".join(line[len(indent) :] if line.startswith(indent) else line for line in lines)


def string_value(node: Optional[Node]) -> Optional[str]:
    """Value of a single string literal node, else None."""
    if node is None:
        return None
    text = node_text(node).strip()
    if text.endswith("u8"):
        text = text[:-2]
    if node.type == "string_literal":
        return _decode_regular(text[1:-1]) if len(text) >= 2 else None
    if node.type == "verbatim_string_literal":
        start = text.find('"')
        return text[start + 1 : -1].replace('""', '"') if start >= 0 else None
    if node.type == "raw_string_literal":
        run = len(text) - len(text.lstrip('"'))
        if run < 3 or len(text) < 2 * run:
            return None
        return _dedent_raw(text[run:-run].replace("\r\n", "\n"))
    return None


def _inner_expression(node: Node) -> Optional[Node]:
    named = [child for child in node.named_children if child.type != "comment"]
    return named[0] if len(named) == 1 else None


def _collect_concatenation(node: Optional[Node], parts: List[str]) -> bool:
    if node is None:
        return False
    if node.type == "parenthesized_expression":
        return _collect_concatenation(_inner_expression(node), parts)
    if node.type == "binary_expression":
        operator = node.child_by_field_name("operator")
        if operator is None or operator.type != "+":
            return False
        return _collect_concatenation(
            node.child_by_field_name("left"), parts
        ) and _collect_concatenation(node.child_by_field_name("right"), parts)
    value = string_value(node)
    if value is None:
        return False
    parts.append(value)
    return True


def concatenated_string(node: Optional[Node]) -> Optional[str]:
    """Fold ``"a" + ("b" + "c")`` into one string; None for anything else."""
    parts: List[str] = []
    if not _collect_concatenation(node, parts):
        return None
    return "".join(parts) or None


@dataclass
class AttributeUsage:
    """One attribute inside a ``[...]`` section, arguments kept as syntax nodes."""

    name: str
    target: Optional[str] = None  # "assembly", "module", "return", ...
    positional: List[Node] = field(default_factory=list)
    named: Dict[str, Node] = field(default_factory=dict)
    line: int = 0

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1].rsplit("::", 1)[-1]

    @property
    def is_suppress_message(self) -> bool:
        return self.simple_name in ATTRIBUTE_NAMES

    @property
    def is_global(self) -> bool:
        return self.target in GLOBAL_TARGETS


def attribute_target(section: Optional[Node]) -> Optional[str]:
    """Target of an attribute section (``[assembly: ...]`` gives ``assembly``)."""
    if section is None:
        return None
    specifier = child_of_type(section, "attribute_target_specifier")
    if specifier is not None:
        return node_text(specifier).replace(":", "").strip() or None
    if section.type.startswith("global_attribute"):
        for child in section.children:
            if child.type in GLOBAL_TARGETS:
                return child.type
        return "assembly"
    return None


def _split_argument(argument: Node):
    """``(name, expression)`` for ``Name = expr``; ``(None, expression)`` otherwise."""
    named = [child for child in argument.named_children if child.type != "comment"]
    if not named:
        return None, None
    expression = named[-1]
    first = named[0]
    if first.type == "name_equals":
        return node_text(first).replace("=", "").strip().lstrip("@"), expression
    if (
        len(named) > 1
        and first.type == "identifier"
        and any(child.type == "=" for child in argument.children)
    ):
        return node_text(first).lstrip("@"), expression
    if expression.type == "assignment_expression":
        left = expression.child_by_field_name("left")
        if left is not None and left.type == "identifier":
            return node_text(left).lstrip("@"), expression.child_by_field_name("right")
    # name_colon arguments are positional parameters passed by name
    return None, expression


def read_attribute(node: Node) -> AttributeUsage:
    """Build an ``AttributeUsage`` from an ``attribute`` syntax node."""
    name = compact_name(node.child_by_field_name("name"))
    usage = AttributeUsage(
        name=name,
        target=attribute_target(node.parent),
        line=node.start_point[0] + 1,
    )
    arguments = child_of_type(node, "attribute_argument_list")
    if arguments is None:
        return usage
    for argument in arguments.named_children:
        if argument.type != "attribute_argument":
            continue
        key, expression = _split_argument(argument)
        if expression is None:
            continue
        if key is None:
            usage.positional.append(expression)
        else:
            usage.named[key] = expression
    return usage


def is_accepted_category(category: Optional[str]) -> bool:
    if not category or not category.strip():
        return False
    if category.lower().startswith("microsoft."):
        return True
    if category.lower() == "style":
        return True
    return MetricIdentifier.from_name(category) is not None


def rule_id_from_check_id(check_id: str) -> str:
    """``CA1506:AvoidExcessiveClassCoupling`` gives ``CA1506``."""
    colon = check_id.find(":")
    return check_id[:colon].strip() if colon > 0 else check_id.strip()


def map_rule_to_metric(rule_id: Optional[str]) -> Optional[MetricIdentifier]:
    if not rule_id or not rule_id.strip():
        return None
    return RULE_METRIC_MAP.get(rule_id_from_check_id(rule_id).upper())


@dataclass(frozen=True)
class SuppressMessage:
    """A validated ``SuppressMessage`` attribute."""

    category: str
    rule_id: str
    justification: Optional[str] = None
    scope: Optional[str] = None
    target: Optional[str] = None


def read_suppress_message(usage: AttributeUsage) -> Optional[SuppressMessage]:
    """Validate one attribute usage; None if it is not a usable suppression."""
    if not usage.is_suppress_message or len(usage.positional) < 2:
        return None

    category = string_value(usage.positional[0])
    if not is_accepted_category(category):
        return None

    check_id = string_value(usage.positional[1])
    if not check_id or not check_id.strip():
        return None
    rule_id = rule_id_from_check_id(check_id)
    if not rule_id:
        return None

    justification = None
    if "Justification" in usage.named:
        justification = concatenated_string(usage.named["Justification"])

    scope = string_value(usage.named.get("Scope"))
    target = string_value(usage.named.get("Target"))
    return SuppressMessage(category, rule_id, justification, scope, target)


def normalize_target(target: Optional[str]) -> Optional[str]:
    """FQN for a ``~T:``/``~M:`` documentation id; None for any other form.

    ``~M:NS.Outer+Inner.Run(System.Int32)`` gives ``NS.Outer.Inner.Run(...)``.
    """
    if not target or not target.strip():
        return None
    text = target.strip()
    if len(text) < 4 or not text.startswith("~") or text[2] != ":":
        return None

    prefix = text[1].upper()
    body = _ARITY_RE.sub("", text[3:].replace("+", ".")).strip()
    if not body:
        return None

    if prefix == "M":
        body = body.replace(".#ctor", "..ctor").replace(".#cctor", "..cctor")
        if "(" not in body:
            body += "(...)"
        return normalize_fully_qualified_method_name(body)
    if prefix == "T":
        return normalize_type_name(body)
    return None


def resolve_global_target(message: SuppressMessage) -> Optional[str]:
    """Symbol named by an assembly-level suppression with an explicit scope."""
    if not message.scope or message.scope.strip().lower() not in TARGET_SCOPES:
        return None
    return normalize_target(message.target)
