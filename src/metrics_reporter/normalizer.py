"""Canonical symbol names shared by all three input dialects.

Every identity comparison in the reporter is a plain string comparison of
the names produced here, so the same logical method must come out
byte-identical whether it was read from coverage XML, code-metrics XML or a
suppression attribute:

    >>> normalize_fully_qualified_method_name("NS.Type<TKey, TValue>.Method(string p)")
    'NS.Type.Method(...)'
    >>> normalize_fully_qualified_method_name("Foo.Bar.Baz(System.Object, NS.EventArgs)")
    'Foo.Bar.Baz(...)'

Generic parameter lists are dropped, parameter lists collapse to ``(...)``
and compiler-synthesized names that start with ``<`` are left alone.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

from .models import GLOBAL_NAMESPACE, SENTINELS

PARAMETER_PLACEHOLDER = "(...)"

CONSTRUCTOR_NAMES = (".ctor", ".cctor")

FINALIZER_NAME = "Finalize"

# Coverage tools write NS.Type::Method and Outer/Inner; applied in order.
COVERAGE_SEPARATORS: Tuple[Tuple[str, str], ...] = (("::", "."), ("/", "+"))

_OPERATOR_RE = re.compile(r"(?:^|[\s.])operator\b\s*([^\s(]+(?:\s+[^\s(]+)?)\s*$")
_ARITY_RE = re.compile(r"`\d+")
_OPERATOR_START_RE = re.compile(r"operator\b")


def is_placeholder(name: Optional[str]) -> bool:
    """True for sentinel tokens and any other ``<...>`` placeholder name."""
    if not name:
        return False
    stripped = name.strip()
    if stripped in SENTINELS:
        return True
    return stripped.startswith("<") and stripped.endswith(">")


def _is_identifier_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_`"


def _step_angle(text: str, index: int, angle: int) -> int:
    """Track generic bracket depth at a '<' or '>'.

    Only a '<' that follows a name, a separator or an open bracket opens a
    list. Operator tokens (``operator <``, ``operator <<``) leave the depth
    alone and a stray '>' never drives it negative.
    """
    if text[index] == ">":
        return max(angle - 1, 0)
    if index == 0:
        return angle + 1
    previous = text[index - 1]
    if _is_identifier_char(previous) or previous in ".+:" or (previous == "<" and angle > 0):
        return angle + 1
    return angle


def _find_parameter_list(text: str) -> Optional[Tuple[int, int]]:
    """Locate the outermost balanced ``(...)`` that is not inside ``<...>``.

    Returns (open_index, close_index) or None when there is no parameter
    list or it never closes.
    """
    angle = 0
    open_index = -1
    for index, ch in enumerate(text):
        if ch in "<>":
            angle = _step_angle(text, index, angle)
        elif ch == "(" and angle == 0:
            open_index = index
            break
    if open_index < 0:
        return None

    parens = 0
    angle = 0
    for index in range(open_index, len(text)):
        ch = text[index]
        if ch in "<>":
            angle = _step_angle(text, index, angle)
        elif ch == "(":
            parens += 1
        elif ch == ")":
            parens -= 1
            if parens == 0:
                return open_index, index
    return None


def _top_level_head(text: str) -> str:
    """Everything before the parameter list, or the whole text without one."""
    bounds = _find_parameter_list(text)
    if bounds is not None:
        return text[: bounds[0]]
    angle = 0
    for index, ch in enumerate(text):
        if ch in "<>":
            angle = _step_angle(text, index, angle)
        elif ch == "(" and angle == 0:
            return text[:index]
    return text


def strip_generic_arguments(name: str) -> str:
    """Remove ``<...>`` lists that follow an identifier, at any depth of the path.

    ``Outer<T>.Inner<U>`` becomes ``Outer.Inner``. A ``<`` that starts a
    segment (``Outer+<Run>d__4``) is a synthesized name and is kept. An
    unterminated list is cut off at its ``<``. Backtick arity markers go too.
    """
    result = []
    index = 0
    length = len(name)
    while index < length:
        ch = name[index]
        if ch == "<" and index > 0 and _is_identifier_char(name[index - 1]):
            depth = 0
            while index < length:
                if name[index] == "<":
                    depth += 1
                elif name[index] == ">":
                    depth -= 1
                    if depth == 0:
                        break
                index += 1
            index += 1
            continue
        if ch == "<":
            # Synthesized segment: copy through its closing bracket verbatim
            close = name.find(">", index)
            if close < 0:
                result.append(name[index:])
                break
            result.append(name[index : close + 1])
            index = close + 1
            continue
        result.append(ch)
        index += 1
    return _ARITY_RE.sub("", "".join(result))


def strip_return_type(raw: str) -> str:
    """Drop a leading return-type token such as ``System.Void`` or ``Task<int>``.

    The return type is whatever precedes the first space that sits outside
    generic brackets and before the parameter list.
    """
    text = raw.strip()
    angle = 0
    for index, ch in enumerate(text):
        if ch in "<>":
            angle = _step_angle(text, index, angle)
        elif ch == "(" and angle == 0:
            return text
        elif ch.isspace() and angle == 0:
            remainder = text[index + 1 :].lstrip()
            if not remainder or _OPERATOR_START_RE.match(remainder):
                return text
            return remainder
    return text


def normalize_method_signature(raw: Optional[str]) -> Optional[str]:
    """Collapse the parameter list of a signature to ``(...)``.

    Commas inside generic brackets never end the list. Input without a
    balanced parameter list is returned unchanged.
    """
    if raw is None or not raw.strip():
        return raw
    bounds = _find_parameter_list(raw)
    if bounds is None:
        return raw
    open_index, close_index = bounds
    return raw[:open_index] + PARAMETER_PLACEHOLDER + raw[close_index + 1 :]


def extract_method_name(raw: Optional[str]) -> Optional[str]:
    """Return the bare method name from a full signature.

    ``System.Void NS.Type::Run<T>(T value)`` gives ``Run``. Constructors,
    operators and compiler-synthesized names (``<Clone>$``) are returned
    verbatim.
    """
    if raw is None or not raw.strip():
        return raw

    text = raw.strip()
    operator = _OPERATOR_RE.search(_top_level_head(text))
    if operator is not None:
        return "operator " + operator.group(1).strip()

    head = _top_level_head(strip_return_type(text))
    where = head.find(" where ")
    if where >= 0:
        head = head[:where]
    head = head.strip().replace("::", ".")

    for ctor in CONSTRUCTOR_NAMES:
        if head == ctor or head.endswith("." + ctor):
            return ctor

    # last dot outside generic brackets
    angle = 0
    split_at = -1
    for index, ch in enumerate(head):
        if ch in "<>":
            angle = _step_angle(head, index, angle)
        elif ch == "." and angle == 0:
            split_at = index
    name = head[split_at + 1 :] if split_at >= 0 else head

    if name.startswith("<"):
        return name
    return strip_generic_arguments(name).strip()


def normalize_type_name(raw: Optional[str]) -> Optional[str]:
    """Strip generic argument lists from a type name; placeholders pass through."""
    if raw is None or not raw.strip():
        return raw
    if is_placeholder(raw):
        return raw
    return strip_generic_arguments(raw.strip()).strip()


def normalize_fully_qualified_method_name(raw: Optional[str]) -> Optional[str]:
    """Canonical FQN for a member: generics stripped from every segment, ``(...)`` params.

    ``NS.Type<T>.Method<U>(U value)`` becomes ``NS.Type.Method(...)``.
    Names without a parameter list (properties, fields) only lose generics.
    """
    if raw is None or not raw.strip():
        return raw
    text = raw.strip()
    if is_placeholder(text):
        return text

    bounds = _find_parameter_list(text)
    if bounds is None:
        return strip_generic_arguments(text).strip()

    open_index, close_index = bounds
    head = strip_generic_arguments(text[:open_index]).rstrip()
    return head + PARAMETER_PLACEHOLDER + text[close_index + 1 :]


def apply_coverage_separators(name: str) -> str:
    for old, new in COVERAGE_SEPARATORS:
        name = name.replace(old, new)
    return name


def canonical_member_name(type_fqn: str, member: str, is_static: bool = False) -> str:
    """Rename a source-style constructor or finalizer to its compiled name.

    Code metrics write ``Calculator(...)`` and ``~Calculator(...)`` where
    coverage writes ``.ctor(...)`` and ``Finalize(...)``. A static
    constructor becomes ``.cctor``. Anything else is returned unchanged.
    """
    bounds = _find_parameter_list(member)
    if bounds is None or not type_fqn:
        return member
    head = member[: bounds[0]].strip()
    type_name = re.split(r"[.+]", strip_generic_arguments(type_fqn))[-1]
    if not type_name:
        return member
    if head == type_name:
        return (".cctor" if is_static else ".ctor") + member[bounds[0] :]
    if head == "~" + type_name:
        return FINALIZER_NAME + member[bounds[0] :]
    return member


def combine_member_fqn(type_fqn: str, member_name: str, is_static: bool = False) -> str:
    """Join a declaring type and a member name into a normalized member FQN.

    Some dialects repeat the declaring type (``LoaderApp.Initialize()`` inside
    ``Rca.Loader.LoaderApp``). The repeated segments are collapsed instead of
    appended twice. Constructors come out as ``NS.Type..ctor(...)``, the
    form coverage uses.
    """
    member = normalize_fully_qualified_method_name(member_name.strip()) or ""
    if not type_fqn or is_placeholder(type_fqn):
        return member

    if member.startswith(type_fqn + "."):
        member = member[len(type_fqn) + 1 :]
    else:
        segments = [s for s in re.split(r"[.+]", type_fqn) if s]
        for start in range(len(segments)):
            prefix = ".".join(segments[start:]) + "."
            if member.startswith(prefix) and len(member) > len(prefix):
                member = member[len(prefix) :]
                break

    member = canonical_member_name(type_fqn, member, is_static)
    return f"{type_fqn}.{member}"


def namespace_of_type(type_fqn: Optional[str]) -> str:
    """Namespace part of a type FQN; nested ``+`` segments belong to the type.

    ``NS.Outer+Inner`` gives ``NS``; a type with no dots lives in ``<global>``.
    """
    if not type_fqn or is_placeholder(type_fqn):
        return GLOBAL_NAMESPACE
    outer = type_fqn.split("+", 1)[0]
    dot = outer.rfind(".")
    if dot <= 0:
        return GLOBAL_NAMESPACE
    return outer[:dot]


def declaring_type_of_member(member_fqn: str) -> Optional[str]:
    """Type FQN a member FQN hangs off, i.e. everything before the last top-level dot."""
    head = _top_level_head(member_fqn)
    for ctor in CONSTRUCTOR_NAMES:
        if head.endswith("." + ctor):
            return head[: -len(ctor) - 1] or None
    dot = head.rfind(".")
    if dot <= 0:
        return None
    return head[:dot]


def simple_name(fqn: str) -> str:
    """Last dotted segment of an FQN, ignoring any parameter list."""
    head = _top_level_head(fqn)
    for ctor in CONSTRUCTOR_NAMES:
        if head.endswith("." + ctor):
            return ctor
    return re.split(r"[.+]", head)[-1] if head else fqn
