"""Name and kind filters that keep unwanted symbols out of the report tree.

Pattern lists are comma or semicolon separated. A pattern holding ``*`` or
``?`` is a wildcard matched against the whole name. Plain text is an exact
match for member names and a substring match for type and assembly names.

    >>> members = NamePatternSet("ctor,cctor,*b__*", exact=True, strip_leading_dot=True)
    >>> members.matches(".ctor"), members.matches("<Run>b__0_0"), members.matches("Run")
    (True, True, False)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Pattern

from .logging_config import get_logger
from .models import CodeElementKind, MemberKind, ParsedCodeElement
from .normalizer import declaring_type_of_member, is_placeholder, simple_name

logger = get_logger(__name__)

DEFAULT_EXCLUDED_MEMBERS = "ctor,cctor,*b__*"

WILDCARD_CHARS = frozenset("*?")


def split_patterns(value: Optional[str]) -> List[str]:
    """Split a comma/semicolon separated pattern list, dropping blanks."""
    if not value:
        return []
    return [p.strip() for p in value.replace(";", ",").split(",") if p.strip()]


def wildcard_regex(pattern: str, ignore_case: bool = False) -> Pattern[str]:
    """``*`` matches any run, ``?`` one character; everything else is literal."""
    body = "".join(
        ".*" if ch == "*" else "." if ch == "?" else re.escape(ch) for ch in pattern
    )
    return re.compile(f"^{body}$", re.IGNORECASE if ignore_case else 0)


class NamePatternSet:
    """Plain names plus wildcard patterns parsed from one setting string."""

    def __init__(
        self,
        value: Optional[str] = None,
        exact: bool = False,
        ignore_case: bool = False,
        strip_leading_dot: bool = False,
    ):
        self.exact = exact
        self.ignore_case = ignore_case
        self.strip_leading_dot = strip_leading_dot
        self.plain: List[str] = []
        self.wildcards: List[Pattern[str]] = []
        self.raw = split_patterns(value)
        for pattern in self.raw:
            pattern = self._prepare(pattern)
            if not pattern:
                continue
            if WILDCARD_CHARS & set(pattern):
                self.wildcards.append(wildcard_regex(pattern, ignore_case))
            else:
                self.plain.append(pattern.casefold() if ignore_case else pattern)

    def __bool__(self) -> bool:
        return bool(self.plain or self.wildcards)

    def __repr__(self) -> str:
        return f"NamePatternSet({', '.join(self.raw)!r})"

    def _prepare(self, name: str) -> str:
        name = name.strip()
        if self.strip_leading_dot and name.startswith("."):
            name = name[1:]
        return name

    def matches(self, name: Optional[str]) -> bool:
        if not name or not self:
            return False
        name = self._prepare(name)
        if any(regex.match(name) for regex in self.wildcards):
            return True
        key = name.casefold() if self.ignore_case else name
        if self.exact:
            return key in self.plain
        return any(plain in key for plain in self.plain)


@dataclass(frozen=True)
class ElementFilters:
    """Every exclusion applied while structural elements are merged.

    Members are matched by their bare name (``.ctor`` counts as ``ctor``),
    types by FQN and assemblies by name. A member of an excluded kind is
    only dropped when no finding was attributed to it.
    """

    members: NamePatternSet
    types: NamePatternSet
    assemblies: NamePatternSet
    excluded_kinds: FrozenSet[MemberKind] = frozenset()

    @classmethod
    def create(
        cls,
        excluded_members: Optional[str] = DEFAULT_EXCLUDED_MEMBERS,
        excluded_types: Optional[str] = None,
        excluded_assemblies: Optional[str] = None,
        exclude_methods: bool = False,
        exclude_properties: bool = False,
        exclude_fields: bool = False,
        exclude_events: bool = False,
    ) -> ElementFilters:
        kinds = {
            MemberKind.METHOD: exclude_methods,
            MemberKind.PROPERTY: exclude_properties,
            MemberKind.FIELD: exclude_fields,
            MemberKind.EVENT: exclude_events,
        }
        return cls(
            members=NamePatternSet(excluded_members, exact=True, strip_leading_dot=True),
            types=NamePatternSet(excluded_types),
            assemblies=NamePatternSet(excluded_assemblies, ignore_case=True),
            excluded_kinds=frozenset(kind for kind, on in kinds.items() if on),
        )

    @classmethod
    def from_config(cls, config) -> ElementFilters:
        return cls.create(
            excluded_members=config.excluded_members,
            excluded_types=config.excluded_types,
            excluded_assemblies=config.excluded_assemblies,
            exclude_methods=config.exclude_methods,
            exclude_properties=config.exclude_properties,
            exclude_fields=config.exclude_fields,
            exclude_events=config.exclude_events,
        )

    @classmethod
    def none(cls) -> ElementFilters:
        return cls.create(excluded_members=None)

    def excludes_assembly(self, assembly_name: Optional[str]) -> bool:
        if not assembly_name or is_placeholder(assembly_name):
            return False
        return self.assemblies.matches(assembly_name)

    def excludes_type(self, type_fqn: Optional[str]) -> bool:
        if not type_fqn or is_placeholder(type_fqn):
            return False
        return self.types.matches(type_fqn)

    def excludes_member(self, member_fqn: str, name: Optional[str] = None) -> bool:
        if self.members.matches(name):
            return True
        return self.members.matches(simple_name(member_fqn))

    def excluded_by_owner(self, element: ParsedCodeElement) -> bool:
        """True when the element's assembly or declaring type is filtered out."""
        kind = element.kind
        if kind is CodeElementKind.ASSEMBLY:
            return self.excludes_assembly(element.fully_qualified_name)
        if self.excludes_assembly(element.containing_assembly_name):
            return True
        if kind is CodeElementKind.TYPE:
            return self.excludes_type(element.fully_qualified_name)
        if kind is CodeElementKind.MEMBER:
            owner = element.parent_fully_qualified_name or declaring_type_of_member(
                element.fully_qualified_name or ""
            )
            return self.excludes_type(owner)
        return False

    def excludes(self, element: ParsedCodeElement) -> bool:
        """True when a structural element must not reach the tree."""
        if self.excluded_by_owner(element):
            return True
        if element.kind is CodeElementKind.MEMBER:
            return self.excludes_member(element.fully_qualified_name or "", element.name)
        return False

    def excludes_kind(self, member_kind: Optional[MemberKind]) -> bool:
        return member_kind is not None and member_kind in self.excluded_kinds
