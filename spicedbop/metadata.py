"""Label, annotation and cache-key conventions for operator-managed objects."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Mapping

OWNING_CLUSTER_INDEX = "owning-cluster"
OPERATOR_MANAGED_LABEL_KEY = "authzed.com/managed-by"
OPERATOR_MANAGED_LABEL_VALUE = "operator"
OWNER_LABEL_KEY = "authzed.com/cluster"
OWNER_ANNOTATION_KEY_PREFIX = "authzed.com.cluster-owner/"
COMPONENT_LABEL_KEY = "authzed.com/cluster-component"
COMPONENT_SPICEDB_LABEL_VALUE = "spicedb"
COMPONENT_MIGRATION_JOB_LABEL_VALUE = "migration-job"
COMPONENT_SERVICE_ACCOUNT_LABEL = "spicedb-serviceaccount"
COMPONENT_ROLE_LABEL = "spicedb-role"
COMPONENT_SERVICE_LABEL = "spicedb-service"
COMPONENT_ROLE_BINDING_LABEL = "spicedb-rolebinding"
SPICEDB_MIGRATION_REQUIREMENTS_KEY = "authzed.com/spicedb-migration"
SPICEDB_TARGET_MIGRATION_KEY = "authzed.com/spicedb-target-migration"
SPICEDB_SECRET_REQUIREMENTS_KEY = "authzed.com/spicedb-secret"
SPICEDB_CONFIG_KEY = "authzed.com/spicedb-configuration"
FIELD_MANAGER = "spicedb-operator"
PAUSED_CONTROLLER_SELECTOR_KEY = "authzed.com/controller-paused"

APPLY_FORCE_OWNED = {"fieldManager": FIELD_MANAGER, "force": True}
PATCH_FORCE_OWNED = {"fieldManager": FIELD_MANAGER, "force": True}


class SelectorError(ValueError):
    """Raised for a label selector that cannot be parsed or is invalid."""


class Operator(str, Enum):
    """Label selector operators."""

    EXISTS = "exists"
    DOES_NOT_EXIST = "!"
    EQUALS = "="
    DOUBLE_EQUALS = "=="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"


_NAME = r"[A-Za-z0-9]([-A-Za-z0-9_.]*[A-Za-z0-9])?"
_NAME_RE = re.compile(_NAME)
_DNS_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS_SUBDOMAIN_RE = re.compile(rf"{_DNS_LABEL}(\.{_DNS_LABEL})*")

_TOKEN = r"[^\s(),!=]+"
_SET_RE = re.compile(rf"(?P<key>{_TOKEN})\s+(?P<op>in|notin)\s*\((?P<values>[^()]*)\)")
_EQUALITY_RE = re.compile(rf"(?P<key>{_TOKEN})\s*(?P<op>!=|==|=)\s*(?P<value>[^\s(),!=]*)")
_EXISTS_RE = re.compile(rf"(?P<neg>!?)\s*(?P<key>{_TOKEN})")


def _validate_key(key: str) -> None:
    prefix, slash, name = key.rpartition("/")
    if slash:
        if "/" in prefix or not prefix or len(prefix) > 253 or not _DNS_SUBDOMAIN_RE.fullmatch(prefix):
            raise SelectorError(f"invalid label key {key!r}: bad prefix")
    if not name or len(name) > 63 or not _NAME_RE.fullmatch(name):
        raise SelectorError(f"invalid label key {key!r}")


def _validate_value(value: str) -> None:
    if value and (len(value) > 63 or not _NAME_RE.fullmatch(value)):
        raise SelectorError(f"invalid label value {value!r}")


@dataclass(frozen=True)
class Requirement:
    """One clause of a label selector."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _validate_key(self.key)
        values = tuple(sorted(self.values))
        for value in values:
            _validate_value(value)
        if self.operator in (Operator.EXISTS, Operator.DOES_NOT_EXIST):
            if values:
                raise SelectorError(f"values must be empty for {self.operator.name.lower()}")
        elif self.operator in (Operator.IN, Operator.NOT_IN):
            if not values:
                raise SelectorError("for 'in', 'notin' operators, values set can't be empty")
        elif len(values) != 1:
            raise SelectorError("exact-match compatibility requires one single value")
        object.__setattr__(self, "values", values)

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Whether the labels satisfy this clause."""
        if self.operator is Operator.EXISTS:
            return self.key in labels
        if self.operator is Operator.DOES_NOT_EXIST:
            return self.key not in labels
        if self.operator in (Operator.NOT_EQUALS, Operator.NOT_IN):
            return self.key not in labels or labels[self.key] not in self.values
        return self.key in labels and labels[self.key] in self.values

    def __str__(self) -> str:
        if self.operator is Operator.EXISTS:
            return self.key
        if self.operator is Operator.DOES_NOT_EXIST:
            return "!" + self.key
        if self.operator in (Operator.IN, Operator.NOT_IN):
            return f"{self.key} {self.operator.value} ({','.join(self.values)})"
        return f"{self.key}{self.operator.value}{self.values[0]}"


@dataclass(frozen=True)
class Selector:
    """A conjunction of label requirements, kept sorted by key."""

    requirements: tuple[Requirement, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "requirements", tuple(sorted(self.requirements, key=lambda r: r.key))
        )

    def matches(self, labels: Mapping[str, str] | None) -> bool:
        """Whether every requirement holds for the labels."""
        labels = labels or {}
        return all(requirement.matches(labels) for requirement in self.requirements)

    def __str__(self) -> str:
        return ",".join(str(requirement) for requirement in self.requirements)


def _split_terms(selector: str) -> Iterator[str]:
    depth = 0
    current: list[str] = []
    for char in selector:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise SelectorError(f"unbalanced parentheses in {selector!r}")
        if char == "," and depth == 0:
            yield "".join(current)
            current = []
        else:
            current.append(char)
    if depth:
        raise SelectorError(f"unbalanced parentheses in {selector!r}")
    yield "".join(current)


def _parse_term(term: str) -> Requirement:
    term = term.strip()
    if not term:
        raise SelectorError("empty requirement in selector")
    if match := _SET_RE.fullmatch(term):
        operator = Operator.IN if match["op"] == "in" else Operator.NOT_IN
        values = tuple(v.strip() for v in match["values"].split(",")) if match["values"].strip() else ()
        return Requirement(match["key"], operator, values)
    if match := _EQUALITY_RE.fullmatch(term):
        return Requirement(match["key"], Operator(match["op"]), (match["value"],))
    if match := _EXISTS_RE.fullmatch(term):
        operator = Operator.DOES_NOT_EXIST if match["neg"] else Operator.EXISTS
        return Requirement(match["key"], operator)
    raise SelectorError(f"unable to parse requirement {term!r}")


def parse_selector(selector: str) -> Selector:
    """Parse a label selector such as ``a=b,!c,d in (e,f)``."""
    if not selector.strip():
        return Selector()
    return Selector(tuple(_parse_term(term) for term in _split_terms(selector)))


def selector_from_labels(labels: Mapping[str, str]) -> Selector:
    """A selector requiring each label to have exactly its value."""
    return Selector(
        tuple(Requirement(key, Operator.EQUALS, (value,)) for key, value in labels.items())
    )


def labels_for_component(owner: str, component: str) -> dict[str, str]:
    """The labels put on a component owned by a cluster."""
    return {
        OWNER_LABEL_KEY: owner,
        COMPONENT_LABEL_KEY: component,
        OPERATOR_MANAGED_LABEL_KEY: OPERATOR_MANAGED_LABEL_VALUE,
    }


def selector_for_component(owner: str, component: str) -> Selector:
    """A selector for a cluster's component of the given kind."""
    return selector_from_labels(labels_for_component(owner, component))


MANAGED_DEPENDENT_SELECTOR = parse_selector(
    f"{OPERATOR_MANAGED_LABEL_KEY}={OPERATOR_MANAGED_LABEL_VALUE}"
)
NOT_PAUSED_SELECTOR = parse_selector("!" + PAUSED_CONTROLLER_SELECTOR_KEY)


@dataclass(frozen=True)
class GroupVersionResource:
    """Identifies a kind of API resource."""

    group: str = ""
    version: str = ""
    resource: str = ""

    def __str__(self) -> str:
        return f"{self.group}/{self.version}, Resource={self.resource}"


def parse_resource_arg(arg: str) -> GroupVersionResource | None:
    """Parse ``resource.version.group``; None if it lacks three parts."""
    parts = arg.split(".", 2)
    if len(parts) != 3:
        return None
    resource, version, group = parts
    return GroupVersionResource(group=group, version=version, resource=resource)


def gvr_meta_namespace_key(gvr: GroupVersionResource, key: str) -> str:
    """Prefix a namespace key with its resource type."""
    return f"{gvr.resource}.{gvr.version}.{gvr.group}::{key}"


def meta_namespace_key(namespace: str, name: str) -> str:
    """The cache key of an object: ``namespace/name`` or just ``name``."""
    return f"{namespace}/{name}" if namespace else name


def split_gvr_meta_namespace_key(key: str) -> tuple[GroupVersionResource, str, str]:
    """Split a key made by :func:`gvr_meta_namespace_key`."""
    before, separator, after = key.partition("::")
    if not separator:
        raise ValueError(f"error parsing key: {key}")
    gvr = parse_resource_arg(before)
    if gvr is None:
        raise ValueError(f"error parsing gvr from key: {before}")
    parts = after.split("/")
    if len(parts) == 1:
        return gvr, "", parts[0]
    if len(parts) == 2:
        return gvr, parts[0], parts[1]
    raise ValueError(f'unexpected key format: "{after}"')


def owner_keys_from_annotations(namespace: str, annotations: Mapping[str, str] | None) -> list[str]:
    """Keys of the clusters named by owner annotations."""
    return [
        f"{namespace}/{key[len(OWNER_ANNOTATION_KEY_PREFIX):]}"
        for key in (annotations or {})
        if key.startswith(OWNER_ANNOTATION_KEY_PREFIX)
    ]


def cluster_keys_from_meta(
    namespace: str,
    labels: Mapping[str, str] | None,
    annotations: Mapping[str, str] | None,
) -> list[str]:
    """Keys of every cluster that owns an object, by annotation or label."""
    keys = owner_keys_from_annotations(namespace, annotations)
    if labels and OWNER_LABEL_KEY in labels:
        keys.append(f"{namespace}/{labels[OWNER_LABEL_KEY]}")
    return keys