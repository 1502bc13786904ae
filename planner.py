"""
Diff a stack definition against deployed state.

Deployed state is read from the JSON document written by
``pulumi stack export``. A deployed resource is identified by its URN, which
carries both its type and the physical name the builder derives for a
declaration; a declaration matches on type and name, and a same-name entry
of another type means the type changed.
"""

import json
import pulumi
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from awsclassic import AWSResourceBuilder
from expressions import (
    ARCHIVE_PREFIX,
    ASSET_PREFIX,
    JSON_KEY,
    LOOKUP_PREFIX,
    REF_PREFIX,
    SECRET_PREFIX,
    is_interpolated,
    unescape,
)
from graph import ResourceGraph

CREATE = "create"
UPDATE = "update"
REPLACE = "replace"
DELETE = "delete"
NOOP = "noop"

SYMBOLS = {CREATE: "+", UPDATE: "~", REPLACE: "-/+", DELETE: "-", NOOP: " "}

# user-keyed maps whose keys are kept verbatim in state
FREEFORM_MAPS = {"tags", "variables"}

# inputs the provider fills in on its own
PROVIDER_COMPUTED = {"tagsAll"}

COMPUTED_PREFIXES = (REF_PREFIX, SECRET_PREFIX, LOOKUP_PREFIX, ARCHIVE_PREFIX, ASSET_PREFIX)


@dataclass
class ResourceState:
    urn: str
    type: str
    name: str
    inputs: Dict[str, Any] = field(default_factory=dict)
    # URNs
    dependencies: List[str] = field(default_factory=list)


@dataclass
class PlanAction:
    action: str
    name: str
    physical_name: str
    type: str
    changes: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        line = f"{SYMBOLS[self.action]} {self.action:<7} {self.name} ({self.type})"
        if self.changes:
            line += ": " + ", ".join(self.changes)
        return line


@dataclass
class Plan:
    actions: List[PlanAction] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        counts = {CREATE: 0, UPDATE: 0, REPLACE: 0, DELETE: 0, NOOP: 0}
        for action in self.actions:
            counts[action.action] += 1
        return counts

    @property
    def has_changes(self) -> bool:
        return any(a.action != NOOP for a in self.actions)

    def by_action(self, action: str) -> List[PlanAction]:
        return [a for a in self.actions if a.action == action]

    def render(self) -> str:
        lines = [str(a) for a in self.actions]
        counts = self.summary()
        lines.append(
            f"Plan: {counts[CREATE]} to create, {counts[UPDATE]} to update, "
            f"{counts[REPLACE]} to replace, {counts[DELETE]} to delete."
        )
        return "\n".join(lines)


def urn_name(urn: str) -> str:
    return urn.rsplit("::", 1)[-1]


def type_token(resource_type: str) -> str:
    """``"lambda_.Function"`` -> ``"aws:lambda/function:Function"``."""
    module_name, class_name = resource_type.rsplit(".", 1)
    module_name = module_name.rstrip("_")
    return f"aws:{module_name}/{class_name[0].lower()}{class_name[1:]}:{class_name}"


def to_camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def parse_state(document: Dict[str, Any]) -> List[ResourceState]:
    deployment = document.get("deployment", document)
    resources = []
    for entry in deployment.get("resources") or []:
        resource_type = entry.get("type", "")
        if resource_type.startswith("pulumi:") or not entry.get("custom", True):
            continue
        resources.append(ResourceState(
            urn=entry["urn"],
            type=resource_type,
            name=urn_name(entry["urn"]),
            inputs=entry.get("inputs") or {},
            dependencies=list(entry.get("dependencies") or []),
        ))
    return resources


def load_state(file_path: str) -> List[ResourceState]:
    with open(file_path, "r") as file:
        document = json.load(file)
    return parse_state(document)


def is_computed(value: Any) -> bool:
    if isinstance(value, dict):
        return JSON_KEY in value or any(is_computed(v) for v in value.values())
    if isinstance(value, list):
        return any(is_computed(v) for v in value)
    if isinstance(value, str):
        return value.startswith(COMPUTED_PREFIXES) or is_interpolated(value)
    return False


def to_state_shape(value: Any, key: Optional[str] = None) -> Any:
    if isinstance(value, dict):
        if key in FREEFORM_MAPS:
            return value
        return {to_camel_case(k): to_state_shape(v, k) for k, v in value.items()}
    if isinstance(value, list):
        return [to_state_shape(v) for v in value]
    if isinstance(value, str):
        return unescape(value)
    return value


def diff_inputs(args: Dict[str, Any], inputs: Dict[str, Any]) -> List[str]:
    """Names of inputs that differ, including deployed inputs no longer declared."""
    changed = []
    declared = set()
    for key, value in args.items():
        if key == "existing":
            continue
        declared.add(to_camel_case(key))
        if is_computed(value):
            continue
        if to_state_shape(value, key) != inputs.get(to_camel_case(key)):
            changed.append(key)
    defaults = set(inputs.get("__defaults") or [])
    for key in inputs:
        if key in declared or key in defaults or key in PROVIDER_COMPUTED or key.startswith("__"):
            continue
        changed.append(key)
    return changed


def _delete_order(removed: List[ResourceState]) -> List[ResourceState]:
    graph = ResourceGraph()
    by_urn = {r.urn: r for r in removed}
    for r in removed:
        graph.add_node(r.urn)
    for r in removed:
        for dep in r.dependencies:
            if dep in by_urn:
                graph.add_edge(r.urn, dep)
    return [by_urn[urn] for urn in graph.delete_order()]


def plan(config_data: Dict[str, Any], state: List[ResourceState]) -> Plan:
    builder = AWSResourceBuilder(config_data)
    graph = ResourceGraph.from_config(builder.stack)
    declared = {r.name: r for r in builder.stack.aws_resources}
    by_identity = {(s.type, s.name): s for s in state}
    order = graph.create_order()
    result = Plan()

    # exact (type, name) matches are claimed before any same-name fallback
    current = {}
    for name in order:
        resource = declared[name]
        if resource.existing:
            continue
        key = (type_token(resource.type), builder.physical_name(resource))
        if key in by_identity:
            current[name] = by_identity[key]
    matched = {s.urn for s in current.values()}

    for name in order:
        resource = declared[name]
        physical = builder.physical_name(resource)
        if resource.existing:
            result.actions.append(PlanAction(NOOP, name, physical, resource.type, ["looked up"]))
            continue
        if name not in current:
            retyped = next((s for s in state if s.name == physical and s.urn not in matched), None)
            if retyped is None:
                result.actions.append(PlanAction(CREATE, name, physical, resource.type))
            else:
                matched.add(retyped.urn)
                result.actions.append(PlanAction(REPLACE, name, physical, resource.type, [f"type {retyped.type}"]))
            continue
        changes = diff_inputs(builder.desired_args(resource), current[name].inputs)
        result.actions.append(PlanAction(UPDATE if changes else NOOP, name, physical, resource.type, changes))

    removed = [s for s in state if s.urn not in matched]
    for s in _delete_order(removed):
        result.actions.append(PlanAction(DELETE, s.name, s.name, s.type))

    pulumi.log.info(f"Plan computed: {result.summary()}")
    return result
