"""Static checks over a stack definition, run before anything is created."""

import pulumi
import pulumi_aws as aws
from dataclasses import dataclass
from typing import Callable, List, Optional

from config import Config, RESOURCE_KEYS
from expressions import find_invalid_expressions, find_references
from graph import ResourceGraph

# attributes every Pulumi custom resource carries without declaring a property
COMMON_ATTRIBUTES = {"id", "urn"}


@dataclass
class ValidationIssue:
    code: str
    resource: str
    message: str

    def __str__(self) -> str:
        return f"[{self.code}] {self.resource}: {self.message}"


class StackValidationError(ValueError):
    def __init__(self, issues: List[ValidationIssue]):
        lines = "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(f"Stack definition has {len(issues)} issue(s):\n{lines}")
        self.issues = issues


def resolve_resource_class(resource_type: str) -> Optional[type]:
    """Map ``"<module>.<Class>"`` to the pulumi_aws resource class, or None."""
    if "." not in resource_type:
        return None
    module_name, class_name = resource_type.rsplit(".", 1)
    module = getattr(aws, module_name, None)
    if module is None:
        return None
    return getattr(module, class_name, None)


def has_attribute(resource_class: type, attribute: str) -> bool:
    if attribute in COMMON_ATTRIBUTES:
        return True
    return isinstance(getattr(resource_class, attribute, None), property)


def validate(
    config: Config,
    resolve_type: Callable[[str], Optional[type]] = resolve_resource_class,
) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    classes = {}
    physical = {}
    graph = ResourceGraph()

    for index, resource in enumerate(config.aws_resources):
        label = resource.name or f"aws_resources[{index}]"
        if not resource.name or not resource.type:
            issues.append(ValidationIssue("missing-field", label, "both 'name' and 'type' are required"))
            continue
        if resource.name in graph:
            issues.append(ValidationIssue(
                "duplicate-resource", resource.name,
                f"declared more than once (again as {resource.type})",
            ))
            continue
        graph.add_node(resource.name)
        # Pulumi registers a URN per type and physical name
        identity = (resource.type, config.physical_name(resource))
        if identity in physical:
            issues.append(ValidationIssue(
                "duplicate-physical-name", resource.name,
                f"registers {resource.type} '{identity[1]}', already used by '{physical[identity]}'",
            ))
        else:
            physical[identity] = resource.name
        for key in resource.extra:
            issues.append(ValidationIssue(
                "unknown-field", resource.name,
                f"'{key}' is not a resource field (expected one of {sorted(RESOURCE_KEYS)})",
            ))
        resource_class = resolve_type(resource.type)
        if resource_class is None:
            issues.append(ValidationIssue("unknown-type", resource.name, f"'{resource.type}' is not a known resource type"))
        classes[resource.name] = resource_class

    def check_reference(owner: str, target: str, attribute: Optional[str]) -> bool:
        if target not in graph:
            issues.append(ValidationIssue("unresolved-reference", owner, f"references undeclared resource '{target}'"))
            return False
        target_class = classes.get(target)
        if attribute is not None and target_class is not None and not has_attribute(target_class, attribute):
            issues.append(ValidationIssue(
                "unknown-attribute", owner,
                f"'{target}.{attribute}' is not an attribute of {target_class.__name__}",
            ))
        return True

    seen = set()
    for resource in config.aws_resources:
        if not resource.name or not resource.type or resource.name in seen:
            continue
        seen.add(resource.name)
        for message in find_invalid_expressions(resource.args):
            issues.append(ValidationIssue("invalid-expression", resource.name, message))
        for target in resource.depends_on:
            if not isinstance(target, str):
                issues.append(ValidationIssue("invalid-dependency", resource.name, f"depends_on entry {target!r} is not a resource name"))
                continue
            if check_reference(resource.name, target, None):
                graph.add_edge(resource.name, target)
        for ref in find_references(resource.args):
            if check_reference(resource.name, ref.resource, ref.attribute):
                graph.add_edge(resource.name, ref.resource)

    for output_name, expression in config.outputs.items():
        label = f"outputs.{output_name}"
        if output_name in graph:
            issues.append(ValidationIssue(
                "output-shadows-resource", label,
                f"shares its name with resource '{output_name}', whose id is exported under that name",
            ))
        for message in find_invalid_expressions(expression):
            issues.append(ValidationIssue("invalid-expression", label, message))
        for ref in find_references(expression):
            check_reference(label, ref.resource, ref.attribute)

    cycle = graph.find_cycle()
    if cycle:
        issues.append(ValidationIssue("cycle", cycle[0], " -> ".join(cycle)))

    for issue in issues:
        pulumi.log.warn(str(issue))
    return issues


def ensure_valid(config: Config, **kwargs) -> None:
    issues = validate(config, **kwargs)
    if issues:
        raise StackValidationError(issues)
    pulumi.log.info(f"Stack definition valid: {len(config.aws_resources)} resources")
