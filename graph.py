"""
Dependency graph over the resources of a stack definition.

Nodes are logical resource names. An edge ``a -> b`` means ``a`` depends on
``b``: either ``a`` references one of ``b``'s attributes or lists ``b`` in
``depends_on``. Creation runs dependencies first, deletion runs dependents
first.
"""

import pulumi
from collections import OrderedDict
from typing import Dict, List, Optional, Set

from config import Config
from expressions import find_references


class GraphError(ValueError):
    pass


class DuplicateResourceError(GraphError):
    def __init__(self, name: str):
        super().__init__(f"Resource '{name}' is declared more than once.")
        self.name = name


class UnresolvedReferenceError(GraphError):
    def __init__(self, source: str, target: str):
        super().__init__(f"Resource '{source}' references '{target}', which is not declared.")
        self.source = source
        self.target = target


class InvalidDependencyError(GraphError):
    def __init__(self, source: str, target):
        super().__init__(f"Resource '{source}' lists {target!r} in depends_on, which is not a resource name.")
        self.source = source
        self.target = target


class CycleError(GraphError):
    def __init__(self, cycle: List[str]):
        super().__init__("Dependency cycle detected: " + " -> ".join(cycle))
        self.cycle = cycle


class ResourceGraph:
    def __init__(self):
        # insertion order doubles as declaration order for tie-breaking
        self._edges: "OrderedDict[str, List[str]]" = OrderedDict()

    def add_node(self, name: str):
        if name in self._edges:
            raise DuplicateResourceError(name)
        self._edges[name] = []

    def add_edge(self, source: str, target: str):
        if not isinstance(target, str):
            raise InvalidDependencyError(source, target)
        if target not in self._edges:
            raise UnresolvedReferenceError(source, target)
        if target not in self._edges[source]:
            self._edges[source].append(target)

    @classmethod
    def from_config(cls, config: Config) -> "ResourceGraph":
        """Build the graph, failing on the first duplicate or unresolved reference."""
        graph = cls()
        for resource in config.aws_resources:
            graph.add_node(resource.name)
        for resource in config.aws_resources:
            for target in resource.depends_on:
                graph.add_edge(resource.name, target)
            for ref in find_references(resource.args):
                graph.add_edge(resource.name, ref.resource)
        pulumi.log.debug(f"Built resource graph with {len(graph)} nodes")
        return graph

    def __len__(self) -> int:
        return len(self._edges)

    def __contains__(self, name: str) -> bool:
        return name in self._edges

    @property
    def nodes(self) -> List[str]:
        return list(self._edges)

    def dependencies(self, name: str) -> List[str]:
        return list(self._edges[name])

    def dependents(self, name: str) -> List[str]:
        return [source for source, targets in self._edges.items() if name in targets]

    def find_cycle(self) -> Optional[List[str]]:
        """Return one cycle as a closed path (first node repeated at the end), or None."""
        white, grey, black = 0, 1, 2
        color = {name: white for name in self._edges}
        stack: List[str] = []

        def visit(node: str) -> Optional[List[str]]:
            color[node] = grey
            stack.append(node)
            for dep in self._edges[node]:
                if color[dep] == grey:
                    return stack[stack.index(dep):] + [dep]
                if color[dep] == white:
                    found = visit(dep)
                    if found:
                        return found
            stack.pop()
            color[node] = black
            return None

        for name in self._edges:
            if color[name] == white:
                cycle = visit(name)
                if cycle:
                    return cycle
        return None

    def waves(self) -> List[List[str]]:
        """Group nodes so every node's dependencies sit in an earlier group.

        Nodes inside one group are independent of each other and may be
        processed in parallel.
        """
        remaining: Dict[str, Set[str]] = {name: set(deps) for name, deps in self._edges.items()}
        result: List[List[str]] = []
        while remaining:
            ready = [name for name, deps in remaining.items() if not deps]
            if not ready:
                raise CycleError(self.find_cycle() or sorted(remaining))
            result.append(ready)
            for name in ready:
                del remaining[name]
            for deps in remaining.values():
                deps.difference_update(ready)
        return result

    def create_order(self) -> List[str]:
        """Topological order, dependencies first, ties broken by declaration order."""
        in_degree = {name: len(deps) for name, deps in self._edges.items()}
        position = {name: i for i, name in enumerate(self._edges)}
        ready = sorted((n for n, d in in_degree.items() if d == 0), key=position.get)
        order: List[str] = []
        while ready:
            node = ready.pop(0)
            order.append(node)
            for dependent in self.dependents(node):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)
            ready.sort(key=position.get)
        if len(order) != len(self._edges):
            raise CycleError(self.find_cycle() or [n for n in self._edges if n not in order])
        return order

    def delete_order(self) -> List[str]:
        return list(reversed(self.create_order()))
