"""
Declared Resource Graph
=======================
A flat view of a synthesized CloudFormation template: one typed record per
resource plus the edges CloudFormation will honour when applying it
(`Ref`, `Fn::GetAtt`, `Fn::Sub` placeholders and explicit `DependsOn`).

Used after `app.synth()` to refuse templates with references that point at
nothing, and to log the order resources will be created in. CloudFormation
itself parallelises independent branches; `apply_order()` is one valid
serialisation of the same edges.
"""
from __future__ import annotations

import heapq
import re
from typing import Any, Iterator

from pydantic import BaseModel, Field

_SUB_PLACEHOLDER = re.compile(r"\$\{([^!}][^}]*)\}")
# AWS::Region, AWS::AccountId, AWS::NoValue ...
_PSEUDO_PREFIX = "AWS::"


class DanglingReferenceError(Exception):
    """A resource or output references a logical id that the template does not declare."""

    def __init__(self, dangling: list[tuple[str, str]]):
        self.dangling = dangling
        details = ", ".join(f"{source} -> {target}" for source, target in dangling)
        super().__init__(f"{len(dangling)} dangling reference(s): {details}")


class DependencyCycleError(Exception):
    def __init__(self, remaining: list[str]):
        self.remaining = remaining
        super().__init__(f"Dependency cycle between: {', '.join(remaining)}")


class ResourceSpec(BaseModel):
    logical_id: str
    type: str
    depends_on: list[str] = Field(default_factory=list)


def _references(node: Any, local_names: frozenset[str] = frozenset()) -> Iterator[str]:
    """Yield every logical id referenced anywhere inside a template fragment."""
    if isinstance(node, list):
        for item in node:
            yield from _references(item, local_names)
        return
    if not isinstance(node, dict):
        return

    if len(node) == 1:
        (key, value), = node.items()
        if key == "Ref" and isinstance(value, str):
            if value not in local_names:
                yield value
            return
        if key == "Fn::GetAtt":
            target = value[0] if isinstance(value, list) else str(value).split(".", 1)[0]
            if isinstance(target, str):
                yield target
            return
        if key == "Fn::Sub":
            template, variables = (value, {}) if isinstance(value, str) else (value[0], value[1])
            names = local_names | frozenset(variables)
            for placeholder in _SUB_PLACEHOLDER.findall(template):
                name = placeholder.split(".", 1)[0]
                if name not in names:
                    yield name
            yield from _references(variables, local_names)
            return
        if key == "Fn::If" and isinstance(value, list):
            # First element names a condition, not a resource
            yield from _references(value[1:], local_names)
            return

    for value in node.values():
        yield from _references(value, local_names)


class DeclarationGraph:
    def __init__(self, resources: list[ResourceSpec], parameters: set[str] | None = None,
                 outputs: dict[str, list[str]] | None = None):
        self.resources = {resource.logical_id: resource for resource in resources}
        self.parameters = set(parameters or ())
        self.outputs = dict(outputs or {})

    @classmethod
    def from_template(cls, template: dict[str, Any]) -> "DeclarationGraph":
        parameters = set(template.get("Parameters", {}))
        resources = []
        for logical_id, body in template.get("Resources", {}).items():
            explicit = body.get("DependsOn", [])
            if isinstance(explicit, str):
                explicit = [explicit]
            implicit = _references(body.get("Properties", {}))
            edges = sorted(
                ref for ref in {*explicit, *implicit} - parameters - {logical_id}
                if not ref.startswith(_PSEUDO_PREFIX)
            )
            resources.append(ResourceSpec(logical_id=logical_id, type=body["Type"], depends_on=edges))

        outputs = {
            name: sorted(
                ref for ref in set(_references(body.get("Value"))) - parameters
                if not ref.startswith(_PSEUDO_PREFIX)
            )
            for name, body in template.get("Outputs", {}).items()
        }
        return cls(resources, parameters, outputs)

    def of_type(self, resource_type: str) -> list[ResourceSpec]:
        return [r for r in self.resources.values() if r.type == resource_type]

    def dangling_references(self) -> list[tuple[str, str]]:
        """(source, target) pairs whose target is not declared in the template."""
        dangling = [
            (resource.logical_id, target)
            for resource in self.resources.values()
            for target in resource.depends_on
            if target not in self.resources
        ]
        dangling.extend(
            (f"Outputs.{name}", target)
            for name, targets in self.outputs.items()
            for target in targets
            if target not in self.resources
        )
        return sorted(dangling)

    def validate(self) -> None:
        dangling = self.dangling_references()
        if dangling:
            raise DanglingReferenceError(dangling)

    def apply_order(self) -> list[str]:
        """
        Logical ids in an order that respects every edge (dependencies first).
        Ties are broken alphabetically so the result is deterministic.
        """
        pending = {
            logical_id: {d for d in resource.depends_on if d in self.resources}
            for logical_id, resource in self.resources.items()
        }
        dependents: dict[str, list[str]] = {logical_id: [] for logical_id in pending}
        for logical_id, deps in pending.items():
            for dep in deps:
                dependents[dep].append(logical_id)

        ready = [logical_id for logical_id, deps in pending.items() if not deps]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            logical_id = heapq.heappop(ready)
            order.append(logical_id)
            for dependent in dependents[logical_id]:
                pending[dependent].discard(logical_id)
                if not pending[dependent]:
                    heapq.heappush(ready, dependent)

        if len(order) != len(pending):
            raise DependencyCycleError(sorted(set(pending) - set(order)))
        return order
