"""The Autoscaler trait resource of the standard.oam.dev/v1alpha1 group."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from oamtraits.core import (
    STANDARD_GROUP_VERSION,
    Condition,
    ConditionedStatus,
    ConditionType,
    ObjectMeta,
    TypedReference,
)

GROUP_VERSION = STANDARD_GROUP_VERSION
KIND = "Autoscaler"


class TriggerType(str, Enum):
    """Trigger types the autoscaler handles specially; others pass through."""

    CRON = "cron"
    CPU = "cpu"


def _trigger_type(value: str) -> TriggerType | str:
    try:
        return TriggerType(value)
    except ValueError:
        return value


def _type_text(value: TriggerType | str) -> str:
    return value.value if isinstance(value, TriggerType) else value


@dataclass
class Trigger:
    """When to scale: a trigger type with its condition settings."""

    type: TriggerType | str
    condition: dict[str, str] = field(default_factory=dict)
    name: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.name:
            data["name"] = self.name
        data["type"] = _type_text(self.type)
        data["condition"] = dict(self.condition)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Trigger:
        return cls(
            type=_trigger_type(data.get("type", "")),
            condition={str(k): str(v) for k, v in (data.get("condition") or {}).items()},
            name=data.get("name", ""),
        )


@dataclass
class TargetWorkload:
    """The object that is scaled."""

    name: str = ""
    api_version: str = ""
    kind: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name}
        if self.api_version:
            data["apiVersion"] = self.api_version
        if self.kind:
            data["kind"] = self.kind
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> TargetWorkload:
        data = data or {}
        return cls(data.get("name", ""), data.get("apiVersion", ""), data.get("kind", ""))


@dataclass
class AutoscalerSpec:
    """Desired state of an Autoscaler."""

    triggers: list[Trigger] = field(default_factory=list)
    min_replicas: int | None = None
    max_replicas: int | None = None
    target_workload: TargetWorkload = field(default_factory=TargetWorkload)
    workload_reference: TypedReference = field(default_factory=TypedReference)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.min_replicas is not None:
            data["minReplicas"] = self.min_replicas
        if self.max_replicas is not None:
            data["maxReplicas"] = self.max_replicas
        data["triggers"] = [t.to_dict() for t in self.triggers]
        data["targetWorkload"] = self.target_workload.to_dict()
        data["workloadRef"] = self.workload_reference.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> AutoscalerSpec:
        data = data or {}
        return cls(
            triggers=[Trigger.from_dict(t) for t in data.get("triggers") or []],
            min_replicas=data.get("minReplicas"),
            max_replicas=data.get("maxReplicas"),
            target_workload=TargetWorkload.from_dict(data.get("targetWorkload")),
            workload_reference=TypedReference.from_dict(data.get("workloadRef")),
        )


@dataclass
class Autoscaler:
    """An Autoscaler trait object."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: AutoscalerSpec = field(default_factory=AutoscalerSpec)
    status: ConditionedStatus = field(default_factory=ConditionedStatus)
    api_version: str = str(GROUP_VERSION)
    kind: str = KIND

    @property
    def workload_reference(self) -> TypedReference:
        return self.spec.workload_reference

    @workload_reference.setter
    def workload_reference(self, reference: TypedReference) -> None:
        self.spec.workload_reference = reference

    def set_conditions(self, *conditions: Condition) -> None:
        self.status.set_conditions(*conditions)

    def get_condition(self, condition_type: ConditionType) -> Condition:
        return self.status.get_condition(condition_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": self.metadata.to_dict(),
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Autoscaler:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=AutoscalerSpec.from_dict(data.get("spec")),
            status=ConditionedStatus.from_dict(data.get("status")),
            api_version=data.get("apiVersion", str(GROUP_VERSION)),
            kind=data.get("kind", KIND),
        )