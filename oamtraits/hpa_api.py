"""The HorizontalPodAutoscalerTrait resource of the core.oam.dev/v1alpha2 group."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from oamtraits.core import (
    CORE_GROUP_VERSION,
    Condition,
    ConditionedStatus,
    ConditionType,
    ObjectMeta,
    TypedReference,
)

GROUP_VERSION = CORE_GROUP_VERSION
KIND = "HorizontalPodAutoscalerTrait"


@dataclass
class HorizontalPodAutoscalerTraitSpec:
    """Desired state of a HorizontalPodAutoscalerTrait."""

    max_replicas: int = 0
    min_replicas: int | None = None
    target_cpu_utilization_percentage: int | None = None
    workload_reference: TypedReference = field(default_factory=TypedReference)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.min_replicas is not None:
            data["minReplicas"] = self.min_replicas
        data["maxReplicas"] = self.max_replicas
        if self.target_cpu_utilization_percentage is not None:
            data["targetCPUUtilizationPercentage"] = self.target_cpu_utilization_percentage
        data["workloadRef"] = self.workload_reference.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> HorizontalPodAutoscalerTraitSpec:
        data = data or {}
        return cls(
            max_replicas=int(data.get("maxReplicas", 0) or 0),
            min_replicas=data.get("minReplicas"),
            target_cpu_utilization_percentage=data.get("targetCPUUtilizationPercentage"),
            workload_reference=TypedReference.from_dict(data.get("workloadRef")),
        )


@dataclass
class HorizontalPodAutoscalerTraitStatus(ConditionedStatus):
    """Observed state of the trait: conditions and managed resources."""

    resources: list[TypedReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.resources:
            data["resources"] = [ref.to_dict() for ref in self.resources]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> HorizontalPodAutoscalerTraitStatus:
        data = data or {}
        return cls(
            conditions=ConditionedStatus.from_dict(data).conditions,
            resources=[TypedReference.from_dict(r) for r in data.get("resources") or []],
        )


@dataclass
class HorizontalPodAutoscalerTrait:
    """A HorizontalPodAutoscalerTrait object."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: HorizontalPodAutoscalerTraitSpec = field(default_factory=HorizontalPodAutoscalerTraitSpec)
    status: HorizontalPodAutoscalerTraitStatus = field(
        default_factory=HorizontalPodAutoscalerTraitStatus
    )
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
    def from_dict(cls, data: Mapping[str, Any]) -> HorizontalPodAutoscalerTrait:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=HorizontalPodAutoscalerTraitSpec.from_dict(data.get("spec")),
            status=HorizontalPodAutoscalerTraitStatus.from_dict(data.get("status")),
            api_version=data.get("apiVersion", str(GROUP_VERSION)),
            kind=data.get("kind", KIND),
        )