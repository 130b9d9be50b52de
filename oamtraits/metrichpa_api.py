"""The MetricHPATrait resource of the extend.oam.dev/v1alpha2 group."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from oamtraits.core import (
    EXTEND_GROUP_VERSION,
    Condition,
    ConditionedStatus,
    ConditionType,
    ObjectMeta,
    TypedReference,
)

GROUP_VERSION = EXTEND_GROUP_VERSION
KIND = "MetricHPATrait"


def _optional_int(value: Any) -> int | None:
    return None if value is None else int(value)


@dataclass
class MetricHPATraitSpec:
    """Desired state of a MetricHPATrait."""

    prom_query: str = ""
    prom_threshold: int | None = None
    polling_interval: int | None = None
    cooldown_period: int | None = None
    min_replica_count: int | None = None
    max_replica_count: int | None = None
    prom_server_address: str = ""
    workload_reference: TypedReference = field(default_factory=TypedReference)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        optional = (
            ("pollingInterval", self.polling_interval),
            ("cooldownPeriod", self.cooldown_period),
            ("minReplicaCount", self.min_replica_count),
            ("maxReplicaCount", self.max_replica_count),
        )
        for key, value in optional:
            if value is not None:
                data[key] = value
        if self.prom_server_address:
            data["promServerAddress"] = self.prom_server_address
        data["promQuery"] = self.prom_query
        data["promThreshold"] = self.prom_threshold
        data["workloadRef"] = self.workload_reference.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MetricHPATraitSpec:
        data = data or {}
        return cls(
            prom_query=data.get("promQuery", "") or "",
            prom_threshold=_optional_int(data.get("promThreshold")),
            polling_interval=_optional_int(data.get("pollingInterval")),
            cooldown_period=_optional_int(data.get("cooldownPeriod")),
            min_replica_count=_optional_int(data.get("minReplicaCount")),
            max_replica_count=_optional_int(data.get("maxReplicaCount")),
            prom_server_address=data.get("promServerAddress", "") or "",
            workload_reference=TypedReference.from_dict(data.get("workloadRef")),
        )


@dataclass
class MetricHPATraitStatus(ConditionedStatus):
    """Observed state of the trait: conditions and managed resources."""

    resources: list[TypedReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.resources:
            data["resources"] = [ref.to_dict() for ref in self.resources]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> MetricHPATraitStatus:
        data = data or {}
        return cls(
            conditions=ConditionedStatus.from_dict(data).conditions,
            resources=[TypedReference.from_dict(r) for r in data.get("resources") or []],
        )


@dataclass
class MetricHPATrait:
    """A MetricHPATrait object."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: MetricHPATraitSpec = field(default_factory=MetricHPATraitSpec)
    status: MetricHPATraitStatus = field(default_factory=MetricHPATraitStatus)
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
    def from_dict(cls, data: Mapping[str, Any]) -> MetricHPATrait:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=MetricHPATraitSpec.from_dict(data.get("spec")),
            status=MetricHPATraitStatus.from_dict(data.get("status")),
            api_version=data.get("apiVersion", str(GROUP_VERSION)),
            kind=data.get("kind", KIND),
        )