"""The CronHPATrait resource of the core.oam.dev/v1alpha2 group."""

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
KIND = "CronHPATrait"


@dataclass
class Job:
    """One scheduled scaling job."""

    name: str = ""
    schedule: str = ""
    target_size: int = 0
    run_once: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "schedule": self.schedule}
        if self.run_once:
            data["runOnce"] = True
        data["targetSize"] = self.target_size
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Job:
        return cls(
            name=data.get("name", ""),
            schedule=data.get("schedule", ""),
            target_size=int(data.get("targetSize", 0) or 0),
            run_once=bool(data.get("runOnce", False)),
        )


@dataclass
class CronHPATraitSpec:
    """Desired state of a CronHPATrait."""

    jobs: list[Job] = field(default_factory=list)
    exclude_dates: list[str] = field(default_factory=list)
    workload_reference: TypedReference = field(default_factory=TypedReference)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.exclude_dates:
            data["excludeDates"] = list(self.exclude_dates)
        data["jobs"] = [job.to_dict() for job in self.jobs]
        data["workloadRef"] = self.workload_reference.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> CronHPATraitSpec:
        data = data or {}
        return cls(
            jobs=[Job.from_dict(job) for job in data.get("jobs") or []],
            exclude_dates=list(data.get("excludeDates") or []),
            workload_reference=TypedReference.from_dict(data.get("workloadRef")),
        )


@dataclass
class CronHPATraitStatus(ConditionedStatus):
    """Observed state of a CronHPATrait: conditions and managed resources."""

    resources: list[TypedReference] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.resources:
            data["resources"] = [ref.to_dict() for ref in self.resources]
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> CronHPATraitStatus:
        data = data or {}
        return cls(
            conditions=ConditionedStatus.from_dict(data).conditions,
            resources=[TypedReference.from_dict(r) for r in data.get("resources") or []],
        )


@dataclass
class CronHPATrait:
    """A CronHPATrait object."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: CronHPATraitSpec = field(default_factory=CronHPATraitSpec)
    status: CronHPATraitStatus = field(default_factory=CronHPATraitStatus)
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
    def from_dict(cls, data: Mapping[str, Any]) -> CronHPATrait:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata")),
            spec=CronHPATraitSpec.from_dict(data.get("spec")),
            status=CronHPATraitStatus.from_dict(data.get("status")),
            api_version=data.get("apiVersion", str(GROUP_VERSION)),
            kind=data.get("kind", KIND),
        )