"""Reconciles CronHPATraits into CronHorizontalPodAutoscaler objects."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from oamtraits.core import (
    CORE_GROUP_VERSION,
    RECONCILE_WAIT_RESULT,
    Client,
    ClientError,
    Condition,
    GroupVersion,
    NotFoundError,
    ObjectKey,
    Result,
    TypedReference,
    group_version_kind,
    reconcile_error,
    reconcile_success,
    set_controller_reference,
)
from oamtraits.cronhpa_api import GROUP_VERSION, KIND, CronHPATrait

log = logging.getLogger(__name__)

CRON_HPA_GROUP_VERSION = GroupVersion("autoscaling.alibabacloud.com", "v1beta1")
CRON_HPA_API_VERSION = str(CRON_HPA_GROUP_VERSION)
CRON_HPA_KIND = "CronHorizontalPodAutoscaler"

LABEL_KEY = "cronhpatrait.oam.crossplane.io"

WORKLOAD_API_VERSION = str(CORE_GROUP_VERSION)
APPS_API_VERSION = "apps/v1"
_CHILD_KINDS = ("Deployment", "StatefulSet")

ERR_NOT_CRON_HPA_TRAIT = "object is not a cronHPA trait"
ERR_LOCATE_WORKLOAD = "cannot find workload"
ERR_LOCATE_RESOURCES = "cannot find resources"
ERR_APPLY_CRON_HPA = "cannot apply the cronHPA"
ERR_RENDER_CRON_HPA = "cannot render cronHPA"
ERR_GC_CRON_HPA = "cannot clean up stale cronHPA"

ChildResources = Callable[[dict[str, Any]], Iterable[dict[str, Any]]]


class WorkloadTypeError(ValueError):
    """The workload's apiVersion is missing or not supported."""


def render_cron_hpa(trait: CronHPATrait, workload: Mapping[str, Any]) -> dict[str, Any]:
    """Build the CronHorizontalPodAutoscaler for ``workload``, controlled by ``trait``."""
    if not isinstance(trait, CronHPATrait):
        raise TypeError(ERR_NOT_CRON_HPA_TRAIT)
    gvk = group_version_kind(workload)
    cron_hpa: dict[str, Any] = {
        "apiVersion": CRON_HPA_API_VERSION,
        "kind": CRON_HPA_KIND,
        "metadata": {
            "name": trait.metadata.name,
            "namespace": trait.metadata.namespace,
            "labels": {LABEL_KEY: trait.metadata.uid},
        },
        "spec": {
            "excludeDates": list(trait.spec.exclude_dates),
            "jobs": [
                {
                    "name": job.name,
                    "schedule": job.schedule,
                    "runOnce": job.run_once,
                    "targetSize": job.target_size,
                }
                for job in trait.spec.jobs
            ],
            "scaleTargetRef": {
                "apiVersion": f"{gvk.group}/{gvk.version}",
                "kind": gvk.kind,
                "name": (workload.get("metadata") or {}).get("name", ""),
            },
        },
        "status": {"conditions": []},
    }
    return dict(set_controller_reference(trait, cron_hpa))


def _owned_children(client: Client, workload: Mapping[str, Any]) -> list[dict[str, Any]]:
    meta = workload.get("metadata") or {}
    uid = meta.get("uid", "")
    if not uid:
        return []
    children = []
    for kind in _CHILD_KINDS:
        for candidate in client.list(APPS_API_VERSION, kind, namespace=meta.get("namespace", "")):
            owners = (candidate.get("metadata") or {}).get("ownerReferences") or []
            if any(owner.get("uid") == uid for owner in owners):
                children.append(candidate)
    return children


def determine_workload_type(
    client: Client,
    workload: dict[str, Any],
    child_resources: ChildResources | None = None,
) -> list[dict[str, Any]]:
    """Return the resources behind a workload: its children or the workload itself."""
    api_version = workload.get("apiVersion", "") or ""
    if api_version == WORKLOAD_API_VERSION:
        if child_resources is not None:
            return list(child_resources(workload))
        return _owned_children(client, workload)
    if api_version == APPS_API_VERSION:
        log.info("workload is K8S native resources, APIVersion %s", api_version)
        return [workload]
    if api_version == "":
        raise WorkloadTypeError("failed to get the workload apiVersion")
    raise WorkloadTypeError(f"This trait doesn't support the type{api_version}")


class CronHPATraitReconciler:
    """Drives a CronHPATrait towards a matching CronHorizontalPodAutoscaler."""

    def __init__(self, client: Client, child_resources: ChildResources | None = None) -> None:
        self.client = client
        self.child_resources = child_resources

    def _patch_condition(self, trait: CronHPATrait, condition: Condition) -> None:
        trait.set_conditions(condition)
        key = ObjectKey(trait.metadata.name, trait.metadata.namespace)
        current = self.client.get(trait.api_version, trait.kind, key)
        current["status"] = trait.status.to_dict()
        self.client.update(current)

    def _fetch_workload(self, trait: CronHPATrait) -> dict[str, Any]:
        ref = trait.workload_reference
        key = ObjectKey(ref.name, trait.metadata.namespace)
        return self.client.get(ref.api_version, ref.kind, key)

    def reconcile(self, key: ObjectKey) -> Result:
        """Reconcile the CronHPATrait named by ``key``."""
        log.info("Reconcile CronHPA Trait %s", key)
        try:
            trait = CronHPATrait.from_dict(self.client.get(str(GROUP_VERSION), KIND, key))
        except NotFoundError:
            return Result()

        try:
            workload = self._fetch_workload(trait)
        except ClientError as err:
            log.error("Workload not found for %s: %s", key, err)
            self._patch_condition(trait, reconcile_error(f"{ERR_LOCATE_WORKLOAD}: {err}"))
            return RECONCILE_WAIT_RESULT

        try:
            resources = determine_workload_type(self.client, workload, self.child_resources)
        except (WorkloadTypeError, ClientError) as err:
            log.error("Cannot find the workload child resources of %s: %s", key, err)
            self._patch_condition(trait, reconcile_error(ERR_LOCATE_RESOURCES))
            return RECONCILE_WAIT_RESULT

        target = next((r for r in resources if r.get("apiVersion") == APPS_API_VERSION), None)
        if target is None:
            log.info("Cannot locate any resources, total resources %d", len(resources))
            self._patch_condition(trait, reconcile_error(ERR_LOCATE_RESOURCES))
            return Result()
        try:
            cron_hpa = render_cron_hpa(trait, target)
        except ValueError as err:
            log.error("Failed to render a cronHPA: %s", err)
            self._patch_condition(trait, reconcile_error(f"{ERR_RENDER_CRON_HPA}: {err}"))
            return Result()

        try:
            applied = self.client.apply(cron_hpa, field_owner=trait.metadata.name)
        except ClientError as err:
            log.error("Failed to apply a cronHPA: %s", err)
            self._patch_condition(trait, reconcile_error(f"{ERR_APPLY_CRON_HPA}: {err}"))
            return RECONCILE_WAIT_RESULT
        uid = applied["metadata"]["uid"]
        log.info("Successfully applied a cronHPA, UID %s", uid)

        try:
            self.cleanup_resources(trait, uid)
        except ClientError as err:
            log.error("Failed to clean up resources: %s", err)
            self._patch_condition(trait, reconcile_error(f"{ERR_GC_CRON_HPA}: {err}"))
            return RECONCILE_WAIT_RESULT

        gvk = group_version_kind(applied)
        trait.status.resources = [
            TypedReference(str(gvk.group_version), gvk.kind, applied["metadata"]["name"], uid)
        ]
        current = self.client.get(trait.api_version, trait.kind, key)
        current["status"] = trait.status.to_dict()
        self.client.update(current)

        self._patch_condition(trait, reconcile_success())
        return Result()

    def cleanup_resources(self, trait: CronHPATrait, cron_hpa_uid: str) -> list[TypedReference]:
        """Delete CronHPAs recorded in the trait's status other than ``cron_hpa_uid``."""
        removed = []
        for ref in trait.status.resources:
            if (
                ref.kind != CRON_HPA_KIND
                or ref.api_version != CRON_HPA_API_VERSION
                or ref.uid == cron_hpa_uid
            ):
                continue
            log.info("Found an orphaned cronHPA, UID %s", ref.uid)
            key = ObjectKey(ref.name, trait.metadata.namespace)
            try:
                stale = self.client.get(CRON_HPA_API_VERSION, CRON_HPA_KIND, key)
            except NotFoundError:
                continue
            self.client.delete(stale)
            removed.append(ref)
            log.info("Removed an orphaned cronHPA, UID %s", ref.uid)
        return removed