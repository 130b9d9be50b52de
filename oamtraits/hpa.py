"""Reconciles HorizontalPodAutoscalerTraits into HorizontalPodAutoscaler objects."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping

from oamtraits.core import (
    CORE_GROUP_VERSION,
    RECONCILE_WAIT_RESULT,
    Client,
    ClientError,
    Condition,
    NotFoundError,
    ObjectKey,
    Result,
    TypedReference,
    group_version_kind,
    reconcile_error,
    reconcile_success,
    set_controller_reference,
)
from oamtraits.cronhpa import WorkloadTypeError
from oamtraits.hpa_api import GROUP_VERSION, KIND, HorizontalPodAutoscalerTrait

log = logging.getLogger(__name__)

OAM_API_VERSION = str(CORE_GROUP_VERSION)
APPS_API_VERSION = "apps/v1"
GROUP_VERSION_HPA = "autoscaling/v1"

KIND_HPA = "HorizontalPodAutoscaler"
KIND_DEPLOYMENT = "Deployment"
KIND_STATEFUL_SET = "StatefulSet"

GVK_DEPLOYMENT = "apps/v1, Kind=Deployment"
GVK_STATEFUL_SET = "apps/v1, Kind=StatefulSet"

LABEL_KEY = "hpatrait.oam.crossplane.io"

ERR_LOCATE_WORKLOAD = "cannot find workload"
ERR_LOCATE_RESOURCES = "cannot find resources"
ERR_LOCATE_AVAILABLE_RESOURCES = "cannot find available resources"
ERR_APPLY_HPA = "cannot apply the HPA"
ERR_GC_HPA = "cannot clean up HPA"

_CHILD_KINDS = (KIND_DEPLOYMENT, KIND_STATEFUL_SET)

ChildResources = Callable[[dict[str, Any]], Iterable[dict[str, Any]]]


class NoApplicableResourcesError(LookupError):
    """None of the workload's resources can be scaled by an HPA."""


def _mapping(value: Any, failure: str, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{failure}: {where} is not an object")
    return value


def _containers(resource: Mapping[str, Any], word: str) -> list[Mapping[str, Any]]:
    failure = f"Failed to convert an unstructured obj to a appsv1.{word}"
    spec = _mapping(resource.get("spec"), failure, "spec")
    template = _mapping(spec.get("template"), failure, "spec.template")
    pod_spec = _mapping(template.get("spec"), failure, "spec.template.spec")
    containers = pod_spec.get("containers") or []
    if not isinstance(containers, list):
        raise ValueError(f"{failure}: spec.template.spec.containers is not a list")
    return [_mapping(c, failure, "container") for c in containers]


def render_reference(resource: Mapping[str, Any]) -> dict[str, str] | None:
    """Return the scale target reference for a resource, or None if an HPA cannot scale it.

    Raises ValueError when a container lacks resource requests.
    """
    gvk = str(group_version_kind(resource))
    if gvk == GVK_DEPLOYMENT:
        word = "deployment"
    elif gvk == GVK_STATEFUL_SET:
        word = "statefulset"
    else:
        return None
    name = (resource.get("metadata") or {}).get("name", "")
    for container in _containers(resource, word):
        resources = container.get("resources") or {}
        if not isinstance(resources, Mapping) or resources.get("requests") is None:
            raise ValueError(f"cannot get container.resources.requests from {word}: {name}")
    # Both kinds are referred to as a Deployment.
    return {"kind": KIND_DEPLOYMENT, "name": name, "apiVersion": APPS_API_VERSION}


def render_hpas(
    trait: HorizontalPodAutoscalerTrait, resources: Iterable[Mapping[str, Any]]
) -> list[dict[str, Any]]:
    """Build one HPA, controlled by ``trait``, for every scalable resource."""
    if not isinstance(trait, HorizontalPodAutoscalerTrait):
        raise TypeError("not a hpa trait")
    hpas = []
    for resource in resources:
        reference = render_reference(resource)
        if reference is None:
            continue
        spec: dict[str, Any] = {"scaleTargetRef": reference}
        if trait.spec.min_replicas is not None:
            spec["minReplicas"] = trait.spec.min_replicas
        spec["maxReplicas"] = trait.spec.max_replicas
        if trait.spec.target_cpu_utilization_percentage is not None:
            spec["targetCPUUtilizationPercentage"] = trait.spec.target_cpu_utilization_percentage
        hpa: dict[str, Any] = {
            "apiVersion": GROUP_VERSION_HPA,
            "kind": KIND_HPA,
            "metadata": {
                "name": trait.metadata.name,
                "namespace": trait.metadata.namespace,
                "labels": {LABEL_KEY: trait.metadata.uid},
            },
            "spec": spec,
        }
        hpas.append(dict(set_controller_reference(trait, hpa)))
    return hpas


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
    if api_version == OAM_API_VERSION:
        if child_resources is not None:
            return list(child_resources(workload))
        return _owned_children(client, workload)
    if api_version == APPS_API_VERSION:
        log.info("workload is K8S native resources, APIVersion %s", api_version)
        return [workload]
    if api_version == "":
        raise WorkloadTypeError("failed to get the workload APIVersion")
    raise WorkloadTypeError(f"This trait doesn't support this APIVersion{api_version}")


class HorizontalPodAutoscalerTraitReconciler:
    """Drives a HorizontalPodAutoscalerTrait towards matching HPAs."""

    def __init__(self, client: Client, child_resources: ChildResources | None = None) -> None:
        self.client = client
        self.child_resources = child_resources

    def _update_status(self, trait: HorizontalPodAutoscalerTrait) -> None:
        key = ObjectKey(trait.metadata.name, trait.metadata.namespace)
        current = self.client.get(trait.api_version, trait.kind, key)
        current["status"] = trait.status.to_dict()
        self.client.update(current)

    def _patch_condition(self, trait: HorizontalPodAutoscalerTrait, condition: Condition) -> None:
        trait.set_conditions(condition)
        self._update_status(trait)

    def _fetch_workload(self, trait: HorizontalPodAutoscalerTrait) -> dict[str, Any]:
        ref = trait.workload_reference
        key = ObjectKey(ref.name, trait.metadata.namespace)
        return self.client.get(ref.api_version, ref.kind, key)

    def reconcile(self, key: ObjectKey) -> Result:
        """Reconcile the HorizontalPodAutoscalerTrait named by ``key``."""
        log.info("Reconcile HorizontalPodAutoscalerTrait %s", key)
        try:
            data = self.client.get(str(GROUP_VERSION), KIND, key)
        except NotFoundError:
            return Result()
        trait = HorizontalPodAutoscalerTrait.from_dict(data)

        try:
            workload = self._fetch_workload(trait)
        except ClientError as err:
            log.error("Workload not found for %s: %s", key, err)
            self._patch_condition(trait, reconcile_error(f"{ERR_LOCATE_WORKLOAD}: {err}"))
            return RECONCILE_WAIT_RESULT

        try:
            resources = determine_workload_type(self.client, workload, self.child_resources)
        except (WorkloadTypeError, ClientError) as err:
            log.error("Cannot find the workload's child resources of %s: %s", key, err)
            self._patch_condition(trait, reconcile_error(ERR_LOCATE_RESOURCES))
            return RECONCILE_WAIT_RESULT

        hpas = render_hpas(trait, resources)
        if not hpas:
            log.info("Cannot get any HPA-applicable resources")
            raise NoApplicableResourcesError(ERR_LOCATE_AVAILABLE_RESOURCES)

        hpa_uids: list[str] = []
        trait.status.resources = []
        for hpa in hpas:
            name = hpa["metadata"]["name"]
            try:
                applied = self.client.apply(hpa, field_owner=name)
            except ClientError as err:
                log.error("Failed to apply a HPA (total %d): %s", len(hpas), err)
                self._patch_condition(trait, reconcile_error(f"{ERR_APPLY_HPA}: {err}"))
                return RECONCILE_WAIT_RESULT
            uid = applied["metadata"]["uid"]
            log.info("Successfully applied a HPA, UID %s", uid)
            gvk = group_version_kind(applied)
            trait.status.resources.append(
                TypedReference(str(gvk.group_version), gvk.kind, applied["metadata"]["name"], uid)
            )
            hpa_uids.append(uid)
            self._update_status(trait)

        try:
            self.clean_up_legacy_hpas(trait, hpa_uids)
        except ClientError as err:
            log.error("Failed to delete legacy HPAs: %s", err)
            self._patch_condition(trait, reconcile_error(f"{ERR_GC_HPA}: {err}"))
            return RECONCILE_WAIT_RESULT

        self._patch_condition(trait, reconcile_success())
        return Result()

    def clean_up_legacy_hpas(
        self, trait: HorizontalPodAutoscalerTrait, hpa_uids: Iterable[str]
    ) -> list[TypedReference]:
        """Delete HPAs recorded in the trait's status whose UID is not in ``hpa_uids``."""
        keep = set(hpa_uids)
        removed = []
        for ref in trait.status.resources:
            if ref.kind != KIND_HPA or ref.api_version != GROUP_VERSION_HPA or ref.uid in keep:
                continue
            log.info("Find a legacy HPA, UID %s", ref.uid)
            key = ObjectKey(ref.name, trait.metadata.namespace)
            try:
                legacy = self.client.get(GROUP_VERSION_HPA, KIND_HPA, key)
            except NotFoundError as err:
                log.info("Failed to get the legacy HPA: %s", err)
                continue
            self.client.delete(legacy)
            removed.append(ref)
            log.info("Delete a legacy HPA, UID %s", ref.uid)
        return removed