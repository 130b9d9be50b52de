"""Reconciles Autoscaler traits into KEDA ScaledObjects."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from oamtraits.autoscaler_api import GROUP_VERSION, KIND, Autoscaler, TargetWorkload
from oamtraits.core import (
    RECONCILE_WAIT_RESULT,
    Client,
    ClientError,
    Condition,
    NotFoundError,
    ObjectKey,
    Result,
    reconcile_error,
)
from oamtraits.keda import (
    KEDA_GROUP_VERSION,
    SCALED_OBJECT_KIND,
    CronTriggerError,
    render_scaled_object,
)

log = logging.getLogger(__name__)

ERR_LOCATE_APP_CONFIG = "cannot locate the parent application configuration to emit event to"
ERR_LOCATING_WORKLOAD = "failed to locate the workload"
ERR_FETCH_CHILD_RESOURCES = "failed to fetch workload child resources"

APP_CONFIG_KIND = "ApplicationConfiguration"
SCALABLE_KINDS = ("Deployment", "StatefulSet", "DaemonSet", "ReplicaSet")
APPS_API_VERSION = "apps/v1"

EVENT_WARNING = "Warning"


@dataclass(frozen=True)
class Event:
    """A warning recorded against an object."""

    kind: str
    name: str
    type: str
    reason: str
    message: str


def select_target_workload(
    workload: Mapping[str, Any], resources: Iterable[Mapping[str, Any]]
) -> TargetWorkload:
    """Pick the first resource KEDA can scale, falling back to the workload."""
    for resource in resources:
        if resource.get("kind") in SCALABLE_KINDS:
            chosen = resource
            break
    else:
        chosen = workload
    return TargetWorkload(
        name=(chosen.get("metadata") or {}).get("name", ""),
        api_version=chosen.get("apiVersion", ""),
        kind=chosen.get("kind", ""),
    )


class AutoscalerReconciler:
    """Drives an Autoscaler trait towards a matching KEDA ScaledObject."""

    def __init__(
        self,
        client: Client,
        child_resources: Callable[[dict[str, Any]], Iterable[dict[str, Any]]] | None = None,
    ) -> None:
        self.client = client
        self.child_resources = child_resources or self._owned_children
        self.events: list[Event] = []

    def _owned_children(self, workload: Mapping[str, Any]) -> list[dict[str, Any]]:
        meta = workload.get("metadata") or {}
        uid = meta.get("uid", "")
        children = []
        for kind in SCALABLE_KINDS:
            for candidate in self.client.list(APPS_API_VERSION, kind, namespace=meta.get("namespace", "")):
                owners = (candidate.get("metadata") or {}).get("ownerReferences") or []
                if uid and any(owner.get("uid") == uid for owner in owners):
                    children.append(candidate)
        return children

    def _record(self, obj: Mapping[str, Any], reason: str, error: BaseException) -> None:
        self.events.append(
            Event(
                kind=obj.get("kind", ""),
                name=(obj.get("metadata") or {}).get("name", ""),
                type=EVENT_WARNING,
                reason=str(reason),
                message=str(error),
            )
        )

    def _patch_condition(self, scaler: Autoscaler, condition: Condition) -> None:
        scaler.set_conditions(condition)
        key = ObjectKey(scaler.metadata.name, scaler.metadata.namespace)
        current = self.client.get(scaler.api_version, scaler.kind, key)
        current["status"] = scaler.status.to_dict()
        self.client.update(current)

    def _locate_parent_app_config(self, scaler: Autoscaler) -> dict[str, Any] | None:
        for owner in scaler.metadata.owner_references:
            if owner.get("kind") == APP_CONFIG_KIND:
                key = ObjectKey(owner.get("name", ""), scaler.metadata.namespace)
                return self.client.get(owner.get("apiVersion", ""), APP_CONFIG_KIND, key)
        return None

    def _fetch_workload(self, scaler: Autoscaler) -> dict[str, Any]:
        ref = scaler.workload_reference
        key = ObjectKey(ref.name, scaler.metadata.namespace)
        return self.client.get(ref.api_version, ref.kind, key)

    def reconcile(self, key: ObjectKey) -> Result:
        """Reconcile the Autoscaler named by ``key``."""
        log.info("Reconciling Autoscaler %s", key)
        try:
            data = self.client.get(str(GROUP_VERSION), KIND, key)
        except NotFoundError:
            log.info("Autoscaler %s not found", key)
            return RECONCILE_WAIT_RESULT
        scaler = Autoscaler.from_dict(data)

        try:
            event_target = self._locate_parent_app_config(scaler)
        except ClientError:
            log.error("Failed to find the parent resource of %s", key)
            self._patch_condition(scaler, reconcile_error(ERR_LOCATE_APP_CONFIG))
            return RECONCILE_WAIT_RESULT
        if event_target is None:
            event_target = scaler.to_dict()

        try:
            workload = self._fetch_workload(scaler)
        except ClientError as err:
            log.error("Error while fetching the workload of %s: %s", key, err)
            self._record(scaler.to_dict(), ERR_LOCATING_WORKLOAD, err)
            self._patch_condition(scaler, reconcile_error(f"{ERR_LOCATING_WORKLOAD}: {err}"))
            return RECONCILE_WAIT_RESULT

        try:
            resources = list(self.child_resources(workload))
        except ClientError as err:
            log.error("Error while fetching the workload child resources of %s: %s", key, err)
            self._record(event_target, ERR_FETCH_CHILD_RESOURCES, err)
            self._patch_condition(scaler, reconcile_error(ERR_FETCH_CHILD_RESOURCES))
            return RECONCILE_WAIT_RESULT
        resources.append(workload)

        scaler.spec.target_workload = select_target_workload(workload, resources)
        self.scale_by_keda(scaler, key.namespace)
        return Result()

    def scale_by_keda(self, scaler: Autoscaler, namespace: str) -> dict[str, Any] | None:
        """Create or update the ScaledObject for ``scaler``; return it as stored."""
        try:
            scaled_object = render_scaled_object(scaler, namespace)
        except CronTriggerError as err:
            log.error("%s: %s", err.reason, err)
            self._record(scaler.to_dict(), err.reason, err)
            raise
        key = ObjectKey(scaler.metadata.name, namespace)
        try:
            existing = self.client.get(str(KEDA_GROUP_VERSION), SCALED_OBJECT_KIND, key)
        except NotFoundError:
            created = self.client.create(scaled_object)
            log.info("KEDA ScaledObj created: %s", key)
            return created
        except ClientError as err:
            # Any other lookup failure leaves the ScaledObject as it is.
            log.error("failed to look up KEDA ScaledObj %s: %s", key, err)
            return None
        existing["spec"] = scaled_object["spec"]
        updated = self.client.update(existing)
        log.info("KEDA ScaledObj updated: %s", key)
        return updated