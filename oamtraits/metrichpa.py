"""Reconciles MetricHPATraits into Prometheus resources and a KEDA ScaledObject."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, NoReturn

from oamtraits.core import (
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
from oamtraits.metrichpa_api import GROUP_VERSION, KIND, MetricHPATrait
from oamtraits.prometheus import (
    APPS_API_VERSION,
    CORE_API_VERSION,
    DEFAULT_PROMETHEUS_SERVER_PORT,
    KIND_DEPLOYMENT,
    KIND_SCALED_OBJECT,
    KIND_SERVICE,
    SCALED_OBJECT_API_VERSION,
    cleanup_resources,
    render_prometheus_config_map,
    render_prometheus_resources,
    split_child_resources,
)

log = logging.getLogger(__name__)

ERR_LOCATE_RESOURCES = "cannot find resources"
ERR_CREATE_CONFIG_MAP = "cannot create configmap"
ERR_CREATE_PROMETHEUS_SERVICE = "cannot create service for Prometheus"
ERR_CREATE_PROMETHEUS_DEPLOYMENT = "cannot create deployment for Prometheus"
ERR_CREATE_SCALED_OBJECT = "cannot create KEDA ScaledObject"
ERR_GARBAGE_COLLECTION = "garbage collect failed"

PROMETHEUS_TRIGGER_TYPE = "prometheus"

ChildResources = Callable[[dict[str, Any]], Iterable[dict[str, Any]]]


def render_metric_scaled_object(trait: MetricHPATrait, server_address: str) -> dict[str, Any]:
    """Build the ScaledObject that scales the trait's workload on a Prometheus query."""
    threshold = trait.spec.prom_threshold
    if threshold is None:
        raise ValueError("spec.promThreshold is required")
    spec: dict[str, Any] = {
        "scaleTargetRef": {"deploymentName": trait.spec.workload_reference.name},
    }
    optional = (
        ("pollingInterval", trait.spec.polling_interval),
        ("cooldownPeriod", trait.spec.cooldown_period),
        ("minReplicaCount", trait.spec.min_replica_count),
        ("maxReplicaCount", trait.spec.max_replica_count),
    )
    for key, value in optional:
        if value is not None:
            spec[key] = value
    spec["triggers"] = [
        {
            "type": PROMETHEUS_TRIGGER_TYPE,
            "metadata": {
                "serverAddress": server_address,
                "metricName": trait.metadata.name + "-metric",
                "threshold": str(threshold),
                "query": trait.spec.prom_query,
            },
        }
    ]
    scaled_object: dict[str, Any] = {
        "apiVersion": SCALED_OBJECT_API_VERSION,
        "kind": KIND_SCALED_OBJECT,
        "metadata": {"name": trait.metadata.name, "namespace": trait.metadata.namespace},
        "spec": spec,
    }
    return dict(set_controller_reference(trait, scaled_object))


def _server_address(service: Mapping[str, Any]) -> str:
    meta = service.get("metadata") or {}
    host = ".".join([meta.get("name", ""), meta.get("namespace", ""), "svc.cluster.local"])
    return f"http://{host}:{DEFAULT_PROMETHEUS_SERVER_PORT}"


def _reference(obj: Mapping[str, Any]) -> TypedReference:
    gvk = group_version_kind(obj)
    meta = obj.get("metadata") or {}
    return TypedReference(str(gvk.group_version), gvk.kind, meta.get("name", ""), meta.get("uid", ""))


def _uid(obj: Mapping[str, Any] | None) -> str | None:
    if obj is None:
        return None
    return (obj.get("metadata") or {}).get("uid")


class MetricHPATraitReconciler:
    """Drives a MetricHPATrait towards a Prometheus setup and a KEDA ScaledObject."""

    def __init__(self, client: Client, child_resources: ChildResources | None = None) -> None:
        self.client = client
        self.child_resources = child_resources

    def _update_status(self, trait: MetricHPATrait) -> None:
        key = ObjectKey(trait.metadata.name, trait.metadata.namespace)
        current = self.client.get(trait.api_version, trait.kind, key)
        current["status"] = trait.status.to_dict()
        self.client.update(current)

    def _patch_condition(self, trait: MetricHPATrait, condition: Condition) -> None:
        trait.set_conditions(condition)
        self._update_status(trait)

    def _fail(self, trait: MetricHPATrait, message: str, err: BaseException) -> NoReturn:
        """Record ``message`` as a reconcile error on the trait, then raise ``err``."""
        try:
            self._patch_condition(trait, reconcile_error(message))
        except ClientError as patch_err:
            raise err from patch_err
        raise err

    def _fetch_workload(self, trait: MetricHPATrait) -> dict[str, Any]:
        ref = trait.workload_reference
        key = ObjectKey(ref.name, trait.metadata.namespace)
        try:
            return self.client.get(ref.api_version, ref.kind, key)
        except ClientError:
            log.error("Cannot find referenced workload %s %s", ref.kind, ref.name)
            raise

    def _owned_children(self, workload: Mapping[str, Any]) -> list[dict[str, Any]]:
        meta = workload.get("metadata") or {}
        uid = meta.get("uid", "")
        if not uid:
            return []
        children = []
        for api_version, kind in ((APPS_API_VERSION, KIND_DEPLOYMENT), (CORE_API_VERSION, KIND_SERVICE)):
            for candidate in self.client.list(api_version, kind, namespace=meta.get("namespace", "")):
                owners = (candidate.get("metadata") or {}).get("ownerReferences") or []
                if any(owner.get("uid") == uid for owner in owners):
                    children.append(candidate)
        return children

    def _apply(self, trait: MetricHPATrait, obj: Mapping[str, Any], failure: str) -> dict[str, Any]:
        try:
            return self.client.apply(dict(obj), field_owner=trait.metadata.uid)
        except ClientError as err:
            log.error("%s: %s", failure, err)
            self._fail(trait, f"{failure}: {err}", err)

    def reconcile(self, key: ObjectKey) -> Result:
        """Reconcile the MetricHPATrait named by ``key``; failures are raised after
        being recorded on the trait where the trait can be updated."""
        log.info("Reconcile MetricHPATrait %s", key)
        try:
            data = self.client.get(str(GROUP_VERSION), KIND, key)
        except NotFoundError:
            return Result()
        trait = MetricHPATrait.from_dict(data)

        workload = self._fetch_workload(trait)

        try:
            if self.child_resources is not None:
                resources = list(self.child_resources(workload))
            else:
                resources = self._owned_children(workload)
        except ClientError as err:
            self._fail(trait, ERR_LOCATE_RESOURCES, err)

        try:
            child_deployment, child_service = split_child_resources(resources)
        except ValueError as err:
            self._fail(trait, ERR_LOCATE_RESOURCES, err)
        log.info("Get resources: deployment %s, service %s", child_deployment, child_service)

        config_map = dict(set_controller_reference(trait, render_prometheus_config_map(trait)))
        log.info("Render promeConfigMap: %s", config_map["data"])
        self._apply(trait, config_map, ERR_CREATE_CONFIG_MAP)

        prometheus_deployment: dict[str, Any] | None = None
        prometheus_service: dict[str, Any] | None = None
        if trait.spec.prom_server_address:
            server_address = trait.spec.prom_server_address
        else:
            deployment, service = render_prometheus_resources(trait)
            deployment = dict(set_controller_reference(trait, deployment))
            service = dict(set_controller_reference(trait, service))
            prometheus_deployment = self._apply(trait, deployment, ERR_CREATE_PROMETHEUS_DEPLOYMENT)
            prometheus_service = self._apply(trait, service, ERR_CREATE_PROMETHEUS_SERVICE)
            server_address = _server_address(prometheus_service)

        scaled_object = render_metric_scaled_object(trait, server_address)
        applied_scaled_object = self._apply(trait, scaled_object, ERR_CREATE_SCALED_OBJECT)

        try:
            cleanup_resources(
                self.client,
                trait,
                _uid(prometheus_deployment),
                _uid(prometheus_service),
                _uid(applied_scaled_object),
            )
        except ClientError as err:
            log.error("Garbage collection failed: %s", err)
            self._fail(trait, f"{ERR_GARBAGE_COLLECTION}: {err}", err)

        trait.status.resources = [_reference(applied_scaled_object)]
        if prometheus_deployment is not None and prometheus_service is not None:
            trait.status.resources.append(_reference(prometheus_deployment))
            trait.status.resources.append(_reference(prometheus_service))
        self._update_status(trait)

        self._patch_condition(trait, reconcile_success())
        return Result()