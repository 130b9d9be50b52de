"""Prometheus resources that back a MetricHPATrait, and clean-up of stale ones."""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable, Mapping

from oamtraits.core import (
    Client,
    GroupVersion,
    NotFoundError,
    ObjectKey,
    TypedReference,
    group_version_kind,
)
from oamtraits.metrichpa_api import MetricHPATrait

log = logging.getLogger(__name__)

GVK_DEPLOYMENT = "apps/v1, Kind=Deployment"
GVK_SERVICE = "/v1, Kind=Service"

APPS_API_VERSION = "apps/v1"
CORE_API_VERSION = "v1"
KIND_DEPLOYMENT = "Deployment"
KIND_SERVICE = "Service"
KIND_CONFIG_MAP = "ConfigMap"

SCALED_OBJECT_GROUP_VERSION = GroupVersion("keda.k8s.io", "v1alpha1")
SCALED_OBJECT_API_VERSION = str(SCALED_OBJECT_GROUP_VERSION)
KIND_SCALED_OBJECT = "ScaledObject"

LABEL_KEY = "extend.oam.dev/metrichpatrait"
DEFAULT_PROMETHEUS_SERVER_PORT = 9090

_CONFIG_VOLUME = "prometheus-config-volume"
_STORAGE_VOLUME = "prometheus-storage-volume"

_PROMETHEUS_CONFIG = (
    "global:\n"
    "  scrape_interval: 5s\n"
    "  evaluation_interval: 5s\n"
    "scrape_configs:\n"
    "  - job_name: '{name}'\n"
    "    kubernetes_sd_configs:\n"
    "    - role: endpoints\n"
    "    relabel_configs:\n"
    "    - source_labels: [__meta_kubernetes_endpoints_name]\n"
    "      regex: '{name}'\n"
    "      action: keep"
)


def _config_map_name(trait: MetricHPATrait) -> str:
    return "prom-conf-" + trait.spec.workload_reference.name


def render_prometheus_config_map(trait: MetricHPATrait) -> dict[str, Any]:
    """Build the ConfigMap holding the Prometheus scrape configuration for the workload."""
    service_name = trait.spec.workload_reference.name
    return {
        "apiVersion": CORE_API_VERSION,
        "kind": KIND_CONFIG_MAP,
        "metadata": {
            "name": _config_map_name(trait),
            "namespace": trait.metadata.namespace,
            "labels": {LABEL_KEY: trait.metadata.uid},
        },
        "data": {"prometheus.yml": _PROMETHEUS_CONFIG.format(name=service_name)},
    }


def render_prometheus_resources(trait: MetricHPATrait) -> tuple[dict[str, Any], dict[str, Any]]:
    """Build the Deployment and Service of a Prometheus server for the trait's workload."""
    workload_name = trait.spec.workload_reference.name
    namespace = trait.metadata.namespace
    labels = {"app": "prometheus-server-" + workload_name}

    deployment = {
        "apiVersion": APPS_API_VERSION,
        "kind": KIND_DEPLOYMENT,
        "metadata": {"name": "prometheus-deployment-" + workload_name, "namespace": namespace},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {
                    "volumes": [
                        {"name": _CONFIG_VOLUME, "configMap": {"name": _config_map_name(trait)}},
                        {"name": _STORAGE_VOLUME, "emptyDir": {}},
                    ],
                    "containers": [
                        {
                            "name": "prometheus",
                            "image": "prom/prometheus",
                            "args": [
                                "--config.file=/etc/prometheus/prometheus.yml",
                                "--storage.tsdb.path=/prometheus/",
                            ],
                            "ports": [
                                {
                                    "containerPort": DEFAULT_PROMETHEUS_SERVER_PORT,
                                    "protocol": "TCP",
                                }
                            ],
                            "volumeMounts": [
                                {"name": _CONFIG_VOLUME, "mountPath": "/etc/prometheus/"},
                                {"name": _STORAGE_VOLUME, "mountPath": "/prometheus/"},
                            ],
                        }
                    ],
                },
            },
        },
    }

    service = {
        "apiVersion": CORE_API_VERSION,
        "kind": KIND_SERVICE,
        "metadata": {"name": "prometheus-service-" + workload_name, "namespace": namespace},
        "spec": {
            "ports": [{"protocol": "TCP", "port": DEFAULT_PROMETHEUS_SERVER_PORT}],
            "selector": dict(labels),
        },
    }
    return deployment, service


def split_child_resources(
    resources: Iterable[Mapping[str, Any]],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Pick the Deployment and the Service among a workload's children.

    The last of each kind wins; a missing one comes back as an empty mapping.
    """
    deployment: dict[str, Any] = {}
    service: dict[str, Any] = {}
    for resource in resources:
        if not isinstance(resource, Mapping):
            raise ValueError("child resource is not an object")
        gvk = str(group_version_kind(resource))
        if gvk == GVK_DEPLOYMENT:
            deployment = copy.deepcopy(dict(resource))
        elif gvk == GVK_SERVICE:
            service = copy.deepcopy(dict(resource))
    return deployment, service


def _remove(client: Client, api_version: str, kind: str, ref: TypedReference, namespace: str) -> bool:
    key = ObjectKey(ref.name, namespace)
    try:
        stale = client.get(api_version, kind, key)
    except NotFoundError:
        return False
    client.delete(stale)
    return True


def cleanup_resources(
    client: Client,
    trait: MetricHPATrait,
    deploy_uid: str | None,
    service_uid: str | None,
    scaled_object_uid: str | None,
) -> list[TypedReference]:
    """Delete Deployments, Services and ScaledObjects recorded in the trait's status
    that are not the current ones; return the references removed."""
    namespace = trait.metadata.namespace
    removed = []
    for ref in trait.status.resources:
        if ref.kind == KIND_DEPLOYMENT and ref.api_version == APPS_API_VERSION:
            if ref.uid == deploy_uid:
                continue
            log.info("Found an orphaned deployment, UID %s", ref.uid)
            if _remove(client, APPS_API_VERSION, KIND_DEPLOYMENT, ref, namespace):
                removed.append(ref)
                log.info("Removed an orphaned deployment, UID %s", ref.uid)
        elif ref.kind == KIND_SERVICE and ref.api_version == CORE_API_VERSION:
            if ref.uid == service_uid:
                continue
            log.info("Found an orphaned service, UID %s", ref.uid)
            if _remove(client, CORE_API_VERSION, KIND_SERVICE, ref, namespace):
                removed.append(ref)
                log.info("Removed an orphaned service, UID %s", ref.uid)
        elif ref.kind == KIND_SCALED_OBJECT and ref.api_version == SCALED_OBJECT_API_VERSION:
            if ref.uid == scaled_object_uid:
                continue
            log.info("Found an orphaned KEDA.scaledobject, UID %s", ref.uid)
            if _remove(client, SCALED_OBJECT_API_VERSION, KIND_SCALED_OBJECT, ref, namespace):
                removed.append(ref)
                log.info("Removed an orphaned KEDA.scaledobject, UID %s", ref.uid)
    return removed