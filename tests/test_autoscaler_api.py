import copy

import pytest

from oamtraits.autoscaler_api import (
    Autoscaler,
    AutoscalerSpec,
    TargetWorkload,
    Trigger,
    TriggerType,
)
from oamtraits.core import (
    STANDARD_GROUP_VERSION,
    ConditionStatus,
    ConditionType,
    TypedReference,
    reconcile_success,
)

SAMPLE = {
    "apiVersion": "standard.oam.dev/v1alpha1",
    "kind": "Autoscaler",
    "metadata": {"name": "scaler", "namespace": "default"},
    "spec": {
        "minReplicas": 1,
        "maxReplicas": 5,
        "triggers": [
            {
                "name": "office-hours",
                "type": "cron",
                "condition": {"startAt": "08:00", "duration": "2h", "days": "Monday", "replicas": "3"},
            }
        ],
        "targetWorkload": {"name": "web", "apiVersion": "apps/v1", "kind": "Deployment"},
        "workloadRef": {"apiVersion": "core.oam.dev/v1alpha2", "kind": "ContainerizedWorkload", "name": "web"},
    },
    "status": {},
}


def test_round_trip_of_sample():
    assert Autoscaler.from_dict(copy.deepcopy(SAMPLE)).to_dict() == SAMPLE


def test_from_dict_reads_fields():
    scaler = Autoscaler.from_dict(SAMPLE)
    assert scaler.metadata.name == "scaler"
    assert scaler.spec.max_replicas == 5
    assert scaler.spec.triggers[0].type is TriggerType.CRON
    assert scaler.spec.target_workload == TargetWorkload("web", "apps/v1", "Deployment")


def test_unknown_trigger_type_is_kept_as_text():
    trigger = Trigger.from_dict({"type": "prometheus", "condition": {"query": "up"}})
    assert trigger.type == "prometheus"
    assert trigger.to_dict()["type"] == "prometheus"


def test_trigger_without_name_omits_it():
    data = Trigger(TriggerType.CPU, {"type": "Utilization"}).to_dict()
    assert "name" not in data
    assert data["type"] == "cpu"


def test_spec_omits_unset_replicas():
    data = AutoscalerSpec().to_dict()
    assert "minReplicas" not in data
    assert "maxReplicas" not in data
    assert data["triggers"] == []


def test_defaults_name_the_group_version():
    scaler = Autoscaler()
    assert scaler.api_version == str(STANDARD_GROUP_VERSION)
    assert scaler.to_dict()["kind"] == "Autoscaler"


def test_workload_reference_property_updates_spec():
    scaler = Autoscaler()
    ref = TypedReference("apps/v1", "Deployment", "web")
    scaler.workload_reference = ref
    assert scaler.spec.workload_reference == ref
    assert scaler.to_dict()["spec"]["workloadRef"] == ref.to_dict()


def test_conditions_are_kept_in_status():
    scaler = Autoscaler()
    scaler.set_conditions(reconcile_success())
    assert scaler.get_condition(ConditionType.SYNCED).status is ConditionStatus.TRUE
    restored = Autoscaler.from_dict(scaler.to_dict())
    assert restored.status == scaler.status


@pytest.mark.parametrize("value", ["cron", "cpu"])
def test_known_trigger_types_parse(value):
    assert Trigger.from_dict({"type": value}).type == TriggerType(value)