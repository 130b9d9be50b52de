import pytest

from oamtraits.core import (
    RECONCILE_WAIT_RESULT,
    ConditionStatus,
    ConditionType,
    MemoryClient,
    ObjectKey,
    ObjectMeta,
    Result,
    TypedReference,
)
from oamtraits.cronhpa import (
    CRON_HPA_API_VERSION,
    CRON_HPA_KIND,
    ERR_LOCATE_RESOURCES,
    ERR_LOCATE_WORKLOAD,
    LABEL_KEY,
    CronHPATraitReconciler,
    WorkloadTypeError,
    determine_workload_type,
    render_cron_hpa,
)
from oamtraits.cronhpa_api import CronHPATrait, CronHPATraitSpec, Job

NS = "ns"
KEY = ObjectKey("cron", NS)


def _trait(ref=None):
    return CronHPATrait(
        metadata=ObjectMeta(name="cron", namespace=NS),
        spec=CronHPATraitSpec(
            jobs=[Job(name="up", schedule="0 0 8 * * *", target_size=4)],
            workload_reference=ref or TypedReference("apps/v1", "Deployment", "web"),
        ),
    )


def _deployment(name="web", owners=()):
    meta = {"name": name, "namespace": NS}
    if owners:
        meta["ownerReferences"] = list(owners)
    return {"apiVersion": "apps/v1", "kind": "Deployment", "metadata": meta}


def _stored_trait(client):
    return CronHPATrait.from_dict(client.get("core.oam.dev/v1alpha2", "CronHPATrait", KEY))


def test_render_cron_hpa_fields():
    trait = _trait()
    trait.metadata.uid = "trait-uid"
    rendered = render_cron_hpa(trait, _deployment())
    assert rendered["apiVersion"] == CRON_HPA_API_VERSION
    assert rendered["kind"] == CRON_HPA_KIND
    assert rendered["metadata"]["name"] == "cron"
    assert rendered["metadata"]["labels"] == {LABEL_KEY: "trait-uid"}
    assert rendered["spec"]["scaleTargetRef"] == {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "name": "web",
    }
    assert rendered["spec"]["jobs"][0]["targetSize"] == 4
    owner = rendered["metadata"]["ownerReferences"][0]
    assert owner["uid"] == "trait-uid"
    assert owner["controller"] is True


def test_render_cron_hpa_rejects_other_objects():
    with pytest.raises(TypeError, match="object is not a cronHPA trait"):
        render_cron_hpa({"kind": "Something"}, _deployment())


def test_determine_native_workload_is_itself():
    workload = _deployment()
    assert determine_workload_type(MemoryClient(), workload) == [workload]


def test_determine_oam_workload_uses_callable():
    workload = {"apiVersion": "core.oam.dev/v1alpha2", "kind": "ContainerizedWorkload"}
    child = _deployment("child")
    assert determine_workload_type(MemoryClient(), workload, lambda w: [child]) == [child]


def test_determine_oam_workload_default_lists_owned_children():
    client = MemoryClient()
    workload = client.create(
        {
            "apiVersion": "core.oam.dev/v1alpha2",
            "kind": "ContainerizedWorkload",
            "metadata": {"name": "cw", "namespace": NS},
        }
    )
    uid = workload["metadata"]["uid"]
    client.create(_deployment("owned", owners=[{"uid": uid}]))
    client.create(_deployment("stranger"))
    children = determine_workload_type(client, workload)
    assert [c["metadata"]["name"] for c in children] == ["owned"]


def test_determine_errors():
    with pytest.raises(WorkloadTypeError, match="failed to get the workload apiVersion"):
        determine_workload_type(MemoryClient(), {"kind": "X"})
    with pytest.raises(WorkloadTypeError, match="doesn't support the type"):
        determine_workload_type(MemoryClient(), {"apiVersion": "batch/v1"})


def test_reconcile_missing_trait():
    assert CronHPATraitReconciler(MemoryClient()).reconcile(KEY) == Result()


def test_reconcile_creates_cron_hpa_and_records_status():
    client = MemoryClient([_trait(), _deployment()])
    assert CronHPATraitReconciler(client).reconcile(KEY) == Result()
    cron_hpa = client.get(CRON_HPA_API_VERSION, CRON_HPA_KIND, KEY)
    assert cron_hpa["spec"]["scaleTargetRef"]["name"] == "web"
    trait = _stored_trait(client)
    assert trait.status.resources == [
        TypedReference(CRON_HPA_API_VERSION, CRON_HPA_KIND, "cron", cron_hpa["metadata"]["uid"])
    ]
    assert trait.get_condition(ConditionType.SYNCED).status == ConditionStatus.TRUE


def test_reconcile_twice_keeps_single_resource():
    client = MemoryClient([_trait(), _deployment()])
    reconciler = CronHPATraitReconciler(client)
    reconciler.reconcile(KEY)
    first = _stored_trait(client).status.resources
    reconciler.reconcile(KEY)
    assert _stored_trait(client).status.resources == first
    assert len(client.list(CRON_HPA_API_VERSION, CRON_HPA_KIND)) == 1


def test_reconcile_missing_workload_waits():
    client = MemoryClient([_trait()])
    assert CronHPATraitReconciler(client).reconcile(KEY) == RECONCILE_WAIT_RESULT
    condition = _stored_trait(client).get_condition(ConditionType.SYNCED)
    assert condition.status == ConditionStatus.FALSE
    assert condition.message.startswith(ERR_LOCATE_WORKLOAD)


def test_reconcile_unsupported_workload_waits():
    ref = TypedReference("batch/v1", "Job", "batch")
    workload = {"apiVersion": "batch/v1", "kind": "Job", "metadata": {"name": "batch", "namespace": NS}}
    client = MemoryClient([_trait(ref), workload])
    assert CronHPATraitReconciler(client).reconcile(KEY) == RECONCILE_WAIT_RESULT
    condition = _stored_trait(client).get_condition(ConditionType.SYNCED)
    assert condition.message == ERR_LOCATE_RESOURCES
    assert client.list(CRON_HPA_API_VERSION, CRON_HPA_KIND) == []


def test_cleanup_removes_stale_cron_hpas_only():
    client = MemoryClient()
    stale = client.create(
        {"apiVersion": CRON_HPA_API_VERSION, "kind": CRON_HPA_KIND, "metadata": {"name": "old", "namespace": NS}}
    )
    trait = _trait()
    stale_ref = TypedReference(CRON_HPA_API_VERSION, CRON_HPA_KIND, "old", stale["metadata"]["uid"])
    trait.status.resources = [
        stale_ref,
        TypedReference(CRON_HPA_API_VERSION, CRON_HPA_KIND, "cron", "current"),
        TypedReference(CRON_HPA_API_VERSION, CRON_HPA_KIND, "gone", "missing"),
        TypedReference("apps/v1", "Deployment", "web", "other"),
    ]
    removed = CronHPATraitReconciler(client).cleanup_resources(trait, "current")
    assert removed == [stale_ref]
    assert client.list(CRON_HPA_API_VERSION, CRON_HPA_KIND) == []


def test_reconcile_garbage_collects_previous_cron_hpa():
    client = MemoryClient()
    old = client.create(
        {"apiVersion": CRON_HPA_API_VERSION, "kind": CRON_HPA_KIND, "metadata": {"name": "old", "namespace": NS}}
    )
    trait = _trait()
    trait.status.resources = [
        TypedReference(CRON_HPA_API_VERSION, CRON_HPA_KIND, "old", old["metadata"]["uid"])
    ]
    client.create(trait.to_dict())
    client.create(_deployment())
    assert CronHPATraitReconciler(client).reconcile(KEY) == Result()
    names = [o["metadata"]["name"] for o in client.list(CRON_HPA_API_VERSION, CRON_HPA_KIND)]
    assert names == ["cron"]