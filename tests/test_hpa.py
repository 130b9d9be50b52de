import pytest

from oamtraits.core import (
    RECONCILE_WAIT_RESULT,
    ClientError,
    ConditionStatus,
    ConditionType,
    MemoryClient,
    ObjectKey,
    ObjectMeta,
    Result,
    TypedReference,
)
from oamtraits.cronhpa import WorkloadTypeError
from oamtraits.cronhpa_api import CronHPATrait
from oamtraits.hpa import (
    HorizontalPodAutoscalerTraitReconciler,
    NoApplicableResourcesError,
    determine_workload_type,
    render_hpas,
    render_reference,
)
from oamtraits.hpa_api import (
    HorizontalPodAutoscalerTrait,
    HorizontalPodAutoscalerTraitSpec,
)


class FailingGetClient(MemoryClient):
    def get(self, api_version, kind, key):
        raise ClientError("mocked error")


class FailingUpdateClient(MemoryClient):
    def update(self, obj):
        raise ClientError("mocked error")


def mock_trait(ref=None, namespace="ns"):
    return HorizontalPodAutoscalerTrait(
        metadata=ObjectMeta(name="mockHPATrait", namespace=namespace),
        spec=HorizontalPodAutoscalerTraitSpec(
            max_replicas=5,
            min_replicas=2,
            target_cpu_utilization_percentage=50,
            workload_reference=ref or TypedReference("", "", "missing"),
        ),
    )


def deployment(name="mockDeploy", requests=None, owner_uid="", kind="Deployment"):
    container = {"name": "c"}
    if requests is not None:
        container["resources"] = {"requests": requests}
    meta = {"name": name, "namespace": "ns"}
    if owner_uid:
        meta["ownerReferences"] = [{"uid": owner_uid}]
    return {
        "apiVersion": "apps/v1",
        "kind": kind,
        "metadata": meta,
        "spec": {"template": {"spec": {"containers": [container]}}},
    }


def containerized_workload():
    return {
        "apiVersion": "core.oam.dev/v1alpha2",
        "kind": "ContainerizedWorkload",
        "metadata": {"name": "cw", "namespace": "ns", "uid": "mockCWUID"},
        "spec": {},
    }


def trait_key():
    return ObjectKey("mockHPATrait", "ns")


def test_cannot_get_trait_raises():
    reconciler = HorizontalPodAutoscalerTraitReconciler(FailingGetClient())
    with pytest.raises(ClientError, match="mocked error"):
        reconciler.reconcile(ObjectKey("x", "ns"))


def test_missing_trait_returns_empty_result():
    assert HorizontalPodAutoscalerTraitReconciler(MemoryClient()).reconcile(trait_key()) == Result()


def test_cannot_fetch_workload_with_failing_status_patch():
    client = FailingUpdateClient([mock_trait()])
    with pytest.raises(ClientError, match="mocked error"):
        HorizontalPodAutoscalerTraitReconciler(client).reconcile(trait_key())


def test_cannot_fetch_workload_records_error():
    client = MemoryClient([mock_trait()])
    result = HorizontalPodAutoscalerTraitReconciler(client).reconcile(trait_key())
    assert result == RECONCILE_WAIT_RESULT
    stored = HorizontalPodAutoscalerTrait.from_dict(
        client.get("core.oam.dev/v1alpha2", "HorizontalPodAutoscalerTrait", trait_key())
    )
    cond = stored.get_condition(ConditionType.SYNCED)
    assert cond.status == ConditionStatus.FALSE
    assert cond.message.startswith("cannot find workload")


def test_unsupported_workload_with_failing_status_patch():
    unsupported = {"apiVersion": "", "kind": "unknown", "metadata": {"name": "wl", "namespace": "ns"}}
    client = FailingUpdateClient([mock_trait(TypedReference("", "unknown", "wl")), unsupported])
    with pytest.raises(ClientError, match="mocked error"):
        HorizontalPodAutoscalerTraitReconciler(client).reconcile(trait_key())


def test_unsupported_workload_returns_wait():
    unsupported = {"apiVersion": "", "kind": "unknown", "metadata": {"name": "wl", "namespace": "ns"}}
    client = MemoryClient([mock_trait(TypedReference("", "unknown", "wl")), unsupported])
    result = HorizontalPodAutoscalerTraitReconciler(client).reconcile(trait_key())
    assert result == RECONCILE_WAIT_RESULT
    stored = client.get("core.oam.dev/v1alpha2", "HorizontalPodAutoscalerTrait", trait_key())
    assert stored["status"]["conditions"][0]["message"] == "cannot find resources"


def test_containerized_workload_renders_hpa():
    ref = TypedReference("core.oam.dev/v1alpha2", "ContainerizedWorkload", "cw")
    client = MemoryClient(
        [
            mock_trait(ref),
            containerized_workload(),
            deployment(requests={"CPU": "0"}, owner_uid="mockCWUID"),
        ]
    )
    result = HorizontalPodAutoscalerTraitReconciler(client).reconcile(trait_key())
    assert result == Result()
    hpa = client.get("autoscaling/v1", "HorizontalPodAutoscaler", trait_key())
    assert hpa["spec"]["scaleTargetRef"] == {
        "kind": "Deployment",
        "name": "mockDeploy",
        "apiVersion": "apps/v1",
    }
    assert hpa["spec"]["maxReplicas"] == 5
    stored = HorizontalPodAutoscalerTrait.from_dict(
        client.get("core.oam.dev/v1alpha2", "HorizontalPodAutoscalerTrait", trait_key())
    )
    assert [r.uid for r in stored.status.resources] == [hpa["metadata"]["uid"]]
    assert stored.get_condition(ConditionType.SYNCED).status == ConditionStatus.TRUE


def test_no_applicable_resources_raises():
    ref = TypedReference("core.oam.dev/v1alpha2", "ContainerizedWorkload", "cw")
    client = MemoryClient([mock_trait(ref), containerized_workload()])
    with pytest.raises(NoApplicableResourcesError, match="cannot find available resources"):
        HorizontalPodAutoscalerTraitReconciler(client).reconcile(trait_key())


def test_missing_requests_raises_from_reconcile():
    ref = TypedReference("apps/v1", "Deployment", "web")
    client = MemoryClient([mock_trait(ref), deployment(name="web")])
    with pytest.raises(ValueError, match="container.resources.requests"):
        HorizontalPodAutoscalerTraitReconciler(client).reconcile(trait_key())


def test_render_reference_deployment():
    ref = render_reference(deployment(name="web", requests={}))
    assert ref == {"kind": "Deployment", "name": "web", "apiVersion": "apps/v1"}


def test_render_reference_statefulset_uses_deployment_kind():
    ref = render_reference(deployment(name="db", requests={"cpu": "1"}, kind="StatefulSet"))
    assert ref == {"kind": "Deployment", "name": "db", "apiVersion": "apps/v1"}


def test_render_reference_missing_requests():
    with pytest.raises(ValueError, match="cannot get container.resources.requests from deployment: web"):
        render_reference(deployment(name="web"))


def test_render_reference_other_kind():
    service = {"apiVersion": "v1", "kind": "Service", "metadata": {"name": "s"}}
    assert render_reference(service) is None


def test_render_reference_bad_shape():
    bad = {"apiVersion": "apps/v1", "kind": "Deployment", "spec": "oops"}
    with pytest.raises(ValueError, match="Failed to convert an unstructured obj to a appsv1.deployment"):
        render_reference(bad)


def test_render_hpas_skips_unscalable_and_sets_owner():
    trait = mock_trait()
    trait.metadata.uid = "trait-uid"
    service = {"apiVersion": "v1", "kind": "Service", "metadata": {"name": "s"}}
    hpas = render_hpas(trait, [service, deployment(requests={})])
    assert len(hpas) == 1
    hpa = hpas[0]
    assert hpa["metadata"]["labels"] == {"hpatrait.oam.crossplane.io": "trait-uid"}
    assert hpa["metadata"]["ownerReferences"][0]["uid"] == "trait-uid"
    assert hpa["spec"]["minReplicas"] == 2
    assert hpa["spec"]["targetCPUUtilizationPercentage"] == 50


def test_render_hpas_omits_unset_optionals():
    trait = mock_trait()
    trait.spec.min_replicas = None
    trait.spec.target_cpu_utilization_percentage = None
    spec = render_hpas(trait, [deployment(requests={})])[0]["spec"]
    assert "minReplicas" not in spec
    assert "targetCPUUtilizationPercentage" not in spec


def test_render_hpas_rejects_other_trait():
    with pytest.raises(TypeError, match="not a hpa trait"):
        render_hpas(CronHPATrait(), [])


def test_determine_native_workload():
    workload = deployment()
    assert determine_workload_type(MemoryClient(), workload) == [workload]


def test_determine_empty_api_version():
    with pytest.raises(WorkloadTypeError, match="failed to get the workload APIVersion"):
        determine_workload_type(MemoryClient(), {"kind": "x"})


def test_determine_unsupported_api_version():
    with pytest.raises(WorkloadTypeError) as info:
        determine_workload_type(MemoryClient(), {"apiVersion": "foo/v1"})
    assert str(info.value) == "This trait doesn't support this APIVersionfoo/v1"


def test_determine_oam_workload_uses_callback():
    child = deployment()
    got = determine_workload_type(MemoryClient(), containerized_workload(), lambda wl: [child])
    assert got == [child]


def test_clean_up_legacy_hpas():
    client = MemoryClient()
    kept = client.create({"apiVersion": "autoscaling/v1", "kind": "HorizontalPodAutoscaler",
                          "metadata": {"name": "keep", "namespace": "ns"}})
    old = client.create({"apiVersion": "autoscaling/v1", "kind": "HorizontalPodAutoscaler",
                         "metadata": {"name": "old", "namespace": "ns"}})
    trait = mock_trait()
    trait.status.resources = [
        TypedReference("autoscaling/v1", "HorizontalPodAutoscaler", "keep", kept["metadata"]["uid"]),
        TypedReference("autoscaling/v1", "HorizontalPodAutoscaler", "old", old["metadata"]["uid"]),
        TypedReference("autoscaling/v1", "HorizontalPodAutoscaler", "gone", "gone-uid"),
    ]
    removed = HorizontalPodAutoscalerTraitReconciler(client).clean_up_legacy_hpas(
        trait, [kept["metadata"]["uid"]]
    )
    assert [r.name for r in removed] == ["old"]
    assert [h["metadata"]["name"] for h in client.list("autoscaling/v1", "HorizontalPodAutoscaler")] == ["keep"]