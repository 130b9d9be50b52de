# oamtraits

Reconciliation logic for a set of OAM scaling traits. Each trait is a
custom resource that points at a workload; its reconciler looks the
workload up, finds the resources it should act on, and writes the
scaling objects that implement the trait.

| Trait | Modules | What it produces |
|-------|---------|------------------|
| `Autoscaler` (`standard.oam.dev/v1alpha1`) | `oamtraits.autoscaler`, `oamtraits.keda` | a KEDA `ScaledObject` (`keda.sh/v1alpha1`) with cron and pass-through triggers |
| `CronHPATrait` (`core.oam.dev/v1alpha2`) | `oamtraits.cronhpa` | a `CronHorizontalPodAutoscaler` (`autoscaling.alibabacloud.com/v1beta1`) |
| `HorizontalPodAutoscalerTrait` (`core.oam.dev/v1alpha2`) | `oamtraits.hpa` | one `autoscaling/v1` HPA per Deployment or StatefulSet |
| `MetricHPATrait` (`extend.oam.dev/v1alpha2`) | `oamtraits.metrichpa`, `oamtraits.prometheus` | a Prometheus config map, an optional Prometheus deployment and service, and a KEDA `ScaledObject` (`keda.k8s.io/v1alpha1`) |

Objects are plain dictionaries in the usual Kubernetes shape
(`apiVersion`, `kind`, `metadata`, `spec`, `status`). The trait types live
in `oamtraits.autoscaler_api`, `oamtraits.cronhpa_api`,
`oamtraits.hpa_api` and `oamtraits.metrichpa_api`; each trait class has
`to_dict()` and `from_dict()`, a `workload_reference` property, and
`set_conditions()` / `get_condition()`.

## Installation

```
pip install .
```

The package has no runtime dependencies. For the tests:

```
pip install ".[test]"
pytest
```

## The cluster client

Reconcilers talk to the cluster through the abstract
`oamtraits.core.Client`. `oamtraits.core.MemoryClient` keeps objects in
memory and supports `get`, `list` (filtered by namespace and labels),
`create`, `update`, `apply` (create or merge on behalf of a field owner)
and `delete`. It assigns a UID to new objects. A missing object raises
`oamtraits.core.NotFoundError`; creating an existing one raises
`AlreadyExistsError`.

Each reconciler (`AutoscalerReconciler`, `CronHPATraitReconciler`,
`HorizontalPodAutoscalerTraitReconciler`, `MetricHPATraitReconciler`) is
built from a client and, optionally, a `child_resources` callable that
returns the resources behind a workload. Without one, it lists the objects
in the workload's namespace whose owner references carry the workload's UID.

`reconcile(key)` takes an `ObjectKey` and returns a `Result`. When a step
fails, the reconciler records a condition made by `reconcile_error()` on the
trait's status and, in most cases, returns `RECONCILE_WAIT_RESULT`, which
asks to be requeued after 30 seconds; a finished reconcile records
`reconcile_success()`. Some failures are raised instead:

- `AutoscalerReconciler` raises `CronTriggerError` for an unusable cron
  trigger and keeps warnings it emitted in its `events` list.
- `HorizontalPodAutoscalerTraitReconciler` raises
  `NoApplicableResourcesError` when no resource can be scaled by an HPA.
- `MetricHPATraitReconciler` raises client errors after recording them on
  the trait where it can.

Stale scaling objects listed in a trait's status are removed by
`CronHPATraitReconciler.cleanup_resources`,
`HorizontalPodAutoscalerTraitReconciler.clean_up_legacy_hpas` and
`oamtraits.prometheus.cleanup_resources`.

## Rendering helpers

Much of the work can be used without a client:

- `oamtraits.keda.prepare_cron_triggers(scaler, trigger)` turns a cron
  condition (`startAt` as `HH:MM`, `duration` such as `1h30m`, a
  comma-separated list of weekday names in `days`, `replicas`, `timezone`)
  into one KEDA cron trigger per day, with `start` and `end` cron
  expressions. An unusable condition raises `CronTriggerError`, whose
  `reason` is one of the `SpecWarning` values, `"parse replica failed"`, or
  empty for an unknown weekday. `build_keda_triggers(scaler)` converts every
  trigger, passing non-cron ones through unchanged, and
  `render_scaled_object(scaler, namespace)` builds the whole `ScaledObject`.
- `oamtraits.autoscaler.select_target_workload(workload, resources)` picks
  the first Deployment, StatefulSet, DaemonSet or ReplicaSet, falling back to
  the workload itself.
- `oamtraits.cronhpa.render_cron_hpa(trait, workload)` renders the CronHPA
  for a workload, controlled by the trait.
- `oamtraits.hpa.render_reference(resource)` returns the scale target of a
  Deployment or StatefulSet (both referred to with kind `Deployment`), or
  `None` for other kinds, and raises `ValueError` when a container has no
  resource requests. `render_hpas(trait, resources)` renders one HPA for
  each scalable resource.
- `determine_workload_type(client, workload, child_resources)` in both
  `oamtraits.cronhpa` and `oamtraits.hpa` returns the children of an
  `core.oam.dev/v1alpha2` workload, or an `apps/v1` workload itself, and
  raises `WorkloadTypeError` for anything else.
- `oamtraits.prometheus.render_prometheus_resources(trait)` and
  `render_prometheus_config_map(trait)` render the Prometheus side of a
  `MetricHPATrait`; `split_child_resources(resources)` picks out a
  workload's Deployment and Service; and
  `oamtraits.metrichpa.render_metric_scaled_object(trait, server_address)`
  renders its `ScaledObject`.

## Terraform addon UI schemas

Run from the directory that holds `addons/`, or give that directory as an
argument:

```
oamtraits-uischema [ROOT]
```

For every `addons/terraform-*/definitions/terraform-<name>` entry it writes
`addons/terraform-*/schemas/component-uischema-<name>`, creating the
`schemas` directory when needed, with a schema that disables the
`writeConnectionSecretToRef`, `providerRef` and `region` fields. A file
system error is printed and the command exits with status 1. The same work
is available as `oamtraits.uischema.generate_schemas(root)`, and
`list_terraform_schema_files(root)` lists the files it would write.

## What this package does not do

- It does not connect to a Kubernetes API server. The only client provided
  is the in-memory `MemoryClient`; talking to a real cluster needs your own
  `Client` implementation.
- It has no controller manager: nothing watches for changes, runs
  reconcilers on a schedule, elects a leader or serves metrics. You call
  `reconcile(key)` yourself and act on the returned `Result`.
- It does not generate terraform addons from templates; it only writes the
  UI schema files described above.