"""Issue classification for cluster status records.

Every rule is an independent predicate over one ClusterStatusRecord; there
is no precedence, so a record may carry several codes at once. A record
matching no rule is reported as OK. Rules whose input came from a probe
that returned Unavailable (or was not run) simply do not fire.
"""

from typing import Callable

from status.probes import (
    ExternalHealth,
    InfrastructureHealth,
    PlatformHealth,
    SyncWaveHealth,
    WorkloadHealth,
)

OK = 'OK'

ORPHANED_MC = 'ORPHANED_MC'
MISSING_MC = 'MISSING_MC'
STUCK_NS = 'STUCK_NS'
STUCK_FINALIZERS = 'STUCK_FINALIZERS'
TAINTED = 'TAINTED'
INSUFFICIENT_WORKERS = 'INSUFFICIENT_WORKERS'
NODES_NOT_READY = 'NODES_NOT_READY'
CLUSTER_NOT_PROVISIONED = 'CLUSTER_NOT_PROVISIONED'
DEGRADED_COS = 'DEGRADED_COS'
CORE_SERVICES_DOWN = 'CORE_SERVICES_DOWN'
STUCK_SYNC_WAVES = 'STUCK_SYNC_WAVES'
PODS_PENDING = 'PODS_PENDING'
PVC_BINDING_FAILED = 'PVC_BINDING_FAILED'
EXTERNAL_SECRETS_FAILED = 'EXTERNAL_SECRETS_FAILED'
CONNECTIVITY_FAILED = 'CONNECTIVITY_FAILED'
STUCK_ARGOCD_APPS = 'STUCK_ARGOCD_APPS'
STUCK_ARGOCD_APPSETS = 'STUCK_ARGOCD_APPSETS'
ARGOCD_SYNC_FAILED = 'ARGOCD_SYNC_FAILED'

# Static remediation hint per issue code, shown under the table report
REMEDIATION = {
    ORPHANED_MC: "ManagedCluster has no repository config: remove it or restore regions/<region>/<name>/",
    MISSING_MC: "Repository config has no ManagedCluster: check ArgoCD sync of the cluster ApplicationSet",
    STUCK_NS: "Namespace stuck Terminating: inspect remaining resources and finalizers in the namespace",
    STUCK_FINALIZERS: "ManagedCluster unavailable with finalizers: patch finalizers to null once cleanup is confirmed",
    TAINTED: "ManagedCluster is tainted: check klusterlet connectivity and cluster lease",
    INSUFFICIENT_WORKERS: "Fewer workers than declared: check MachinePool/NodePool scaling and cloud quotas",
    NODES_NOT_READY: "Workers not Ready: inspect node conditions and kubelet logs",
    CLUSTER_NOT_PROVISIONED: "Backend not provisioned: check ClusterDeployment/Cluster/HostedCluster conditions and provision jobs",
    DEGRADED_COS: "Cluster operators degraded: oc get clusteroperators on the managed cluster",
    CORE_SERVICES_DOWN: "API server or etcd unavailable: check control plane health",
    STUCK_SYNC_WAVES: "Sync waves not progressing: check the lowest unsynced wave's Applications in ArgoCD",
    PODS_PENDING: "Pods pending: check scheduling constraints and node capacity",
    PVC_BINDING_FAILED: "PVCs pending: check storage classes and provisioner",
    EXTERNAL_SECRETS_FAILED: "ExternalSecrets not Ready: check the ClusterSecretStore and secret paths",
    CONNECTIVITY_FAILED: "Managed cluster API unreachable: check network path and admin kubeconfig secret",
    STUCK_ARGOCD_APPS: "Applications stuck deleting: remove resources-finalizer from the Applications",
    STUCK_ARGOCD_APPSETS: "ApplicationSet stuck deleting: remove its finalizers",
    ARGOCD_SYNC_FAILED: "Applications not Synced: check ArgoCD sync status and errors",
}


def _probe(record, attr: str, expected_type):
    """Probe result if the probe ran and produced data, else None."""
    value = getattr(record, attr, None)
    return value if isinstance(value, expected_type) else None


def _is_orphaned(record) -> bool:
    return record.managed_cluster_present and not record.repo_config_present


def _is_missing(record) -> bool:
    return record.repo_config_present and not record.managed_cluster_present


def _ns_stuck(record) -> bool:
    return record.namespace_phase == 'Terminating'


def _finalizers_stuck(record) -> bool:
    return record.finalizers_present and record.availability != 'True'


def _tainted(record) -> bool:
    return bool(record.taints)


def _insufficient_workers(record) -> bool:
    infra = _probe(record, 'infrastructure', InfrastructureHealth)
    return (infra is not None and infra.expected_workers is not None and infra.actual_workers is not None
            and infra.actual_workers < infra.expected_workers)


def _nodes_not_ready(record) -> bool:
    infra = _probe(record, 'infrastructure', InfrastructureHealth)
    return (infra is not None and infra.actual_workers is not None and infra.ready_workers is not None
            and infra.ready_workers < infra.actual_workers)


def _not_provisioned(record) -> bool:
    infra = _probe(record, 'infrastructure', InfrastructureHealth)
    return infra is not None and infra.provisioned is False


def _degraded_operators(record) -> bool:
    platform = _probe(record, 'platform', PlatformHealth)
    return platform is not None and platform.degraded_operators > 0


def _core_services_down(record) -> bool:
    platform = _probe(record, 'platform', PlatformHealth)
    if platform is None:
        return False
    return any(value is not None and value != 'True'
               for value in (platform.apiserver_available, platform.etcd_available))


def _sync_waves_stuck(record) -> bool:
    waves = _probe(record, 'sync_wave', SyncWaveHealth)
    return (waves is not None and waves.max_wave is not None and waves.current_wave is not None
            and waves.current_wave < waves.max_wave)


def _pods_pending(record) -> bool:
    workload = _probe(record, 'workload', WorkloadHealth)
    return workload is not None and workload.pending_pods > 0


def _pvcs_pending(record) -> bool:
    workload = _probe(record, 'workload', WorkloadHealth)
    return workload is not None and workload.pending_pvcs > 0


def _external_secrets_failed(record) -> bool:
    external = _probe(record, 'external', ExternalHealth)
    return external is not None and external.failed_external_secrets > 0


def _connectivity_failed(record) -> bool:
    external = _probe(record, 'external', ExternalHealth)
    return external is not None and external.connectivity_ok is False


def _argo_apps_stuck(record) -> bool:
    return record.argo_apps_stuck > 0


def _argo_appsets_stuck(record) -> bool:
    return record.argo_appsets_stuck > 0


def _argo_out_of_sync(record) -> bool:
    return record.argo_out_of_sync > 0


RULES: tuple[tuple[str, Callable], ...] = (
    (ORPHANED_MC, _is_orphaned),
    (MISSING_MC, _is_missing),
    (STUCK_NS, _ns_stuck),
    (STUCK_FINALIZERS, _finalizers_stuck),
    (TAINTED, _tainted),
    (INSUFFICIENT_WORKERS, _insufficient_workers),
    (NODES_NOT_READY, _nodes_not_ready),
    (CLUSTER_NOT_PROVISIONED, _not_provisioned),
    (DEGRADED_COS, _degraded_operators),
    (CORE_SERVICES_DOWN, _core_services_down),
    (STUCK_SYNC_WAVES, _sync_waves_stuck),
    (PODS_PENDING, _pods_pending),
    (PVC_BINDING_FAILED, _pvcs_pending),
    (EXTERNAL_SECRETS_FAILED, _external_secrets_failed),
    (CONNECTIVITY_FAILED, _connectivity_failed),
    (STUCK_ARGOCD_APPS, _argo_apps_stuck),
    (STUCK_ARGOCD_APPSETS, _argo_appsets_stuck),
    (ARGOCD_SYNC_FAILED, _argo_out_of_sync),
)


def classify(record) -> list[str]:
    """Issue codes for a record, in rule order. Never empty: OK if nothing fires."""
    issues = [code for code, predicate in RULES if predicate(record)]
    return issues or [OK]
