"""Deep-health probes.

Each probe is a named unit with a declared cost and timeout. Health tiers
select subsets of probes instead of hard-coding fixed bundles:

    basic          -> (none)
    infrastructure -> infrastructure
    platform       -> platform
    workloads      -> workload
    deep           -> infrastructure, platform, sync-wave
    full           -> infrastructure, platform, sync-wave, workload, external

A probe never aborts a status pass. Any failure, or running past the
per-cluster deadline, yields an Unavailable sentinel in place of the
probe's result.
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from errors import BootstrapError, NotFoundError
from hub import HubClient
from readiness import validate_kubeconfig, write_kubeconfig
from regional_spec import ClusterType

logger = logging.getLogger(__name__)

SYNC_WAVE_ANNOTATION = 'argocd.argoproj.io/sync-wave'
WORKER_ROLE_LABEL = 'node-role.kubernetes.io/worker'


@dataclass(frozen=True)
class Unavailable:
    """Sentinel for a probe that could not produce a result."""
    probe: str
    reason: str

    def __str__(self) -> str:
        return f"unavailable ({self.reason})"


@dataclass
class InfrastructureHealth:
    """Worker counts and backend provisioning state.

    Attributes:
        expected_workers: Declared replicas (None if no repo spec)
        actual_workers: Worker nodes present (None if managed cluster unreachable)
        ready_workers: Worker nodes reporting Ready
        provisioned: CAPI/Hive/HyperShift ready condition (None if unknown)
    """
    expected_workers: Optional[int] = None
    actual_workers: Optional[int] = None
    ready_workers: Optional[int] = None
    provisioned: Optional[bool] = None


@dataclass
class PlatformHealth:
    degraded_operators: int = 0
    apiserver_available: Optional[str] = None
    etcd_available: Optional[str] = None


@dataclass
class SyncWaveHealth:
    """current_wave: highest wave fully Synced along with every lower wave."""
    current_wave: Optional[int] = None
    max_wave: Optional[int] = None


@dataclass
class WorkloadHealth:
    pending_pods: int = 0
    pending_pvcs: int = 0


@dataclass
class ExternalHealth:
    failed_external_secrets: int = 0
    connectivity_ok: Optional[bool] = None
    connectivity_message: str = ''


ProbeResult = Union[InfrastructureHealth, PlatformHealth, SyncWaveHealth, WorkloadHealth, ExternalHealth, Unavailable]


def condition_status(resource: dict, condition_type: str) -> Optional[str]:
    """Status ('True'/'False'/'Unknown') of a named condition, None if absent."""
    for condition in (resource.get('status') or {}).get('conditions') or []:
        if condition.get('type') == condition_type:
            return condition.get('status')
    return None


def node_ready(node: dict) -> bool:
    return condition_status(node, 'Ready') == 'True'


class ProbeContext:
    """Per-cluster inputs shared by the probes of one status pass.

    Holds the hub client, the cluster's Applications (already attributed),
    the per-cluster deadline and a lazily built client for the managed
    cluster itself. Call close() to remove the temporary kubeconfig.
    """

    def __init__(self, hub: HubClient, name: str, cluster_type: Optional[ClusterType] = None,
                 expected_workers: Optional[int] = None, applications: Optional[list[dict]] = None,
                 deadline: Optional[float] = None):
        self.hub = hub
        self.name = name
        self.cluster_type = cluster_type
        self.expected_workers = expected_workers
        self.applications = applications or []
        self.deadline = deadline
        self._managed: Optional[HubClient] = None
        self._kubeconfig: Optional[str] = None
        self._kubeconfig_path: Optional[str] = None

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def kubeconfig(self) -> str:
        if self._kubeconfig is None:
            self._kubeconfig = self.hub.kubeconfig_for(self.name)
        return self._kubeconfig

    def managed(self) -> HubClient:
        """Client for the managed cluster's own API."""
        if self._managed is None:
            self._kubeconfig_path = write_kubeconfig(self.kubeconfig())
            self._managed = HubClient(self.hub.oc_binary, kubeconfig=self._kubeconfig_path, timeout=self.hub.timeout)
        self._managed.timeout = self.hub.timeout
        return self._managed

    def close(self) -> None:
        if self._kubeconfig_path and os.path.exists(self._kubeconfig_path):
            os.unlink(self._kubeconfig_path)
        self._kubeconfig_path = None
        self._managed = None


@dataclass(frozen=True)
class Probe:
    """A named health probe.

    Attributes:
        name: Probe identifier
        cost: Relative cost (number of API round trips, roughly)
        timeout: Per-probe time budget in seconds
        check: Function computing the probe result from a ProbeContext
    """
    name: str
    cost: int
    timeout: int
    check: Callable[[ProbeContext], ProbeResult]

    def run(self, ctx: ProbeContext) -> ProbeResult:
        """Run the probe, degrading any failure to Unavailable."""
        remaining = ctx.remaining()
        if remaining is not None and remaining <= 0:
            return Unavailable(self.name, 'per-cluster deadline exceeded')

        previous = ctx.hub.timeout
        ctx.hub.timeout = self.timeout if remaining is None else max(1, min(self.timeout, int(remaining)))
        try:
            result = self.check(ctx)
        except (BootstrapError, OSError) as e:
            logger.debug(f"[{ctx.name}] probe {self.name} failed: {e}")
            return Unavailable(self.name, str(e).splitlines()[0] if str(e) else type(e).__name__)
        finally:
            ctx.hub.timeout = previous

        remaining = ctx.remaining()
        if remaining is not None and remaining <= 0:
            return Unavailable(self.name, 'per-cluster deadline exceeded')
        return result


def check_infrastructure(ctx: ProbeContext) -> InfrastructureHealth:
    health = InfrastructureHealth(expected_workers=ctx.expected_workers)

    if ctx.cluster_type is ClusterType.EKS:
        cluster = ctx.hub.get('clusters.cluster.x-k8s.io', ctx.name, ctx.name)
        ready = condition_status(cluster, 'Ready')
    elif ctx.cluster_type is ClusterType.HCP:
        hosted = ctx.hub.get('hostedclusters.hypershift.openshift.io', ctx.name, ctx.name)
        ready = condition_status(hosted, 'Available')
    else:
        deployment = ctx.hub.get('clusterdeployments.hive.openshift.io', ctx.name, ctx.name)
        installed = (deployment.get('spec') or {}).get('installed')
        ready = condition_status(deployment, 'Provisioned') or (None if installed is None else str(bool(installed)))
    if ready is not None:
        health.provisioned = ready == 'True'

    try:
        nodes = ctx.managed().list('nodes')
    except BootstrapError as e:
        logger.debug(f"[{ctx.name}] worker counts unavailable: {e}")
        return health
    if ctx.cluster_type is not ClusterType.EKS:
        nodes = [n for n in nodes if WORKER_ROLE_LABEL in ((n.get('metadata') or {}).get('labels') or {})]
    health.actual_workers = len(nodes)
    health.ready_workers = sum(1 for n in nodes if node_ready(n))
    return health


def check_platform(ctx: ProbeContext) -> PlatformHealth:
    managed = ctx.managed()
    health = PlatformHealth()

    if ctx.cluster_type is ClusterType.EKS:
        try:
            managed.raw(['get', '--raw', '/readyz'])
            health.apiserver_available = 'True'
        except BootstrapError:
            health.apiserver_available = 'False'
        return health

    operators = managed.list('clusteroperators.config.openshift.io')
    for operator in operators:
        if (condition_status(operator, 'Degraded') == 'True'
                or condition_status(operator, 'Available') != 'True'):
            health.degraded_operators += 1
    by_name = {(o.get('metadata') or {}).get('name'): o for o in operators}
    if 'kube-apiserver' in by_name:
        health.apiserver_available = condition_status(by_name['kube-apiserver'], 'Available') or 'Unknown'
    if 'etcd' in by_name:
        health.etcd_available = condition_status(by_name['etcd'], 'Available') or 'Unknown'
    return health


def application_wave(app: dict) -> int:
    annotations = (app.get('metadata') or {}).get('annotations') or {}
    try:
        return int(annotations.get(SYNC_WAVE_ANNOTATION, 0))
    except (TypeError, ValueError):
        return 0


def application_synced(app: dict) -> bool:
    return ((app.get('status') or {}).get('sync') or {}).get('status') == 'Synced'


def synced_wave(applications: list[dict]) -> SyncWaveHealth:
    """Highest wave for which that wave and every lower wave is fully Synced."""
    waves: dict[int, list[bool]] = {}
    for app in applications:
        waves.setdefault(application_wave(app), []).append(application_synced(app))
    if not waves:
        return SyncWaveHealth()

    ordered = sorted(waves)
    current = ordered[0] - 1
    for wave in ordered:
        if not all(waves[wave]):
            break
        current = wave
    return SyncWaveHealth(current_wave=current, max_wave=ordered[-1])


def check_sync_wave(ctx: ProbeContext) -> SyncWaveHealth:
    return synced_wave(ctx.applications)


def check_workload(ctx: ProbeContext) -> WorkloadHealth:
    managed = ctx.managed()
    pods = managed.list('pods', all_namespaces=True)
    pvcs = managed.list('persistentvolumeclaims', all_namespaces=True)
    return WorkloadHealth(
        pending_pods=sum(1 for p in pods if (p.get('status') or {}).get('phase') == 'Pending'),
        pending_pvcs=sum(1 for p in pvcs if (p.get('status') or {}).get('phase') == 'Pending'),
    )


def check_external(ctx: ProbeContext) -> ExternalHealth:
    health = ExternalHealth()
    secrets = ctx.hub.list('externalsecrets.external-secrets.io', namespace=ctx.name)
    health.failed_external_secrets = sum(1 for s in secrets if condition_status(s, 'Ready') != 'True')
    try:
        kubeconfig = ctx.kubeconfig()
    except NotFoundError as e:
        health.connectivity_ok = False
        health.connectivity_message = str(e)
        return health
    health.connectivity_ok, health.connectivity_message = validate_kubeconfig(kubeconfig, timeout=min(ctx.hub.timeout, 10))
    return health


PROBES = {
    'infrastructure': Probe('infrastructure', cost=2, timeout=30, check=check_infrastructure),
    'platform': Probe('platform', cost=2, timeout=30, check=check_platform),
    'sync-wave': Probe('sync-wave', cost=0, timeout=5, check=check_sync_wave),
    'workload': Probe('workload', cost=2, timeout=60, check=check_workload),
    'external': Probe('external', cost=2, timeout=30, check=check_external),
}

TIERS = {
    'basic': (),
    'infrastructure': ('infrastructure',),
    'platform': ('platform',),
    'workloads': ('workload',),
    'deep': ('infrastructure', 'platform', 'sync-wave'),
    'full': ('infrastructure', 'platform', 'sync-wave', 'workload', 'external'),
}


def select_probes(tiers: list[str]) -> list[Probe]:
    """Union of the probes selected by the given tiers, in declaration order."""
    unknown = [t for t in tiers if t not in TIERS]
    if unknown:
        raise ValueError(f"Unknown health tier(s): {', '.join(unknown)}. Available: {', '.join(TIERS)}")
    wanted = {name for tier in tiers for name in TIERS[tier]}
    return [probe for name, probe in PROBES.items() if name in wanted]
