"""Declared-vs-live state collection.

The cluster universe is the union of names declared in the repository
(regions/<region>/<name>/ and clusters/<name>/) and the ManagedClusters
registered on the hub, minus the hub's own local entry. Each name gets a
ClusterStatusRecord with the basic ACM/namespace/ArgoCD facts, deepened by
whichever probes were selected.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from config import BootstrapConfig
from errors import BootstrapError, NotFoundError, ValidationError
from gitops import COMPONENT_NAMES, application_name, application_set_name
from generators.fragments import CLUSTER_LABEL
from hub import HubClient
from regional_spec import ClusterType, find_spec, list_declared_clusters, load_spec
from status.probes import Probe, ProbeContext, ProbeResult, Unavailable, condition_status

logger = logging.getLogger(__name__)

MANAGED_CLUSTER_KIND = 'managedclusters.cluster.open-cluster-management.io'
APPLICATION_KIND = 'applications.argoproj.io'
APPLICATION_SET_KIND = 'applicationsets.argoproj.io'
AVAILABLE_CONDITION = 'ManagedClusterConditionAvailable'

# Probe name -> ClusterStatusRecord attribute
PROBE_FIELDS = {
    'infrastructure': 'infrastructure',
    'platform': 'platform',
    'sync-wave': 'sync_wave',
    'workload': 'workload',
    'external': 'external',
}


@dataclass
class ClusterStatusRecord:
    """Status of one cluster at one point in time. Never persisted.

    Attributes:
        name: Cluster name
        repo_config_present: Cluster declared in the repository
        managed_cluster_state: 'present' or 'absent'
        availability: ManagedClusterConditionAvailable status, None if no ManagedCluster
        finalizers_present: ManagedCluster carries finalizers
        taints: ManagedCluster taints as key[=value]:effect strings
        namespace_phase: Hub namespace phase, None if the namespace is absent
        argo_app_count: Applications attributed to the cluster
        argo_apps_stuck: Attributed Applications with a deletionTimestamp
        argo_appsets_stuck: Attributed ApplicationSets with a deletionTimestamp
        argo_out_of_sync: Attributed Applications whose sync status is not Synced
        cluster_type: Backend, from the repo spec or the name prefix
        infrastructure/platform/sync_wave/workload/external: Probe results
            (None when the probe was not selected)
        issues: Classified issue codes (filled by the caller)
        errors: Per-step collection errors
    """
    name: str
    repo_config_present: bool = False
    managed_cluster_state: str = 'absent'
    availability: Optional[str] = None
    finalizers_present: bool = False
    taints: list[str] = field(default_factory=list)
    namespace_phase: Optional[str] = None
    argo_app_count: int = 0
    argo_apps_stuck: int = 0
    argo_appsets_stuck: int = 0
    argo_out_of_sync: int = 0
    cluster_type: Optional[ClusterType] = None
    infrastructure: Optional[ProbeResult] = None
    platform: Optional[ProbeResult] = None
    sync_wave: Optional[ProbeResult] = None
    workload: Optional[ProbeResult] = None
    external: Optional[ProbeResult] = None
    issues: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def managed_cluster_present(self) -> bool:
        return self.managed_cluster_state == 'present'


def _metadata(resource: dict) -> dict:
    return resource.get('metadata') or {}


def belongs_to(resource: dict, cluster_name: str) -> bool:
    """Whether an Application belongs to a cluster.

    True when its `cluster` label equals the name, or its name is exactly
    <cluster>-<component> for one of the GitOps components. Plain substring
    matching would attribute ocp-010's Applications to ocp-01.
    """
    meta = _metadata(resource)
    if (meta.get('labels') or {}).get(CLUSTER_LABEL) == cluster_name:
        return True
    return meta.get('name') in {application_name(cluster_name, c) for c in COMPONENT_NAMES}


def appset_belongs_to(resource: dict, cluster_name: str) -> bool:
    meta = _metadata(resource)
    if (meta.get('labels') or {}).get(CLUSTER_LABEL) == cluster_name:
        return True
    return meta.get('name') == application_set_name(cluster_name)


def format_taint(taint: dict) -> str:
    value = f"={taint['value']}" if taint.get('value') else ''
    return f"{taint.get('key', '?')}{value}:{taint.get('effect', '')}"


def _deleting(resource: dict) -> bool:
    return bool(_metadata(resource).get('deletionTimestamp'))


class StateCollector:
    """Gathers ClusterStatusRecords from the repository and the hub.

    Attributes:
        config: Repository configuration
        hub: Hub client
        probes: Deep-health probes to run per cluster
        timeout: Per-cluster deadline for the probes, in seconds
    """

    def __init__(self, config: BootstrapConfig, hub: HubClient, probes: Optional[list[Probe]] = None,
                 timeout: int = 120):
        self.config = config
        self.hub = hub
        self.probes = probes or []
        self.timeout = timeout

    def repo_clusters(self) -> set[str]:
        """Cluster names declared under regions/ or clusters/."""
        names = set(list_declared_clusters(self.config.regions_dir))
        if self.config.clusters_dir.is_dir():
            names.update(p.name for p in self.config.clusters_dir.iterdir() if p.is_dir())
        return names

    def live_clusters(self) -> dict[str, dict]:
        """ManagedClusters on the hub, keyed by name, excluding the hub itself.

        Raises:
            ConnectivityError: If the hub API cannot be reached
        """
        clusters = {}
        for mc in self.hub.list(MANAGED_CLUSTER_KIND):
            name = _metadata(mc).get('name')
            if name and name != self.config.hub_cluster_name:
                clusters[name] = mc
        return clusters

    def cluster_names(self, repo: set[str], live: dict[str, dict], only: Optional[str] = None) -> list[str]:
        names = repo | set(live)
        if only:
            names = {only} if only in names else set()
        return sorted(names)

    def collect(self, only: Optional[str] = None) -> list[ClusterStatusRecord]:
        """Build status records for every cluster (or just `only`).

        Hub-wide listings happen once up front; a ConnectivityError there
        propagates. Everything per-cluster is caught and recorded.
        """
        repo = self.repo_clusters()
        live = self.live_clusters()
        applications = self._list_or_empty(APPLICATION_KIND)
        appsets = self._list_or_empty(APPLICATION_SET_KIND)

        names = self.cluster_names(repo, live, only)
        logger.info(f"Checking {len(names)} cluster(s) ({len(repo)} declared, {len(live)} registered)")

        records = []
        for name in names:
            record = self._base_record(name, name in repo, live.get(name), applications, appsets)
            if self.probes:
                self._run_probes(record, [a for a in applications if belongs_to(a, name)])
            records.append(record)
        return records

    def _list_or_empty(self, kind: str) -> list[dict]:
        try:
            return self.hub.list(kind, namespace=self.config.gitops_namespace)
        except BootstrapError as e:
            logger.warning(f"Could not list {kind}: {e}")
            return []

    def _spec_for(self, name: str):
        try:
            return load_spec(find_spec(self.config.regions_dir, name))
        except ValidationError as e:
            logger.debug(f"[{name}] no usable regional spec: {e}")
            return None

    def _base_record(self, name: str, in_repo: bool, mc: Optional[dict],
                     applications: list[dict], appsets: list[dict]) -> ClusterStatusRecord:
        record = ClusterStatusRecord(name=name, repo_config_present=in_repo)
        spec = self._spec_for(name) if in_repo else None
        record.cluster_type = spec.type if spec else ClusterType.from_name(name)

        if mc is not None:
            record.managed_cluster_state = 'present'
            record.availability = condition_status(mc, AVAILABLE_CONDITION) or 'Unknown'
            record.finalizers_present = bool(_metadata(mc).get('finalizers'))
            record.taints = [format_taint(t) for t in (mc.get('spec') or {}).get('taints') or []]

        try:
            namespace = self.hub.get('namespace', name)
            record.namespace_phase = (namespace.get('status') or {}).get('phase', 'Active')
        except NotFoundError:
            record.namespace_phase = None
        except BootstrapError as e:
            record.errors.append(f"namespace: {e}")
            logger.warning(f"[{name}] namespace lookup failed: {e}")

        apps = [a for a in applications if belongs_to(a, name)]
        record.argo_app_count = len(apps)
        record.argo_apps_stuck = sum(1 for a in apps if _deleting(a))
        record.argo_out_of_sync = sum(
            1 for a in apps if ((a.get('status') or {}).get('sync') or {}).get('status') != 'Synced'
        )
        record.argo_appsets_stuck = sum(1 for s in appsets if appset_belongs_to(s, name) and _deleting(s))
        return record

    def _run_probes(self, record: ClusterStatusRecord, applications: list[dict]) -> None:
        spec = self._spec_for(record.name) if record.repo_config_present else None
        ctx = ProbeContext(
            self.hub,
            record.name,
            cluster_type=record.cluster_type,
            expected_workers=spec.replicas if spec else None,
            applications=applications,
            deadline=time.monotonic() + self.timeout,
        )
        try:
            for probe in self.probes:
                try:
                    result = probe.run(ctx)
                except Exception as e:
                    logger.warning(f"[{record.name}] probe {probe.name} error: {type(e).__name__}: {e}")
                    result = Unavailable(probe.name, f"{type(e).__name__}: {e}")
                logger.debug(f"[{record.name}] {probe.name}: {result}")
                setattr(record, PROBE_FIELDS[probe.name], result)
        finally:
            ctx.close()
