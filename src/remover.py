"""Lifecycle removal: the inverse of generate.

Phases run in dependency order so nothing recreates what was just
deleted:

1. applications    - ArgoCD Applications for the cluster (stops self-heal)
2. applicationset  - the cluster's ApplicationSet
3. managedcluster  - ACM registration
4. backend         - ClusterDeployment / CAPI Cluster / HostedCluster, then
                     monitor until it is gone (deprovision may take a while)
5. namespace       - hub namespace, forcing finalizers on failure
6. files           - regional spec, cluster manifests and overlays
7. index           - the cluster's line in the shared GitOps index

Each phase is caught on its own: a failure is logged, reported as a
warning and the next phase runs anyway.
"""

import logging
import shutil
import time
import warnings
from pathlib import Path
from typing import Callable, Optional

from common import ActionResult, wait_until
from compiler import cluster_paths
from config import BootstrapConfig
from errors import BootstrapError, NotFoundError, PartialFailureWarning
from gitops import GitOpsRegistrar, application_name, application_set_name, COMPONENT_NAMES, entry_filename
from generators.fragments import CLUSTER_LABEL
from hub import HubClient
from regional_spec import ClusterType, spec_paths, load_spec
from reporting.report import PhaseReport
from status.collector import APPLICATION_KIND, APPLICATION_SET_KIND, MANAGED_CLUSTER_KIND

logger = logging.getLogger(__name__)

MONITOR_INTERVAL = 30
MONITOR_TIMEOUT = 900
NAMESPACE_TIMEOUT = 120

# Top-level backend resource per cluster type
BACKEND_KINDS = {
    ClusterType.OCP: 'clusterdeployments.hive.openshift.io',
    ClusterType.EKS: 'clusters.cluster.x-k8s.io',
    ClusterType.HCP: 'hostedclusters.hypershift.openshift.io',
}

# Label selectors for deprovision jobs, per cluster type
DEPROVISION_SELECTORS = {
    ClusterType.OCP: 'hive.openshift.io/cluster-deployment-name={name},hive.openshift.io/uninstall=true',
}


def prune_empty_dirs(path: Path, stop: Path) -> None:
    """Remove path and its empty parents, never touching stop or above."""
    stop = stop.resolve()
    current = path.resolve()
    while current != stop and stop in current.parents:
        if not current.is_dir() or any(current.iterdir()):
            break
        current.rmdir()
        logger.debug(f"Pruned empty directory {current}")
        current = current.parent


class LifecycleRemover:
    """Removes one cluster from the hub and the repository.

    Attributes:
        config: Repository configuration
        hub: Hub client
        name: Cluster name
        dry_run: Plan only, no mutation
        monitor_timeout: Ceiling for the backend deprovision monitor, in seconds
    """

    def __init__(self, config: BootstrapConfig, hub: HubClient, name: str, dry_run: bool = False,
                 monitor_timeout: int = MONITOR_TIMEOUT, monitor_interval: int = MONITOR_INTERVAL,
                 namespace_timeout: int = NAMESPACE_TIMEOUT):
        self.config = config
        self.hub = hub
        self.name = name
        self.dry_run = dry_run
        self.monitor_timeout = monitor_timeout
        self.monitor_interval = monitor_interval
        self.namespace_timeout = namespace_timeout
        self.registrar = GitOpsRegistrar(config.gitops_dir, config.repo_url, config.target_revision,
                                         config.gitops_namespace)
        self.report = PhaseReport(cluster=name, operation='remove', dry_run=dry_run)

    @property
    def cluster_type(self) -> Optional[ClusterType]:
        for path in spec_paths(self.config.regions_dir, self.name):
            try:
                return load_spec(path).type
            except BootstrapError as e:
                logger.debug(f"Ignoring unreadable spec {path}: {e}")
        return ClusterType.from_name(self.name)

    def repo_paths(self) -> list[Path]:
        """Repository files and directories owned by the cluster that exist."""
        repo = self.config.repo_dir
        candidates = [p.parent for p in spec_paths(self.config.regions_dir, self.name)]
        candidates += [repo / rel for rel in cluster_paths(self.name)]
        candidates.append(self.config.gitops_dir / entry_filename(self.name))
        return [p for p in candidates if p.exists()]

    def precheck(self) -> tuple[bool, str]:
        """Hub must be reachable and the cluster must exist somewhere.

        Returns:
            (success, message) tuple
        """
        reachable, message = self.hub.check()
        if not reachable:
            return False, message
        if self.repo_paths():
            return True, f"Cluster {self.name} found in repository"
        try:
            if self.hub.exists(MANAGED_CLUSTER_KIND, self.name) or self.hub.exists('namespace', self.name):
                return True, f"Cluster {self.name} found on hub"
        except BootstrapError as e:
            return False, f"Hub lookup failed: {e}"
        return False, f"Cluster {self.name} not found in repository or on hub"

    def get_phases(self) -> list[tuple[str, Callable[[], ActionResult], str, str]]:
        """(name, step, description, dry-run plan) for every phase, in order."""
        ctype = self.cluster_type
        backend = BACKEND_KINDS.get(ctype, 'backend resource') if ctype else 'backend resource'
        files = ', '.join(str(p.relative_to(self.config.repo_dir)) for p in self.repo_paths()) or 'none present'
        ns = self.config.gitops_namespace
        return [
            ('applications', self.delete_applications, 'Delete ArgoCD Applications',
             f"delete {APPLICATION_KIND} -n {ns} -l {CLUSTER_LABEL}={self.name}"),
            ('applicationset', self.delete_applicationset, 'Delete ApplicationSet',
             f"delete {APPLICATION_SET_KIND} {application_set_name(self.name)} -n {ns}"),
            ('managedcluster', self.delete_managed_cluster, 'Delete ManagedCluster',
             f"delete {MANAGED_CLUSTER_KIND} {self.name}"),
            ('backend', self.delete_backend, 'Delete backend resource and monitor deprovision',
             f"delete {backend} {self.name} -n {self.name}, monitor up to {self.monitor_timeout}s"),
            ('namespace', self.delete_namespace, 'Delete namespace',
             f"delete namespace {self.name} (force finalizers on failure)"),
            ('files', self.delete_files, 'Delete repository files', f"remove {files}"),
            ('index', self.update_index, 'Remove GitOps index entry',
             f"remove {entry_filename(self.name)} from {self.config.index_file.name}"),
        ]

    def run(self) -> PhaseReport:
        """Run every phase, best effort. Returns the phase report."""
        self.report.start()
        mode = ' (dry-run)' if self.dry_run else ''
        logger.info(f"Removing cluster {self.name}{mode}")

        for phase_name, step, description, plan in self.get_phases():
            if self.dry_run:
                self.report.skip_phase(phase_name, description, f"would {plan}")
                continue

            logger.info(f"Running phase: {phase_name} - {description}")
            self.report.start_phase(phase_name)
            try:
                result = step()
            except (BootstrapError, OSError) as e:
                result = ActionResult(success=False, message=str(e))

            if result.success:
                logger.info(f"Phase {phase_name} passed: {result.message}")
                self.report.pass_phase(phase_name, description, result.message)
            else:
                logger.warning(f"Phase {phase_name} failed, continuing: {result.message}")
                warnings.warn(f"{phase_name}: {result.message}", PartialFailureWarning, stacklevel=2)
                self.report.warn_phase(phase_name, description, result.message)

        self.report.finish()
        return self.report

    def delete_applications(self) -> ActionResult:
        start = time.time()
        ns = self.config.gitops_namespace
        self.hub.delete(APPLICATION_KIND, namespace=ns, selector=f'{CLUSTER_LABEL}={self.name}')
        for component in COMPONENT_NAMES:
            self.hub.delete(APPLICATION_KIND, application_name(self.name, component), namespace=ns)
        return ActionResult(success=True, message=f"Applications for {self.name} deleted",
                            duration=time.time() - start)

    def delete_applicationset(self) -> ActionResult:
        start = time.time()
        out = self.hub.delete(APPLICATION_SET_KIND, application_set_name(self.name),
                              namespace=self.config.gitops_namespace)
        return ActionResult(success=True, message=out or 'ApplicationSet absent', duration=time.time() - start)

    def delete_managed_cluster(self) -> ActionResult:
        start = time.time()
        out = self.hub.delete(MANAGED_CLUSTER_KIND, self.name)
        return ActionResult(success=True, message=out or 'ManagedCluster absent', duration=time.time() - start)

    def _deprovisioning(self, ctype: ClusterType) -> bool:
        selector = DEPROVISION_SELECTORS.get(ctype)
        if not selector:
            return False
        jobs = self.hub.list('jobs', namespace=self.name, selector=selector.format(name=self.name))
        return any((job.get('status') or {}).get('active') for job in jobs)

    def delete_backend(self) -> ActionResult:
        start = time.time()
        ctype = self.cluster_type
        if ctype is None:
            return ActionResult(success=True, message=f"Unknown cluster type for {self.name}, nothing to delete")
        kind = BACKEND_KINDS[ctype]
        self.hub.delete(kind, self.name, namespace=self.name)

        def gone() -> bool:
            if not self.hub.exists(kind, self.name, self.name):
                return True
            if self._deprovisioning(ctype):
                logger.info(f"Deprovision job active for {self.name}")
            return False

        if wait_until(gone, timeout=self.monitor_timeout, interval=self.monitor_interval,
                      description=f"{kind} {self.name} removal"):
            return ActionResult(success=True, message=f"{kind} {self.name} removed", duration=time.time() - start)
        return ActionResult(
            success=False,
            message=f"{kind} {self.name} still present after {self.monitor_timeout}s",
            duration=time.time() - start,
        )

    def delete_namespace(self) -> ActionResult:
        start = time.time()
        try:
            self.hub.delete('namespace', self.name, wait=True, timeout=self.namespace_timeout)
            if not self.hub.exists('namespace', self.name):
                return ActionResult(success=True, message=f"Namespace {self.name} deleted",
                                    duration=time.time() - start)
        except BootstrapError as e:
            logger.warning(f"Namespace {self.name} delete did not finish: {e}")

        logger.info(f"Forcing finalizer removal on namespace {self.name}")
        try:
            namespace = self.hub.get('namespace', self.name)
        except NotFoundError:
            return ActionResult(success=True, message=f"Namespace {self.name} deleted",
                                duration=time.time() - start)
        namespace.setdefault('spec', {})['finalizers'] = []
        self.hub.replace_raw(f'/api/v1/namespaces/{self.name}/finalize', namespace)
        if self.hub.exists('namespace', self.name):
            return ActionResult(success=False, message=f"Namespace {self.name} still present after forced finalize",
                                duration=time.time() - start)
        return ActionResult(success=True, message=f"Namespace {self.name} deleted (finalizers forced)",
                            duration=time.time() - start)

    def delete_files(self) -> ActionResult:
        start = time.time()
        removed = []
        for path in self.repo_paths():
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
            prune_empty_dirs(path.parent, self.config.repo_dir)
            removed.append(str(path.relative_to(self.config.repo_dir)))
            logger.debug(f"Removed {path}")
        if not removed:
            return ActionResult(success=True, message='No repository files present', duration=time.time() - start)
        return ActionResult(success=True, message=f"Removed {len(removed)} path(s): {', '.join(removed)}",
                            duration=time.time() - start)

    def update_index(self) -> ActionResult:
        if self.registrar.unregister(self.name):
            return ActionResult(success=True, message=f"Removed {entry_filename(self.name)} from index")
        return ActionResult(success=True, message='Index entry already absent')
