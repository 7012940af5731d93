"""Manifest compiler: regional spec -> full per-cluster manifest set.

Dispatches on the spec's ClusterType to a registered generator for
clusters/<name>/, then adds the overlays every cluster gets regardless of
backend:

- operators/openshift-pipelines/<name>/
- pipelines/hello-world/<name>/
- pipelines/cloud-infrastructure-provisioning/<name>/
- deployments/ocm/<name>/

compile() is pure and deterministic: the same spec always renders to
byte-identical files. write() persists a set under the repository root.
"""

import logging
from pathlib import Path

import yaml

from generators import (
    ClusterManifestSet,
    GeneratorSettings,
    ManifestFile,
    get_generator,
)
from generators import fragments, ocp
from regional_spec import ClusterType, RegionalSpec

logger = logging.getLogger(__name__)

# Repository directories holding per-cluster overlays, keyed by GitOps component
OVERLAY_DIRS = {
    'operators': 'operators/openshift-pipelines',
    'pipelines-hello-world': 'pipelines/hello-world',
    'pipelines-cloud-infra': 'pipelines/cloud-infrastructure-provisioning',
    'deployments-ocm': 'deployments/ocm',
}

CLUSTER_BASES_DIR = 'bases/clusters'


def ocm_namespace(name: str) -> str:
    return f'ocm-{name}'


def cluster_paths(name: str) -> list[str]:
    """Repository directories owned by one cluster (cluster dir first)."""
    return [f'clusters/{name}'] + [f'{d}/{name}' for d in OVERLAY_DIRS.values()]


def _pipeline_run(name: str, pipeline: str, params: list[tuple[str, str]]) -> dict:
    return {
        'apiVersion': 'tekton.dev/v1',
        'kind': 'PipelineRun',
        'metadata': {
            'name': f'{pipeline}-run',
            'namespace': ocm_namespace(name),
        },
        'spec': {
            'pipelineRef': {'name': f'{pipeline}-pipeline'},
            'params': [{'name': key, 'value': value} for key, value in params],
            'workspaces': [{
                'name': 'shared-workspace',
                'volumeClaimTemplate': {
                    'spec': {
                        'accessModes': ['ReadWriteOnce'],
                        'resources': {'requests': {'storage': '1Gi'}},
                    },
                },
            }],
        },
    }


def overlay_files(spec: RegionalSpec) -> list[ManifestFile]:
    """Operator, pipeline and deployment overlays for one cluster."""
    name = spec.name
    files = []

    operators_dir = f"{OVERLAY_DIRS['operators']}/{name}"
    files.append(ManifestFile(f'{operators_dir}/kustomization.yaml', [
        fragments.kustomization(resources=['../../../bases/operators/openshift-pipelines']),
    ]))

    hello_dir = f"{OVERLAY_DIRS['pipelines-hello-world']}/{name}"
    hello_run = ManifestFile(f'{hello_dir}/hello-world.pipelinerun.yaml', [
        _pipeline_run(name, 'hello-world', [('cluster-name', name)]),
    ])
    files.append(hello_run)
    files.append(ManifestFile(f'{hello_dir}/kustomization.yaml', [
        fragments.kustomization(
            resources=['../../../bases/pipelines/hello-world', hello_run.filename],
            namespace=ocm_namespace(name),
        ),
    ]))

    infra_dir = f"{OVERLAY_DIRS['pipelines-cloud-infra']}/{name}"
    infra_run = ManifestFile(f'{infra_dir}/cloud-infrastructure-provisioning.pipelinerun.yaml', [
        _pipeline_run(name, 'cloud-infrastructure-provisioning', [
            ('cluster-name', name),
            ('cloud-provider', 'aws'),
            ('region', spec.region),
            ('instance-type', spec.instance_type),
            ('node-count', str(spec.replicas)),
        ]),
    ])
    files.append(infra_run)
    files.append(ManifestFile(f'{infra_dir}/kustomization.yaml', [
        fragments.kustomization(
            resources=['../../../bases/pipelines/cloud-infrastructure-provisioning', infra_run.filename],
            namespace=ocm_namespace(name),
        ),
    ]))

    deployments_dir = f"{OVERLAY_DIRS['deployments-ocm']}/{name}"
    files.append(ManifestFile(f'{deployments_dir}/kustomization.yaml', [
        fragments.kustomization(resources=['../../../bases/ocm'], namespace=ocm_namespace(name)),
    ]))
    return files


class ManifestCompiler:
    """Compiles regional specs into ClusterManifestSets and writes them out."""

    def __init__(self, settings: GeneratorSettings = None):
        self.settings = settings or GeneratorSettings()

    def compile(self, spec: RegionalSpec) -> ClusterManifestSet:
        """Build the manifest set for a spec. Pure; raises on invalid input."""
        generator = get_generator(spec.type)
        files = generator.generate(spec, self.settings)
        if not files or files[-1].filename != 'kustomization.yaml':
            raise ValueError(f"Generator for {spec.type.value} did not finish with kustomization.yaml")
        files.extend(overlay_files(spec))
        return ClusterManifestSet(cluster_name=spec.name, cluster_type=spec.type, files=files)

    def write(self, manifest_set: ClusterManifestSet, repo_dir: Path) -> list[Path]:
        """Write every file in the set under repo_dir, overwriting existing files.

        Returns:
            Paths written, in set order
        """
        if manifest_set.cluster_type is ClusterType.OCP:
            self._warn_unmatched_patch_targets(repo_dir)

        written = []
        for path, content in manifest_set.render().items():
            target = repo_dir / path
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, 'w', encoding='utf-8') as f:
                f.write(content)
            logger.debug(f"Wrote {path}")
            written.append(target)
        logger.info(f"Wrote {len(written)} file(s) for {manifest_set.cluster_name}")
        return written

    def plan(self, manifest_set: ClusterManifestSet, repo_dir: Path) -> list[tuple[str, str]]:
        """Dry-run plan: (action, path) with action in create/update/unchanged."""
        plan = []
        for path, content in manifest_set.render().items():
            target = repo_dir / path
            if not target.exists():
                plan.append(('create', path))
            elif target.read_text(encoding='utf-8') != content:
                plan.append(('update', path))
            else:
                plan.append(('unchanged', path))
        return plan

    def _warn_unmatched_patch_targets(self, repo_dir: Path) -> None:
        base_dir = repo_dir / CLUSTER_BASES_DIR
        if not base_dir.is_dir():
            logger.debug(f"No {CLUSTER_BASES_DIR} in repository, skipping patch target check")
            return
        base_docs = []
        for path in sorted(base_dir.glob('*.yaml')):
            with open(path, encoding='utf-8') as f:
                base_docs.extend(doc for doc in yaml.safe_load_all(f) if isinstance(doc, dict))
        for target in ocp.unmatched_patch_targets(base_docs):
            name = f" name={target.name}" if target.name else ''
            logger.warning(
                f"Patch target {target.kind} ({target.api_version}{name}) matches nothing in "
                f"{CLUSTER_BASES_DIR}; its patch will not be applied"
            )
