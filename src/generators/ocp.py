"""OpenShift (Hive) cluster generator.

The ClusterDeployment, MachinePool, ManagedCluster, KlusterletAddonConfig
and the two ExternalSecrets are inherited from bases/clusters. This
generator only emits the namespace and install-config inputs, plus six
JSON6902 patches that rewrite names, namespaces and region on the base
resources.

Patch targets match on exact (group, version, kind[, name]). A target
that matches nothing in the base produces no patch and kustomize reports
no error, so a renamed or re-versioned base resource silently keeps its
placeholder values. unmatched_patch_targets() surfaces that gap; the
compiler logs it as a warning when the base is present in the repo.
"""

from dataclasses import dataclass
from typing import Optional

from generators import GeneratorSettings, ManifestFile, register_generator
from generators import fragments
from regional_spec import ClusterType, RegionalSpec

BASE_PATH = '../../bases/clusters'
INSTALL_CONFIG_SECRET = 'install-config'
CONTROL_PLANE_REPLICAS = 3


@dataclass(frozen=True)
class PatchTarget:
    """Kustomize patch target selector."""
    group: str
    version: str
    kind: str
    name: Optional[str] = None

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def to_dict(self) -> dict:
        d = {'group': self.group, 'version': self.version, 'kind': self.kind}
        if self.name is not None:
            d['name'] = self.name
        return d

    def matches(self, doc: dict) -> bool:
        if doc.get('apiVersion') != self.api_version or doc.get('kind') != self.kind:
            return False
        return self.name is None or (doc.get('metadata') or {}).get('name') == self.name


CLUSTER_DEPLOYMENT = PatchTarget('hive.openshift.io', 'v1', 'ClusterDeployment')
MANAGED_CLUSTER = PatchTarget('cluster.open-cluster-management.io', 'v1', 'ManagedCluster')
MACHINE_POOL = PatchTarget('hive.openshift.io', 'v1', 'MachinePool')
KLUSTERLET_ADDON_CONFIG = PatchTarget('agent.open-cluster-management.io', 'v1', 'KlusterletAddonConfig')
AWS_CREDS_SECRET = PatchTarget('external-secrets.io', 'v1beta1', 'ExternalSecret', 'aws-creds')
PULL_SECRET = PatchTarget('external-secrets.io', 'v1beta1', 'ExternalSecret', 'pull-secret')

PATCH_TARGETS = (
    CLUSTER_DEPLOYMENT,
    MANAGED_CLUSTER,
    MACHINE_POOL,
    KLUSTERLET_ADDON_CONFIG,
    AWS_CREDS_SECRET,
    PULL_SECRET,
)


def unmatched_patch_targets(base_docs: list[dict]) -> list[PatchTarget]:
    """Patch targets with no matching document in the base."""
    return [t for t in PATCH_TARGETS if not any(t.matches(doc) for doc in base_docs)]


def image_set_name(version: str) -> str:
    """ClusterImageSet name for an OpenShift version (ACM naming)."""
    return f'img{version}-x86-64-appsub'


def install_config(spec: RegionalSpec) -> dict:
    """openshift-install input; Hive injects the pull secret."""
    def machine_pool(name: str, replicas: int, iops: int) -> dict:
        return {
            'name': name,
            'architecture': 'amd64',
            'hyperthreading': 'Enabled',
            'replicas': replicas,
            'platform': {
                'aws': {
                    'rootVolume': {'iops': iops, 'size': 100, 'type': 'io1'},
                    'type': spec.instance_type,
                },
            },
        }

    return {
        'apiVersion': 'v1',
        'metadata': {'name': spec.name},
        'baseDomain': spec.domain,
        'controlPlane': machine_pool('master', CONTROL_PLANE_REPLICAS, 4000),
        'compute': [machine_pool('worker', spec.replicas, 2000)],
        'networking': {
            'networkType': 'OVNKubernetes',
            'clusterNetwork': [{'cidr': '10.128.0.0/14', 'hostPrefix': 23}],
            'machineNetwork': [{'cidr': '10.0.0.0/16'}],
            'serviceNetwork': ['172.30.0.0/16'],
        },
        'platform': {'aws': {'region': spec.region}},
        'pullSecret': '',
    }


def _replace(path: str, value) -> dict:
    return {'op': 'replace', 'path': path, 'value': value}


def _patch(target: PatchTarget, ops: list[dict]) -> dict:
    return {'target': target.to_dict(), 'patch': ops}


def build_patches(spec: RegionalSpec) -> list[dict]:
    """Inline patches for the six base resources."""
    name = spec.name
    mc = fragments.managed_cluster(name, spec.region, spec.type)
    kac = fragments.klusterlet_addon_config(name, spec.region, spec.type)
    return [
        _patch(CLUSTER_DEPLOYMENT, [
            _replace('/metadata/name', name),
            _replace('/metadata/namespace', name),
            _replace('/spec/clusterName', name),
            _replace('/spec/baseDomain', spec.domain),
            _replace('/spec/platform/aws/region', spec.region),
            _replace('/spec/provisioning/installConfigSecretTemplateRef/name', INSTALL_CONFIG_SECRET),
            _replace('/spec/provisioning/imageSetRef/name', image_set_name(spec.version_info.version)),
        ]),
        _patch(MANAGED_CLUSTER, [
            _replace('/metadata/name', name),
            _replace('/metadata/labels', mc['metadata']['labels']),
        ]),
        _patch(MACHINE_POOL, [
            _replace('/metadata/name', f'{name}-worker'),
            _replace('/metadata/namespace', name),
            _replace('/spec/clusterDeploymentRef/name', name),
            _replace('/spec/replicas', spec.replicas),
            _replace('/spec/platform/aws/type', spec.instance_type),
        ]),
        _patch(KLUSTERLET_ADDON_CONFIG, [
            _replace('/metadata/name', name),
            _replace('/metadata/namespace', name),
            _replace('/spec/clusterName', kac['spec']['clusterName']),
            _replace('/spec/clusterNamespace', kac['spec']['clusterNamespace']),
            _replace('/spec/clusterLabels', kac['spec']['clusterLabels']),
        ]),
        _patch(AWS_CREDS_SECRET, [_replace('/metadata/namespace', name)]),
        _patch(PULL_SECRET, [_replace('/metadata/namespace', name)]),
    ]


@register_generator
class OCPGenerator:
    """Hive-provisioned OpenShift cluster built from the shared base."""

    cluster_type = ClusterType.OCP

    def generate(self, spec: RegionalSpec, settings: GeneratorSettings) -> list[ManifestFile]:
        cluster_dir = f'clusters/{spec.name}'
        files = [
            ManifestFile(f'{cluster_dir}/namespace.yaml', [fragments.namespace(spec.name)]),
            ManifestFile(f'{cluster_dir}/install-config.yaml', [install_config(spec)]),
        ]
        kustomization = fragments.kustomization(
            resources=[BASE_PATH, 'namespace.yaml'],
            generator_files={INSTALL_CONFIG_SECRET: ['install-config.yaml']},
            secret_namespace=spec.name,
            patches=build_patches(spec),
        )
        files.append(ManifestFile(f'{cluster_dir}/kustomization.yaml', [kustomization]))
        return files
