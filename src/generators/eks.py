"""EKS cluster generator (Cluster API provider AWS).

Emits the full CAPI resource graph: Cluster -> AWSManagedControlPlane,
plus a MachinePool linking object pointing at an AWSManagedMachinePool.
Also emits the ACM import pipeline (see eks_bootstrap).
"""

from generators import GeneratorSettings, ManifestFile, register_generator
from generators import eks_bootstrap, fragments
from regional_spec import ClusterType, RegionalSpec

CAPI_API_VERSION = 'cluster.x-k8s.io/v1beta1'
CONTROL_PLANE_API_VERSION = 'controlplane.cluster.x-k8s.io/v1beta2'
INFRASTRUCTURE_API_VERSION = 'infrastructure.cluster.x-k8s.io/v1beta2'

POD_CIDR = '192.168.0.0/16'


def pool_name(name: str) -> str:
    return f'{name}-pool-0'


def cluster(spec: RegionalSpec) -> dict:
    control_plane_ref = {
        'apiVersion': CONTROL_PLANE_API_VERSION,
        'kind': 'AWSManagedControlPlane',
        'name': spec.name,
    }
    return {
        'apiVersion': CAPI_API_VERSION,
        'kind': 'Cluster',
        'metadata': {
            'name': spec.name,
            'namespace': spec.name,
            'labels': {fragments.CLUSTER_LABEL: spec.name},
        },
        'spec': {
            'clusterNetwork': {'pods': {'cidrBlocks': [POD_CIDR]}},
            'controlPlaneRef': dict(control_plane_ref),
            'infrastructureRef': dict(control_plane_ref),
        },
    }


def aws_managed_control_plane(spec: RegionalSpec) -> dict:
    return {
        'apiVersion': CONTROL_PLANE_API_VERSION,
        'kind': 'AWSManagedControlPlane',
        'metadata': {
            'name': spec.name,
            'namespace': spec.name,
        },
        'spec': {
            'eksClusterName': spec.name,
            'region': spec.region,
            'version': spec.version_info.api_version,
            'associateOIDCProvider': True,
            'endpointAccess': {'public': True, 'private': True},
            'logging': {'apiServer': True, 'audit': True},
        },
    }


def aws_managed_machine_pool(spec: RegionalSpec) -> dict:
    return {
        'apiVersion': INFRASTRUCTURE_API_VERSION,
        'kind': 'AWSManagedMachinePool',
        'metadata': {
            'name': pool_name(spec.name),
            'namespace': spec.name,
        },
        'spec': {
            'eksNodegroupName': pool_name(spec.name),
            'instanceType': spec.instance_type,
            'scaling': {'minSize': spec.replicas, 'maxSize': spec.replicas},
        },
    }


def machine_pool(spec: RegionalSpec) -> dict:
    """CAPI MachinePool linking the Cluster to its AWSManagedMachinePool."""
    return {
        'apiVersion': CAPI_API_VERSION,
        'kind': 'MachinePool',
        'metadata': {
            'name': pool_name(spec.name),
            'namespace': spec.name,
        },
        'spec': {
            'clusterName': spec.name,
            'replicas': spec.replicas,
            'template': {
                'spec': {
                    'clusterName': spec.name,
                    'version': spec.version_info.api_version,
                    'bootstrap': {'dataSecretName': ''},
                    'infrastructureRef': {
                        'apiVersion': INFRASTRUCTURE_API_VERSION,
                        'kind': 'AWSManagedMachinePool',
                        'name': pool_name(spec.name),
                    },
                },
            },
        },
    }


@register_generator
class EKSGenerator:
    """CAPI-managed EKS cluster with ACM import pipeline."""

    cluster_type = ClusterType.EKS

    def generate(self, spec: RegionalSpec, settings: GeneratorSettings) -> list[ManifestFile]:
        cluster_dir = f'clusters/{spec.name}'
        files = [
            ManifestFile(f'{cluster_dir}/namespace.yaml', [fragments.namespace(spec.name)]),
            ManifestFile(f'{cluster_dir}/cluster.yaml', [cluster(spec)]),
            ManifestFile(f'{cluster_dir}/awsmanagedcontrolplane.yaml', [aws_managed_control_plane(spec)]),
            ManifestFile(f'{cluster_dir}/awsmanagedmachinepool.yaml', [aws_managed_machine_pool(spec)]),
            ManifestFile(f'{cluster_dir}/machinepool.yaml', [machine_pool(spec)]),
            ManifestFile(f'{cluster_dir}/aws-credentials.externalsecret.yaml', [
                fragments.external_secret(
                    'aws-credentials', spec.name, settings.secret_store, 'aws-credentials',
                    {'aws_access_key_id': 'aws_access_key_id',
                     'aws_secret_access_key': 'aws_secret_access_key'},
                ),
            ]),
            ManifestFile(f'{cluster_dir}/managedcluster.yaml', [
                fragments.managed_cluster(spec.name, spec.region, spec.type),
            ]),
            ManifestFile(f'{cluster_dir}/klusterletaddonconfig.yaml', [
                fragments.klusterlet_addon_config(spec.name, spec.region, spec.type),
            ]),
            ManifestFile(f'{cluster_dir}/acm-import.pipeline.yaml', [
                eks_bootstrap.task(spec),
                eks_bootstrap.pipeline_run(spec),
            ]),
        ]
        kustomization = fragments.kustomization(resources=[f.filename for f in files])
        files.append(ManifestFile(f'{cluster_dir}/kustomization.yaml', [kustomization]))
        return files
