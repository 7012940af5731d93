"""HyperShift hosted control plane generator.

The control plane runs as pods on the hub (single-replica topology);
workers come from a NodePool. The SSH key secret is an empty placeholder
filled in out of band; pull secret and AWS credentials come from the
secret store through an ExternalSecret pair.
"""

from generators import GeneratorSettings, ManifestFile, register_generator
from generators import fragments
from regional_spec import ClusterType, RegionalSpec

HYPERSHIFT_API_VERSION = 'hypershift.openshift.io/v1beta1'
RELEASE_IMAGE = 'quay.io/openshift-release-dev/ocp-release:{version}-x86_64'
AVAILABILITY_POLICY = 'SingleReplica'


def release_image(version: str) -> str:
    return RELEASE_IMAGE.format(version=version)


def ssh_key_secret_name(name: str) -> str:
    return f'{name}-ssh-key'


def hosted_cluster(spec: RegionalSpec) -> dict:
    services = [
        {'service': 'APIServer', 'servicePublishingStrategy': {'type': 'LoadBalancer'}},
        {'service': 'OAuthServer', 'servicePublishingStrategy': {'type': 'Route'}},
        {'service': 'Konnectivity', 'servicePublishingStrategy': {'type': 'Route'}},
        {'service': 'Ignition', 'servicePublishingStrategy': {'type': 'Route'}},
    ]
    return {
        'apiVersion': HYPERSHIFT_API_VERSION,
        'kind': 'HostedCluster',
        'metadata': {
            'name': spec.name,
            'namespace': spec.name,
            'labels': {fragments.CLUSTER_LABEL: spec.name},
        },
        'spec': {
            'release': {'image': release_image(spec.version_info.version)},
            'infraID': spec.name,
            'dns': {'baseDomain': spec.domain},
            'pullSecret': {'name': 'pull-secret'},
            'sshKey': {'name': ssh_key_secret_name(spec.name)},
            'controllerAvailabilityPolicy': AVAILABILITY_POLICY,
            'infrastructureAvailabilityPolicy': AVAILABILITY_POLICY,
            'networking': {
                'networkType': 'OVNKubernetes',
                'clusterNetwork': [{'cidr': '10.132.0.0/14'}],
                'serviceNetwork': [{'cidr': '172.31.0.0/16'}],
                'machineNetwork': [{'cidr': '10.0.0.0/16'}],
            },
            'platform': {
                'type': 'AWS',
                'aws': {
                    'region': spec.region,
                    'endpointAccess': 'Public',
                },
            },
            'services': services,
        },
    }


def node_pool(spec: RegionalSpec) -> dict:
    return {
        'apiVersion': HYPERSHIFT_API_VERSION,
        'kind': 'NodePool',
        'metadata': {
            'name': f'{spec.name}-workers',
            'namespace': spec.name,
        },
        'spec': {
            'clusterName': spec.name,
            'replicas': spec.replicas,
            'release': {'image': release_image(spec.version_info.version)},
            'management': {'upgradeType': 'Replace', 'autoRepair': True},
            'platform': {
                'type': 'AWS',
                'aws': {'instanceType': spec.instance_type},
            },
        },
    }


def ssh_key_secret(spec: RegionalSpec) -> dict:
    return {
        'apiVersion': 'v1',
        'kind': 'Secret',
        'metadata': {
            'name': ssh_key_secret_name(spec.name),
            'namespace': spec.name,
        },
        'type': 'Opaque',
        'stringData': {'id_rsa.pub': ''},
    }


@register_generator
class HCPGenerator:
    """HostedCluster + NodePool on the hub's HyperShift operator."""

    cluster_type = ClusterType.HCP

    def generate(self, spec: RegionalSpec, settings: GeneratorSettings) -> list[ManifestFile]:
        cluster_dir = f'clusters/{spec.name}'
        files = [
            ManifestFile(f'{cluster_dir}/namespace.yaml', [fragments.namespace(spec.name)]),
            ManifestFile(f'{cluster_dir}/hostedcluster.yaml', [hosted_cluster(spec)]),
            ManifestFile(f'{cluster_dir}/nodepool.yaml', [node_pool(spec)]),
            ManifestFile(f'{cluster_dir}/ssh-key.secret.yaml', [ssh_key_secret(spec)]),
            ManifestFile(f'{cluster_dir}/pull-secret.externalsecret.yaml', [
                fragments.external_secret(
                    'pull-secret', spec.name, settings.secret_store, 'pull-secret',
                    {'.dockerconfigjson': 'dockerconfigjson'},
                    secret_type='kubernetes.io/dockerconfigjson',
                ),
            ]),
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
        ]
        kustomization = fragments.kustomization(resources=[f.filename for f in files])
        files.append(ManifestFile(f'{cluster_dir}/kustomization.yaml', [kustomization]))
        return files
