"""Bootstrap pipeline for EKS clusters.

A Tekton Task plus a PipelineRun that imports a freshly provisioned EKS
cluster into ACM:

1. install-clis: fetch aws, oc and jq into a shared volume
2. wait-cluster-active: poll EKS until the cluster is ACTIVE
3. apply-acm-import: apply crds.yaml/import.yaml from the hub <name>-import secret
4. wait-nodes-ready: wait for worker nodes to report Ready
5. repair-pull-secret: re-derive the agent pull secret from the hub namespace
   when klusterlet pods fail to pull images
6. check-acm-availability: advisory poll of ManagedCluster availability,
   never fails the run
"""

from regional_spec import RegionalSpec

TASK_NAME = 'eks-acm-import'
TOOLS_IMAGE = 'registry.redhat.io/openshift4/ose-cli:latest'
TOOLS_DIR = '/tools'

CLUSTER_ACTIVE_INTERVAL = 30
CLUSTER_ACTIVE_TIMEOUT = 30 * 60
NODE_READY_INTERVAL = 30
NODE_READY_TIMEOUT = 10 * 60
ACM_AVAILABILITY_INTERVAL = 30
ACM_AVAILABILITY_TIMEOUT = 10 * 60

AGENT_NAMESPACE = 'open-cluster-management-agent'
PULL_SECRET_NAME = 'open-cluster-management-image-pull-credentials'

_PREAMBLE = f"""#!/usr/bin/env bash
set -euo pipefail
export PATH="{TOOLS_DIR}:$PATH"
CLUSTER="$(params.cluster-name)"
REGION="$(params.region)"
"""

_EKS_KUBECONFIG = f"""export KUBECONFIG={TOOLS_DIR}/eks-kubeconfig
aws eks update-kubeconfig --name "$CLUSTER" --region "$REGION" --kubeconfig "$KUBECONFIG" >/dev/null
"""


def _poll_loop(condition: str, interval: int, timeout: int, waiting: str, on_timeout: str) -> str:
    """Bash fixed-interval poll loop bounded by an elapsed-time ceiling."""
    return f"""elapsed=0
until {condition}; do
  if [ "$elapsed" -ge {timeout} ]; then
{on_timeout}
  fi
  echo "{waiting} (${{elapsed}}s/{timeout}s)"
  sleep {interval}
  elapsed=$((elapsed + {interval}))
done
"""


def install_clis_script() -> str:
    return _PREAMBLE + f"""curl -fsSL https://awscli.amazonaws.com/awscli-exe-linux-x86_64.zip -o /tmp/awscli.zip
cd /tmp && unzip -q awscli.zip && ./aws/install --bin-dir {TOOLS_DIR} --install-dir {TOOLS_DIR}/aws-cli
cp "$(command -v oc)" {TOOLS_DIR}/oc
curl -fsSL https://github.com/jqlang/jq/releases/latest/download/jq-linux-amd64 -o {TOOLS_DIR}/jq
chmod +x {TOOLS_DIR}/jq
echo "CLIs installed"
"""


def wait_cluster_active_script() -> str:
    condition = '[ "$(aws eks describe-cluster --name "$CLUSTER" --region "$REGION" --query cluster.status --output text 2>/dev/null)" = "ACTIVE" ]'
    on_timeout = '    echo "EKS cluster $CLUSTER not ACTIVE after ' + str(CLUSTER_ACTIVE_TIMEOUT) + 's"\n    exit 1'
    return _PREAMBLE + _poll_loop(
        condition, CLUSTER_ACTIVE_INTERVAL, CLUSTER_ACTIVE_TIMEOUT,
        'Waiting for EKS cluster $CLUSTER to become ACTIVE', on_timeout,
    ) + 'echo "EKS cluster $CLUSTER is ACTIVE"\n'


def apply_acm_import_script() -> str:
    return _PREAMBLE + """oc get secret "${CLUSTER}-import" -n "$CLUSTER" -o jsonpath='{.data.crds\\.yaml}' | base64 -d > /tmp/crds.yaml
oc get secret "${CLUSTER}-import" -n "$CLUSTER" -o jsonpath='{.data.import\\.yaml}' | base64 -d > /tmp/import.yaml
""" + _EKS_KUBECONFIG + """oc apply -f /tmp/crds.yaml
oc apply -f /tmp/import.yaml
echo "ACM import manifests applied to $CLUSTER"
"""


def wait_nodes_ready_script() -> str:
    condition = ('[ "$(oc get nodes --no-headers 2>/dev/null | grep -c " Ready")" -ge "$(params.node-count)" ]')
    on_timeout = '    echo "Worker nodes not Ready after ' + str(NODE_READY_TIMEOUT) + 's"\n    exit 1'
    return _PREAMBLE + _EKS_KUBECONFIG + _poll_loop(
        condition, NODE_READY_INTERVAL, NODE_READY_TIMEOUT,
        'Waiting for $(params.node-count) Ready worker nodes', on_timeout,
    ) + 'echo "Worker nodes Ready"\n'


def repair_pull_secret_script() -> str:
    return _PREAMBLE + _EKS_KUBECONFIG + f"""failing=$(oc get pods -n {AGENT_NAMESPACE} --no-headers 2>/dev/null | grep -cE 'ImagePullBackOff|ErrImagePull' || true)
if [ "$failing" -eq 0 ]; then
  echo "No image pull failures in {AGENT_NAMESPACE}"
  exit 0
fi
echo "Detected $failing pod(s) failing to pull images, re-deriving pull secret from hub namespace $CLUSTER"
KUBECONFIG= oc get secret {PULL_SECRET_NAME} -n "$CLUSTER" -o jsonpath='{{.data.\\.dockerconfigjson}}' | base64 -d > /tmp/dockerconfig.json
oc create secret generic {PULL_SECRET_NAME} -n {AGENT_NAMESPACE} \\
  --type=kubernetes.io/dockerconfigjson \\
  --from-file=.dockerconfigjson=/tmp/dockerconfig.json \\
  --dry-run=client -o yaml | oc apply -f -
oc delete pods -n {AGENT_NAMESPACE} --field-selector=status.phase!=Running --ignore-not-found
echo "Pull secret repaired"
"""


def check_acm_availability_script() -> str:
    condition = ('[ "$(oc get managedcluster "$CLUSTER" -o jsonpath=\'{.status.conditions[?(@.type=="ManagedClusterConditionAvailable")].status}\' 2>/dev/null)" = "True" ]')
    on_timeout = ('    echo "WARNING: ManagedCluster $CLUSTER not Available after '
                  + str(ACM_AVAILABILITY_TIMEOUT) + 's (advisory only)"\n    exit 0')
    return _PREAMBLE + 'unset KUBECONFIG\n' + _poll_loop(
        condition, ACM_AVAILABILITY_INTERVAL, ACM_AVAILABILITY_TIMEOUT,
        'Waiting for ManagedCluster $CLUSTER to become Available', on_timeout,
    ) + 'echo "ManagedCluster $CLUSTER is Available"\n'


STEPS = (
    ('install-clis', install_clis_script),
    ('wait-cluster-active', wait_cluster_active_script),
    ('apply-acm-import', apply_acm_import_script),
    ('wait-nodes-ready', wait_nodes_ready_script),
    ('repair-pull-secret', repair_pull_secret_script),
    ('check-acm-availability', check_acm_availability_script),
)


def task(spec: RegionalSpec) -> dict:
    return {
        'apiVersion': 'tekton.dev/v1',
        'kind': 'Task',
        'metadata': {
            'name': TASK_NAME,
            'namespace': spec.name,
        },
        'spec': {
            'params': [
                {'name': 'cluster-name', 'type': 'string'},
                {'name': 'region', 'type': 'string'},
                {'name': 'node-count', 'type': 'string'},
            ],
            'volumes': [{'name': 'tools', 'emptyDir': {}}],
            'steps': [
                {
                    'name': step_name,
                    'image': TOOLS_IMAGE,
                    'env': [
                        {
                            'name': 'AWS_ACCESS_KEY_ID',
                            'valueFrom': {'secretKeyRef': {'name': 'aws-credentials', 'key': 'aws_access_key_id'}},
                        },
                        {
                            'name': 'AWS_SECRET_ACCESS_KEY',
                            'valueFrom': {'secretKeyRef': {'name': 'aws-credentials', 'key': 'aws_secret_access_key'}},
                        },
                    ],
                    'volumeMounts': [{'name': 'tools', 'mountPath': TOOLS_DIR}],
                    'script': build(),
                }
                for step_name, build in STEPS
            ],
        },
    }


def pipeline_run(spec: RegionalSpec) -> dict:
    return {
        'apiVersion': 'tekton.dev/v1',
        'kind': 'PipelineRun',
        'metadata': {
            'name': f'{spec.name}-acm-import',
            'namespace': spec.name,
        },
        'spec': {
            'pipelineSpec': {
                'params': [
                    {'name': 'cluster-name', 'type': 'string'},
                    {'name': 'region', 'type': 'string'},
                    {'name': 'node-count', 'type': 'string'},
                ],
                'tasks': [{
                    'name': 'acm-import',
                    'taskRef': {'name': TASK_NAME},
                    'params': [
                        {'name': 'cluster-name', 'value': '$(params.cluster-name)'},
                        {'name': 'region', 'value': '$(params.region)'},
                        {'name': 'node-count', 'value': '$(params.node-count)'},
                    ],
                }],
            },
            'params': [
                {'name': 'cluster-name', 'value': spec.name},
                {'name': 'region', 'value': spec.region},
                {'name': 'node-count', 'value': str(spec.replicas)},
            ],
            'taskRunTemplate': {'serviceAccountName': 'pipeline'},
            'timeouts': {'pipeline': '1h0m0s'},
        },
    }
