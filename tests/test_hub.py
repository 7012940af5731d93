#!/usr/bin/env python3
"""Tests for oc-backed hub access and error mapping."""

import base64
import json
from unittest.mock import patch

import pytest

from errors import ConnectivityError, HubCommandError, NotFoundError
from hub import HubClient


def _b64(text):
    return base64.b64encode(text.encode()).decode()


class TestErrorMapping:
    """oc failures map onto the error taxonomy."""

    @patch('hub.run_command')
    def test_success_returns_stdout(self, mock_run):
        mock_run.return_value = (0, 'ok\n', '')
        assert HubClient().raw(['version']) == 'ok\n'
        assert mock_run.call_args.args[0] == ['oc', 'version']

    @pytest.mark.parametrize('rc,err', [
        (1, 'Unable to connect to the server: dial tcp: i/o timeout'),
        (1, 'The connection to the server api:6443 was refused - did you specify the right host or port?'),
        (-1, 'Command timed out after 60s'),
        (127, 'Command not found: oc'),
    ])
    @patch('hub.run_command')
    def test_connectivity(self, mock_run, rc, err):
        mock_run.return_value = (rc, '', err)
        with pytest.raises(ConnectivityError):
            HubClient().raw(['get', 'nodes'])

    @patch('hub.run_command')
    def test_not_found(self, mock_run):
        mock_run.return_value = (1, '', 'Error from server (NotFound): namespaces "eks-01" not found')
        with pytest.raises(NotFoundError):
            HubClient().get('namespace', 'eks-01')

    @patch('hub.run_command')
    def test_other_failure(self, mock_run):
        mock_run.return_value = (1, '', 'Error from server (Forbidden): nope')
        with pytest.raises(HubCommandError, match='Forbidden'):
            HubClient().raw(['get', 'secrets'])

    @patch('hub.run_command')
    def test_invalid_json(self, mock_run):
        mock_run.return_value = (0, 'not json', '')
        with pytest.raises(HubCommandError, match='Invalid JSON'):
            HubClient().get('namespace', 'eks-01')


class TestCommands:
    """Argument construction."""

    @patch('hub.run_command')
    def test_kubeconfig_env(self, mock_run):
        mock_run.return_value = (0, '{}', '')
        HubClient(kubeconfig='/tmp/kc').get('namespace', 'x')
        assert mock_run.call_args.kwargs['env']['KUBECONFIG'] == '/tmp/kc'

    @patch('hub.run_command')
    def test_list(self, mock_run):
        mock_run.return_value = (0, json.dumps({'items': [{'metadata': {'name': 'a'}}]}), '')
        items = HubClient().list('applications.argoproj.io', namespace='openshift-gitops', selector='cluster=eks-01')
        assert items == [{'metadata': {'name': 'a'}}]
        assert mock_run.call_args.args[0] == [
            'oc', 'get', 'applications.argoproj.io', '-n', 'openshift-gitops', '-l', 'cluster=eks-01', '-o', 'json',
        ]

    @patch('hub.run_command')
    def test_list_unknown_resource_type(self, mock_run):
        mock_run.return_value = (1, '', 'error: the server doesn\'t have a resource type "hostedclusters"')
        assert HubClient().list('hostedclusters') == []

    @patch('hub.run_command')
    def test_list_all_namespaces(self, mock_run):
        mock_run.return_value = (0, '{"items": []}', '')
        HubClient().list('pods', namespace='ignored', all_namespaces=True)
        assert mock_run.call_args.args[0] == ['oc', 'get', 'pods', '-A', '-o', 'json']

    @patch('hub.run_command')
    def test_delete(self, mock_run):
        mock_run.return_value = (0, 'namespace "eks-01" deleted\n', '')
        out = HubClient().delete('namespace', 'eks-01', wait=True, timeout=120)
        assert out == 'namespace "eks-01" deleted'
        assert mock_run.call_args.args[0] == [
            'oc', 'delete', 'namespace', 'eks-01', '--ignore-not-found', '--wait=true', '--timeout=120s',
        ]

    @patch('hub.run_command')
    def test_replace_raw_sends_body(self, mock_run):
        mock_run.return_value = (0, '', '')
        HubClient().replace_raw('/api/v1/namespaces/x/finalize', {'spec': {'finalizers': []}})
        assert mock_run.call_args.args[0] == ['oc', 'replace', '--raw', '/api/v1/namespaces/x/finalize', '-f', '-']
        assert json.loads(mock_run.call_args.kwargs['input_text']) == {'spec': {'finalizers': []}}

    @patch('hub.run_command')
    def test_check(self, mock_run):
        mock_run.return_value = (0, 'https://api.hub.example.com:6443\n', '')
        ok, message = HubClient().check()
        assert ok
        assert 'api.hub.example.com' in message

        mock_run.return_value = (1, '', 'Unable to connect to the server')
        ok, message = HubClient().check()
        assert not ok
        assert 'unreachable' in message


class TestKubeconfig:
    """Managed-cluster kubeconfig lookup on the hub."""

    def test_admin_kubeconfig_preferred(self):
        client = HubClient()
        with patch.object(client, 'get', return_value={'data': {'kubeconfig': _b64('admin')}}) as get:
            assert client.kubeconfig_for('hcp-01') == 'admin'
        get.assert_called_once_with('secret', 'hcp-01-admin-kubeconfig', 'hcp-01')

    def test_falls_back_to_plain_secret(self):
        client = HubClient()

        def get(kind, name, namespace=None):
            if name == 'eks-01-admin-kubeconfig':
                raise NotFoundError('not found')
            return {'data': {'value': _b64('capi')}}

        with patch.object(client, 'get', side_effect=get):
            assert client.kubeconfig_for('eks-01') == 'capi'

    def test_missing(self):
        client = HubClient()
        with patch.object(client, 'get', side_effect=NotFoundError('not found')):
            with pytest.raises(NotFoundError, match='No admin kubeconfig'):
                client.kubeconfig_for('ocp-01')


def test_mutations_limited_to_delete_and_finalize():
    """Hub writes go through delete() and replace_raw() only."""
    assert not hasattr(HubClient, 'patch')
    assert callable(HubClient.delete)
    assert callable(HubClient.replace_raw)
