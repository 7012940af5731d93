"""Status report rendering: table, JSON and CSV.

JSON and CSV carry the same issue vocabulary as the table but no
decorative markers. The table adds aggregate counts and one remediation
hint per issue code present.
"""

import csv
import io
import json
from collections import Counter
from dataclasses import asdict, is_dataclass
from typing import Optional

from common import PASS_MARK, WARN_MARK
from status.classifier import OK, REMEDIATION
from status.collector import PROBE_FIELDS, ClusterStatusRecord
from status.probes import (
    ExternalHealth,
    InfrastructureHealth,
    PlatformHealth,
    SyncWaveHealth,
    Unavailable,
    WorkloadHealth,
)

FORMATS = ('table', 'json', 'csv')

BASE_COLUMNS = ('NAME', 'TYPE', 'REPO', 'MC', 'AVAILABLE', 'NAMESPACE', 'APPS', 'ISSUES')

UNAVAILABLE = 'n/a'


def filter_issues(records: list[ClusterStatusRecord]) -> list[ClusterStatusRecord]:
    """Records carrying at least one non-OK issue."""
    return [r for r in records if r.issues and r.issues != [OK]]


def issues_text(record: ClusterStatusRecord) -> str:
    return ','.join(record.issues or [OK])


def _yes_no(value: bool) -> str:
    return 'yes' if value else 'no'


def _opt(value) -> str:
    return '-' if value is None else str(value)


def _infra_cell(value) -> str:
    if isinstance(value, Unavailable):
        return UNAVAILABLE
    if isinstance(value, InfrastructureHealth):
        return f"{_opt(value.ready_workers)}/{_opt(value.actual_workers)}/{_opt(value.expected_workers)}"
    return '-'


def _platform_cell(value) -> str:
    if isinstance(value, Unavailable):
        return UNAVAILABLE
    if isinstance(value, PlatformHealth):
        return f"{value.degraded_operators} degraded"
    return '-'


def _wave_cell(value) -> str:
    if isinstance(value, Unavailable):
        return UNAVAILABLE
    if isinstance(value, SyncWaveHealth):
        return f"{_opt(value.current_wave)}/{_opt(value.max_wave)}"
    return '-'


def _workload_cell(value) -> str:
    if isinstance(value, Unavailable):
        return UNAVAILABLE
    if isinstance(value, WorkloadHealth):
        return f"{value.pending_pods}p/{value.pending_pvcs}pvc"
    return '-'


def _external_cell(value) -> str:
    if isinstance(value, Unavailable):
        return UNAVAILABLE
    if isinstance(value, ExternalHealth):
        conn = {True: 'ok', False: 'down', None: '-'}[value.connectivity_ok]
        return f"{value.failed_external_secrets} failed/{conn}"
    return '-'


# Column header and cell renderer for each probe
PROBE_COLUMNS = {
    'infrastructure': ('WORKERS(R/A/E)', _infra_cell),
    'platform': ('OPERATORS', _platform_cell),
    'sync-wave': ('WAVE', _wave_cell),
    'workload': ('PENDING', _workload_cell),
    'external': ('EXTERNAL', _external_cell),
}


def _probe_columns(records: list[ClusterStatusRecord]) -> list[str]:
    """Probes that produced a value for at least one record, in declaration order."""
    return [
        probe for probe, attr in PROBE_FIELDS.items()
        if any(getattr(r, attr) is not None for r in records)
    ]


def _row(record: ClusterStatusRecord, probes: list[str]) -> list[str]:
    row = [
        record.name,
        record.cluster_type.value if record.cluster_type else '-',
        _yes_no(record.repo_config_present),
        record.managed_cluster_state,
        _opt(record.availability),
        _opt(record.namespace_phase),
        str(record.argo_app_count),
    ]
    for probe in probes:
        _, render = PROBE_COLUMNS[probe]
        row.append(render(getattr(record, PROBE_FIELDS[probe])))
    row.append(issues_text(record))
    return row


def _headers(probes: list[str]) -> list[str]:
    return list(BASE_COLUMNS[:-1]) + [PROBE_COLUMNS[p][0] for p in probes] + [BASE_COLUMNS[-1]]


def aggregate(records: list[ClusterStatusRecord]) -> Counter:
    """Count of clusters per issue code."""
    counts = Counter()
    for record in records:
        counts.update(record.issues or [OK])
    return counts


def render_table(records: list[ClusterStatusRecord], total: Optional[int] = None) -> str:
    probes = _probe_columns(records)
    headers = _headers(probes)
    rows = [_row(r, probes) for r in records]
    widths = [max(len(h), *(len(row[i]) for row in rows)) if rows else len(h) for i, h in enumerate(headers)]

    lines = ['  '.join(h.ljust(widths[i]) for i, h in enumerate(headers)).rstrip()]
    lines.append('  '.join('-' * w for w in widths))
    for row in rows:
        lines.append('  '.join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip())

    counts = aggregate(records)
    healthy = counts.pop(OK, 0)
    total = len(records) if total is None else total
    lines.append('')
    lines.append(f"Clusters: {total}  Healthy: {healthy}  With issues: {len(filter_issues(records))}")
    for code, count in sorted(counts.items()):
        lines.append(f"  {code}: {count}")

    if counts:
        lines.append('')
        lines.append('Remediation:')
        for code in sorted(counts):
            lines.append(f"  {WARN_MARK} {code}: {REMEDIATION.get(code, '')}")
    else:
        lines.append(f"{PASS_MARK} No issues found")
    return '\n'.join(lines)


def _probe_value(value):
    if value is None:
        return None
    if isinstance(value, Unavailable):
        return {'unavailable': True, 'reason': value.reason}
    if is_dataclass(value):
        return asdict(value)
    return value


def record_to_dict(record: ClusterStatusRecord) -> dict:
    """JSON-ready record: booleans normalized, issue list as one string."""
    data = {
        'name': record.name,
        'type': record.cluster_type.value if record.cluster_type else None,
        'repo_config': bool(record.repo_config_present),
        'managed_cluster': record.managed_cluster_present,
        'available': record.availability,
        'finalizers': bool(record.finalizers_present),
        'taints': ','.join(record.taints),
        'namespace_phase': record.namespace_phase,
        'argo_apps': record.argo_app_count,
        'argo_apps_stuck': record.argo_apps_stuck,
        'argo_appsets_stuck': record.argo_appsets_stuck,
        'argo_out_of_sync': record.argo_out_of_sync,
        'issues': issues_text(record),
    }
    for attr in PROBE_FIELDS.values():
        value = getattr(record, attr)
        if value is not None:
            data[attr] = _probe_value(value)
    return data


def render_json(records: list[ClusterStatusRecord]) -> str:
    return json.dumps([record_to_dict(r) for r in records], indent=2)


def render_csv(records: list[ClusterStatusRecord]) -> str:
    probes = _probe_columns(records)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow([h.lower() for h in _headers(probes)])
    for record in records:
        writer.writerow(_row(record, probes))
    return buffer.getvalue()


def render(records: list[ClusterStatusRecord], fmt: str = 'table', issues_only: bool = False) -> str:
    """Render records in the requested format."""
    if fmt not in FORMATS:
        raise ValueError(f"Unknown format '{fmt}'. Available: {', '.join(FORMATS)}")
    total = len(records)
    shown = filter_issues(records) if issues_only else records
    if fmt == 'json':
        return render_json(shown)
    if fmt == 'csv':
        return render_csv(shown)
    return render_table(shown, total=total)
