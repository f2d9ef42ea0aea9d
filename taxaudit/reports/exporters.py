"""보고서 출력 형식 (JSON, CSV)"""

import csv
import io
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Union

from ..core.exceptions import ValidationError


class ExportFormat(str, Enum):
    JSON = "JSON"
    CSV = "CSV"

    @classmethod
    def parse(cls, value: Union["ExportFormat", str]) -> "ExportFormat":
        if isinstance(value, ExportFormat):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            supported = ", ".join(fmt.value for fmt in cls)
            raise ValidationError([f"unsupported export format {value!r} (use {supported})"])


@dataclass(frozen=True)
class ExportedDocument:
    """출력 결과"""

    format: ExportFormat
    content: str
    media_type: str
    filename: str


CSV_COLUMNS = [
    'report_id', 'record_id', 'period', 'version', 'validation_status',
    'step_number', 'description', 'formula', 'result', 'currency',
    'regulatory_reference',
]


def render(report: Dict[str, Any], records: List[Dict[str, Any]],
           fmt: ExportFormat) -> ExportedDocument:
    """보고서 딕셔너리와 레코드 딕셔너리 목록을 출력

    Args:
        report: SummaryReport.to_dict()
        records: 포함된 AuditRecord.to_dict() 목록
        fmt: 출력 형식
    """
    if fmt == ExportFormat.JSON:
        return _render_json(report, records)
    if fmt == ExportFormat.CSV:
        return _render_csv(report, records)
    raise ValueError(f"unhandled export format: {fmt}")


def _render_json(report: Dict[str, Any], records: List[Dict[str, Any]]) -> ExportedDocument:
    payload = dict(report)
    payload['records'] = [
        {
            'record_id': record['id'],
            'period': record['period'],
            'version': record['version'],
            'validation_status': record['validation_status'],
            'rate_config_version': record['rate_config_version'],
            'total_amount': record['result']['total_amount'],
            'steps': record['result']['steps'],
        }
        for record in records
    ]
    content = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
    return ExportedDocument(
        format=ExportFormat.JSON,
        content=content,
        media_type="application/json",
        filename=f"{report['id']}.json",
    )


def _render_csv(report: Dict[str, Any], records: List[Dict[str, Any]]) -> ExportedDocument:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()

    for record in records:
        for step in record['result']['steps']:
            writer.writerow({
                'report_id': report['id'],
                'record_id': record['id'],
                'period': record['period'],
                'version': record['version'],
                'validation_status': record['validation_status'],
                'step_number': step['step_number'],
                'description': step['description'],
                'formula': step['formula'],
                'result': step['result'],
                'currency': step['currency'],
                'regulatory_reference': step['regulatory_reference'],
            })

    return ExportedDocument(
        format=ExportFormat.CSV,
        content=buffer.getvalue(),
        media_type="text/csv",
        filename=f"{report['id']}.csv",
    )
