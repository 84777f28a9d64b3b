from __future__ import annotations

import io
import json

import pandas as pd

from ..domain.reports import DashboardReport
from ..domain.schemas import ExportFormat, validate_input
from ..infrastructure.exceptions import ExportError, ValidationError
from ..infrastructure.logging import get_logger

logger = get_logger(__name__)

GROUP_COLUMNS = ["key", "count", "avg", "oldest", "newest", "days_since_newest"]


def _to_iso(val):
    if hasattr(val, "isoformat"):
        try:
            return val.isoformat()
        except Exception:
            return str(val)
    return val


def make_json_export_payload(report: DashboardReport) -> str:
    """Serialise the whole report as indented JSON."""
    try:
        return json.dumps(report.as_dict(), indent=2, ensure_ascii=False, default=_to_iso)
    except (TypeError, ValueError) as e:
        raise ExportError(f"Failed to serialise dashboard report: {e}", export_format="json") from e


def _frame(rows: list[dict], columns: list[str]) -> pd.DataFrame:
    frame = pd.DataFrame(rows)
    for column in columns:
        if column not in frame.columns:
            frame[column] = pd.NA
    return frame[columns].map(_to_iso)


def report_frames(report: DashboardReport) -> dict[str, pd.DataFrame]:
    """One DataFrame per report section, keyed by sheet name."""
    data = report.as_dict()
    diagnostics = data["diagnostics"]

    summary = pd.DataFrame(
        [
            {"metric": "count", "value": report.count},
            {"metric": "avg_percent", "value": report.avg_percent},
            {"metric": "action_required_yes", "value": report.action_required.yes_count},
            {"metric": "action_required_no", "value": report.action_required.no_count},
            {"metric": "action_required_ratio", "value": report.action_required.ratio},
            {"metric": "generated_at", "value": data["generated_at"]},
        ]
    )
    missing = [
        {"issue": "missing_catalog", "subject": name, "count": count}
        for name, count in diagnostics["missing_catalogs"].items()
    ]
    missing += [
        {"issue": "unresolved_keys", "subject": name, "count": count}
        for name, count in diagnostics["unresolved_keys"].items()
    ]
    missing += [
        {"issue": "malformed_catalog", "subject": name, "count": 1}
        for name in diagnostics["malformed_catalogs"]
    ]

    return {
        "Summary": summary,
        "Teams": _frame(data["by_team"], GROUP_COLUMNS),
        "Evaluators": _frame(data["by_evaluator"], GROUP_COLUMNS),
        "Employees": _frame(data["by_employee"], GROUP_COLUMNS),
        "Histogram": _frame(data["histogram"], ["label", "lower", "upper", "count"]),
        "Radar": _frame(data["radar"]["data"], ["subject", "value", "count"]),
        "Questions": _frame(data["question_profile"] or [], ["question", "value", "count"]),
        "Trend": _frame(data["trend"], ["date", "avg", "count"]),
        "Diagnostics": _frame(missing, ["issue", "subject", "count"]),
    }


def make_xlsx_export_bytes(report: DashboardReport) -> bytes:
    """Create an Excel workbook with one sheet per report section."""
    try:
        bio = io.BytesIO()
        with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
            for sheet_name, frame in report_frames(report).items():
                frame.to_excel(writer, index=False, sheet_name=sheet_name)
        return bio.getvalue()
    except (OSError, ValueError) as e:
        logger.error("XLSX export failed: %s", e)
        raise ExportError(f"Failed to write XLSX export: {e}", export_format="xlsx") from e


def export_report(report: DashboardReport, format_type: str) -> bytes:
    """
    Export a report as ``json`` (UTF-8 bytes) or ``xlsx``.

    Raises:
        ValidationError: If the format is not supported
    """
    validation_result = validate_input(ExportFormat, {"format_type": format_type})
    if not validation_result.success:
        raise ValidationError("format_type", f"Unsupported export format '{format_type}'", format_type)

    if validation_result.data["format_type"] == "json":
        return make_json_export_payload(report).encode("utf-8")
    return make_xlsx_export_bytes(report)
