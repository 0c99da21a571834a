"""Tests for JSON output and Rich rendering of results."""

import json
from datetime import datetime, timezone

from rich.console import Console

from theme_lifecycle.backup.models import BackupListItem
from theme_lifecycle.models import (
    DependencyCheckResult,
    DependencyIssue,
    IssueKind,
    RiskLevel,
    ScanWarning,
    SecurityScanResult,
    Severity,
    Threat,
    ValidationIssue,
    ValidationMetadata,
    ValidationResult,
)
from theme_lifecycle.reporting import (
    backups_to_json,
    dependencies_to_json,
    render_backups,
    render_dependencies,
    render_scan,
    render_update_result,
    render_validation,
    scan_to_json,
    update_result_to_json,
    validation_to_json,
)
from theme_lifecycle.updater.models import UpdateResult, UpdateState


def _console() -> Console:
    return Console(record=True, width=120)


def _scan(**kwargs) -> SecurityScanResult:
    defaults = {"safe": True, "score": 100, "risk_level": RiskLevel.LOW, "files_scanned": 4}
    defaults.update(kwargs)
    return SecurityScanResult(**defaults)


def _update(**kwargs) -> UpdateResult:
    defaults = {
        "success": True,
        "state": UpdateState.SUCCEEDED,
        "message": "Updated aurora from 1.2.0 to 2.0.0",
        "package_id": "aurora",
        "version": "2.0.0",
        "previous_version": "1.2.0",
        "target_version": "2.0.0",
    }
    defaults.update(kwargs)
    return UpdateResult(**defaults)


class TestJson:
    def test_validation(self):
        result = ValidationResult(
            valid=False,
            errors=(ValidationIssue(kind=IssueKind.STRUCTURE, message="Required file not found: index.ts"),),
        )
        data = json.loads(validation_to_json(result))
        assert data["valid"] is False
        assert data["errors"][0]["kind"] == "structure"

    def test_scan(self):
        result = _scan(threats=[Threat(severity=Severity.HIGH, type="xss", message="m", file="a.ts", line=3)])
        data = json.loads(scan_to_json(result))
        assert data["risk_level"] == "low"
        assert data["threats"][0]["severity"] == "high"

    def test_dependencies(self):
        result = DependencyCheckResult(satisfied=False, missing=[DependencyIssue(name="lodash", requested="^4.0.0")])
        data = json.loads(dependencies_to_json(result))
        assert data["missing"][0]["name"] == "lodash"

    def test_update_result(self):
        data = json.loads(update_result_to_json(_update(history=[UpdateState.IDLE, UpdateState.SUCCEEDED])))
        assert data["state"] == "succeeded"
        assert data["history"] == ["idle", "succeeded"]

    def test_backups(self):
        item = BackupListItem(
            id="aurora-1-abcdef", name="Nightly", package_id="aurora",
            timestamp=datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc), size=2048,
        )
        data = json.loads(backups_to_json([item]))
        assert data[0]["id"] == "aurora-1-abcdef"
        assert data[0]["timestamp"].startswith("2025-01-02T03:04:05")


class TestRender:
    def test_validation(self):
        console = _console()
        result = ValidationResult(
            valid=False,
            errors=(ValidationIssue(kind=IssueKind.STRUCTURE, message="Required file not found: index.ts"),),
            warnings=(ValidationIssue(kind=IssueKind.PERFORMANCE, message="Large file detected", file="a.ts"),),
            metadata=ValidationMetadata(files_scanned=3, total_size=2048, sections_found=1),
        )
        render_validation(result, console)
        output = console.export_text()
        assert "INVALID" in output
        assert "Required file not found: index.ts" in output
        assert "Files: 3" in output

    def test_scan(self):
        console = _console()
        result = _scan(
            safe=False, score=70, risk_level=RiskLevel.MEDIUM,
            threats=[Threat(severity=Severity.CRITICAL, type="code_execution", message="eval() can execute arbitrary code", file="index.ts", line=2, code="eval(x)")],
            warnings=[ScanWarning(type="hidden_file", message="Hidden file detected: .env", file=".env")],
        )
        render_scan(result, console)
        output = console.export_text()
        assert "UNSAFE" in output
        assert "Score: 70/100" in output
        assert "CRITICAL" in output
        assert "index.ts:2" in output
        assert "Hidden file detected" in output

    def test_dependencies(self):
        console = _console()
        result = DependencyCheckResult(
            satisfied=False,
            incompatible=[DependencyIssue(name="react", requested="^17.0.0", installed_version="18.3.1")],
            warnings=["Package left-pad is not in the allowed list"],
        )
        render_dependencies(result, console)
        output = console.export_text()
        assert "UNSATISFIED" in output
        assert "react@^17.0.0 (have: 18.3.1)" in output
        assert "left-pad" in output

    def test_backups(self):
        console = _console()
        item = BackupListItem(
            id="aurora-1-abcdef", name="Nightly", package_id="aurora",
            timestamp=datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc), size=2048,
        )
        render_backups([item], console)
        output = console.export_text()
        assert "aurora-1-abcdef" in output
        assert "2025-01-02 03:04:05" in output

    def test_update_succeeded(self):
        console = _console()
        render_update_result(_update(backup_id="aurora-1-abcdef"), console)
        output = console.export_text()
        assert "SUCCEEDED" in output
        assert "1.2.0 -> 2.0.0" in output
        assert "aurora-1-abcdef" in output

    def test_update_rolled_back_lists_errors(self):
        console = _console()
        result = _update(
            success=False,
            state=UpdateState.ROLLED_BACK,
            message="Update to 2.0.0 failed and was rolled back to 1.2.0",
            version="1.2.0",
            errors=["Update failed: boom"],
            warnings=["Update failed - rolled back to previous version"],
        )
        render_update_result(result, console)
        output = console.export_text()
        assert "ROLLED BACK" in output
        assert "Update failed: boom" in output

    def test_update_up_to_date(self):
        console = _console()
        render_update_result(_update(state=UpdateState.IDLE, target_version=None, version="1.2.0"), console)
        output = console.export_text()
        assert "UP TO DATE" in output
        assert "Version: 1.2.0" in output
