"""Tests for package structure validation."""

import pytest
from pydantic import ValidationError

from theme_lifecycle.dependencies.policy import DependencyPolicy
from theme_lifecycle.models import IssueKind
from theme_lifecycle.scanners.security_scanner import SecurityScanner
from theme_lifecycle.validation.validator import (
    PackageLayout,
    PackageValidator,
    validate_package,
)


def _messages(issues):
    return [i.message for i in issues]


class TestValidatorStructure:
    def test_valid_package(self, make_package):
        result = PackageValidator(make_package()).validate()
        assert result.valid
        assert result.errors == ()
        assert result.warnings == ()
        assert result.metadata.files_scanned == 4
        assert result.metadata.sections_found == 1
        assert result.metadata.blocks_found == 1

    def test_missing_root_is_single_error(self, tmp_path):
        result = PackageValidator(tmp_path / "nope").validate()
        assert not result.valid
        assert len(result.errors) == 1
        assert result.errors[0].kind == IssueKind.STRUCTURE
        assert result.metadata is None

    def test_missing_manifest(self, make_package):
        root = make_package()
        (root / "manifest.json").unlink()
        result = PackageValidator(root).validate()
        assert not result.valid
        assert "manifest.json not found or unreadable" in _messages(result.errors)

    def test_invalid_json_does_not_raise(self, make_package):
        root = make_package()
        (root / "manifest.json").write_text("{not json")
        result = PackageValidator(root).validate()
        assert not result.valid
        assert _messages(result.errors) == ["Invalid JSON in manifest.json"]

    def test_schema_violations_become_errors(self, make_package):
        root = make_package(version="1.0", id="Bad Id")
        result = PackageValidator(root).validate()
        messages = _messages(result.errors)
        assert any(m.startswith("Manifest validation: id - ") for m in messages)
        assert any(m.startswith("Manifest validation: version - ") for m in messages)
        assert all(e.file == "manifest.json" for e in result.errors)

    def test_missing_optional_dirs_warn(self, make_package):
        root = make_package(files={"index.ts": "export {};\n"})
        result = PackageValidator(root).validate()
        assert result.valid
        assert _messages(result.warnings) == [
            "Optional directory not found: sections",
            "Optional directory not found: blocks",
        ]

    def test_optional_dir_that_is_a_file_is_an_error(self, make_package):
        root = make_package(files={"index.ts": "export {};\n", "sections": "oops", "blocks/a.tsx": "x"})
        result = PackageValidator(root).validate()
        assert not result.valid
        assert "Expected a directory: sections" in _messages(result.errors)

    def test_missing_entry_file(self, make_package):
        root = make_package()
        (root / "index.ts").unlink()
        result = PackageValidator(root).validate()
        assert "Required file not found: index.ts" in _messages(result.errors)

    def test_declared_entry_point(self, make_package):
        root = make_package(entryPoints={"main": "src/main.ts"})
        result = PackageValidator(root).validate()
        assert "Required file not found: src/main.ts" in _messages(result.errors)

    def test_required_dirs_from_layout(self, make_package):
        layout = PackageLayout(required_dirs=("templates",))
        result = PackageValidator(make_package(), layout=layout).validate()
        assert "Required directory not found: templates" in _messages(result.errors)


class TestValidatorPolicies:
    def test_unknown_dependency_warns(self, make_package):
        root = make_package(
            dependencies={"react": "^18.0.0", "left-pad": "^1.0.0"},
            peerDependencies={"@radix-ui/react-dialog": "^1.0.0", "express": "^4.0.0"},
        )
        result = PackageValidator(root).validate()
        assert result.valid
        deps = [w for w in result.warnings if w.kind == IssueKind.DEPENDENCY]
        assert _messages(deps) == [
            "Potentially unsafe dependency: left-pad",
            "Potentially unsafe dependency: express",
        ]

    def test_resolver_allow_list_is_known(self, make_package):
        root = make_package(dependencies={"lodash": "^4.17.0", "@tanstack/react-query": "^5.0.0"})
        result = PackageValidator(root).validate()
        assert [w for w in result.warnings if w.kind == IssueKind.DEPENDENCY] == []

    def test_injected_policy(self, make_package):
        policy = DependencyPolicy(platform_provided={}, allowed_external=("@acme/*",))
        root = make_package(dependencies={"@acme/ui": "^1.0.0", "react": "^18.0.0"})
        result = PackageValidator(root, policy=policy).validate()
        deps = [w for w in result.warnings if w.kind == IssueKind.DEPENDENCY]
        assert _messages(deps) == ["Potentially unsafe dependency: react"]

    def test_large_file_warns(self, make_package):
        result = PackageValidator(make_package(), max_file_bytes=60).validate()
        perf = [w for w in result.warnings if w.kind == IssueKind.PERFORMANCE]
        assert perf
        assert result.valid

    def test_total_size_is_an_error(self, make_package):
        result = PackageValidator(make_package(), max_total_bytes=100).validate()
        assert not result.valid
        assert result.errors[0].kind == IssueKind.PERFORMANCE

    def test_platform_too_old(self, make_package):
        root = make_package(minPlatformVersion="2.0.0")
        result = PackageValidator(root, platform_version="1.5.0").validate()
        assert not result.valid
        assert result.errors[0].kind == IssueKind.COMPATIBILITY

    def test_platform_too_new(self, make_package):
        root = make_package(maxPlatformVersion="1.0.0")
        result = PackageValidator(root, platform_version="1.5.0").validate()
        assert [e.kind for e in result.errors] == [IssueKind.COMPATIBILITY]

    def test_injected_scanner_adds_security_warnings(self, make_package):
        root = make_package(files={
            "index.ts": "const run = (code) => eval(code);\n",
            "sections/a.tsx": "x",
            "blocks/b.tsx": "y",
        })
        result = PackageValidator(root, scanner=SecurityScanner(root)).validate()
        security = [w for w in result.warnings if w.kind == IssueKind.SECURITY]
        assert security
        assert security[0].file == "index.ts"
        assert security[0].line == 1
        assert result.valid


class TestValidationResult:
    def test_result_is_frozen(self, make_package):
        result = PackageValidator(make_package()).validate()
        with pytest.raises(ValidationError):
            result.valid = False

    def test_validate_package_by_id(self, make_package, store):
        make_package("aurora")
        assert validate_package("aurora", store=store).valid
        assert not validate_package("missing", store=store).valid
