"""Check a package's declared dependencies against the host dependency policy."""

from __future__ import annotations

import logging
from typing import Literal

from semantic_version import NpmSpec, Version

from theme_lifecycle.dependencies.policy import DEFAULT_POLICY, DependencyPolicy
from theme_lifecycle.manifest import PackageManifest
from theme_lifecycle.models import (
    ConflictReport,
    DependencyCheckResult,
    DependencyConflict,
    DependencyIssue,
)

logger = logging.getLogger(__name__)

UseCase = Literal["minimal", "full", "animated"]

_BASE_RECOMMENDATION = {
    "react": "^18.0.0",
    "react-dom": "^18.0.0",
    "next": "^15.0.0",
    "tailwindcss": "^3.0.0",
}


def _spec(version_range: str) -> NpmSpec:
    return NpmSpec(version_range.strip() or "*")


def is_valid_version_range(version_range: str) -> bool:
    """True if ``version_range`` parses as an npm-style range."""
    try:
        _spec(version_range)
    except (ValueError, TypeError):
        return False
    return True


def satisfies(version: str, version_range: str) -> bool:
    """npm ``satisfies``. Raises ValueError for an unparseable range."""
    return Version(version) in _spec(version_range)


def recommended_dependencies(use_case: UseCase = "minimal") -> dict[str, str]:
    """Suggested dependency ranges for a new theme."""
    deps = dict(_BASE_RECOMMENDATION)
    if use_case == "animated":
        deps.update({"framer-motion": "^11.0.0", "react-spring": "^9.0.0"})
    elif use_case == "full":
        deps.update({
            "framer-motion": "^11.0.0",
            "date-fns": "^4.0.0",
            "clsx": "^2.0.0",
            "lucide-react": "^0.469.0",
        })
    return deps


class DependencyResolver:
    """Resolves one package's dependencies against a DependencyPolicy."""

    def __init__(
        self,
        dependencies: dict[str, str] | None = None,
        peer_dependencies: dict[str, str] | None = None,
        policy: DependencyPolicy = DEFAULT_POLICY,
        package_id: str = "",
    ):
        self.dependencies = dict(dependencies or {})
        self.peer_dependencies = dict(peer_dependencies or {})
        self.policy = policy
        self.package_id = package_id

    def check_dependencies(self) -> DependencyCheckResult:
        missing: list[DependencyIssue] = []
        incompatible: list[DependencyIssue] = []
        warnings: list[str] = []

        for name, requested in self.dependencies.items():
            if self.policy.is_blocked(name):
                incompatible.append(DependencyIssue(name=name, requested=requested, reason="blocked"))
                continue

            provided = self.policy.provided_version(name)
            if provided is not None:
                try:
                    ok = satisfies(provided, requested)
                except ValueError:
                    incompatible.append(DependencyIssue(
                        name=name, requested=requested, installed_version=provided, reason="invalid_range",
                    ))
                    warnings.append(f"Invalid version range: {requested}")
                    continue
                if not ok:
                    incompatible.append(DependencyIssue(
                        name=name, requested=requested, installed_version=provided, reason="incompatible",
                    ))
                continue

            missing.append(DependencyIssue(name=name, requested=requested, reason="missing"))
            if not self.policy.is_allowed_external(name):
                warnings.append(f"Package {name} is not in the allowed list")

        # Peer dependencies only ever produce warnings
        for name, requested in self.peer_dependencies.items():
            warning = self._check_peer(name, requested)
            if warning:
                warnings.append(warning)

        result = DependencyCheckResult(
            satisfied=not missing and not incompatible,
            missing=missing,
            incompatible=incompatible,
            warnings=warnings,
        )
        if not result.satisfied:
            logger.info(
                "Unsatisfied dependencies for %s: %d missing, %d incompatible",
                self.package_id or "package", len(missing), len(incompatible),
            )
        return result

    def _check_peer(self, name: str, requested: str) -> str | None:
        if self.policy.is_blocked(name):
            return f"Peer dependency {name} is blocked for security reasons"

        provided = self.policy.provided_version(name)
        if provided is not None:
            try:
                ok = satisfies(provided, requested)
            except ValueError:
                return f"Invalid version range for peer dependency {name}: {requested}"
            if not ok:
                return (
                    f"Peer dependency {name}@{requested} may be incompatible "
                    f"(platform provides {provided})"
                )
            return None

        if not self.policy.is_allowed_external(name):
            return f"Peer dependency {name} is not in the allowed list"
        return f"Peer dependency {name}@{requested} is not provided by the platform"

    def resolve_conflicts(self, other_dependencies: dict[str, str]) -> ConflictReport:
        """Compare against another package's dependencies.

        A name requested with different ranges on both sides is a conflict.
        It resolves to the platform-provided version when that version
        satisfies either range; otherwise it needs a human decision.
        """
        report = ConflictReport()
        for name, requested in self.dependencies.items():
            other = other_dependencies.get(name)
            if other is None or other == requested:
                continue

            report.conflicts.append(DependencyConflict(package=name, versions=[requested, other]))
            provided = self.policy.provided_version(name)
            combined = f"{requested} || {other}"
            if provided is not None and is_valid_version_range(combined) and satisfies(provided, combined):
                report.resolutions[name] = provided
            else:
                report.unresolved.append(name)
        return report


def check_manifest_dependencies(
    manifest: PackageManifest,
    policy: DependencyPolicy = DEFAULT_POLICY,
) -> DependencyCheckResult:
    """Run a dependency check straight from a parsed manifest."""
    return DependencyResolver(
        manifest.dependencies,
        manifest.peer_dependencies,
        policy=policy,
        package_id=manifest.id,
    ).check_dependencies()
