"""Shared Pydantic models for theme-lifecycle."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class IssueKind(str, Enum):
    STRUCTURE = "structure"
    SECURITY = "security"
    COMPATIBILITY = "compatibility"
    DEPENDENCY = "dependency"
    PERFORMANCE = "performance"


# --- Validation ---

class ValidationIssue(BaseModel):
    """A validation error or warning."""
    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    message: str
    file: str | None = None
    line: int | None = None


class ValidationMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    files_scanned: int = 0
    total_size: int = 0
    sections_found: int = 0
    blocks_found: int = 0


class ValidationResult(BaseModel):
    """Outcome of one validation run."""
    model_config = ConfigDict(frozen=True)

    valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    metadata: ValidationMetadata | None = None


# --- Security scanning ---

class Threat(BaseModel):
    """A single pattern-matched threat."""
    severity: Severity
    type: str
    message: str
    file: str | None = None
    line: int | None = None
    code: str = ""


class ScanWarning(BaseModel):
    """A non-threat finding (naming, hidden files, permissions)."""
    type: str
    message: str
    file: str | None = None
    recommendation: str = ""


class SecurityScanResult(BaseModel):
    """Result of a security scan across a package."""
    safe: bool
    score: int
    risk_level: RiskLevel
    files_scanned: int
    threats: list[Threat] = []
    warnings: list[ScanWarning] = []

    @property
    def blocking_threats(self) -> list[Threat]:
        return [t for t in self.threats if t.severity in (Severity.CRITICAL, Severity.HIGH)]


# --- Dependencies ---

class DependencyIssue(BaseModel):
    """A dependency that is missing or incompatible."""
    name: str
    requested: str = ""
    installed_version: str | None = None
    reason: str = ""

    def __str__(self) -> str:
        spec = f"{self.name}@{self.requested}" if self.requested else self.name
        if self.reason == "blocked":
            return f"{self.name} (blocked for security reasons)"
        if self.installed_version:
            return f"{spec} (have: {self.installed_version})"
        return spec


class DependencyCheckResult(BaseModel):
    """Result of checking declared dependencies against the host."""
    satisfied: bool
    missing: list[DependencyIssue] = []
    incompatible: list[DependencyIssue] = []
    warnings: list[str] = []


class DependencyConflict(BaseModel):
    package: str
    versions: list[str]


class ConflictReport(BaseModel):
    """Dependency conflicts between two packages installed side by side."""
    conflicts: list[DependencyConflict] = []
    resolutions: dict[str, str] = {}
    unresolved: list[str] = []
