"""Threat signatures and scan rules for theme package scanning."""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from theme_lifecycle.models import Severity


@dataclass(frozen=True)
class ThreatSignature:
    """A threat detection pattern."""
    type: str
    severity: Severity
    pattern: re.Pattern
    message: str


def _sig(type_: str, severity: Severity, regex: str, message: str, flags: int = 0) -> ThreatSignature:
    return ThreatSignature(
        type=type_,
        severity=severity,
        pattern=re.compile(regex, flags),
        message=message,
    )


SIGNATURES: tuple[ThreatSignature, ...] = (
    # --- Critical ---
    _sig("code_execution", Severity.CRITICAL, r"""\beval\s*\(""",
         "eval() can execute arbitrary code"),
    _sig("code_execution", Severity.CRITICAL, r"""\bFunction\s*\(\s*['"`]""",
         "Function constructor can execute arbitrary code"),
    _sig("system_access", Severity.CRITICAL, r"""require\s*\(\s*['"`]child_process""",
         "Child process execution detected"),
    _sig("system_access", Severity.CRITICAL, r"""\bexec\s*\(|\bexecSync\s*\(""",
         "System command execution detected"),
    _sig("filesystem", Severity.CRITICAL, r"""import\s+.*['"`]fs['"`]""",
         "File system access in client code"),
    _sig("filesystem", Severity.CRITICAL, r"""require\s*\(\s*['"`]fs['"`]""",
         "File system access detected"),

    # --- High ---
    _sig("xss", Severity.HIGH, r"""document\.write\s*\(""",
         "document.write can cause XSS vulnerabilities"),
    _sig("xss", Severity.HIGH, r"""innerHTML\s*=(?!=)(?!\s*['"`]\s*['"`])""",
         "Direct innerHTML assignment detected"),
    _sig("xss", Severity.HIGH,
         r"""dangerouslySetInnerHTML(?!\s*=\s*\{\s*\{\s*__html\s*:\s*DOMPurify)""",
         "Unsafe HTML injection"),
    _sig("redirect", Severity.HIGH, r"""window\.location\.href\s*=(?!=)(?!\s*['"`](?:/|#))""",
         "Potential open redirect"),
    _sig("network", Severity.HIGH, r"""\bfetch\s*\(\s*[^'"`\s)]""",
         "Dynamic fetch URL detected"),

    # --- Medium ---
    _sig("script", Severity.MEDIUM, r"""<script[^>]*>(?!.*</script>)""",
         "Inline script tag detected", re.IGNORECASE),
    _sig("storage", Severity.MEDIUM, r"""localStorage\.setItem\s*\(\s*[^'"`\s]""",
         "Dynamic localStorage key"),
    _sig("storage", Severity.MEDIUM, r"""sessionStorage\.setItem\s*\(\s*[^'"`\s]""",
         "Dynamic sessionStorage key"),
    _sig("cookie", Severity.MEDIUM, r"""document\.cookie\s*=(?!=)""",
         "Direct cookie manipulation"),
    _sig("encoding", Severity.MEDIUM, r"""\batob\s*\(|\bbtoa\s*\(""",
         "Base64 encoding/decoding detected"),

    # --- Low ---
    _sig("info_leak", Severity.LOW, r"""console\.(?:log|debug|info)\b""",
         "Console logging in production"),
    _sig("debug", Severity.LOW, r"""\bdebugger\b""",
         "Debugger statement found"),
    _sig("quality", Severity.LOW, r"""\b(?:TODO|FIXME|HACK)\b""",
         "Development comment found"),
    _sig("config", Severity.LOW, r"""process\.env(?!\.NODE_ENV)""",
         "Environment variable access"),
)

SCAN_EXTENSIONS = frozenset({
    ".ts", ".tsx", ".js", ".jsx", ".json", ".css", ".html", ".htm", ".liquid",
})
MARKUP_EXTENSIONS = frozenset({".html", ".htm", ".liquid"})
SUSPICIOUS_EXTENSIONS = frozenset({
    ".exe", ".dll", ".so", ".dylib", ".bat", ".sh", ".cmd",
    ".zip", ".rar", ".tar", ".gz", ".7z",
})
SENSITIVE_KEY_PARTS = ("password", "secret", "token", "apikey", "private")
COMMENT_MARKERS = ("//", "/*", "*", "<!--")
ALLOWED_DOTFILES = frozenset({".gitignore"})

INLINE_SCRIPT_RE = re.compile(r"""<script(?![^>]*\bsrc\s*=)[^>]*>[\s\S]*?</script>""", re.IGNORECASE)
SCRIPT_SRC_RE = re.compile(r"""<script[^>]*\bsrc\s*=\s*["']([^"']+)["']""", re.IGNORECASE)

# Points deducted per finding
SEVERITY_PENALTIES: Mapping[Severity, int] = MappingProxyType({
    Severity.CRITICAL: 30,
    Severity.HIGH: 20,
    Severity.MEDIUM: 10,
    Severity.LOW: 5,
})
WARNING_PENALTY = 2


@dataclass(frozen=True)
class ScanRules:
    """Immutable rule set injected into a SecurityScanner."""
    signatures: tuple[ThreatSignature, ...] = SIGNATURES
    scan_extensions: frozenset[str] = SCAN_EXTENSIONS
    markup_extensions: frozenset[str] = MARKUP_EXTENSIONS
    suspicious_extensions: frozenset[str] = SUSPICIOUS_EXTENSIONS
    sensitive_key_parts: tuple[str, ...] = SENSITIVE_KEY_PARTS
    comment_markers: tuple[str, ...] = COMMENT_MARKERS
    allowed_dotfiles: frozenset[str] = ALLOWED_DOTFILES
    penalties: Mapping[Severity, int] = field(default_factory=lambda: SEVERITY_PENALTIES)
    warning_penalty: int = WARNING_PENALTY

    def __post_init__(self):
        if not isinstance(self.penalties, MappingProxyType):
            object.__setattr__(self, "penalties", MappingProxyType(dict(self.penalties)))


DEFAULT_RULES = ScanRules()
