"""Host dependency policy: platform-provided versions, allow-list and block-list."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

# Packages the host platform already ships, with the exact version it provides
PLATFORM_PROVIDED: Mapping[str, str] = MappingProxyType({
    "react": "18.3.1",
    "react-dom": "18.3.1",
    "next": "15.4.5",
    "tailwindcss": "3.4.17",
    "@radix-ui/react-dialog": "1.1.4",
    "@radix-ui/react-dropdown-menu": "2.1.4",
    "@radix-ui/react-label": "2.1.1",
    "@radix-ui/react-popover": "1.1.4",
    "@radix-ui/react-select": "2.1.4",
    "@radix-ui/react-separator": "1.1.1",
    "@radix-ui/react-slot": "1.1.1",
    "@radix-ui/react-switch": "1.1.2",
    "@radix-ui/react-tabs": "1.1.2",
    "@radix-ui/react-tooltip": "1.1.6",
    "class-variance-authority": "0.7.1",
    "clsx": "2.1.1",
    "date-fns": "4.1.0",
    "framer-motion": "11.15.0",
    "lucide-react": "0.469.0",
    "tailwind-merge": "2.6.0",
    "zod": "3.24.1",
})

# Packages a theme may pull in itself. ``@scope/*`` matches by prefix.
ALLOWED_EXTERNAL: tuple[str, ...] = (
    "classnames",
    "dayjs",
    "lodash",
    "axios",
    "@emotion/react",
    "@emotion/styled",
    "styled-components",
    "react-spring",
    "react-intersection-observer",
    "react-hook-form",
    "swr",
    "react-query",
    "@tanstack/react-query",
)

# Server-side or code-execution modules that never belong in a theme
BLOCKED: frozenset[str] = frozenset({
    "fs",
    "path",
    "child_process",
    "crypto",
    "os",
    "net",
    "eval",
    "vm",
    "cluster",
    "worker_threads",
})


@dataclass(frozen=True)
class InstalledPackage:
    name: str
    version: str


@dataclass(frozen=True)
class DependencyPolicy:
    """Immutable dependency tables injected into a DependencyResolver."""
    platform_provided: Mapping[str, str] = field(default_factory=lambda: PLATFORM_PROVIDED)
    allowed_external: tuple[str, ...] = ALLOWED_EXTERNAL
    blocked: frozenset[str] = BLOCKED

    def __post_init__(self):
        if not isinstance(self.platform_provided, MappingProxyType):
            object.__setattr__(self, "platform_provided", MappingProxyType(dict(self.platform_provided)))

    def provided_version(self, name: str) -> str | None:
        return self.platform_provided.get(name)

    def is_blocked(self, name: str) -> bool:
        return name in self.blocked

    def is_package_safe(self, name: str) -> bool:
        return not self.is_blocked(name)

    def is_allowed_external(self, name: str) -> bool:
        for pattern in self.allowed_external:
            if "*" in pattern:
                if fnmatch.fnmatchcase(name, pattern):
                    return True
            elif name == pattern:
                return True
        return False

    def is_known(self, name: str) -> bool:
        """Provided by the platform or allowed as an external package."""
        return name in self.platform_provided or self.is_allowed_external(name)

    def platform_packages(self) -> list[InstalledPackage]:
        return [InstalledPackage(name, version) for name, version in self.platform_provided.items()]


DEFAULT_POLICY = DependencyPolicy()
