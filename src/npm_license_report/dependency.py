# In src/npm_license_report/dependency.py
from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class Dependency:
    """A resolved npm package as it appears in the lock file."""

    name: str
    version: str
    local_metadata_path: str
    tarball_url: Optional[str] = None

    @property
    def spec(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def scratch_name(self) -> str:
        """File-system safe name used for per-dependency scratch paths."""
        return f"{self.name.replace('/', '.')}-{self.version}"

    def with_tarball(self, tarball_url: str) -> "Dependency":
        return replace(self, tarball_url=tarball_url)


def sort_key(name: str):
    """
    Ordering key for package names.

    A leading ``@`` is ignored so scoped packages interleave with unscoped
    ones, and comparison is case-insensitive with a case-sensitive tiebreak.
    """
    fixed = name[1:] if name.startswith("@") else name
    return (fixed.casefold(), fixed)
