# model.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .errors import InputError

ALL_LOCALES = "*"
ENGLISH_LOCALE = "en"

_VERSION_RE = re.compile(r"^\s*(\d+)\.(\d+)\.(\d+)")


@dataclass(frozen=True)
class Version:
    """Numeric MAJOR.MINOR.MAINTENANCE triple used for directory names."""
    major: int
    minor: int
    maintenance: int

    @classmethod
    def parse(cls, raw: str) -> Version:
        """
        Extract the leading numeric triple, discarding any pre/post-release suffix.

        "1.2.3-rc.1" -> 1.2.3
        """
        m = _VERSION_RE.match(raw or "")
        if not m:
            raise InputError(f"version {raw!r} does not start with MAJOR.MINOR.MAINTENANCE")
        return cls(*(int(g) for g in m.groups()))

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.maintenance}"


@dataclass(frozen=True)
class Revision:
    """Pinned state of one repository as declared in a dependency map."""
    sha: str
    branch: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        d = {"sha": self.sha}
        if self.branch is not None:
            d["branch"] = self.branch
        return d


@dataclass(frozen=True)
class Job:
    """
    One build/deploy request, owned by the task queue until its callback fires.

    `repos` is the dependency set (repository -> revision) and always contains
    the artifact repository itself.
    """
    sim_name: str
    version: Version
    repos: Dict[str, Revision]
    locales: Tuple[str, ...] = (ALL_LOCALES,)
    server: str = ""
    authorization: str = field(default="", repr=False, compare=False)

    @property
    def locales_arg(self) -> str:
        """Locale list in the form the build tool expects ("*" or "en,fr")."""
        return ",".join(self.locales)

    @property
    def label(self) -> str:
        return f"{self.sim_name} {self.version}"

    def dependencies_dict(self) -> Dict[str, Dict[str, str]]:
        return {name: rev.to_dict() for name, rev in self.repos.items()}


@dataclass(frozen=True)
class RepositorySet:
    """
    Every working copy a job touches: the declared dependencies plus the
    auxiliary translations repository.
    """
    dependencies: Tuple[str, ...]
    translations: str

    @classmethod
    def for_job(cls, job: Job, translations_repo: str) -> RepositorySet:
        return cls(dependencies=tuple(job.repos), translations=translations_repo)

    def all(self) -> Tuple[str, ...]:
        names = list(self.dependencies)
        if self.translations not in names:
            names.append(self.translations)
        return tuple(names)


@dataclass
class CatalogEntry:
    """One record in the external catalog of translatable simulations."""
    project_name: str
    sim_title: str
    test_url: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "simTitle": self.sim_title,
            "projectName": self.project_name,
            "testUrl": self.test_url,
        }
