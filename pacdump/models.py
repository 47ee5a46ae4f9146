"""Core data models: dependency specifications and package records."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Iterable, List, Optional

INSTALL_REASON_EXPLICIT = "Explicit"
INSTALL_REASON_DEPEND = "Depend"

# libalpm's alpm_pkgreason_t
_REASONS = {0: INSTALL_REASON_EXPLICIT, 1: INSTALL_REASON_DEPEND}

# libalpm's alpm_pkgvalidation_t bits
_VALIDATION_BITS = [
    (1 << 0, "None"),
    (1 << 1, "MD5Sum"),
    (1 << 2, "SHA256Sum"),
    (1 << 3, "Signature"),
]

# operator -> libalpm depmod name, longest operators first
DEPMODS = [
    (">=", "Ge"),
    ("<=", "Le"),
    ("=", "Eq"),
    (">", "Gt"),
    ("<", "Lt"),
]
DEPMOD_OPERATORS = {name: op for op, name in DEPMODS}

DEPENDENCY_FIELDS = ("depends_on", "optional_deps", "make_deps", "check_deps")
RELATION_FIELDS = DEPENDENCY_FIELDS + ("conflicts_with", "replaces", "provides")
REVERSE_FIELDS = ("required_by", "optional_for", "required_by_make", "required_by_check")


@dataclass(frozen=True)
class DepSpec:
    """A dependency declared by a package, e.g. ``glibc>=2.38``.

    ``satisfier`` holds the ``name=version`` of the package resolved for
    this dependency, once one has been found.
    """

    name: str
    depmod: str = "Any"
    version: Optional[str] = None
    description: Optional[str] = None
    satisfier: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "DepSpec":
        """Parse a pacman dependency string ``name[op version][: description]``."""
        description = None
        if ": " in text:
            text, description = text.split(": ", 1)
        text = text.strip()
        positions = [i for i in (text.find("<"), text.find(">"), text.find("=")) if i > 0]
        if not positions:
            return cls(name=text, description=description)
        idx = min(positions)
        op = text[idx:idx + 2] if text[idx:idx + 2] in (">=", "<=") else text[idx]
        return cls(
            name=text[:idx],
            depmod=dict(DEPMODS)[op],
            version=text[idx + len(op):],
            description=description,
        )

    @property
    def dep_string(self) -> str:
        """Dependency text without the description, as accepted by satisfier lookups."""
        if self.depmod == "Any" or self.version is None:
            return self.name
        return f"{self.name}{DEPMOD_OPERATORS[self.depmod]}{self.version}"

    def with_satisfier(self, satisfier: str) -> "DepSpec":
        return replace(self, satisfier=satisfier)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "depmod": self.depmod,
            "version": self.version,
            "description": self.description,
            "dep_string": self.dep_string,
            "satisfier": self.satisfier,
        }

    def __str__(self) -> str:
        return self.dep_string


def package_key(pkg: Any) -> str:
    """``name=version`` of a database package or record."""
    return f"{pkg.name}={pkg.version}"


def parse_deps(values: Optional[Iterable[Any]]) -> List[DepSpec]:
    """Parse a list of dependency strings; DepSpec items are kept as they are."""
    if not values:
        return []
    return [v if isinstance(v, DepSpec) else DepSpec.parse(str(v)) for v in values]


def install_reason_name(value: Any) -> str:
    if isinstance(value, str):
        return value
    return _REASONS.get(int(value or 0), INSTALL_REASON_EXPLICIT)


def validation_names(value: Any) -> List[str]:
    """Translate a validation bitmask (or a list of names) into method names."""
    if value is None:
        return ["Unknown"]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    names = [name for bit, name in _VALIDATION_BITS if int(value) & bit]
    return names or ["Unknown"]


@dataclass
class PackageRecord:
    """Everything we know about one package in one database.

    ``key_ids`` and ``companion`` start empty: the former is filled by
    signature decoding, the latter by local/sync reconciliation.
    """

    name: str
    version: str
    repository: Optional[str] = None
    description: str = ""
    architecture: str = ""
    url: str = ""
    licenses: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    provides: List[DepSpec] = field(default_factory=list)
    depends_on: List[DepSpec] = field(default_factory=list)
    optional_deps: List[DepSpec] = field(default_factory=list)
    make_deps: List[DepSpec] = field(default_factory=list)
    check_deps: List[DepSpec] = field(default_factory=list)
    required_by: List[str] = field(default_factory=list)
    optional_for: List[str] = field(default_factory=list)
    required_by_make: List[str] = field(default_factory=list)
    required_by_check: List[str] = field(default_factory=list)
    conflicts_with: List[DepSpec] = field(default_factory=list)
    replaces: List[DepSpec] = field(default_factory=list)
    download_size: int = 0
    installed_size: int = 0
    packager: str = ""
    build_date: int = 0
    install_date: Optional[int] = None
    install_reason: str = INSTALL_REASON_EXPLICIT
    install_script: bool = False
    md5_sum: str = ""
    sha_256_sum: str = ""
    signature: str = ""
    validated_by: List[str] = field(default_factory=lambda: ["Unknown"])
    key_ids: Optional[List[str]] = None
    companion: Optional["PackageRecord"] = None

    @classmethod
    def from_package(cls, pkg: Any, repository: Optional[str] = None) -> "PackageRecord":
        """Project a database package object (pyalpm-shaped) onto a record."""
        if repository is None:
            db = getattr(pkg, "db", None)
            repository = getattr(db, "name", None)
        return cls(
            name=pkg.name,
            version=str(pkg.version),
            repository=repository,
            description=getattr(pkg, "desc", None) or "",
            architecture=getattr(pkg, "arch", None) or "",
            url=getattr(pkg, "url", None) or "",
            licenses=list(getattr(pkg, "licenses", None) or []),
            groups=list(getattr(pkg, "groups", None) or []),
            provides=parse_deps(getattr(pkg, "provides", None)),
            depends_on=parse_deps(getattr(pkg, "depends", None)),
            optional_deps=parse_deps(getattr(pkg, "optdepends", None)),
            make_deps=parse_deps(getattr(pkg, "makedepends", None)),
            check_deps=parse_deps(getattr(pkg, "checkdepends", None)),
            conflicts_with=parse_deps(getattr(pkg, "conflicts", None)),
            replaces=parse_deps(getattr(pkg, "replaces", None)),
            download_size=int(getattr(pkg, "size", 0) or 0),
            installed_size=int(getattr(pkg, "isize", 0) or 0),
            packager=getattr(pkg, "packager", None) or "",
            build_date=int(getattr(pkg, "builddate", 0) or 0),
            install_date=getattr(pkg, "installdate", None) or None,
            install_reason=install_reason_name(getattr(pkg, "reason", 0)),
            install_script=bool(getattr(pkg, "has_scriptlet", False)),
            md5_sum=getattr(pkg, "md5sum", None) or "",
            sha_256_sum=getattr(pkg, "sha256sum", None) or "",
            signature=getattr(pkg, "base64_sig", None) or "",
            validated_by=validation_names(getattr(pkg, "validation", None)),
        )

    @property
    def key(self) -> str:
        return package_key(self)

    @property
    def is_explicit(self) -> bool:
        return self.install_reason == INSTALL_REASON_EXPLICIT

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in RELATION_FIELDS:
                value = [dep.to_dict() for dep in value]
            elif f.name == "companion":
                value = value.to_dict() if value is not None else None
            elif isinstance(value, list):
                value = list(value)
            payload[f.name] = value
        return payload
