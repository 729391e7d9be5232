"""Schema definitions for the mirror engine.

Defines the rule model, load diagnostics and all result dataclasses.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Union


def tap_name(entity_id: int, nic_index: int) -> str:
    """Interface name the hypervisor gives NIC `nic_index` of VM `entity_id`."""
    return f"tap{entity_id}i{nic_index}"


class SelectMode(str, Enum):
    """Which traffic direction of the source port is mirrored."""
    BOTH = "both"
    SRC_ONLY = "src"   # packets entering the switch from the source
    DST_ONLY = "dst"   # packets leaving the switch to the source


class Severity(str, Enum):
    """Severity of a load diagnostic."""
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class PortSource:
    """Physical (host) port used as mirror source."""
    name: str

    @property
    def interface(self) -> str:
        return self.name

    @property
    def is_virtual(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class EntitySource:
    """NIC of a managed VM used as mirror source."""
    entity_id: int
    nic_index: int

    @property
    def interface(self) -> str:
        return tap_name(self.entity_id, self.nic_index)

    @property
    def is_virtual(self) -> bool:
        return True

    def __str__(self) -> str:
        return f"entity{self.entity_id}:{self.nic_index}"


MirrorSource = Union[PortSource, EntitySource]


@dataclass(frozen=True)
class MirrorRule:
    """One declarative mirroring intent."""
    bridge: str
    source: MirrorSource
    dest_entity_id: int
    dest_nic_index: int
    promiscuous: bool = False
    select_mode: SelectMode = SelectMode.BOTH
    line_number: int = field(default=0, compare=False)

    @property
    def source_interface(self) -> str:
        return self.source.interface

    @property
    def dest_interface(self) -> str:
        return tap_name(self.dest_entity_id, self.dest_nic_index)

    @property
    def mirror_name(self) -> str:
        """Stable switch-side name, the only identity used for matching."""
        src_label = self.source_interface.replace("/", "_")
        return (
            f"mirror_{self.bridge}_{src_label}"
            f"_to_vm{self.dest_entity_id}i{self.dest_nic_index}"
        )

    @property
    def source_entity_id(self) -> Optional[int]:
        if isinstance(self.source, EntitySource):
            return self.source.entity_id
        return None


@dataclass(frozen=True)
class RuleSet:
    """Immutable, ordered collection of mirror rules."""
    rules: tuple[MirrorRule, ...] = ()

    def __iter__(self) -> Iterator[MirrorRule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __bool__(self) -> bool:
        return bool(self.rules)

    def for_destination(self, entity_id: int) -> list[MirrorRule]:
        """Rules mirroring into one of the entity's NICs."""
        return [r for r in self.rules if r.dest_entity_id == entity_id]

    def for_source(self, entity_id: int) -> list[MirrorRule]:
        """Rules mirroring traffic of one of the entity's NICs."""
        return [r for r in self.rules if r.source_entity_id == entity_id]

    def bridges(self) -> list[str]:
        """Distinct bridges in first-seen order."""
        return list(dict.fromkeys(r.bridge for r in self.rules))

    def entity_ids(self) -> list[int]:
        """Every entity id referenced as destination or virtual source."""
        ids: set[int] = set()
        for rule in self.rules:
            ids.add(rule.dest_entity_id)
            if rule.source_entity_id is not None:
                ids.add(rule.source_entity_id)
        return sorted(ids)

    def mirror_names(self) -> list[str]:
        return [r.mirror_name for r in self.rules]


# --- Loading ---

@dataclass
class LineDiagnostic:
    """Problem found on one rule-file line."""
    line_number: int
    severity: Severity
    message: str

    def __str__(self) -> str:
        if not self.line_number:
            return self.message
        return f"Line {self.line_number}: {self.message}"


@dataclass
class LoadResult:
    """Rules parsed from a rule file plus per-line diagnostics."""
    rules: RuleSet
    diagnostics: list[LineDiagnostic] = field(default_factory=list)

    @property
    def errors(self) -> list[LineDiagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[LineDiagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]


# --- Validation Results ---

@dataclass
class ValidationResult:
    """Result of topology validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# --- Roles ---

@dataclass(frozen=True)
class EntityRole:
    """How an entity is referenced by the rule set."""
    is_source: bool = False
    is_destination: bool = False

    @property
    def managed(self) -> bool:
        return self.is_source or self.is_destination


# --- Apply Results ---

@dataclass
class RuleFailure:
    """A rule that could not be applied."""
    mirror_name: str
    error: str


@dataclass
class ApplySummary:
    """Outcome of a best-effort apply over many rules."""
    total: int = 0
    created: list[str] = field(default_factory=list)
    failures: list[RuleFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.created)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def success(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "created": self.created,
            "failures": [
                {"mirror_name": f.mirror_name, "error": f.error}
                for f in self.failures
            ],
        }


@dataclass
class RemovalSummary:
    """Outcome of removing the mirrors of one entity."""
    removed: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failures: list[RuleFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def success(self) -> bool:
        return not self.failures

    def merge(self, other: "RemovalSummary") -> "RemovalSummary":
        return RemovalSummary(
            removed=self.removed + other.removed,
            missing=self.missing + other.missing,
            failures=self.failures + other.failures,
        )
