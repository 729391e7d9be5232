"""Parser for mirror rule files.

Converts the line-oriented rule format into an immutable RuleSet:

    # BRIDGE  SOURCE         DEST_ENTITY_ID  DEST_NIC_INDEX  [OPTIONS...]
    vmbr0     eno12419       100             1
    vmbr0     entity200:0    101             1               select=src

Bad lines are skipped and reported; they never abort the load.
"""
import logging
import re
from pathlib import Path
from typing import Union

from ..errors import ParseError, RuleFileNotFound
from .schema import (
    EntitySource,
    LineDiagnostic,
    LoadResult,
    MirrorRule,
    MirrorSource,
    PortSource,
    RuleSet,
    SelectMode,
    Severity,
)

logger = logging.getLogger(__name__)

# entity<ID>:<NIC>; "vm" is the prefix older rule files use
VIRTUAL_SOURCE_PREFIXES = ("entity", "vm")
VIRTUAL_SOURCE_RE = re.compile(r"^(?:entity|vm)([0-9]+):([0-9]+)$")

DIGITS_RE = re.compile(r"^[0-9]+$")
PROMISC_VALUES = {"yes": True, "no": False}


class RuleParser:
    """Parse mirror rules from rule-file text."""

    def parse(self, text: str) -> LoadResult:
        """
        Parse rule-file text.

        Args:
            text: Full content of a rule file

        Returns:
            LoadResult with the valid rules and a diagnostic per problem
        """
        rules: list[MirrorRule] = []
        diagnostics: list[LineDiagnostic] = []
        seen_names: dict[str, int] = {}

        for line_number, raw in enumerate(text.splitlines(), start=1):
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue

            try:
                rule = self._parse_line(line, line_number, diagnostics)
            except ParseError as e:
                diagnostics.append(
                    LineDiagnostic(line_number, Severity.ERROR, str(e))
                )
                continue

            name = rule.mirror_name
            if name in seen_names:
                diagnostics.append(LineDiagnostic(
                    line_number,
                    Severity.ERROR,
                    f"Duplicate mirror '{name}' (first defined on line "
                    f"{seen_names[name]}), ignoring",
                ))
                continue

            seen_names[name] = line_number
            rules.append(rule)

        if not rules:
            diagnostics.append(
                LineDiagnostic(0, Severity.WARNING, "No mirror rules found")
            )

        for diag in diagnostics:
            log = logger.error if diag.severity == Severity.ERROR else logger.warning
            log(str(diag))

        return LoadResult(rules=RuleSet(tuple(rules)), diagnostics=diagnostics)

    def _parse_line(
        self,
        line: str,
        line_number: int,
        diagnostics: list[LineDiagnostic],
    ) -> MirrorRule:
        """Parse one non-comment line. Raises ParseError on structural errors."""
        fields = line.split()
        if len(fields) < 4:
            raise ParseError("Missing required fields", line_number)

        bridge, source_spec, dest_id, dest_nic = fields[:4]
        options = fields[4:]

        dest_entity_id = self._parse_index(dest_id, "DEST_ENTITY_ID", line_number)
        dest_nic_index = self._parse_index(dest_nic, "DEST_NIC_INDEX", line_number)
        source = self._parse_source(source_spec, line_number)

        promiscuous = not source.is_virtual
        select_mode = SelectMode.BOTH

        for opt in options:
            key, sep, value = opt.partition("=")
            if sep and key == "promisc" and value in PROMISC_VALUES:
                promiscuous = PROMISC_VALUES[value]
            elif sep and key == "select" and value in {m.value for m in SelectMode}:
                select_mode = SelectMode(value)
            else:
                diagnostics.append(LineDiagnostic(
                    line_number,
                    Severity.WARNING,
                    f"Unknown option '{opt}', ignoring",
                ))

        return MirrorRule(
            bridge=bridge,
            source=source,
            dest_entity_id=dest_entity_id,
            dest_nic_index=dest_nic_index,
            promiscuous=promiscuous,
            select_mode=select_mode,
            line_number=line_number,
        )

    def _parse_index(self, value: str, field_name: str, line_number: int) -> int:
        if not DIGITS_RE.match(value):
            raise ParseError(f"{field_name} '{value}' is not numeric", line_number)
        return int(value)

    def _parse_source(self, spec: str, line_number: int) -> MirrorSource:
        if ":" in spec and spec.startswith(VIRTUAL_SOURCE_PREFIXES):
            match = VIRTUAL_SOURCE_RE.match(spec)
            if not match:
                raise ParseError(
                    f"Invalid VM source format '{spec}' "
                    f"(expected entity<ID>:<INDEX>)",
                    line_number,
                )
            return EntitySource(int(match.group(1)), int(match.group(2)))
        return PortSource(spec)


def load_rules(text: str) -> LoadResult:
    """Parse rule-file text (convenience wrapper)."""
    return RuleParser().parse(text)


def load_rules_file(path: Union[str, Path]) -> LoadResult:
    """Read and parse a rule file.

    Raises:
        RuleFileNotFound: If the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise RuleFileNotFound(f"Config file not found: {path}")

    logger.debug(f"Loading mirror rules from {path}")
    return RuleParser().parse(path.read_text(encoding="utf-8"))
