"""Column Reconciler: matches discovered headers to import schema keys.

Matching rules, strongest first:
1. header equals the schema key (case-insensitive)
2. header equals the schema label (case-insensitive)
3. header equals key or label once whitespace, underscores and hyphens are
   removed from both sides

Each rule is applied to every still-unmatched key before the next, weaker
rule is tried, and a header is claimed by at most one key. Missing required
columns are a fatal validation error raised before anything is written.
"""

import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional

from catalog_backend.core.errors import MissingColumnsError
from catalog_backend.core.import_schema import ColumnSpec, ImportSchema
from catalog_backend.core.tabular_parser import SourceRow

logger = logging.getLogger(__name__)

_SEPARATORS_RE = re.compile(r"[\s_\-]+")


def _folded(value: str) -> str:
    return value.strip().lower()


def _compact(value: str) -> str:
    return _SEPARATORS_RE.sub("", value.lower())


def _matches_key(header: str, col: ColumnSpec) -> bool:
    return _folded(header) == col.key.lower()


def _matches_label(header: str, col: ColumnSpec) -> bool:
    return _folded(header) == col.label.strip().lower()


def _matches_compact(header: str, col: ColumnSpec) -> bool:
    compact = _compact(header)
    return bool(compact) and compact in (_compact(col.key), _compact(col.label))


MATCH_RULES: tuple[Callable[[str, ColumnSpec], bool], ...] = (
    _matches_key,
    _matches_label,
    _matches_compact,
)


@dataclass(frozen=True)
class RowRecord:
    """One data row keyed by schema key. Values are raw (untrimmed) strings."""
    row_number: int
    values: Mapping[str, str]

    def get(self, key: str) -> str:
        return self.values.get(key, "") or ""


@dataclass(frozen=True)
class ColumnMapping:
    """Schema key -> discovered source header, computed once per run."""
    matches: Mapping[str, str]
    unmatched: frozenset[str]
    missing_required: tuple[str, ...]  # labels, in schema order
    unclaimed_headers: tuple[str, ...]

    @property
    def is_complete(self) -> bool:
        return not self.missing_required

    def header_for(self, key: str) -> Optional[str]:
        return self.matches.get(key)

    def require_complete(self) -> None:
        if self.missing_required:
            raise MissingColumnsError(list(self.missing_required))

    def project(self, row: SourceRow) -> RowRecord:
        """Re-key a source row by schema key. Unmatched keys read as ''."""
        values = {key: row.get(header) for key, header in self.matches.items()}
        return RowRecord(row_number=row.row_number, values=MappingProxyType(values))

    def to_dict(self) -> dict:
        return {
            "matches": dict(self.matches),
            "unmatched": sorted(self.unmatched),
            "missing_required": list(self.missing_required),
            "unclaimed_headers": list(self.unclaimed_headers),
        }


def reconcile_columns(headers: Iterable[str], schema: ImportSchema) -> ColumnMapping:
    """Build a ColumnMapping for the given headers. Never raises."""
    headers = [h for h in headers if h and h.strip()]
    claimed: set[str] = set()
    matches: dict[str, str] = {}

    for rule in MATCH_RULES:
        for col in schema.columns:
            if col.key in matches:
                continue
            for header in headers:
                if header in claimed:
                    continue
                if rule(header, col):
                    matches[col.key] = header
                    claimed.add(header)
                    break

    # Preserve schema order in the mapping.
    ordered = {c.key: matches[c.key] for c in schema.columns if c.key in matches}
    unmatched = frozenset(c.key for c in schema.columns if c.key not in matches)
    missing_required = tuple(c.label for c in schema.required_columns if c.key not in matches)
    unclaimed = tuple(h for h in headers if h not in claimed)

    if unclaimed:
        logger.info(f"Ignoring unrecognized columns: {', '.join(unclaimed)}")

    return ColumnMapping(
        matches=MappingProxyType(ordered),
        unmatched=unmatched,
        missing_required=missing_required,
        unclaimed_headers=unclaimed,
    )


def validate_columns(headers: Iterable[str], schema: ImportSchema) -> ColumnMapping:
    """Reconcile and enforce the required-column gate.

    Raises MissingColumnsError listing every missing required label.
    """
    mapping = reconcile_columns(headers, schema)
    mapping.require_complete()
    return mapping
