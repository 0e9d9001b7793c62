"""
cedulascraper.cedulasmodels.

Request, record and result types exchanged between the lookup runtime and
its callers, plus the failure taxonomy a session can report.

- :class:`Query`: the caller's search terms.
- :class:`Candidate`: one normalized row of the portal's result table.
- :class:`ResultSet`: the records of one query plus derived aggregates.
- :class:`CedulaScraperError` and subclasses: tagged, caller-retryable
  session failures.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

import pandas as pd

# Fixed classification for records coming from the public license table.
CANDIDATE_TIPO = "C1"
# The portal never reports a status; callers receive this sentinel.
CANDIDATE_STATUS = 0

# Table position -> Candidate field. Positions not listed are ignored.
COLUMN_MAP: dict[int, str] = {
    0: "cedula",
    1: "nombre",
    2: "paterno",
    3: "materno",
    5: "universidad",
    6: "carrera",
    7: "entidad",
    8: "anno",
}

_DIGITS = re.compile(r"\d+")
_YEAR = re.compile(r"(?<!\d)\d{4}(?!\d)")


# ----------------------------
# Failures
# ----------------------------


class QueryError(ValueError):
    """Raised by :meth:`Query.validate` when the search terms are unusable."""


class CedulaScraperError(RuntimeError):
    """
    Base class for tagged session failures.

    ``kind`` is the stable identifier reported to callers. Every failure is
    retryable by the caller; the runtime itself never retries a session.
    """

    kind = "CedulaScraperError"
    retryable = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": False,
            "error": str(self),
            "kind": self.kind,
            "retryable": self.retryable,
        }


class NavigationFailed(CedulaScraperError):
    """The portal page could not be loaded at all."""

    kind = "NavigationFailed"


class ReadinessTimeout(CedulaScraperError):
    """No known form field became visible in any frame."""

    kind = "ReadinessTimeout"


class FieldNotResolved(CedulaScraperError):
    """A non-empty field could not be located (strict fill only)."""

    kind = "FieldNotResolved"

    def __init__(self, field_name: str) -> None:
        super().__init__(f"Could not locate the {field_name!r} control")
        self.field_name = field_name


class SubmitControlNotFound(CedulaScraperError):
    """The search button could not be located or activated."""

    kind = "SubmitControlNotFound"


class RowWaitTimeout(CedulaScraperError):
    """Neither result rows nor the no-results message appeared in time."""

    kind = "RowWaitTimeout"


class PageError(CedulaScraperError):
    """The browser failed while driving the form or reading results."""

    kind = "PageError"


class BrowserUnavailable(CedulaScraperError):
    """The shared browser could not be launched."""

    kind = "BrowserUnavailable"


class BrowserBusy(CedulaScraperError):
    """The lookup did not finish within its wait budget on the shared browser."""

    kind = "BrowserBusy"


# ----------------------------
# Query
# ----------------------------


@dataclass
class Query:
    """
    Search terms for one lookup.

    All fields are optional; values are trimmed on construction so that a
    blank field is always the empty string. At least one of ``nombre`` or
    ``curp`` is required, which :meth:`validate` checks for callers.
    """

    nombre: str = ""
    paterno: str = ""
    materno: str = ""
    curp: str = ""

    def __post_init__(self) -> None:
        for name in ("nombre", "paterno", "materno", "curp"):
            setattr(self, name, (getattr(self, name) or "").strip())

    def validate(self) -> Query:
        if not (self.nombre or self.curp):
            raise QueryError("Proporcione al menos {nombre,paterno,materno} o {curp}.")
        return self

    def filled_fields(self) -> list[tuple[str, str]]:
        """Return ``(field, value)`` pairs for non-empty fields in form order."""
        pairs = [
            ("nombre", self.nombre),
            ("paterno", self.paterno),
            ("materno", self.materno),
            ("curp", self.curp),
        ]
        return [(k, v) for k, v in pairs if v]

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


# ----------------------------
# Records
# ----------------------------


@dataclass
class Candidate:
    cedula: str = ""
    nombre: str = ""
    paterno: str = ""
    materno: str = ""
    carrera: str = ""
    universidad: str = ""
    entidad: str = ""
    anno: str = ""
    status: int = CANDIDATE_STATUS
    tipo: str = CANDIDATE_TIPO

    @classmethod
    def from_row(cls, row: Sequence[str]) -> Candidate:
        """
        Map a positional table row onto a record.

        Short rows leave the missing fields empty; extra cells and unmapped
        positions (the sex column at index 4) are ignored.
        """
        values = {
            name: (row[i] if i < len(row) else "") or ""
            for i, name in COLUMN_MAP.items()
        }
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse_year(value: str) -> int | None:
    """
    Return the year in ``value`` as an int, or None.

    A standalone four-digit group wins, so "05/2010" and "2010-05" both
    give 2010; otherwise the first run of digits is used.
    """
    m = _YEAR.search(value or "") or _DIGITS.search(value or "")
    return int(m.group(0)) if m else None


def _unique(values: list[str]) -> list[str]:
    # dict keeps first-seen order
    return list(dict.fromkeys(v for v in values if v))


@dataclass
class ResultSet:
    """
    Records of one query with derived aggregates.

    Build it with :meth:`from_records`; the aggregates are always recomputed
    from ``records`` so ``total_count == len(records)`` holds.
    """

    records: list[Candidate] = field(default_factory=list)
    total_count: int = 0
    first_record: Candidate | None = None
    cedulas: list[str] = field(default_factory=list)
    universities: list[str] = field(default_factory=list)
    jurisdictions: list[str] = field(default_factory=list)
    numeric_years: list[int] = field(default_factory=list)
    latest_year: int | None = None

    @classmethod
    def from_records(cls, records: list[Candidate]) -> ResultSet:
        years = [y for y in (parse_year(r.anno) for r in records) if y is not None]
        return cls(
            records=list(records),
            total_count=len(records),
            first_record=records[0] if records else None,
            cedulas=[r.cedula for r in records],
            universities=_unique([r.universidad for r in records]),
            jurisdictions=_unique([r.entidad for r in records]),
            numeric_years=years,
            latest_year=max(years) if years else None,
        )

    @classmethod
    def empty(cls) -> ResultSet:
        return cls.from_records([])

    def summary(self) -> dict[str, Any]:
        """Aggregates in the portal's wire vocabulary."""
        return {
            "total": self.total_count,
            "primerRegistro": self.first_record.to_dict() if self.first_record else None,
            "cedulas": list(self.cedulas),
            "universidades": list(self.universities),
            "entidades": list(self.jurisdictions),
            "aniosNum": list(self.numeric_years),
            "ultimoAnno": self.latest_year,
        }

    def to_dataframe(self) -> pd.DataFrame:
        columns = list(Candidate.__dataclass_fields__)
        return pd.DataFrame([r.to_dict() for r in self.records], columns=columns)
