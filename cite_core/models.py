"""Data models for the citation library.

An :class:`Entry` wraps one raw record produced by the parsing worker. The two
adapters are the only code that knows about the raw BibLaTeX and CSL-JSON
shapes; everything downstream goes through the accessors defined here.
"""

import datetime
import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import PurePath
from types import MappingProxyType
from typing import List, Dict, Any, Optional, Iterable, Mapping, NamedTuple

from cite_core.constants import ZOTERO_STORAGE_RE
from cite_core.errors import MissingCitekeyError, UnknownCitekeyError

logger = logging.getLogger(__name__)


class DatabaseType(str, Enum):
    """Supported bibliography export formats."""
    BIBLATEX = "biblatex"
    CSL_JSON = "csl-json"


class Author(NamedTuple):
    """One author name."""
    given: str = ""
    family: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.given, self.family) if part)


class Entry(ABC):
    """Canonical, format-independent bibliographic record."""

    format: DatabaseType
    id_key: str

    def __init__(self, data: Mapping[str, Any]):
        if not isinstance(data, Mapping):
            raise MissingCitekeyError(f"Record is not a mapping: {type(data).__name__}")
        citekey = data.get(self.id_key)
        if citekey is None or str(citekey).strip() == "":
            raise MissingCitekeyError(f"Record has no '{self.id_key}' field")
        self._citekey = str(citekey)
        self._data = MappingProxyType(dict(data))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._citekey!r})"

    @property
    def id(self) -> str:
        return self._citekey

    @property
    def citekey(self) -> str:
        return self._citekey

    @property
    def data(self) -> Mapping[str, Any]:
        """The raw record this entry was built from (read-only)."""
        return self._data

    @property
    @abstractmethod
    def type(self) -> str: ...

    @property
    @abstractmethod
    def title(self) -> str: ...

    @property
    @abstractmethod
    def title_short(self) -> str: ...

    @property
    @abstractmethod
    def authors(self) -> List[Author]: ...

    @property
    @abstractmethod
    def issued_date(self) -> Optional[datetime.date]: ...

    @property
    @abstractmethod
    def container_title(self) -> str: ...

    @property
    @abstractmethod
    def doi(self) -> str: ...

    @property
    @abstractmethod
    def url(self) -> str: ...

    @property
    @abstractmethod
    def abstract(self) -> str: ...

    @property
    @abstractmethod
    def page(self) -> str: ...

    @property
    @abstractmethod
    def publisher(self) -> str: ...

    @property
    @abstractmethod
    def publisher_place(self) -> str: ...

    @property
    @abstractmethod
    def event_place(self) -> str: ...

    @property
    @abstractmethod
    def files(self) -> List[str]: ...

    @property
    def year(self) -> Optional[int]:
        issued = self.issued_date
        return issued.year if issued else None

    @property
    def author_string(self) -> str:
        return ", ".join(a.full_name for a in self.authors if a.full_name)

    @property
    def zotero_select_uri(self) -> str:
        return f"zotero://select/items/@{self.citekey}"

    @property
    def zotero_pdf_uri(self) -> Optional[str]:
        """URI of the primary PDF attachment, if there is one."""
        pdf = next((f for f in self.files if f.lower().endswith(".pdf")), None)
        if pdf is None:
            return None
        match = ZOTERO_STORAGE_RE.search(pdf)
        if match:
            return f"zotero://open-pdf/library/items/{match.group(1)}"
        path = PurePath(pdf)
        if path.is_absolute():
            return path.as_uri()
        return pdf

    def to_dict(self) -> Dict[str, Any]:
        """Plain copy of the raw record, safe to hand to templates."""
        return dict(self._data)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(_text(v) for v in value)
    return str(value).strip()


def _parse_iso_date(value: str) -> Optional[datetime.date]:
    """Parse 'YYYY', 'YYYY-MM' or 'YYYY-MM-DD'; ranges use their start."""
    value = value.split("/")[0].strip()
    parts = value.split("-")
    try:
        numbers = [int(p) for p in parts[:3] if p]
    except ValueError:
        return None
    return _date_from_parts(numbers)


def _date_from_parts(numbers: List[int]) -> Optional[datetime.date]:
    """
    Build a date from [year, month, day] parts, dropping the day and then the
    month when they are out of range (CSL seasons use months 21-24).
    """
    if not numbers:
        return None
    numbers = (numbers + [1, 1])[:3]
    for parts in (numbers, numbers[:2] + [1], numbers[:1] + [1, 1]):
        try:
            return datetime.date(*parts)
        except ValueError:
            continue
    return None


class EntryBibLaTeXAdapter(Entry):
    """Entry backed by a BibLaTeX record: {key, type, fields, creators}."""

    format = DatabaseType.BIBLATEX
    id_key = "key"

    @property
    def _fields(self) -> Mapping[str, Any]:
        fields = self._data.get("fields") or {}
        return fields if isinstance(fields, Mapping) else {}

    def _field(self, *names: str) -> str:
        for name in names:
            value = _text(self._fields.get(name))
            if value:
                return value
        return ""

    @property
    def type(self) -> str:
        return _text(self._data.get("type"))

    @property
    def title(self) -> str:
        return self._field("title")

    @property
    def title_short(self) -> str:
        return self._field("shorttitle")

    @property
    def authors(self) -> List[Author]:
        creators = self._data.get("creators") or {}
        people = creators.get("author") if isinstance(creators, Mapping) else None
        return [
            Author(given=_text(p.get("firstName")), family=_text(p.get("lastName")))
            for p in people or []
            if isinstance(p, Mapping)
        ]

    @property
    def issued_date(self) -> Optional[datetime.date]:
        date = self._field("date")
        if date:
            parsed = _parse_iso_date(date)
            if parsed:
                return parsed
        year = self._field("year")
        return _parse_iso_date(year) if year else None

    @property
    def container_title(self) -> str:
        return self._field("journaltitle", "journal", "booktitle")

    @property
    def doi(self) -> str:
        return self._field("doi")

    @property
    def url(self) -> str:
        return self._field("url")

    @property
    def abstract(self) -> str:
        return self._field("abstract")

    @property
    def page(self) -> str:
        return self._field("pages")

    @property
    def publisher(self) -> str:
        return self._field("publisher")

    @property
    def publisher_place(self) -> str:
        return self._field("location")

    @property
    def event_place(self) -> str:
        return self._field("venue")

    @property
    def files(self) -> List[str]:
        raw = self._fields.get("file")
        if not raw:
            return []
        if isinstance(raw, list):
            return [_text(f) for f in raw if _text(f)]
        return [f.strip() for f in str(raw).split(";") if f.strip()]


class EntryCSLAdapter(Entry):
    """Entry backed by a CSL-JSON item."""

    format = DatabaseType.CSL_JSON
    id_key = "id"

    def _get(self, name: str) -> str:
        return _text(self._data.get(name))

    @property
    def type(self) -> str:
        return self._get("type")

    @property
    def title(self) -> str:
        return self._get("title")

    @property
    def title_short(self) -> str:
        return self._get("title-short")

    @property
    def authors(self) -> List[Author]:
        authors = []
        for name in self._data.get("author") or []:
            if not isinstance(name, Mapping):
                continue
            family = _text(name.get("family")) or _text(name.get("literal"))
            authors.append(Author(given=_text(name.get("given")), family=family))
        return authors

    @property
    def issued_date(self) -> Optional[datetime.date]:
        issued = self._data.get("issued")
        if not isinstance(issued, Mapping):
            return None
        date_parts = issued.get("date-parts")
        if not date_parts or not isinstance(date_parts, list):
            raw = issued.get("raw")
            return _parse_iso_date(str(raw)) if raw else None
        first = date_parts[0]
        if not isinstance(first, list) or not first:
            return None
        try:
            numbers = [int(p) for p in first[:3]]
        except (TypeError, ValueError):
            return None
        return _date_from_parts(numbers)

    @property
    def container_title(self) -> str:
        return self._get("container-title")

    @property
    def doi(self) -> str:
        return self._get("DOI")

    @property
    def url(self) -> str:
        return self._get("URL")

    @property
    def abstract(self) -> str:
        return self._get("abstract")

    @property
    def page(self) -> str:
        return self._get("page")

    @property
    def publisher(self) -> str:
        return self._get("publisher")

    @property
    def publisher_place(self) -> str:
        return self._get("publisher-place")

    @property
    def event_place(self) -> str:
        return self._get("event-place")

    @property
    def files(self) -> List[str]:
        return []


ADAPTERS = {
    DatabaseType.BIBLATEX: EntryBibLaTeXAdapter,
    DatabaseType.CSL_JSON: EntryCSLAdapter,
}


def adapt_entry(record: Mapping[str, Any], database_type: DatabaseType) -> Entry:
    """
    Build an Entry from one raw record.

    Raises:
        MissingCitekeyError: if the record has no citekey for its format
        ValueError: if the database type is not recognized
    """
    adapter = ADAPTERS[DatabaseType(database_type)]
    return adapter(record)


class Library:
    """Citekey to Entry mapping built by one successful load cycle."""

    def __init__(self, entries: Dict[str, Entry]):
        self._entries = MappingProxyType(dict(entries))

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]], database_type: DatabaseType) -> 'Library':
        """Adapt raw records, skipping those without a citekey."""
        database_type = DatabaseType(database_type)
        entries: Dict[str, Entry] = {}
        skipped = 0
        for record in records:
            try:
                entry = adapt_entry(record, database_type)
            except MissingCitekeyError:
                skipped += 1
                continue
            entries[entry.citekey] = entry
        if skipped:
            logger.debug(f"Skipped {skipped} {database_type.value} records without a citekey")
        return cls(entries)

    @property
    def entries(self) -> Mapping[str, Entry]:
        return self._entries

    @property
    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, citekey: object) -> bool:
        return citekey in self._entries

    def get(self, citekey: str) -> Entry:
        try:
            return self._entries[citekey]
        except KeyError:
            raise UnknownCitekeyError(citekey) from None

    def projection(self, citekey: str) -> Dict[str, Any]:
        """
        Build the variables available to every template for a citekey.

        Raises:
            UnknownCitekeyError: if the citekey is not in the library
        """
        entry = self.get(citekey)
        return {
            "citekey": entry.citekey,
            "abstract": entry.abstract,
            "authorString": entry.author_string,
            "containerTitle": entry.container_title,
            "DOI": entry.doi,
            "eventPlace": entry.event_place,
            "page": entry.page,
            "publisher": entry.publisher,
            "publisherPlace": entry.publisher_place,
            "title": entry.title,
            "titleShort": entry.title_short,
            "URL": entry.url,
            "year": entry.year,
            "zoteroSelectURI": entry.zotero_select_uri,
            "zoteroPdfURI": entry.zotero_pdf_uri,
            "entry": entry.to_dict(),
        }

    # Name used by the note commands
    get_template_variables_for_citekey = projection
