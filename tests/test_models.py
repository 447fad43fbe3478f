#!/usr/bin/env python3
"""
Tests for the entry adapters and the library.
"""

import datetime

import pytest

from cite_core.errors import MissingCitekeyError, UnknownCitekeyError
from cite_core.models import (
    Author, DatabaseType, EntryBibLaTeXAdapter, EntryCSLAdapter, Library, adapt_entry
)


@pytest.fixture
def csl_record():
    """A complete CSL-JSON item."""
    return {
        "id": "smith2020",
        "type": "article-journal",
        "title": "A Study",
        "title-short": "Study",
        "author": [{"given": "Jane", "family": "Smith"}, {"given": "John", "family": "Doe"}],
        "issued": {"date-parts": [[2020, 5, 17]]},
        "container-title": "Journal of Testing",
        "DOI": "10.1000/xyz",
        "URL": "https://example.org/study",
        "page": "1-10",
        "publisher": "Test Press",
        "publisher-place": "Berlin",
        "event-place": "Vienna",
        "abstract": "We test things.",
    }


@pytest.fixture
def biblatex_record():
    """A BibLaTeX record in the shape produced by the parsing worker."""
    return {
        "key": "doe2019",
        "type": "article",
        "fields": {
            "title": "Deep Testing",
            "shorttitle": "Testing",
            "journaltitle": "Testing Letters",
            "date": "2019-03",
            "doi": "10.1000/abc",
            "url": "https://example.org/deep",
            "pages": "5--9",
            "publisher": "Letters Inc.",
            "location": "Paris",
            "venue": "Rome",
            "file": "/home/me/Zotero/storage/ABCD1234/doe.pdf;/home/me/notes.txt",
        },
        "creators": {
            "author": [{"firstName": "John", "lastName": "Doe"}],
            "editor": [{"firstName": "Eve", "lastName": "Editor"}],
        },
    }


def test_csl_adapter(csl_record):
    """Test that every CSL field reaches its accessor."""
    entry = EntryCSLAdapter(csl_record)

    assert entry.citekey == "smith2020"
    assert entry.id == "smith2020"
    assert entry.format is DatabaseType.CSL_JSON
    assert entry.title == "A Study"
    assert entry.title_short == "Study"
    assert entry.authors == [Author("Jane", "Smith"), Author("John", "Doe")]
    assert entry.author_string == "Jane Smith, John Doe"
    assert entry.issued_date == datetime.date(2020, 5, 17)
    assert entry.year == 2020
    assert entry.container_title == "Journal of Testing"
    assert entry.doi == "10.1000/xyz"
    assert entry.url == "https://example.org/study"
    assert entry.page == "1-10"
    assert entry.publisher_place == "Berlin"
    assert entry.event_place == "Vienna"
    assert entry.files == []
    assert entry.zotero_select_uri == "zotero://select/items/@smith2020"
    assert entry.zotero_pdf_uri is None


def test_biblatex_adapter(biblatex_record):
    """Test that every BibLaTeX field reaches its accessor."""
    entry = EntryBibLaTeXAdapter(biblatex_record)

    assert entry.citekey == "doe2019"
    assert entry.format is DatabaseType.BIBLATEX
    assert entry.type == "article"
    assert entry.title == "Deep Testing"
    assert entry.title_short == "Testing"
    assert entry.authors == [Author("John", "Doe")]
    assert entry.year == 2019
    assert entry.issued_date == datetime.date(2019, 3, 1)
    assert entry.container_title == "Testing Letters"
    assert entry.page == "5--9"
    assert entry.publisher_place == "Paris"
    assert entry.event_place == "Rome"
    assert entry.files == ["/home/me/Zotero/storage/ABCD1234/doe.pdf", "/home/me/notes.txt"]
    assert entry.zotero_pdf_uri == "zotero://open-pdf/library/items/ABCD1234"


def test_biblatex_year_and_container_fallbacks():
    """Test the year field and journal/booktitle fallbacks."""
    entry = EntryBibLaTeXAdapter({"key": "k", "fields": {"year": "1999", "booktitle": "Proceedings"}})
    assert entry.year == 1999
    assert entry.container_title == "Proceedings"

    entry = EntryBibLaTeXAdapter({"key": "k", "fields": {"journal": "Old Journal", "journaltitle": ""}})
    assert entry.container_title == "Old Journal"


def test_pdf_outside_zotero_storage_uses_file_uri():
    """Test the PDF URI for an attachment that is not in Zotero storage."""
    entry = EntryBibLaTeXAdapter({"key": "k", "fields": {"file": "/papers/k.pdf"}})
    assert entry.zotero_pdf_uri == "file:///papers/k.pdf"


@pytest.mark.parametrize("record, database_type", [
    ({"id": "bare"}, DatabaseType.CSL_JSON),
    ({"key": "bare"}, DatabaseType.BIBLATEX),
    ({"key": "bare", "fields": None, "creators": None}, DatabaseType.BIBLATEX),
    ({"id": "bare", "author": None, "issued": {"date-parts": [[]]}}, DatabaseType.CSL_JSON),
])
def test_adapter_totality(record, database_type):
    """Test that records with only a citekey adapt to empty values."""
    entry = adapt_entry(record, database_type)

    assert entry.citekey == "bare"
    assert entry.title == ""
    assert entry.title_short == ""
    assert entry.authors == []
    assert entry.author_string == ""
    assert entry.year is None
    assert entry.container_title == ""
    assert entry.doi == ""
    assert entry.files == []
    assert entry.zotero_pdf_uri is None


@pytest.mark.parametrize("record, database_type", [
    ({"fields": {"title": "No key"}}, DatabaseType.BIBLATEX),
    ({"id": "wrong-key-for-format"}, DatabaseType.BIBLATEX),
    ({"key": "wrong-key-for-format"}, DatabaseType.CSL_JSON),
    ({"key": ""}, DatabaseType.BIBLATEX),
    ({"id": None}, DatabaseType.CSL_JSON),
])
def test_adapter_requires_citekey(record, database_type):
    """Test that a record without its citekey field is rejected."""
    with pytest.raises(MissingCitekeyError):
        adapt_entry(record, database_type)


def test_adapt_entry_unknown_format():
    """Test that an unknown database type is rejected."""
    with pytest.raises(ValueError):
        adapt_entry({"id": "x"}, "ris")


def test_library_from_records_skips_records_without_citekey(csl_record):
    """Test that records without a citekey are dropped, not fatal."""
    records = [csl_record, {"title": "orphan"}, {"id": "other2021", "title": "Other"}]
    library = Library.from_records(records, DatabaseType.CSL_JSON)

    assert library.size == 2
    assert len(library) == 2
    assert "smith2020" in library
    assert "other2021" in library


def test_library_projection(csl_record):
    """Test the template variables built for a citekey."""
    library = Library.from_records([csl_record], "csl-json")
    variables = library.projection("smith2020")

    assert variables["citekey"] == "smith2020"
    assert variables["title"] == "A Study"
    assert variables["authorString"] == "Jane Smith, John Doe"
    assert variables["year"] == 2020
    assert variables["containerTitle"] == "Journal of Testing"
    assert variables["DOI"] == "10.1000/xyz"
    assert variables["zoteroSelectURI"] == "zotero://select/items/@smith2020"
    assert variables["zoteroPdfURI"] is None
    assert variables["entry"]["id"] == "smith2020"
    assert library.get_template_variables_for_citekey("smith2020") == variables


def test_library_unknown_citekey(csl_record):
    """Test that projecting an unknown citekey fails."""
    library = Library.from_records([csl_record], DatabaseType.CSL_JSON)
    with pytest.raises(UnknownCitekeyError):
        library.projection("missing")
    with pytest.raises(KeyError):
        library.get("missing")


def test_entries_are_read_only(csl_record):
    """Test that entries and the library mapping cannot be modified."""
    library = Library.from_records([csl_record], DatabaseType.CSL_JSON)
    entry = library.get("smith2020")

    with pytest.raises(TypeError):
        library.entries["new"] = entry
    with pytest.raises(TypeError):
        entry.data["title"] = "Changed"
    with pytest.raises(AttributeError):
        entry.title = "Changed"

    # The template copy is independent of the entry
    entry.to_dict()["title"] = "Changed"
    assert entry.title == "A Study"


@pytest.mark.parametrize("date_parts, expected", [
    ([[2020, 21]], datetime.date(2020, 1, 1)),
    ([[2020, 2, 30]], datetime.date(2020, 2, 1)),
    ([[2020, 13, 40]], datetime.date(2020, 1, 1)),
])
def test_csl_out_of_range_date_parts_keep_year(date_parts, expected):
    """Test that seasons and impossible days still yield the year."""
    entry = adapt_entry({"id": "x", "issued": {"date-parts": date_parts}}, DatabaseType.CSL_JSON)
    assert entry.issued_date == expected
    assert entry.year == 2020


def test_biblatex_impossible_day_keeps_year():
    """Test that an invalid BibLaTeX date still yields the year."""
    entry = EntryBibLaTeXAdapter({"key": "k", "fields": {"date": "2019-02-30"}})
    assert entry.issued_date == datetime.date(2019, 2, 1)
    assert entry.year == 2019
