"""
Tests: revision letter allocation and in-place file replacement.
"""

import pytest

from fcpm.core.exceptions import ConflictError, NotFoundError, ValidationError
from fcpm.models import db as _db
from fcpm.models.drawing import Drawing
from fcpm.services import revision_store as rs


def _make_drawing(scope_item) -> Drawing:
    drawing = Drawing(scope_item_id=scope_item.id, status="not_uploaded")
    _db.session.add(drawing)
    _db.session.commit()
    return drawing


# ── Letters ──────────────────────────────────────────────────────────────────


@pytest.mark.parametrize("index,letter", [
    (0, "A"), (1, "B"), (25, "Z"), (26, "AA"), (27, "AB"), (51, "AZ"), (52, "BA"), (701, "ZZ"), (702, "AAA"),
])
def test_revision_letter(index, letter):
    assert rs.revision_letter(index) == letter
    assert rs.revision_index(letter) == index


@pytest.mark.parametrize("current,expected", [
    (None, "A"), ("A", "B"), ("Y", "Z"), ("Z", "AA"), ("AZ", "BA"), ("ZZ", "AAA"),
])
def test_next_revision_letter(current, expected):
    assert rs.next_revision_letter(current) == expected


def test_invalid_letter():
    with pytest.raises(ValueError):
        rs.revision_index("a1")


# ── Store ────────────────────────────────────────────────────────────────────


def test_create_revision_allocates_contiguous_letters(scope_item):
    drawing = _make_drawing(scope_item)
    letters = [rs.create_revision(drawing.id, f"https://files/{i}.pdf").revision for i in range(3)]
    _db.session.commit()

    assert letters == ["A", "B", "C"]
    assert [r.revision for r in rs.list_revisions(drawing.id)] == ["A", "B", "C"]


def test_create_revision_requires_file_ref(scope_item):
    drawing = _make_drawing(scope_item)
    with pytest.raises(ValidationError):
        rs.create_revision(drawing.id, "   ")


def test_duplicate_letter_is_conflict(scope_item, monkeypatch):
    """A concurrent allocator that already took the letter makes ours fail."""
    drawing = _make_drawing(scope_item)
    rs.create_revision(drawing.id, "https://files/a.pdf")
    _db.session.commit()

    # Second writer counted before the first committed and also picked "A".
    monkeypatch.setattr(rs, "revision_letter", lambda index: "A")
    with pytest.raises(ConflictError):
        rs.create_revision(drawing.id, "https://files/b.pdf")
    _db.session.rollback()

    assert [r.revision for r in rs.list_revisions(drawing.id)] == ["A"]


def test_replace_updates_in_place(scope_item):
    drawing = _make_drawing(scope_item)
    rs.create_revision(drawing.id, "https://files/a.pdf", "https://files/a.dwg")
    _db.session.commit()

    rev = rs.replace_current_revision_files(drawing.id, "A", "https://files/a2.pdf", file_name="a2.pdf")
    _db.session.commit()

    assert rev.revision == "A"
    assert rev.file_url == "https://files/a2.pdf"
    assert rev.file_name == "a2.pdf"
    assert rev.cad_file_url == "https://files/a.dwg"
    assert len(rs.list_revisions(drawing.id)) == 1


def test_replace_cad_only(scope_item):
    drawing = _make_drawing(scope_item)
    rs.create_revision(drawing.id, "https://files/a.pdf")
    rev = rs.replace_current_revision_files(drawing.id, "A", new_cad_file_ref="https://files/a.dwg")
    assert rev.file_url == "https://files/a.pdf"
    assert rev.cad_file_url == "https://files/a.dwg"


def test_replace_requires_a_reference(scope_item):
    drawing = _make_drawing(scope_item)
    rs.create_revision(drawing.id, "https://files/a.pdf")
    with pytest.raises(ValidationError):
        rs.replace_current_revision_files(drawing.id, "A", None, "  ")


def test_replace_unknown_revision(scope_item, make_scope_item):
    drawing = _make_drawing(scope_item)
    other = _make_drawing(make_scope_item("CAB-02"))
    rs.create_revision(other.id, "https://files/other.pdf")

    with pytest.raises(NotFoundError):
        rs.replace_current_revision_files(drawing.id, "A", "https://files/a.pdf")


def test_attach_client_markup(scope_item):
    drawing = _make_drawing(scope_item)
    rs.create_revision(drawing.id, "https://files/a.pdf")
    rev = rs.attach_client_markup(drawing.id, "A", "https://files/markup.pdf")
    assert rev.client_markup_url == "https://files/markup.pdf"
