"""
Drawing Revision Store

Holds the file references of every drawing revision.  The store never sees
file bytes: callers upload to file storage first and pass the durable URL.

Letter allocation:
    A, B, …, Z, AA, AB, …, AZ, BA, …  (bijective base-26).  Letters are
    contiguous from "A" and unique per drawing (``uq_drawing_revision_letter``),
    so two concurrent allocations for the same drawing cannot both commit.

All functions ``flush`` only; transaction control stays with the caller
(normally ``fcpm.services.approval_service``).
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from fcpm.core.exceptions import ConflictError, NotFoundError, ValidationError
from fcpm.models import db
from fcpm.models.drawing import DrawingRevision

logger = logging.getLogger(__name__)

_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def revision_letter(index: int) -> str:
    """Return the letter for a zero-based revision index (0 → A, 26 → AA)."""
    if index < 0:
        raise ValueError("revision index must be >= 0")
    letters = ""
    n = index + 1
    while n:
        n, rem = divmod(n - 1, 26)
        letters = _ALPHABET[rem] + letters
    return letters


def revision_index(letter: str) -> int:
    """Inverse of ``revision_letter``."""
    if not letter or any(ch not in _ALPHABET for ch in letter):
        raise ValueError(f"Invalid revision letter: {letter!r}")
    n = 0
    for ch in letter:
        n = n * 26 + (_ALPHABET.index(ch) + 1)
    return n - 1


def next_revision_letter(current: str | None) -> str:
    """Letter that follows *current*; ``None`` yields "A"."""
    if not current:
        return "A"
    return revision_letter(revision_index(current) + 1)


def get_revision(drawing_id: int, letter: str) -> DrawingRevision | None:
    return db.session.execute(
        select(DrawingRevision).where(
            DrawingRevision.drawing_id == drawing_id,
            DrawingRevision.revision == letter,
        )
    ).scalar_one_or_none()


def list_revisions(drawing_id: int) -> list[DrawingRevision]:
    """All revisions of a drawing in allocation order (A, B, C, …)."""
    return list(
        db.session.execute(
            select(DrawingRevision)
            .where(DrawingRevision.drawing_id == drawing_id)
            .order_by(DrawingRevision.id.asc())
        ).scalars()
    )


def create_revision(
    drawing_id: int,
    file_ref: str,
    cad_file_ref: str | None = None,
    *,
    file_name: str | None = None,
    file_size: int | None = None,
    cad_file_name: str | None = None,
    notes: str | None = None,
    uploaded_by: int | None = None,
) -> DrawingRevision:
    """Allocate the next revision letter for *drawing_id* and store its files.

    The next letter is derived from the number of existing revisions, which
    keeps letters contiguous from "A".

    Raises:
        ValidationError: *file_ref* is empty.
        ConflictError: another allocation for the same drawing won the letter.
    """
    if not (file_ref or "").strip():
        raise ValidationError("file_ref is required", details={"file_ref": "required"})

    existing = db.session.execute(
        select(func.count(DrawingRevision.id)).where(DrawingRevision.drawing_id == drawing_id)
    ).scalar_one()
    letter = revision_letter(existing)

    revision = DrawingRevision(
        drawing_id=drawing_id,
        revision=letter,
        file_url=file_ref.strip(),
        file_name=file_name,
        file_size=file_size,
        cad_file_url=(cad_file_ref or "").strip() or None,
        cad_file_name=cad_file_name,
        notes=(notes or "").strip() or None,
        uploaded_by=uploaded_by,
    )
    db.session.add(revision)
    try:
        db.session.flush()
    except IntegrityError as exc:
        logger.warning(
            "Revision letter allocation collided",
            extra={"drawing_id": drawing_id, "revision": letter},
        )
        raise ConflictError(
            "DrawingRevision", f"{drawing_id}/{letter}",
            message=f"Revision {letter} of drawing {drawing_id} is being allocated concurrently",
        ) from exc
    return revision


def replace_current_revision_files(
    drawing_id: int,
    letter: str,
    new_file_ref: str | None = None,
    new_cad_file_ref: str | None = None,
    *,
    file_name: str | None = None,
    file_size: int | None = None,
    cad_file_name: str | None = None,
) -> DrawingRevision:
    """Rewrite the file references of an existing revision in place.

    No letter is allocated.  Only the references that are supplied change.

    Raises:
        ValidationError: neither reference was supplied.
        NotFoundError: the revision does not belong to *drawing_id*.
    """
    new_file_ref = (new_file_ref or "").strip() or None
    new_cad_file_ref = (new_cad_file_ref or "").strip() or None
    if not new_file_ref and not new_cad_file_ref:
        raise ValidationError(
            "At least one of file_ref or cad_file_ref is required to replace files",
            details={"file_ref": "required", "cad_file_ref": "required"},
        )

    revision = get_revision(drawing_id, letter) if letter else None
    if revision is None:
        raise NotFoundError("DrawingRevision", f"{drawing_id}/{letter}")

    if new_file_ref:
        revision.file_url = new_file_ref
        revision.file_name = file_name
        revision.file_size = file_size
    if new_cad_file_ref:
        revision.cad_file_url = new_cad_file_ref
        revision.cad_file_name = cad_file_name
    db.session.flush()
    return revision


def attach_client_markup(drawing_id: int, letter: str, markup_ref: str) -> DrawingRevision:
    """Store the client's markup file on the reviewed revision."""
    revision = get_revision(drawing_id, letter) if letter else None
    if revision is None:
        raise NotFoundError("DrawingRevision", f"{drawing_id}/{letter}")
    revision.client_markup_url = markup_ref
    db.session.flush()
    return revision
