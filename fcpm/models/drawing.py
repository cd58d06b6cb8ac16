"""
Formula Contract PM
Drawing domain model.

Models:
    - Drawing: approval-tracked design artifact, one per scope item
    - DrawingRevision: one uploaded version of a drawing's files

Status values are the ``DrawingStatus`` enum; transition rules live in
``fcpm.services.drawing_state_machine`` and every status write goes through
``fcpm.services.approval_service``.

Optimistic concurrency:
    ``version_id`` is the mapper's version counter.  Every UPDATE of a drawing
    carries ``WHERE version_id = <value read>``, so a writer that lost a race
    against another committed transition fails at flush time instead of
    silently overwriting it.
"""

from datetime import datetime, timezone
from enum import Enum

from fcpm.models import db


class DrawingStatus(str, Enum):
    NOT_UPLOADED = "not_uploaded"
    UPLOADED = "uploaded"
    SENT_TO_CLIENT = "sent_to_client"
    APPROVED = "approved"
    APPROVED_WITH_COMMENTS = "approved_with_comments"
    REJECTED = "rejected"
    NOT_REQUIRED = "not_required"


class Drawing(db.Model):
    """
    Approval-tracked drawing for one scope item.

    Business rules:
    - ``scope_item_id`` is unique: a scope item has at most one drawing.
    - ``pm_override`` is only ever true while ``status == approved``.
    - ``current_revision`` is null only for ``not_uploaded`` / ``not_required``.
    - Rows are never deleted.
    """

    __tablename__ = "drawings"

    id = db.Column(db.Integer, primary_key=True)
    scope_item_id = db.Column(
        db.Integer, db.ForeignKey("scope_items.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )
    status = db.Column(
        db.String(30), nullable=False, default=DrawingStatus.NOT_UPLOADED.value,
        comment="not_uploaded | uploaded | sent_to_client | approved | approved_with_comments | rejected | not_required",
    )
    current_revision = db.Column(db.String(5), nullable=True)

    # Client review
    sent_to_client_at = db.Column(db.DateTime(timezone=True), nullable=True)
    client_response_at = db.Column(db.DateTime(timezone=True), nullable=True)
    client_comments = db.Column(db.Text, nullable=True)
    approved_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    # PM override
    pm_override = db.Column(db.Boolean, nullable=False, default=False)
    pm_override_reason = db.Column(db.Text, nullable=True)
    pm_override_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pm_override_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    # Not-required exemption
    not_required_reason = db.Column(db.Text, nullable=True)
    not_required_at = db.Column(db.DateTime(timezone=True), nullable=True)
    not_required_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    version_id = db.Column(db.Integer, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version_id}

    scope_item = db.relationship(
        "ScopeItem",
        backref=db.backref("drawing", uselist=False),
        lazy="joined",
    )
    revisions = db.relationship(
        "DrawingRevision", backref="drawing", lazy="select",
        order_by="DrawingRevision.id",
    )

    @property
    def project_id(self) -> int | None:
        return self.scope_item.project_id if self.scope_item else None

    def to_dict(self, include_revisions: bool = False) -> dict:
        result = {
            "id": self.id,
            "scope_item_id": self.scope_item_id,
            "project_id": self.project_id,
            "item_code": self.scope_item.item_code if self.scope_item else None,
            "status": self.status,
            "current_revision": self.current_revision,
            "sent_to_client_at": self.sent_to_client_at.isoformat() if self.sent_to_client_at else None,
            "client_response_at": self.client_response_at.isoformat() if self.client_response_at else None,
            "client_comments": self.client_comments,
            "approved_by": self.approved_by,
            "pm_override": self.pm_override,
            "pm_override_reason": self.pm_override_reason,
            "pm_override_at": self.pm_override_at.isoformat() if self.pm_override_at else None,
            "pm_override_by": self.pm_override_by,
            "not_required_reason": self.not_required_reason,
            "not_required_at": self.not_required_at.isoformat() if self.not_required_at else None,
            "not_required_by": self.not_required_by,
            "version": self.version_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_revisions:
            result["revisions"] = [r.to_dict() for r in self.revisions]
        return result

    def __repr__(self):
        return f"<Drawing {self.id}: item={self.scope_item_id} [{self.status}] rev={self.current_revision}>"


class DrawingRevision(db.Model):
    """
    One upload event for a drawing.

    ``revision`` letters are allocated A, B, …, Z, AA, AB, … and are unique
    per drawing.  A replace-file operation rewrites the file columns of the
    current revision in place; it never allocates a letter.
    """

    __tablename__ = "drawing_revisions"
    __table_args__ = (
        db.UniqueConstraint("drawing_id", "revision", name="uq_drawing_revision_letter"),
        db.Index("idx_drawing_revisions_drawing_created", "drawing_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    drawing_id = db.Column(
        db.Integer, db.ForeignKey("drawings.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    revision = db.Column(db.String(5), nullable=False)

    file_url = db.Column(db.String(1000), nullable=False)
    file_name = db.Column(db.String(255), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    cad_file_url = db.Column(db.String(1000), nullable=True)
    cad_file_name = db.Column(db.String(255), nullable=True)
    client_markup_url = db.Column(
        db.String(1000), nullable=True,
        comment="Attached only when the client response is recorded",
    )
    notes = db.Column(db.Text, nullable=True)
    uploaded_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "drawing_id": self.drawing_id,
            "revision": self.revision,
            "file_url": self.file_url,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "cad_file_url": self.cad_file_url,
            "cad_file_name": self.cad_file_name,
            "client_markup_url": self.client_markup_url,
            "notes": self.notes,
            "uploaded_by": self.uploaded_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<DrawingRevision {self.drawing_id}/{self.revision}>"
