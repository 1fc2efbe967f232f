"""Generic JSON document rows backing the document store."""

from datetime import datetime

from . import db


class Document(db.Model):
    """One record of a named collection, addressed by its key."""

    __tablename__ = "documents"
    __table_args__ = (
        db.UniqueConstraint("collection", "key", name="uq_documents_collection_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    collection = db.Column(db.String(64), nullable=False, index=True)
    key = db.Column(db.String(128), nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<Document {self.collection}/{self.key}>"
