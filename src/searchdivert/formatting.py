"""Turn search hits into the record shapes the platform's query layer consumes.

All functions here are pure: same hits in, same records out, in the same
order.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from searchdivert.models import (
    DEFAULT_RETURN_FIELDS,
    Document,
    FieldShape,
    FullRecord,
    IdParentRecord,
    RealizedRecord,
    ReturnField,
)


def _field_value(doc: Document, name: ReturnField) -> object:
    if name is ReturnField.POST_AUTHOR:
        return doc.post_author.id if doc.post_author is not None else None
    return getattr(doc, name.value)


def format_hits_as_posts(
    documents: Iterable[Document],
    *,
    current_site_id: int,
    return_fields: Sequence[ReturnField] = DEFAULT_RETURN_FIELDS,
) -> list[FullRecord]:
    """Build full records carrying the allow-listed fields.

    A hit without its own ``site_id`` is attributed to *current_site_id*.
    The author is reduced to its id.
    """
    records: list[FullRecord] = []
    for doc in documents:
        values = {}
        for name in return_fields:
            value = _field_value(doc, name)
            if value is not None:
                values[name.value] = value
        records.append(
            FullRecord(
                id=doc.post_id,
                site_id=doc.site_id if doc.site_id else current_site_id,
                **values,
            )
        )
    return records


def format_hits_as_ids(documents: Iterable[Document]) -> list[int]:
    return [doc.post_id for doc in documents]


def format_hits_as_id_parents(documents: Iterable[Document]) -> list[IdParentRecord]:
    return [IdParentRecord(id=doc.post_id, post_parent=doc.post_parent) for doc in documents]


def format_documents(
    documents: Iterable[Document],
    shape: FieldShape,
    *,
    current_site_id: int,
    return_fields: Sequence[ReturnField] = DEFAULT_RETURN_FIELDS,
) -> list[RealizedRecord]:
    """Dispatch to the formatter matching *shape*."""
    if shape is FieldShape.IDS:
        return list(format_hits_as_ids(documents))
    if shape is FieldShape.ID_PARENT:
        return list(format_hits_as_id_parents(documents))
    return list(
        format_hits_as_posts(
            documents, current_site_id=current_site_id, return_fields=return_fields
        )
    )
