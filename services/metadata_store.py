from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models.file_record import FileRecord
from services.errors import MetadataStoreError


class MetadataStore:
    """
    Data access for the file metadata table.

    Every method commits its own unit of work. Database errors roll the
    session back and surface as MetadataStoreError.
    """

    def _fail(self, action: str, e: Exception) -> MetadataStoreError:
        db.session.rollback()
        current_app.logger.error(f"Metadata store failed to {action}: {e}")
        return MetadataStoreError(f"Failed to {action}: {e}")

    def insert(self, user_id: str, file_name: str, theme: Optional[str], created_at: Optional[datetime] = None) -> FileRecord:
        """
        Create the record for a new upload with its content URL unset.
        Re-uploading an existing name replaces that record (last write wins).
        """
        created_at = created_at or datetime.utcnow()
        try:
            record = FileRecord.query.filter_by(file_name=file_name).first()
            if record is None:
                record = FileRecord(file_name=file_name)
                db.session.add(record)
            record.user_id = user_id
            record.theme = theme
            record.created_at = created_at
            record.file_content = None
            db.session.commit()
            return record
        except SQLAlchemyError as e:
            raise self._fail(f"insert metadata for '{file_name}'", e) from e

    def get(self, file_name: str) -> Optional[FileRecord]:
        try:
            return FileRecord.query.filter_by(file_name=file_name).first()
        except SQLAlchemyError as e:
            raise self._fail(f"load metadata for '{file_name}'", e) from e

    def get_content_url(self, file_name: str) -> Optional[str]:
        """Stored content URL, or None when the record is missing or not uploaded yet."""
        record = self.get(file_name)
        if record is None or not record.file_content:
            return None
        return record.file_content

    def update_content_url(self, file_name: str, url: str) -> int:
        """Set the content URL; returns the number of rows touched."""
        try:
            count = FileRecord.query.filter_by(file_name=file_name).update({'file_content': url})
            db.session.commit()
            return count
        except SQLAlchemyError as e:
            raise self._fail(f"update content URL for '{file_name}'", e) from e

    def rename(self, old_name: str, new_name: str) -> int:
        """Rename the metadata key only; the stored object keeps its key."""
        try:
            count = FileRecord.query.filter_by(file_name=old_name).update({'file_name': new_name})
            db.session.commit()
            return count
        except SQLAlchemyError as e:
            raise self._fail(f"rename '{old_name}' to '{new_name}'", e) from e

    def delete(self, file_name: str) -> int:
        try:
            count = FileRecord.query.filter_by(file_name=file_name).delete()
            db.session.commit()
            return count
        except SQLAlchemyError as e:
            raise self._fail(f"delete metadata for '{file_name}'", e) from e

    def list_distinct_categories(self) -> List[str]:
        try:
            rows = (
                db.session.query(FileRecord.theme)
                .filter(FileRecord.theme.isnot(None))
                .distinct()
                .order_by(FileRecord.theme)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail("list categories", e) from e
        return [theme for (theme,) in rows]

    def list_file_names_by_category(self, category: str) -> List[str]:
        try:
            rows = (
                db.session.query(FileRecord.file_name)
                .filter(FileRecord.theme == category)
                .order_by(FileRecord.file_name)
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail(f"list files in category '{category}'", e) from e
        return [name for (name,) in rows]

