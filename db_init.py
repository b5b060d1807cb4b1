"""
Create the metadata table and report on the bucket.

Lists every object key and flags keys that no metadata row points at, which
is what `open` falls back to scanning for. Run after deploying or whenever
metadata and storage look out of sync.
"""
import logging

from app import create_app
from extensions import db
from models.file_record import FileRecord
from services.object_store import get_object_store

logger = logging.getLogger(__name__)


def init_db(app):
    with app.app_context():
        logger.info("Creating database tables...")
        db.create_all()


def find_orphaned_keys(keys, records):
    """Object keys that no FileRecord URL or file name accounts for."""
    store = get_object_store()
    referenced = set()
    for record in records:
        if record.file_content:
            referenced.add(store.key_from_url(record.file_content))
    names = {record.file_name for record in records}

    orphaned = []
    for key in keys:
        if key in referenced:
            continue
        # Names stored without their extension still resolve via prefix scan
        if any(key.startswith(name) for name in names):
            continue
        orphaned.append(key)
    return orphaned


def report_bucket(app):
    with app.app_context():
        store = get_object_store()
        keys = store.list_all_keys()
        records = FileRecord.query.all()
        logger.info(f"Bucket '{store.bucket}' holds {len(keys)} objects; {len(records)} metadata rows.")
        for key in keys:
            logger.info(f"File: {key}")

        orphaned = find_orphaned_keys(keys, records)
        for key in orphaned:
            logger.warning(f"Object without metadata: {key}")
        return orphaned


if __name__ == '__main__':
    app = create_app()
    init_db(app)
    report_bucket(app)
    logger.info("Database initialization complete!")
