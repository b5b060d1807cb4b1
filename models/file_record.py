from datetime import datetime
from extensions import db


class FileRecord(db.Model):
    """
    Metadata for one uploaded file. The bytes live in object storage;
    file_content holds their public URL once the upload completes.
    """
    __tablename__ = 'line_01'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False)
    file_name = db.Column(db.String(255), unique=True, nullable=False, index=True)
    file_content = db.Column(db.String(1024), nullable=True)  # public URL, unset until upload finishes
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    theme = db.Column(db.String(100), nullable=True)

    def to_dict(self):
        return {
            'user_id': self.user_id,
            'file_name': self.file_name,
            'file_content': self.file_content,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'theme': self.theme,
        }

    def __repr__(self):
        return f'<FileRecord {self.file_name} theme={self.theme} user={self.user_id}>'
