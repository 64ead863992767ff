import json
from enum import Enum

from models import db


STATUS_PENDING = "PENDING"
STATUS_PROCESSING = "PROCESSING"
STATUS_COMPLETED = "COMPLETED"
STATUS_FAILED = "FAILED"

STAGE_UPLOADED = "UPLOADED"
STAGE_EXTRACTING = "EXTRACTING"
STAGE_CLASSIFYING = "CLASSIFYING"
STAGE_RECONCILING = "RECONCILING"
STAGE_DONE = "DONE"

SOURCE_CSV = "CSV"
SOURCE_PDF = "PDF"


class StatementState(Enum):
    """
    Every legal (status, processing stage) pair a statement can be in.
    Stored as a single column so readers can never see a mismatched pair.
    """

    PENDING_UPLOADED = (STATUS_PENDING, STAGE_UPLOADED)
    EXTRACTING = (STATUS_PROCESSING, STAGE_EXTRACTING)
    CLASSIFYING = (STATUS_PROCESSING, STAGE_CLASSIFYING)
    RECONCILING = (STATUS_PROCESSING, STAGE_RECONCILING)
    COMPLETED = (STATUS_COMPLETED, STAGE_DONE)
    FAILED_EXTRACTING = (STATUS_FAILED, STAGE_EXTRACTING)
    FAILED_CLASSIFYING = (STATUS_FAILED, STAGE_CLASSIFYING)
    FAILED_RECONCILING = (STATUS_FAILED, STAGE_RECONCILING)

    @property
    def status(self) -> str:
        return self.value[0]

    @property
    def stage(self) -> str:
        return self.value[1]

    @property
    def is_processing(self) -> bool:
        return self.status == STATUS_PROCESSING

    @property
    def is_failed(self) -> bool:
        return self.status == STATUS_FAILED


class Statement(db.Model):
    """One uploaded bank statement file and the state of its processing run."""

    __tablename__ = "statements"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True, nullable=False)
    # Profile declared at upload; classification may route individual rows elsewhere.
    business_profile_id = db.Column(
        db.Integer, db.ForeignKey("business_profiles.id"), nullable=True
    )

    file_name = db.Column(db.String(255), nullable=False)
    storage_path = db.Column(db.String(512), nullable=False)
    source_type = db.Column(db.String(8), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)

    state = db.Column(
        db.String(32), nullable=False, index=True, default=StatementState.PENDING_UPLOADED.name
    )
    record_count = db.Column(db.Integer, nullable=True)
    processed_count = db.Column(db.Integer, nullable=False, default=0)
    error_log = db.Column(db.Text, nullable=True)

    column_mapping_json = db.Column(db.Text, nullable=True)
    raw_payload = db.Column(db.Text, nullable=True)
    analysis_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())
    processed_at = db.Column(db.DateTime, nullable=True)

    transactions = db.relationship(
        "TransactionRecord",
        backref="statement",
        cascade="all, delete-orphan",
    )

    @property
    def state_enum(self) -> StatementState:
        return StatementState[self.state]

    @property
    def status(self) -> str:
        return self.state_enum.status

    @property
    def processing_stage(self) -> str:
        return self.state_enum.stage

    @property
    def column_mapping(self) -> dict | None:
        if not self.column_mapping_json:
            return None
        return json.loads(self.column_mapping_json)

    @property
    def analysis(self) -> dict | None:
        if not self.analysis_json:
            return None
        return json.loads(self.analysis_json)

    def to_status_dict(self) -> dict:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "source_type": self.source_type,
            "status": self.status,
            "processing_stage": self.processing_stage,
            "record_count": self.record_count,
            "processed_count": self.processed_count,
            "error_log": self.error_log,
            "business_profile_id": self.business_profile_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
