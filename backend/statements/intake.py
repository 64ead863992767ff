from __future__ import annotations

import logging
import os
from typing import Optional

from errors import ValidationError
from models import db
from models.statement_model import Statement, StatementState, SOURCE_CSV, SOURCE_PDF
from models.user_model import User
from profiles.services import resolve_profile_id
from storage.object_store import get_object_store, statement_key

from .csv_extract import estimate_record_count, validate_mapping_against
from .schemas import parse_column_mapping

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".csv": SOURCE_CSV, ".pdf": SOURCE_PDF}


def source_type_for(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    source = ALLOWED_EXTENSIONS.get(ext)
    if source is None:
        raise ValidationError("Only .csv and .pdf statements are supported")
    return source


def accept_upload(
    user: User,
    data: bytes,
    filename: str,
    column_mapping=None,
    business_profile_id: Optional[int] = None,
) -> Statement:
    """
    Validate an uploaded statement, write it to object storage and record a
    PENDING statement row. Nothing is written to the database if storage fails.
    """
    if not filename:
        raise ValidationError("No file provided")
    source = source_type_for(filename)
    if not data:
        raise ValidationError("Uploaded file is empty")

    mapping = parse_column_mapping(column_mapping)
    record_count = None
    if source == SOURCE_CSV:
        if mapping is not None:
            validate_mapping_against(data, mapping)
        record_count = estimate_record_count(data, mapping)
    elif mapping is not None:
        raise ValidationError("column_mapping applies to CSV statements only")

    profile_id = resolve_profile_id(user, business_profile_id)
    user_id = user.id
    # No transaction stays open across the storage write.
    db.session.commit()

    path = get_object_store().put(data, statement_key(user_id, filename))

    statement = Statement(
        user_id=user_id,
        business_profile_id=profile_id,
        file_name=filename,
        storage_path=path,
        source_type=source,
        file_size=len(data),
        state=StatementState.PENDING_UPLOADED.name,
        record_count=record_count,
        processed_count=0,
        column_mapping_json=mapping.model_dump_json() if mapping else None,
    )
    db.session.add(statement)
    db.session.commit()
    logger.info(
        "Statement %s uploaded by user %s (%s, %d bytes)", statement.id, user_id, source, len(data)
    )
    return statement
