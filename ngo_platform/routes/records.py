# ==============================================================================
# routes/records.py - Organization-scoped record CRUD
# ==============================================================================

import logging
from enum import Enum
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ..exceptions import NGOPlatformBaseException, create_http_exception, to_http_exception
from ..services import RecordService
from ..services.record_service import RECORD_TYPES, serialize_record
from ..utils.auth import SessionContext, get_current_context, require_staff
from ..utils.database import get_db

logger = logging.getLogger(__name__)
router = APIRouter()

# Initialize services
record_service = RecordService()

RecordResource = Enum(
    "RecordResource", {name.replace("-", "_"): name for name in RECORD_TYPES}, type=str
)


@router.get("/{resource}")
def list_records(resource: RecordResource, ctx: SessionContext = Depends(get_current_context),
                 db: Session = Depends(get_db)):
    try:
        return {"items": record_service.list_records(resource.value, ctx.organization_id, db)}
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error listing {resource.value}: {e}")
        raise create_http_exception(500, f"Error retrieving {resource.value}: {str(e)}")


@router.get("/{resource}/{record_id}")
def get_record(resource: RecordResource, record_id: int,
               ctx: SessionContext = Depends(get_current_context), db: Session = Depends(get_db)):
    try:
        record = record_service.get_record(resource.value, record_id, ctx.organization_id, db)
        return serialize_record(record)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error retrieving {resource.value} {record_id}: {e}")
        raise create_http_exception(500, f"Error retrieving record: {str(e)}")


@router.post("/{resource}", status_code=201)
def create_record(resource: RecordResource, payload: Dict[str, Any] = Body(...),
                  ctx: SessionContext = Depends(require_staff), db: Session = Depends(get_db)):
    """Create a record; beneficiaries and volunteers with an email get a login"""
    try:
        return record_service.create_record(resource.value, payload, ctx.organization_id, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating {resource.value}: {e}")
        raise create_http_exception(500, f"Error creating record: {str(e)}")


@router.put("/{resource}/{record_id}")
def update_record(resource: RecordResource, record_id: int, payload: Dict[str, Any] = Body(...),
                  ctx: SessionContext = Depends(require_staff), db: Session = Depends(get_db)):
    try:
        return record_service.update_record(resource.value, record_id, payload, ctx.organization_id, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error updating {resource.value} {record_id}: {e}")
        raise create_http_exception(500, f"Error updating record: {str(e)}")


@router.delete("/{resource}/{record_id}", status_code=204)
def delete_record(resource: RecordResource, record_id: int,
                  ctx: SessionContext = Depends(require_staff), db: Session = Depends(get_db)):
    try:
        record_service.delete_record(resource.value, record_id, ctx.organization_id, db)
    except NGOPlatformBaseException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error deleting {resource.value} {record_id}: {e}")
        raise create_http_exception(500, f"Error deleting record: {str(e)}")
