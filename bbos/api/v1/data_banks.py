"""
Reference data (data bank) API endpoints
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Dict, Any
from bbos.core.database import get_db
from bbos.api.deps import get_current_user, require_admin
from bbos.api.v1.schemas import (
    DataBankRequest,
    DataBankUpdateRequest,
    EntryRequest,
    EntryUpdateRequest,
    BulkEntriesRequest,
)
from bbos.models.profile import Profile
from bbos.services.data_bank_service import DataBankService
from bbos.utils.api_decorators import handle_api_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=Dict[str, Any])
@handle_api_errors
async def get_data_banks(
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": DataBankService(db).list_sets()}


@router.post("", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_data_bank(
    request: DataBankRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data_bank = DataBankService(db).create_set(
        name=request.name,
        description=request.description,
        department_id=request.department_id,
        created_by=user.id,
    )
    return {
        "success": True,
        "data": data_bank,
        "message": "Data bank created successfully"
    }


@router.get("/by-name/{name}/options", response_model=Dict[str, Any])
@handle_api_errors
async def get_options(
    name: str,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Select options for a reference data set, ordered by value

    An unknown or inactive set yields an empty list with available False,
    so data entry screens degrade to a select without options.
    """
    options = DataBankService(db).resolve_options(name)
    return {"success": True, "data": {"name": name, "options": options, "available": bool(options)}}


@router.get("/{set_id}", response_model=Dict[str, Any])
@handle_api_errors
async def get_data_bank(
    set_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": DataBankService(db).get_set(set_id)}


@router.put("/{set_id}", response_model=Dict[str, Any])
@handle_api_errors
async def update_data_bank(
    set_id: int,
    request: DataBankUpdateRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data_bank = DataBankService(db).update_set(set_id, **request.model_dump(exclude_unset=True))
    return {
        "success": True,
        "data": data_bank,
        "message": "Data bank updated successfully"
    }


@router.delete("/{set_id}", response_model=Dict[str, Any])
@handle_api_errors
async def delete_data_bank(
    set_id: int,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db)
):
    DataBankService(db).deactivate_set(set_id)
    return {"success": True, "data": None, "message": "Data bank deleted successfully"}


@router.get("/{id_or_name}/entries", response_model=Dict[str, Any])
@handle_api_errors
async def get_entries(
    id_or_name: str,
    order_by: str = Query("key", description="key for management views, value for option lists"),
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Active entries of a data bank

    Args:
        id_or_name: Numeric data bank ID or the data bank's name
        order_by: key or value
        user: Signed-in profile
        db: Database session

    Returns:
        Entries list
    """
    service = DataBankService(db)
    set_id = service.resolve_set_id(id_or_name)
    return {"success": True, "data": service.list_entries(set_id, order_by=order_by)}


@router.post("/{id_or_name}/entries", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def create_entry(
    id_or_name: str,
    request: EntryRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    service = DataBankService(db)
    entry = service.add_entry(
        service.resolve_set_id(id_or_name),
        value=request.value,
        key=request.key,
        metadata=request.metadata,
        created_by=user.id,
    )
    return {
        "success": True,
        "data": entry,
        "message": "Entry added successfully"
    }


@router.post("/{set_id}/entries/bulk", response_model=Dict[str, Any], status_code=201)
@handle_api_errors
async def bulk_create_entries(
    set_id: int,
    request: BulkEntriesRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    result = DataBankService(db).bulk_add_entries(set_id, request.raw_text, created_by=user.id)
    added = len(result["entries"])
    message = f"Added {added} entries"
    if result["warning"]:
        message = f"{message}. {result['warning']}"
    return {"success": True, "data": result, "message": message}


@router.put("/{set_id}/entries/{entry_id}", response_model=Dict[str, Any])
@handle_api_errors
async def update_entry(
    set_id: int,
    entry_id: int,
    request: EntryUpdateRequest,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    entry = DataBankService(db).update_entry(
        entry_id,
        value=request.value,
        key=request.key,
        metadata=request.metadata,
        set_id=set_id,
    )
    return {
        "success": True,
        "data": entry,
        "message": "Entry updated successfully"
    }


@router.delete("/{set_id}/entries/{entry_id}", response_model=Dict[str, Any])
@handle_api_errors
async def delete_entry(
    set_id: int,
    entry_id: int,
    user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    DataBankService(db).deactivate_entry(entry_id, set_id=set_id)
    return {"success": True, "data": None, "message": "Entry deleted successfully"}
