"""
HTTP routes for preferences, accounts and the file manager.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile

from filedash.auth import AuthService
from filedash.config import Settings
from filedash.dependencies import (
    get_app_settings,
    get_auth_service,
    get_current_user_id,
    get_preference_service,
    get_storage_client,
)
from filedash.preferences import (
    Preferences,
    layout_from_dict,
    layout_to_dict,
    preferences_to_dict,
    widget_from_dict,
)
from filedash.schemas import (
    ActiveLayoutResponse,
    AuthRequest,
    AuthResponse,
    DeleteFileResponse,
    DuplicateLayoutRequest,
    FileItem,
    GlobalSettingsUpdate,
    LayoutPayload,
    LayoutUpdatePayload,
    ListFilesResponse,
    PreferencesResponse,
    SwitchLayoutRequest,
    UploadFileResponse,
    UserSummary,
    WidgetPayload,
)
from filedash.service import PreferenceService
from filedash.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _document(preferences: Preferences) -> PreferencesResponse:
    return PreferencesResponse(**preferences_to_dict(preferences))


def _widget(payload: WidgetPayload):
    return widget_from_dict(payload.model_dump(by_alias=True, exclude_unset=True))


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


@router.get("/preferences", response_model=PreferencesResponse)
def get_preferences(
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    return _document(service.get_preferences(user_id))


@router.get("/preferences/active-layout", response_model=ActiveLayoutResponse)
def get_active_layout(
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    layout = service.get_active_layout(user_id)
    if layout is None:
        raise HTTPException(status_code=404, detail="Active layout not found")
    return ActiveLayoutResponse(layout=layout_to_dict(layout))


@router.post("/preferences/active-layout", response_model=PreferencesResponse)
def switch_layout(
    payload: SwitchLayoutRequest,
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    return _document(service.switch_layout(user_id, payload.layout_name))


@router.post("/preferences/layouts", response_model=PreferencesResponse, status_code=201)
def create_layout(
    payload: LayoutPayload,
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    layout = layout_from_dict(payload.model_dump(by_alias=True, exclude_unset=True))
    return _document(service.create_layout(user_id, layout))


@router.patch("/preferences/layouts/{layout_name}", response_model=PreferencesResponse)
def update_layout(
    layout_name: str,
    payload: LayoutUpdatePayload,
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    updates = payload.model_dump(exclude_unset=True, exclude={"widgets"})
    if payload.widgets is not None:
        updates["widgets"] = [_widget(widget) for widget in payload.widgets]
    return _document(service.update_layout(user_id, layout_name, updates))


@router.delete("/preferences/layouts/{layout_name}", response_model=PreferencesResponse)
def delete_layout(
    layout_name: str,
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    return _document(service.delete_layout(user_id, layout_name))


@router.post(
    "/preferences/layouts/{layout_name}/duplicate",
    response_model=PreferencesResponse,
    status_code=201,
)
def duplicate_layout(
    layout_name: str,
    payload: DuplicateLayoutRequest,
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    return _document(
        service.duplicate_layout(user_id, layout_name, payload.new_layout_name)
    )


@router.put(
    "/preferences/layouts/{layout_name}/widgets", response_model=PreferencesResponse
)
def update_widget_layout(
    layout_name: str,
    payload: list[WidgetPayload],
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    widgets = [_widget(widget) for widget in payload]
    return _document(service.update_widget_layout(user_id, layout_name, widgets))


@router.post(
    "/preferences/layouts/{layout_name}/widgets",
    response_model=PreferencesResponse,
    status_code=201,
)
def add_widget(
    layout_name: str,
    payload: WidgetPayload,
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    return _document(service.add_widget(user_id, layout_name, _widget(payload)))


@router.delete(
    "/preferences/layouts/{layout_name}/widgets/{widget_id}",
    response_model=PreferencesResponse,
)
def remove_widget(
    layout_name: str,
    widget_id: str,
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    return _document(service.remove_widget(user_id, layout_name, widget_id))


@router.patch("/preferences/settings", response_model=PreferencesResponse)
def update_global_settings(
    payload: GlobalSettingsUpdate,
    user_id: str = Depends(get_current_user_id),
    service: PreferenceService = Depends(get_preference_service),
):
    settings = payload.model_dump(exclude_unset=True)
    return _document(service.update_global_settings(user_id, settings))


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@router.post("/auth", response_model=AuthResponse)
def authenticate(
    payload: AuthRequest,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    if not payload.action or not payload.email or not payload.password:
        raise HTTPException(
            status_code=400, detail="Action, email, and password are required"
        )
    if payload.action == "signup":
        record = auth.sign_up(payload.email, payload.password)
        response.status_code = 201
        message = "User created successfully"
    elif payload.action == "signin":
        record = auth.sign_in(payload.email, payload.password)
        message = "Sign-in successful"
    else:
        raise HTTPException(status_code=400, detail="Invalid action")
    return AuthResponse(
        message=message, user=UserSummary(user_id=record.user_id, email=record.email)
    )


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


@router.get("/files", response_model=ListFilesResponse)
def list_files(
    container: Optional[str] = Query(None),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_app_settings),
):
    files = storage.list_files(container or settings.storage_container)
    return ListFilesResponse(files=[FileItem(**item.as_dict()) for item in files])


@router.post("/files", response_model=UploadFileResponse, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    container: Optional[str] = Form(None),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_app_settings),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="File name is required")
    data = await file.read()
    stored = storage.upload_bytes(
        container or settings.storage_container,
        file.filename,
        data,
        content_type=file.content_type or "application/octet-stream",
    )
    logger.info("Uploaded %s (%d bytes)", file.filename, len(data))
    return UploadFileResponse(file=FileItem(**stored.as_dict()))


@router.get("/files/{container}/{name:path}")
def download_file(
    container: str,
    name: str,
    storage: StorageClient = Depends(get_storage_client),
):
    data, content_type = storage.download_file(container, name)
    return Response(content=data, media_type=content_type)


@router.delete("/files/{container}/{name:path}", response_model=DeleteFileResponse)
def delete_file(
    container: str,
    name: str,
    storage: StorageClient = Depends(get_storage_client),
):
    storage.delete_file(container, name)
    return DeleteFileResponse()
