"""
Pydantic schemas for the filedash HTTP API.

Preferences payloads use the camelCase names of the stored document
(``gridCols``, ``minW`` ...); snake_case names are accepted as well.
Range checks are left to the preferences validators so every rejected write
reports the same rule names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WidgetPayload(CamelModel):
    id: str
    type: str
    x: int
    y: int
    w: int
    h: int
    min_w: Optional[int] = None
    min_h: Optional[int] = None
    max_w: Optional[int] = None
    max_h: Optional[int] = None
    is_resizable: Optional[bool] = None
    is_draggable: Optional[bool] = None
    title: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)


class LayoutPayload(CamelModel):
    name: str
    is_default: bool = False
    widgets: list[WidgetPayload] = Field(default_factory=list)
    grid_cols: Optional[int] = None
    grid_row_height: Optional[int] = None
    margin: Optional[list[float]] = None
    container_padding: Optional[list[float]] = None
    breakpoints: Optional[dict[str, int]] = None
    cols: Optional[dict[str, int]] = None


class LayoutUpdatePayload(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    name: Optional[str] = None
    is_default: Optional[bool] = None
    widgets: Optional[list[WidgetPayload]] = None
    grid_cols: Optional[int] = None
    grid_row_height: Optional[int] = None
    margin: Optional[list[float]] = None
    container_padding: Optional[list[float]] = None
    breakpoints: Optional[dict[str, int]] = None
    cols: Optional[dict[str, int]] = None


class SwitchLayoutRequest(CamelModel):
    layout_name: str


class DuplicateLayoutRequest(CamelModel):
    new_layout_name: str


class GlobalSettingsUpdate(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    theme: Optional[str] = None
    auto_save: Optional[bool] = None
    refresh_interval: Optional[int] = None
    compact_mode: Optional[bool] = None


class PreferencesResponse(CamelModel):
    user_id: str
    layouts: list[dict[str, Any]]
    active_layout_name: str
    global_settings: dict[str, Any]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActiveLayoutResponse(BaseModel):
    layout: dict[str, Any]


class AuthRequest(BaseModel):
    action: Optional[str] = None
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=1024)


class UserSummary(BaseModel):
    user_id: str
    email: str


class AuthResponse(BaseModel):
    message: str
    user: Optional[UserSummary] = None


class FileItem(BaseModel):
    name: str
    url: str
    size: Optional[int] = None
    last_modified: Optional[datetime] = None


class ListFilesResponse(BaseModel):
    success: Literal[True] = True
    files: list[FileItem]


class UploadFileResponse(BaseModel):
    success: Literal[True] = True
    file: FileItem


class DeleteFileResponse(BaseModel):
    success: Literal[True] = True
