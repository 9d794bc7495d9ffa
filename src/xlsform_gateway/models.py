from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HealthStatus(BaseModel):
    status: str
    bucket: str
    region: str


class PresignedUploadRequest(CamelModel):
    file_name: Optional[str] = Field(default=None, alias="fileName")
    file_type: Optional[str] = Field(default=None, alias="fileType")


class PresignedUploadResponse(CamelModel):
    upload_url: str = Field(alias="uploadUrl")
    file_url: str = Field(alias="fileUrl")


class PresignedDownloadRequest(CamelModel):
    file_name: Optional[str] = Field(default=None, alias="fileName")


class PresignedDownloadResponse(CamelModel):
    download_url: str = Field(alias="downloadUrl")


class ConvertRequest(CamelModel):
    form_url: Optional[str] = Field(default=None, alias="formUrl")


class ConvertResponse(CamelModel):
    xform_url: str = Field(alias="xformUrl")


class ErrorResponse(BaseModel):
    error: str
