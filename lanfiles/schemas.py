from __future__ import annotations

from typing import Literal, Optional, Union

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field


class MkdirRequest(BaseModel):
    path: str = ''
    name: str


class RenameRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    old_path: str = Field(alias='oldPath')
    new_name: str = Field(default='', alias='newName')


class SaveRequest(BaseModel):
    path: str
    content: str = ''


class FileEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    path: str
    size: int
    is_dir: bool = Field(serialization_alias='isDir')
    mod_time: int = Field(serialization_alias='modTime')


class Ack(BaseModel):
    success: Literal[True] = True


class FileListing(Ack):
    files: list[FileEntryOut] = Field(default_factory=list)


class FileContent(Ack):
    content: str


class UploadResult(Ack):
    path: Optional[str] = None
    paths: list[str] = Field(default_factory=list)


class PutResult(Ack):
    path: str
    message: str = 'File uploaded successfully'


class Failure(BaseModel):
    success: Literal[False] = False
    error: str


OperationResult = Union[Ack, FileListing, FileContent, UploadResult, PutResult, Failure]


def envelope(result: OperationResult, status_code: int = 200) -> JSONResponse:
    return JSONResponse(result.model_dump(mode='json', by_alias=True, exclude_none=True), status_code=status_code)
