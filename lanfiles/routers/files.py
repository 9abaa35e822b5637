from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..deps import get_file_ops
from ..errors import ConfinementError, UploadTooLargeError, os_error_message
from ..schemas import (
    Ack,
    Failure,
    FileContent,
    FileEntryOut,
    FileListing,
    MkdirRequest,
    PutResult,
    RenameRequest,
    SaveRequest,
    UploadResult,
    envelope,
)
from ..services.file_ops import FileOps, UploadPart

router = APIRouter(tags=['files'])

# room for multipart boundaries and part headers on top of the file bytes
_MULTIPART_OVERHEAD = 64 * 1024


def _failure(exc: Exception) -> Failure:
    if isinstance(exc, OSError) and not isinstance(exc, ConfinementError):
        return Failure(error=os_error_message(exc))
    return Failure(error=str(exc))


def _upload_limit(request: Request) -> int:
    return request.app.state.settings.max_upload_bytes


@router.get('/api/files')
def list_files(path: str = Query(default=''), ops: FileOps = Depends(get_file_ops)):
    try:
        items = ops.list_dir(path)
    except ConfinementError as exc:
        return envelope(_failure(exc), status_code=400)
    except (ValueError, OSError) as exc:
        return envelope(_failure(exc))
    return envelope(FileListing(files=[FileEntryOut.model_validate(item) for item in items]))


@router.post('/api/upload')
async def upload(request: Request, ops: FileOps = Depends(get_file_ops)):
    limit = _upload_limit(request)
    declared = request.headers.get('content-length', '')
    if limit and declared.isdigit() and int(declared) > limit + _MULTIPART_OVERHEAD:
        return envelope(_failure(UploadTooLargeError(limit)))

    try:
        form = await request.form()
    except StarletteHTTPException as exc:
        return envelope(Failure(error=str(exc.detail)))

    try:
        path = form.get('path')
        if not isinstance(path, str):
            path = ''
        files = [f for f in form.getlist('files') + form.getlist('files[]') if isinstance(f, UploadFile)]
        parts = [UploadPart(filename=f.filename or '', stream=f.file) for f in files]
        try:
            stored = await run_in_threadpool(ops.upload, path, parts, limit)
        except (ValueError, OSError) as exc:
            return envelope(_failure(exc))
    finally:
        await form.close()

    return envelope(UploadResult(path=stored[-1], paths=stored))


@router.api_route('/api/put', methods=['PUT', 'POST'])
async def put_file(request: Request, path: str = Query(default=''), ops: FileOps = Depends(get_file_ops)):
    try:
        stored = await ops.put_stream(path, request.stream(), _upload_limit(request))
    except (ValueError, OSError) as exc:
        return envelope(_failure(exc))
    return envelope(PutResult(path=stored))


@router.post('/api/mkdir')
def mkdir(payload: MkdirRequest, ops: FileOps = Depends(get_file_ops)):
    try:
        ops.mkdir(payload.path, payload.name)
    except (ValueError, OSError) as exc:
        return envelope(_failure(exc))
    return envelope(Ack())


@router.post('/api/rename')
def rename(payload: RenameRequest, ops: FileOps = Depends(get_file_ops)):
    try:
        ops.rename(payload.old_path, payload.new_name)
    except (ValueError, OSError) as exc:
        return envelope(_failure(exc))
    return envelope(Ack())


@router.get('/api/read')
def read_file(path: str = Query(default=''), ops: FileOps = Depends(get_file_ops)):
    try:
        content = ops.read_text(path)
    except (ValueError, OSError) as exc:
        return envelope(_failure(exc))
    return envelope(FileContent(content=content))


@router.post('/api/save')
def save_file(payload: SaveRequest, ops: FileOps = Depends(get_file_ops)):
    try:
        ops.save_text(payload.path, payload.content)
    except (ValueError, OSError) as exc:
        return envelope(_failure(exc))
    return envelope(Ack())


@router.get('/files/{rel_path:path}')
def serve_file(rel_path: str, ops: FileOps = Depends(get_file_ops)):
    try:
        target = ops.safe_path(rel_path)
    except ConfinementError:
        return PlainTextResponse('Invalid path', status_code=400)

    if not target.is_file():
        raise HTTPException(status_code=404, detail='File not found')
    return FileResponse(target)
