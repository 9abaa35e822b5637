from __future__ import annotations

import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterable, BinaryIO, Optional

from ..errors import ConfinementError, NotTextError, ParameterError, UploadTooLargeError
from .upload_policy import UploadPlacement, VerbatimTargetDirectory

logger = logging.getLogger(__name__)

_SEPARATORS = os.sep + (os.altsep or '')
_CHUNK_SIZE = 1024 * 1024
_NEW_FILE_MODE = 0o644


def resolve(root: str, relative: str) -> str:
    """Join ``relative`` onto ``root`` and normalize it lexically.

    The filesystem is not consulted, so symlinks are not followed. The result
    must be ``root`` itself or lie below it on a separator boundary, otherwise
    ``ConfinementError`` is raised. Leading separators on ``relative`` are
    dropped, so ``/etc`` means ``<root>/etc``.
    """
    base = os.path.normpath(root)
    candidate = os.path.normpath(os.path.join(base, relative.lstrip(_SEPARATORS)))
    if candidate != base and not candidate.startswith(base.rstrip(_SEPARATORS) + os.sep):
        logger.warning('Rejected path outside served root: %r', relative)
        raise ConfinementError()
    return candidate


@dataclass(frozen=True)
class FileEntry:
    name: str
    path: str
    size: int
    is_dir: bool
    mod_time: int


@dataclass(frozen=True)
class UploadPart:
    filename: str
    stream: BinaryIO


class _ByteBudget:
    def __init__(self, limit: int):
        self.limit = limit
        self.used = 0

    def consume(self, size: int) -> None:
        self.used += size
        if self.limit and self.used > self.limit:
            raise UploadTooLargeError(self.limit)


class FileOps:
    def __init__(self, root: str, placement: Optional[UploadPlacement] = None):
        resolved = Path(root).resolve()
        if not resolved.exists():
            raise FileNotFoundError(f'Directory not found: {resolved}')
        if not resolved.is_dir():
            raise NotADirectoryError(f'Not a directory: {resolved}')
        self._root = resolved
        self.placement = placement or VerbatimTargetDirectory()

    @property
    def root(self) -> Path:
        return self._root

    def safe_path(self, rel: str, message: str = 'Invalid path') -> Path:
        try:
            return Path(resolve(str(self._root), rel))
        except ConfinementError:
            raise ConfinementError(message) from None

    def relative(self, target: Path) -> str:
        rel = target.relative_to(self._root).as_posix()
        return '' if rel == '.' else rel

    def list_dir(self, rel: str) -> list[FileEntry]:
        target = self.safe_path(rel)

        items: list[FileEntry] = []
        for child in target.iterdir():
            try:
                st = child.lstat()
            except OSError:
                # vanished between listing and stat
                continue
            items.append(
                FileEntry(
                    name=child.name,
                    path=self.relative(child),
                    size=st.st_size,
                    is_dir=stat.S_ISDIR(st.st_mode),
                    mod_time=int(st.st_mtime),
                )
            )
        return items

    def mkdir(self, rel: str, name: str) -> str:
        target = self.safe_path(os.path.join(rel, name.lstrip(_SEPARATORS)))
        target.mkdir(parents=True, exist_ok=True)
        logger.info('Created directory %s', self.relative(target) or '/')
        return self.relative(target)

    def rename(self, rel: str, new_name: str) -> str:
        if not new_name:
            raise ParameterError('Missing new name')
        source = self.safe_path(rel)
        # the root itself has no sibling inside the root, so it fails here
        parent = os.path.relpath(source.parent, self._root)
        target = self.safe_path(os.path.join(parent, new_name.lstrip(_SEPARATORS)), message='Invalid new name')
        source.rename(target)
        logger.info('Renamed %s to %s', self.relative(source), self.relative(target))
        return self.relative(target)

    def read_text(self, rel: str) -> str:
        target = self.safe_path(rel)
        data = target.read_bytes()
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise NotTextError('File is not valid UTF-8 text') from exc

    def save_text(self, rel: str, content: str) -> str:
        target = self.safe_path(rel)
        if target == self._root:
            raise ParameterError('Missing path parameter')
        _atomic_write_text(target, content)
        logger.info('Saved %s (%d chars)', self.relative(target), len(content))
        return self.relative(target)

    def upload(self, rel_dir: str, parts: list[UploadPart], limit: int = 0) -> list[str]:
        if not parts:
            raise ParameterError('No files uploaded')
        self.safe_path(rel_dir)

        budget = _ByteBudget(limit)
        stored: list[str] = []
        for part in parts:
            rel = self.placement.place(rel_dir, part.filename)
            target = self.safe_path(rel)
            target.parent.mkdir(parents=True, exist_ok=True)
            try:
                with target.open('wb') as f:
                    while chunk := part.stream.read(_CHUNK_SIZE):
                        budget.consume(len(chunk))
                        f.write(chunk)
                    f.flush()
                    os.fsync(f.fileno())
            except UploadTooLargeError:
                target.unlink(missing_ok=True)
                raise
            logger.info('Uploaded %s', rel)
            stored.append(rel)
        return stored

    async def put_stream(self, rel: str, chunks: AsyncIterable[bytes], limit: int = 0) -> str:
        if not rel:
            raise ParameterError('Missing path parameter')
        target = self.safe_path(rel)
        if target == self._root:
            raise ParameterError('Missing path parameter')
        target.parent.mkdir(parents=True, exist_ok=True)

        budget = _ByteBudget(limit)
        try:
            with target.open('wb') as f:
                async for chunk in chunks:
                    budget.consume(len(chunk))
                    f.write(chunk)
        except UploadTooLargeError:
            target.unlink(missing_ok=True)
            raise
        logger.info('Stored %s (%d bytes)', self.relative(target), budget.used)
        return rel


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = _NEW_FILE_MODE

    fd, tmp_path = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8', newline='') as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        _fsync_dir(path.parent)
    except Exception:
        Path(tmp_path).unlink(missing_ok=True)
        raise


def _fsync_dir(directory: Path) -> None:
    if os.name != 'posix':
        return
    dir_fd = os.open(str(directory), os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
