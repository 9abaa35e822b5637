from __future__ import annotations

import io
import os
import stat

import pytest

from lanfiles.errors import ConfinementError, NotTextError, ParameterError, UploadTooLargeError
from lanfiles.services import file_ops
from lanfiles.services.file_ops import FileOps, UploadPart


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


def test_list_dir_of_empty_directory_is_empty(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'empty').mkdir()

    assert ops.list_dir('empty') == []


def test_list_dir_reports_entries_relative_to_root(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'docs').mkdir()
    (tmp_path / 'docs' / 'a.txt').write_bytes(b'hello')
    (tmp_path / 'docs' / 'nested').mkdir()

    entries = {entry.name: entry for entry in ops.list_dir('docs')}

    assert set(entries) == {'a.txt', 'nested'}
    assert entries['a.txt'].path == 'docs/a.txt'
    assert entries['a.txt'].size == 5
    assert entries['a.txt'].is_dir is False
    assert entries['nested'].is_dir is True
    assert entries['a.txt'].mod_time == int((tmp_path / 'docs' / 'a.txt').stat().st_mtime)


def test_list_dir_of_root_uses_bare_names_as_paths(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'top.txt').write_text('x', encoding='utf-8')

    assert [entry.path for entry in ops.list_dir('')] == ['top.txt']


def test_list_dir_skips_broken_symlink_stat_failures(tmp_path, monkeypatch):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'ok.txt').write_text('x', encoding='utf-8')
    (tmp_path / 'gone.txt').write_text('x', encoding='utf-8')

    original_lstat = file_ops.Path.lstat

    def flaky_lstat(self):
        if self.name == 'gone.txt':
            raise FileNotFoundError('vanished')
        return original_lstat(self)

    monkeypatch.setattr(file_ops.Path, 'lstat', flaky_lstat)

    assert [entry.name for entry in ops.list_dir('')] == ['ok.txt']


def test_list_dir_missing_directory_raises_os_error(tmp_path):
    ops = FileOps(str(tmp_path))

    with pytest.raises(FileNotFoundError):
        ops.list_dir('missing')


def test_list_dir_on_file_raises_os_error(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'a.txt').write_text('x', encoding='utf-8')

    with pytest.raises(NotADirectoryError):
        ops.list_dir('a.txt')


def test_mkdir_creates_parent_chain_and_is_idempotent(tmp_path):
    ops = FileOps(str(tmp_path))

    assert ops.mkdir('a/b', 'c') == 'a/b/c'
    assert ops.mkdir('a/b', 'c') == 'a/b/c'

    assert (tmp_path / 'a' / 'b' / 'c').is_dir()


def test_mkdir_fails_when_file_has_that_name(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'taken').write_text('x', encoding='utf-8')

    with pytest.raises(FileExistsError):
        ops.mkdir('', 'taken')


def test_mkdir_rejects_escaping_name(tmp_path):
    ops = FileOps(str(tmp_path))

    with pytest.raises(ConfinementError):
        ops.mkdir('a', '../../outside')


def test_rename_then_list_shows_new_name_only(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'dir').mkdir()
    (tmp_path / 'dir' / 'old.txt').write_text('content', encoding='utf-8')

    assert ops.rename('dir/old.txt', 'new.txt') == 'dir/new.txt'

    names = [entry.name for entry in ops.list_dir('dir')]
    assert names == ['new.txt']
    assert (tmp_path / 'dir' / 'new.txt').read_text(encoding='utf-8') == 'content'


def test_rename_requires_new_name(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'a.txt').write_text('x', encoding='utf-8')

    with pytest.raises(ParameterError):
        ops.rename('a.txt', '')


def test_rename_missing_source_raises_os_error(tmp_path):
    ops = FileOps(str(tmp_path))

    with pytest.raises(FileNotFoundError):
        ops.rename('missing.txt', 'other.txt')


@pytest.mark.parametrize('content', ['', 'hello\n', 'line1\r\nline2\r\n', 'ünïcødé ✓ 漢字'])
def test_save_then_read_round_trips_exactly(tmp_path, content):
    ops = FileOps(str(tmp_path))

    ops.save_text('notes/today.txt', content)

    assert ops.read_text('notes/today.txt') == content


def test_save_overwrites_existing_content(tmp_path):
    ops = FileOps(str(tmp_path))
    target = tmp_path / 'a.txt'
    target.write_text('a much longer original body', encoding='utf-8')

    ops.save_text('a.txt', 'short')

    assert target.read_text(encoding='utf-8') == 'short'


@pytest.mark.skipif(os.name != 'posix', reason='permission bits are POSIX only')
def test_save_preserves_mode_and_uses_0644_for_new_files(tmp_path):
    ops = FileOps(str(tmp_path))
    existing = tmp_path / 'script.sh'
    existing.write_text('echo hi\n', encoding='utf-8')
    existing.chmod(0o755)

    ops.save_text('script.sh', 'echo bye\n')
    ops.save_text('fresh.txt', 'x')

    assert stat.S_IMODE(existing.stat().st_mode) == 0o755
    assert stat.S_IMODE((tmp_path / 'fresh.txt').stat().st_mode) == 0o644


def test_save_leaves_no_temp_files_behind(tmp_path):
    ops = FileOps(str(tmp_path))

    ops.save_text('a.txt', 'value')

    assert sorted(p.name for p in tmp_path.iterdir()) == ['a.txt']


def test_save_fsyncs_file_and_parent_directory(monkeypatch, tmp_path):
    ops = FileOps(str(tmp_path))

    original_fsync = os.fsync
    calls = {'file': 0, 'dir': 0}

    def tracking_fsync(fd: int):
        mode = os.fstat(fd).st_mode
        if stat.S_ISDIR(mode):
            calls['dir'] += 1
        else:
            calls['file'] += 1
        return original_fsync(fd)

    monkeypatch.setattr(file_ops.os, 'fsync', tracking_fsync)

    ops.save_text('a.txt', 'value\n')

    assert calls['file'] >= 1
    if os.name == 'posix':
        assert calls['dir'] >= 1


def test_save_to_root_itself_is_rejected(tmp_path):
    ops = FileOps(str(tmp_path))

    with pytest.raises(ParameterError):
        ops.save_text('', 'x')


def test_read_non_utf8_file_raises_not_text(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'blob.bin').write_bytes(b'\xff\xfe\x00\x81')

    with pytest.raises(NotTextError):
        ops.read_text('blob.bin')


def test_read_directory_raises_os_error(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'dir').mkdir()

    with pytest.raises(OSError):
        ops.read_text('dir')


def test_upload_streams_every_part_into_target_directory(tmp_path):
    ops = FileOps(str(tmp_path))
    parts = [UploadPart('a.txt', io.BytesIO(b'alpha')), UploadPart('photo.png', io.BytesIO(b'\x89PNG'))]

    stored = ops.upload('incoming', parts)

    assert stored == ['incoming/a.txt', 'incoming/photo.png']
    assert (tmp_path / 'incoming' / 'a.txt').read_bytes() == b'alpha'
    assert (tmp_path / 'incoming' / 'photo.png').read_bytes() == b'\x89PNG'


def test_upload_to_root_uses_bare_filename(tmp_path):
    ops = FileOps(str(tmp_path))

    assert ops.upload('', [UploadPart('a.txt', io.BytesIO(b'x'))]) == ['a.txt']


def test_upload_without_parts_fails(tmp_path):
    ops = FileOps(str(tmp_path))

    with pytest.raises(ParameterError, match='No files uploaded'):
        ops.upload('', [])


def test_upload_rejects_escaping_directory_before_writing(tmp_path):
    root = tmp_path / 'root'
    root.mkdir()
    ops = FileOps(str(root))

    with pytest.raises(ConfinementError):
        ops.upload('../', [UploadPart('a.txt', io.BytesIO(b'x'))])

    assert not (tmp_path / 'a.txt').exists()


def test_upload_aborts_on_bad_part_and_keeps_earlier_files(tmp_path):
    root = tmp_path / 'root'
    root.mkdir()
    ops = FileOps(str(root))
    parts = [
        UploadPart('first.txt', io.BytesIO(b'1')),
        UploadPart('../../escape.txt', io.BytesIO(b'2')),
        UploadPart('third.txt', io.BytesIO(b'3')),
    ]

    with pytest.raises(ConfinementError):
        ops.upload('sub', parts)

    assert (root / 'sub' / 'first.txt').read_bytes() == b'1'
    assert not (tmp_path / 'escape.txt').exists()
    assert not (root / 'sub' / 'third.txt').exists()


def test_upload_over_limit_removes_partial_file(tmp_path):
    ops = FileOps(str(tmp_path))

    with pytest.raises(UploadTooLargeError):
        ops.upload('', [UploadPart('big.bin', io.BytesIO(b'0123456789'))], limit=4)

    assert not (tmp_path / 'big.bin').exists()


@pytest.mark.asyncio
async def test_put_stream_writes_body_and_creates_parents(tmp_path):
    ops = FileOps(str(tmp_path))

    stored = await ops.put_stream('deep/dir/file.bin', _chunks(b'abc', b'def'))

    assert stored == 'deep/dir/file.bin'
    assert (tmp_path / 'deep' / 'dir' / 'file.bin').read_bytes() == b'abcdef'


@pytest.mark.asyncio
async def test_put_stream_truncates_existing_file(tmp_path):
    ops = FileOps(str(tmp_path))
    (tmp_path / 'f.txt').write_bytes(b'previous longer content')

    await ops.put_stream('f.txt', _chunks(b'new'))

    assert (tmp_path / 'f.txt').read_bytes() == b'new'


@pytest.mark.asyncio
async def test_put_stream_without_path_fails_before_io(tmp_path, monkeypatch):
    ops = FileOps(str(tmp_path))

    def _no_resolve(*_args, **_kwargs):
        raise AssertionError('resolve must not be reached')

    monkeypatch.setattr(file_ops, 'resolve', _no_resolve)

    with pytest.raises(ParameterError, match='Missing path parameter'):
        await ops.put_stream('', _chunks(b'x'))


@pytest.mark.asyncio
async def test_put_stream_rejects_traversal(tmp_path):
    root = tmp_path / 'root'
    root.mkdir()
    ops = FileOps(str(root))

    with pytest.raises(ConfinementError):
        await ops.put_stream('../evil.txt', _chunks(b'x'))

    assert not (tmp_path / 'evil.txt').exists()


@pytest.mark.asyncio
async def test_put_stream_over_limit_removes_partial_file(tmp_path):
    ops = FileOps(str(tmp_path))

    with pytest.raises(UploadTooLargeError):
        await ops.put_stream('big.bin', _chunks(b'0123', b'4567'), limit=6)

    assert not (tmp_path / 'big.bin').exists()
