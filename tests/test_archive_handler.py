import io
import os
import stat
import tarfile
import zipfile

import pytest

from plugin_installer import ArchiveHandler
from plugin_installer.errors import UnsafeArchiveEntry

from conftest import make_tgz, make_zip


def _save(tmp_path, name, data):
    path = tmp_path / name
    path.write_bytes(data)
    return str(path)


def _tgz_with_member(info, data=b''):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode='w:gz') as tf:
        tf.addfile(info, io.BytesIO(data) if data else None)
    return buf.getvalue()


@pytest.fixture
def dest(tmp_path):
    return str(tmp_path / 'out' / 'plugin')


def test_zip_extracts_regular_files(tmp_path, dest):
    archive = _save(tmp_path, 'ok.zip', make_zip({'index.js': 'x', 'lib/util.js': 'y', 'assets/': ''}))

    written = ArchiveHandler().extract('zip', archive, dest)

    assert sorted(written) == ['index.js', os.path.join('lib', 'util.js')]
    with open(os.path.join(dest, 'lib', 'util.js')) as f:
        assert f.read() == 'y'
    assert os.path.isdir(os.path.join(dest, 'assets'))


def test_tgz_extracts_regular_files(tmp_path, dest):
    archive = _save(tmp_path, 'ok.tgz', make_tgz({'package/index.js': 'x'}))

    ArchiveHandler().extract('tgz', archive, dest)

    assert os.path.isfile(os.path.join(dest, 'package', 'index.js'))


@pytest.mark.parametrize('name', ['../../etc/passwd', '/etc/passwd', 'a/../../b', 'dir\\file.js', './index.js'])
def test_zip_rejects_unsafe_names(tmp_path, dest, name):
    archive = _save(tmp_path, 'bad.zip', make_zip({'index.js': 'x', name: 'boom'}))

    with pytest.raises(UnsafeArchiveEntry) as exc_info:
        ArchiveHandler().extract('zip', archive, dest)

    assert exc_info.value.entry == name
    assert os.listdir(dest) == []
    assert not os.path.exists(tmp_path / 'etc')


@pytest.mark.parametrize('name', ['../../etc/passwd', '/etc/passwd'])
def test_tgz_rejects_unsafe_names(tmp_path, dest, name):
    archive = _save(tmp_path, 'bad.tgz', make_tgz({'index.js': 'x', name: 'boom'}))

    with pytest.raises(UnsafeArchiveEntry):
        ArchiveHandler().extract('tgz', archive, dest)

    assert os.listdir(dest) == []


def test_zip_rejects_symlink(tmp_path, dest):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w') as zf:
        info = zipfile.ZipInfo('link')
        info.external_attr = (stat.S_IFLNK | 0o777) << 16
        zf.writestr(info, '/etc/passwd')
    archive = _save(tmp_path, 'link.zip', buf.getvalue())

    with pytest.raises(UnsafeArchiveEntry):
        ArchiveHandler().extract('zip', archive, dest)

    assert not os.path.lexists(os.path.join(dest, 'link'))


@pytest.mark.parametrize('kind', [tarfile.SYMTYPE, tarfile.LNKTYPE, tarfile.FIFOTYPE, tarfile.CHRTYPE])
def test_tgz_rejects_non_regular_members(tmp_path, dest, kind):
    info = tarfile.TarInfo('special')
    info.type = kind
    info.linkname = '/etc/passwd' if kind in (tarfile.SYMTYPE, tarfile.LNKTYPE) else ''
    archive = _save(tmp_path, 'special.tgz', _tgz_with_member(info))

    with pytest.raises(UnsafeArchiveEntry):
        ArchiveHandler().extract('tgz', archive, dest)

    assert not os.path.lexists(os.path.join(dest, 'special'))


def test_corrupt_archive_is_untrusted(tmp_path, dest):
    archive = _save(tmp_path, 'junk.zip', b'definitely not a zip')

    with pytest.raises(UnsafeArchiveEntry):
        ArchiveHandler().extract('zip', archive, dest)
    with pytest.raises(UnsafeArchiveEntry):
        ArchiveHandler().extract('tgz', archive, dest)


def test_unknown_kind(tmp_path, dest):
    archive = _save(tmp_path, 'ok.zip', make_zip({'index.js': 'x'}))

    with pytest.raises(UnsafeArchiveEntry):
        ArchiveHandler().extract('rar', archive, dest)


@pytest.mark.parametrize('files', [
    {'a': 'file', 'a/b': 'nested'},
    {'a/b': 'nested', 'a': 'file'},
])
def test_conflicting_entries_are_untrusted(tmp_path, dest, files):
    archive = _save(tmp_path, 'clash.zip', make_zip(files))

    with pytest.raises(UnsafeArchiveEntry) as exc_info:
        ArchiveHandler().extract('zip', archive, dest)

    assert exc_info.value.context['archive'] == archive
