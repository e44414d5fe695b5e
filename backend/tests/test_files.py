import os
import pytest
from app import services
from app.errors import NotFoundError, PathEscapeError, ValidationError


def test_serves_file_with_mime_type_and_cache_header(client, upload_dir):
    (upload_dir / 'os-notes.pdf').write_bytes(b'%PDF-1.4 demo')
    r = client.get('/files/os-notes.pdf')
    assert r.status_code == 200
    assert r.content == b'%PDF-1.4 demo'
    assert r.headers['content-type'] == 'application/pdf'
    assert 'max-age=31536000' in r.headers['cache-control']


def test_unknown_extension_falls_back_to_octet_stream(client, upload_dir):
    (upload_dir / 'blob.bin').write_bytes(b'\x00\x01')
    r = client.get('/files/blob.bin')
    assert r.status_code == 200
    assert r.headers['content-type'] == 'application/octet-stream'


def test_missing_file_is_404(client, upload_dir):
    r = client.get('/files/nope.pdf')
    assert r.status_code == 404
    assert r.json() == {'success': False, 'message': 'File not found'}


def test_blank_filename_is_400(client, upload_dir):
    r = client.get('/files/%20')
    assert r.status_code == 400
    assert r.json()['message'] == 'Filename is required'


def test_encoded_traversal_is_rejected(client, upload_dir):
    r = client.get('/files/..%2F..%2Fetc%2Fpasswd')
    assert r.status_code == 400
    assert r.json()['success'] is False


@pytest.mark.parametrize('name', ['../../etc/passwd', '..\\..\\windows\\win.ini', 'a/../../secret.txt', '..'])
def test_traversal_segments_raise_path_escape(upload_dir, name):
    storage = services.DocumentStorage(upload_dir)
    with pytest.raises(PathEscapeError):
        storage.resolve(name)


def test_directory_components_are_stripped_to_basename(upload_dir):
    (upload_dir / 'doc.pdf').write_bytes(b'x')
    storage = services.DocumentStorage(upload_dir)
    assert storage.resolve('nested/dir/doc.pdf') == (upload_dir / 'doc.pdf').resolve()


def test_symlink_leaving_storage_root_is_rejected(upload_dir, tmp_path):
    outside = tmp_path / 'outside.txt'
    outside.write_text('secret')
    os.symlink(outside, upload_dir / 'link.txt')
    storage = services.DocumentStorage(upload_dir)
    with pytest.raises(PathEscapeError):
        storage.resolve('link.txt')


def test_missing_and_blank_names(upload_dir):
    storage = services.DocumentStorage(upload_dir)
    with pytest.raises(NotFoundError):
        storage.resolve('absent.docx')
    with pytest.raises(ValidationError):
        storage.resolve('')


def test_media_type_table():
    from pathlib import Path
    assert services.DocumentStorage.media_type_for(Path('a.DOCX')).startswith('application/vnd.openxmlformats')
    assert services.DocumentStorage.media_type_for(Path('a.jpeg')) == 'image/jpeg'
    assert services.DocumentStorage.media_type_for(Path('a')) == 'application/octet-stream'


def test_nul_byte_in_name_is_rejected(client, upload_dir):
    r = client.get('/files/a%00b.pdf')
    assert r.status_code == 400
    assert r.json() == {'success': False, 'message': 'Invalid file path'}
    with pytest.raises(PathEscapeError):
        services.DocumentStorage(upload_dir).resolve('a\x00b.pdf')


def test_name_longer_than_filesystem_limit_is_404(client, upload_dir):
    r = client.get('/files/' + 'a' * 300 + '.pdf')
    assert r.status_code == 404
    assert r.json() == {'success': False, 'message': 'File not found'}


def test_file_route_does_not_open_a_database_session(client, upload_dir):
    from app.database import get_session
    from app.main import app

    def no_session():
        raise AssertionError('file serving must not touch the database')
        yield

    (upload_dir / 'notes.txt').write_text('hello')
    app.dependency_overrides[get_session] = no_session
    try:
        r = client.get('/files/notes.txt')
    finally:
        app.dependency_overrides.pop(get_session, None)
    assert r.status_code == 200
    assert r.text == 'hello'


def test_save_and_remove_stored_document(upload_dir):
    storage = services.DocumentStorage(upload_dir)
    stored = storage.save('..\\My Notes (final).PDF', b'%PDF')
    assert '/' not in stored and '\\' not in stored and ' ' not in stored
    assert stored.endswith('.pdf')
    assert storage.resolve(stored).read_bytes() == b'%PDF'
    storage.remove(stored)
    with pytest.raises(NotFoundError):
        storage.resolve(stored)
    storage.remove(stored)
