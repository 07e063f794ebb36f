import boto3
import pytest

from schoolhub.core.exceptions import NotFoundError, StorageError
from schoolhub.services.storage import (
    LocalStorage,
    S3Storage,
    access_url,
    remove_stored_file,
)


@pytest.fixture
def outside(tmp_path):
    victim = tmp_path / 'victim.txt'
    victim.write_text('keep')
    return victim


@pytest.fixture
def local(tmp_path):
    return LocalStorage(str(tmp_path / 'uploads'), '/uploads')


def test_save_and_delete_inside_root(local):
    url = local.save('invoices/a.pdf', b'%PDF')

    assert url == '/uploads/invoices/a.pdf'
    assert (local.root / 'invoices/a.pdf').read_bytes() == b'%PDF'

    local.delete(local.key_from_url(url))
    assert not (local.root / 'invoices/a.pdf').exists()


def test_delete_refuses_keys_outside_root(local, outside):
    with pytest.raises(StorageError):
        local.delete('../victim.txt')

    assert outside.exists()


def test_save_refuses_keys_outside_root(local, tmp_path):
    with pytest.raises(StorageError):
        local.save('../../escape.pdf', b'x')

    assert not (tmp_path.parent / 'escape.pdf').exists()


def test_remove_stored_file_never_leaves_root(local, outside):
    remove_stored_file(local, '/uploads/../victim.txt')

    assert outside.exists()


def test_access_url_local(local):
    url = local.save('documents/passport.pdf', b'%PDF')

    assert access_url(local, url) == url


def test_access_url_unknown_location(local):
    with pytest.raises(NotFoundError):
        access_url(local, 'https://elsewhere.example.com/file.pdf')
    with pytest.raises(NotFoundError):
        access_url(local, None)


def test_s3_access_url_is_presigned():
    client = boto3.client(
        's3',
        region_name='eu-west-1',
        aws_access_key_id='testing',
        aws_secret_access_key='testing',
    )
    storage = S3Storage('school-files', 'eu-west-1', client=client)
    stored = f'{storage.base_url}/invoices/a.pdf'

    url = access_url(storage, stored)

    assert 'school-files' in url
    assert 'invoices/a.pdf' in url
    assert 'Signature' in url
