# tests/test_storage_service.py
"""
Testes do armazenamento local de arquivos.
"""

import io
import os

import pytest

from atesto.services.storage_service import LocalBlobStorage, StorageError, delete_quietly, get_storage


@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(str(tmp_path / "blobs"))


class TestLocalBlobStorage:
    def test_upload_e_leitura(self, storage, tmp_path):
        blob = storage.upload("Nota Fiscal.pdf", "application/pdf", io.BytesIO(b"%PDF-1.4"), "1234567")

        assert blob.url == f"/files/{blob.id}"
        assert blob.name == "Nota Fiscal.pdf"
        assert blob.size == 8
        assert os.path.isfile(tmp_path / "blobs" / "1234567" / f"{blob.id}_Nota_Fiscal.pdf")

        stream, meta = storage.open(blob.id)
        with stream:
            assert stream.read() == b"%PDF-1.4"
        assert meta.mime_type == "application/pdf"

    def test_pasta_com_caracteres_perigosos(self, storage, tmp_path):
        blob = storage.upload("a.pdf", "application/pdf", io.BytesIO(b"x"), "../../etc")
        assert os.path.isfile(tmp_path / "blobs" / "etc" / f"{blob.id}_a.pdf")

    def test_delete(self, storage):
        blob = storage.upload("a.pdf", "application/pdf", io.BytesIO(b"x"), "p")
        storage.delete(blob.id)
        with pytest.raises(StorageError):
            storage.open(blob.id)
        storage.delete(blob.id)

    @pytest.mark.parametrize("blob_id", ["", "../segredo", "ABC"])
    def test_id_invalido(self, storage, blob_id):
        with pytest.raises(StorageError):
            storage.open(blob_id)

    def test_delete_quietly_ignora_ids_invalidos(self, app):
        blob = get_storage().upload("a.pdf", "application/pdf", io.BytesIO(b"x"), "p")
        delete_quietly([None, "../x", blob.id])
        with pytest.raises(StorageError):
            get_storage().open(blob.id)
