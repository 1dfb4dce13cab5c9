"""
Armazenamento dos arquivos anexados às notas (original, relatório, atesto).

O contrato BlobStorage permite trocar o backend; a implementação padrão grava
no sistema de arquivos local com um JSON de metadados ao lado de cada blob.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import asdict, dataclass
from typing import BinaryIO, Optional, Tuple

from flask import current_app
from werkzeug.utils import secure_filename

from atesto.services import settings_service

logger = logging.getLogger(__name__)

EXTENSION_KEY = "atesto.storage"
_INDEX_DIR = "_index"


class StorageError(Exception):
    pass


@dataclass
class StoredBlob:
    id: str
    url: str
    name: str
    mime_type: str
    size: int

    def to_dict(self) -> dict:
        return asdict(self)


def blob_url(blob_id: str) -> str:
    return f"/files/{blob_id}"


class BlobStorage:
    def upload(self, name: str, mime_type: str, stream: BinaryIO, folder: str) -> StoredBlob:
        raise NotImplementedError

    def open(self, blob_id: str) -> Tuple[BinaryIO, StoredBlob]:
        raise NotImplementedError

    def delete(self, blob_id: str) -> None:
        raise NotImplementedError


class LocalBlobStorage(BlobStorage):
    def __init__(self, root: Optional[str] = None):
        self._root = root

    @property
    def root(self) -> str:
        if self._root:
            os.makedirs(self._root, exist_ok=True)
            return self._root
        return settings_service.get_blob_storage_path()

    def _index_path(self, blob_id: str) -> str:
        # Ids são hex; qualquer outro valor não pode apontar para fora da raiz
        if not blob_id or not all(c in "0123456789abcdef" for c in blob_id):
            raise StorageError("Identificador de arquivo inválido.")
        return os.path.join(self.root, _INDEX_DIR, f"{blob_id}.json")

    def upload(self, name: str, mime_type: str, stream: BinaryIO, folder: str) -> StoredBlob:
        blob_id = uuid.uuid4().hex
        safe_folder = secure_filename(folder or "") or "misc"
        safe_name = secure_filename(name or "") or "arquivo"
        target_dir = os.path.join(self.root, safe_folder)
        stored_name = f"{blob_id}_{safe_name}"
        try:
            os.makedirs(target_dir, exist_ok=True)
            os.makedirs(os.path.join(self.root, _INDEX_DIR), exist_ok=True)
            data = stream.read()
            with open(os.path.join(target_dir, stored_name), "wb") as fh:
                fh.write(data)
            blob = StoredBlob(
                id=blob_id,
                url=blob_url(blob_id),
                name=name or safe_name,
                mime_type=mime_type,
                size=len(data),
            )
            with open(self._index_path(blob_id), "w", encoding="utf-8") as fh:
                json.dump(
                    {**blob.to_dict(), "path": os.path.join(safe_folder, stored_name)},
                    fh,
                    ensure_ascii=False,
                )
        except OSError as exc:
            logger.error("Falha ao gravar arquivo %s: %s", name, exc)
            raise StorageError("Falha ao salvar o arquivo.") from exc
        return blob

    def _read_index(self, blob_id: str) -> dict:
        index_path = self._index_path(blob_id)
        if not os.path.exists(index_path):
            raise StorageError("Arquivo não encontrado.")
        try:
            with open(index_path, "r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as exc:
            raise StorageError("Metadados do arquivo corrompidos.") from exc

    def open(self, blob_id: str) -> Tuple[BinaryIO, StoredBlob]:
        meta = self._read_index(blob_id)
        path = os.path.join(self.root, meta["path"])
        try:
            stream = open(path, "rb")
        except OSError as exc:
            raise StorageError("Arquivo não encontrado.") from exc
        blob = StoredBlob(
            id=meta["id"],
            url=meta["url"],
            name=meta["name"],
            mime_type=meta["mime_type"],
            size=meta["size"],
        )
        return stream, blob

    def delete(self, blob_id: str) -> None:
        try:
            meta = self._read_index(blob_id)
        except StorageError:
            return
        for path in (os.path.join(self.root, meta["path"]), self._index_path(blob_id)):
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise StorageError("Falha ao remover o arquivo.") from exc


def get_storage() -> BlobStorage:
    return current_app.extensions[EXTENSION_KEY]


def delete_quietly(blob_ids) -> None:
    """Remove blobs sem propagar erros (limpeza após falha ou exclusão definitiva)."""
    storage = get_storage()
    for blob_id in blob_ids:
        if not blob_id:
            continue
        try:
            storage.delete(blob_id)
        except StorageError as exc:
            logger.warning("Não foi possível remover o arquivo %s: %s", blob_id, exc)
