from .note_requests import (
    AttestRequest,
    EditNoteRequest,
    NewNoteRequest,
    PublicAttestRequest,
    PublicRejectRequest,
    SettingsRequest,
    UploadedFile,
)

__all__ = [
    "AttestRequest",
    "EditNoteRequest",
    "NewNoteRequest",
    "PublicAttestRequest",
    "PublicRejectRequest",
    "SettingsRequest",
    "UploadedFile",
]
