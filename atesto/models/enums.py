"""
Enumerações de domínio compartilhadas por modelos, serviços e API.
"""

from enum import Enum


class Role(str, Enum):
    OWNER = "OWNER"
    MANAGER = "MANAGER"
    USER = "USER"


class InvoiceType(str, Enum):
    SERVICE = "SERVICE"
    PRODUCT = "PRODUCT"


class NoteStatus(str, Enum):
    """Status persistidos. EXPIRADA existe apenas como status de exibição."""

    PENDENTE = "PENDENTE"
    ATESTADA = "ATESTADA"
    REJEITADA = "REJEITADA"
    EXPIRADA = "EXPIRADA"


class HistoryType(str, Enum):
    CREATED = "CREATED"
    ATTESTED = "ATTESTED"
    REVERTED = "REVERTED"
    REJECTED = "REJECTED"
    EDITED = "EDITED"
    DELETED = "DELETED"
    RESTORED = "RESTORED"
    EXPIRED = "EXPIRED"


class EmailTemplateType(str, Enum):
    ATTESTATION_REQUEST = "ATTESTATION_REQUEST"
    ATTESTATION_REMINDER = "ATTESTATION_REMINDER"
    ATTESTATION_CONFIRMATION = "ATTESTATION_CONFIRMATION"
    ATTESTATION_CONFIRMATION_COORDINATOR = "ATTESTATION_CONFIRMATION_COORDINATOR"
    NOTE_EXPIRED = "NOTE_EXPIRED"
    NOTE_REJECTED = "NOTE_REJECTED"
