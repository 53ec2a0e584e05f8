"""
FacturaE e-invoicing and FACE submission for Spanish public administrations.

This module turns internal invoice records into FacturaE 3.2.2 documents,
signs them with XAdES-EPES and drives their lifecycle in FACE, the
government's single entry point for supplier invoices.

Components:
- constants: FacturaE codes, signing policy and FACE states
- settings: Configurable settings read from Django settings
- records: Input records and the submission sub-record
- repository: Collaborator protocols and an in-memory repository
- document: Structured FacturaE document model
- xml_builder: Document generation (single invoice and batch)
- xml_writer: Deterministic XML serialization
- validator: Structural validation of generated documents
- certificates: Certificate validity and key container loading
- signer: XAdES-EPES signing and structural verification
- soap: FACE request envelopes and response parsing
- client: FACE web service client
- service: Submission gateway (submit, query, cancel)
"""

from .client import FACEClient, FACEClientError, FACEConfig, HTTPStatusError, NetworkError
from .constants import FACEEnvironment, FACEStatus, HistoryAction
from .exceptions import (
    CryptoError,
    FacturaEError,
    IntegrationError,
    NotFoundError,
    StateError,
    ValidationError,
)
from .repository import FACETransport, FacturaERepository, InMemoryRepository, SubmissionPatch
from .service import (
    CancelResult,
    EligibilityResult,
    FACEGateway,
    StatusHistoryEntry,
    StatusQueryResult,
    SubmissionResult,
)
from .settings import FacturaESettings
from .signer import SignatureResult, VerificationResult, XAdESSigner
from .validator import FacturaEValidator, ValidationResult
from .xml_builder import FacturaEBuilder, GenerateOptions, GenerationResult

__all__ = [
    "CancelResult",
    "CryptoError",
    "EligibilityResult",
    "FACEClient",
    "FACEClientError",
    "FACEConfig",
    "FACEEnvironment",
    "FACEGateway",
    "FACEStatus",
    "FACETransport",
    "FacturaEBuilder",
    "FacturaEError",
    "FacturaERepository",
    "FacturaESettings",
    "FacturaEValidator",
    "GenerateOptions",
    "GenerationResult",
    "HTTPStatusError",
    "HistoryAction",
    "InMemoryRepository",
    "IntegrationError",
    "NetworkError",
    "NotFoundError",
    "SignatureResult",
    "StateError",
    "StatusHistoryEntry",
    "StatusQueryResult",
    "SubmissionPatch",
    "SubmissionResult",
    "ValidationError",
    "ValidationResult",
    "VerificationResult",
    "XAdESSigner",
]
