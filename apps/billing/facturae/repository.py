"""
Collaborator protocols used by the FacturaE pipeline.

``FacturaERepository`` is the data-access boundary: invoice, client, company
and certificate reads, plus the only write the pipeline performs, the
submission sub-record. ``FACETransport`` is the gateway boundary.

``InMemoryRepository`` is a complete reference implementation used by tests
and by callers that keep records outside a database.
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from .constants import FACEEnvironment, FACEStatus
from .records import (
    CertificateRecord,
    ClientRecord,
    CompanyRecord,
    HistoryEntry,
    InvoiceRecord,
    SubmissionState,
)

if TYPE_CHECKING:
    from .soap import CancelResponse, StatusResponse, SubmitResponse

logger = logging.getLogger(__name__)


@dataclass
class SubmissionPatch:
    """
    Partial update of an invoice's submission sub-record.

    ``None`` fields are left untouched. History entries are appended,
    never replaced.
    """

    registration_number: str | None = None
    state: FACEStatus | None = None
    environment: FACEEnvironment | None = None
    submitted_at: datetime | None = None
    last_queried_at: datetime | None = None
    append_history: list[HistoryEntry] = field(default_factory=list)

    def apply_to(self, submission: SubmissionState) -> None:
        if self.registration_number is not None:
            submission.registration_number = self.registration_number
        if self.state is not None:
            submission.state = self.state
        if self.environment is not None:
            submission.environment = self.environment
        if self.submitted_at is not None:
            submission.submitted_at = self.submitted_at
        if self.last_queried_at is not None:
            submission.last_queried_at = self.last_queried_at
        submission.history.extend(self.append_history)


class FacturaERepository(Protocol):
    def find_invoice(self, invoice_id: str) -> InvoiceRecord | None: ...

    def find_client(self, client_id: str) -> ClientRecord | None: ...

    def find_company(self) -> CompanyRecord | None: ...

    def find_certificate(self, certificate_id: str) -> CertificateRecord | None: ...

    def list_active_certificates(self) -> list[CertificateRecord]: ...

    def update_submission_state(self, invoice_id: str, patch: SubmissionPatch) -> None: ...

    def compare_and_set_submission(
        self, invoice_id: str, expected_state: FACEStatus | None, patch: SubmissionPatch
    ) -> bool:
        """Apply ``patch`` only if the stored state still equals ``expected_state``."""
        ...


class FACETransport(Protocol):
    def submit_invoice(self, signed_document: str, file_name: str, email: str = "") -> SubmitResponse: ...

    def query_invoice_status(self, registration_number: str) -> StatusResponse: ...

    def cancel_invoice(self, registration_number: str, reason: str) -> CancelResponse: ...


class InMemoryRepository:
    """
    Dictionary-backed repository.

    Reads return copies so callers cannot mutate stored records behind the
    repository's back. Submission writes are serialized by a lock, which is
    what makes ``compare_and_set_submission`` atomic.
    """

    def __init__(
        self,
        invoices: list[InvoiceRecord] | None = None,
        clients: list[ClientRecord] | None = None,
        company: CompanyRecord | None = None,
        certificates: list[CertificateRecord] | None = None,
    ):
        self.invoices: dict[str, InvoiceRecord] = {inv.id: inv for inv in invoices or []}
        self.clients: dict[str, ClientRecord] = {client.id: client for client in clients or []}
        self.company = company
        self.certificates: dict[str, CertificateRecord] = {cert.id: cert for cert in certificates or []}
        self._lock = threading.Lock()

    def find_invoice(self, invoice_id: str) -> InvoiceRecord | None:
        with self._lock:
            invoice = self.invoices.get(invoice_id)
            return copy.deepcopy(invoice) if invoice else None

    def find_client(self, client_id: str) -> ClientRecord | None:
        client = self.clients.get(client_id)
        return copy.deepcopy(client) if client else None

    def find_company(self) -> CompanyRecord | None:
        return copy.deepcopy(self.company) if self.company else None

    def find_certificate(self, certificate_id: str) -> CertificateRecord | None:
        return self.certificates.get(certificate_id)

    def list_active_certificates(self) -> list[CertificateRecord]:
        return [cert for cert in self.certificates.values() if cert.is_active]

    def update_submission_state(self, invoice_id: str, patch: SubmissionPatch) -> None:
        with self._lock:
            invoice = self.invoices.get(invoice_id)
            if invoice is None:
                raise KeyError(invoice_id)
            patch.apply_to(invoice.submission)

    def compare_and_set_submission(
        self, invoice_id: str, expected_state: FACEStatus | None, patch: SubmissionPatch
    ) -> bool:
        with self._lock:
            invoice = self.invoices.get(invoice_id)
            if invoice is None:
                raise KeyError(invoice_id)
            if invoice.submission.state != expected_state:
                logger.warning(
                    f"Submission state of invoice {invoice_id} is {invoice.submission.state}, "
                    f"expected {expected_state}; update skipped"
                )
                return False
            patch.apply_to(invoice.submission)
            return True
