"""
FACE submission gateway.

This service orchestrates the FACE lifecycle of an invoice:
- Document generation and XAdES signing
- Submission through the transport collaborator
- Status queries against the FACE state machine
- Cancellation of registered invoices

Every mutation of the submission sub-record is a single compare-and-swap
commit at the end of an operation, so a failure in any earlier stage
leaves the stored state untouched.

Usage:
    from apps.billing.facturae import FACEGateway

    gateway = FACEGateway(repository)
    result = gateway.submit(invoice_id, certificate_id)
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

from django.utils import timezone

from .client import FACEClient
from .constants import FACEEnvironment, FACEStatus, HistoryAction
from .exceptions import (
    ERROR_TYPES,
    CryptoError,
    FacturaEError,
    IntegrationError,
    NotFoundError,
    StateError,
    ValidationError,
)
from .records import HistoryEntry, InvoiceRecord
from .repository import FACETransport, FacturaERepository, SubmissionPatch
from .settings import FacturaESettings
from .signer import XAdESSigner
from .xml_builder import FacturaEBuilder

logger = logging.getLogger(__name__)


def _raise_failed(error_type: str, message: str, errors: list[str]) -> None:
    """Re-raise a failed stage result with its original error class."""
    raise ERROR_TYPES.get(error_type, FacturaEError)(message, errors)


@dataclass
class SubmissionResult:
    """Result of a FACE submission."""

    success: bool
    registration_number: str = ""
    state: FACEStatus | None = None
    file_name: str = ""
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error_type: str = ""

    @classmethod
    def ok(
        cls, registration_number: str, state: FACEStatus, file_name: str, warnings: list[str]
    ) -> SubmissionResult:
        return cls(
            success=True,
            registration_number=registration_number,
            state=state,
            file_name=file_name,
            warnings=warnings,
        )

    @classmethod
    def error(cls, exc: FacturaEError) -> SubmissionResult:
        return cls(success=False, errors=exc.errors, error_type=exc.error_type)


@dataclass
class StatusQueryResult:
    """Result of a FACE status query."""

    success: bool
    state: FACEStatus | None = None
    description: str = ""
    reason: str = ""
    changed: bool = False
    cancellation_code: str = ""
    cancellation_description: str = ""
    cancellation_reason: str = ""
    errors: list[str] = field(default_factory=list)
    error_type: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.state is not None and self.state.is_terminal

    @classmethod
    def error(cls, exc: FacturaEError) -> StatusQueryResult:
        return cls(success=False, errors=exc.errors, error_type=exc.error_type)


@dataclass
class CancelResult:
    success: bool
    state: FACEStatus | None = None
    errors: list[str] = field(default_factory=list)
    error_type: str = ""

    @classmethod
    def ok(cls) -> CancelResult:
        return cls(success=True, state=FACEStatus.CANCELLED)

    @classmethod
    def error(cls, exc: FacturaEError) -> CancelResult:
        return cls(success=False, errors=exc.errors, error_type=exc.error_type)


@dataclass
class EligibilityResult:
    """Advisory pre-flight check; ``missing`` lists what blocks submission."""

    eligible: bool
    missing: list[str] = field(default_factory=list)


@dataclass
class StatusHistoryEntry:
    date: datetime
    state: str
    reason: str = ""


class FACEGateway:
    """
    High-level service for FACE operations.

    Collaborators are passed in: the repository for records and the
    submission sub-record, and a transport factory that returns a FACE
    transport for a given environment.
    """

    def __init__(
        self,
        repository: FacturaERepository,
        builder: FacturaEBuilder | None = None,
        signer: XAdESSigner | None = None,
        transport_factory: Callable[[FACEEnvironment], FACETransport] = FACEClient.for_environment,
        facturae_settings: FacturaESettings | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.repository = repository
        self.settings = facturae_settings or FacturaESettings()
        self.clock = clock
        self.signer = signer or XAdESSigner(repository, self.settings, clock)
        self.builder = builder or FacturaEBuilder(repository, self.signer, self.settings, clock)
        self.transport_factory = transport_factory

    # --- Main Workflow Methods ---

    def submit(
        self, invoice_id: str, certificate_id: str, environment: FACEEnvironment | str | None = None
    ) -> SubmissionResult:
        """
        Generate, sign and submit an invoice to FACE.

        This method:
        1. Refuses invoices that already carry a registration number
        2. Generates the FacturaE document
        3. Signs it with XAdES-EPES
        4. Sends it through the transport
        5. Commits registration number, state and history in one
           conditional update that only succeeds if no other submission
           was recorded in the meantime

        Args:
            invoice_id: Invoice to submit
            certificate_id: Signing certificate
            environment: FACE environment; defaults to FACE_ENVIRONMENT

        Returns:
            SubmissionResult with the registration number, or the errors of
            the stage that failed. Nothing is persisted on failure.
        """
        try:
            env = FACEEnvironment(environment) if environment else self.settings.environment
            invoice = self._load_invoice(invoice_id)
            if invoice.submission.is_submitted:
                raise StateError(
                    f"Invoice {invoice.code} already submitted to FACE "
                    f"({invoice.submission.registration_number})"
                )

            generated = self.builder.generate(invoice_id)
            if not generated.success:
                _raise_failed(generated.error_type, f"Invoice {invoice.code} could not be generated", generated.errors)

            signed = self.signer.sign(generated.xml, certificate_id)
            if not signed.success:
                _raise_failed(signed.error_type, f"Invoice {invoice.code} could not be signed", signed.errors)

            email = self.settings.notification_email
            with self._transport(env) as transport:
                response = transport.submit_invoice(signed.signed_xml, generated.file_name, email)
            if not response.is_success:
                raise IntegrationError(
                    f"FACE rejected invoice {invoice.code}: [{response.result.code}] {response.result.description}"
                )

            registration_number = response.registration_number
            now = self.clock()
            patch = SubmissionPatch(
                registration_number=registration_number,
                state=FACEStatus.REGISTERED_ERS,
                environment=env,
                submitted_at=now,
                append_history=[
                    HistoryEntry(
                        action=HistoryAction.SUBMITTED,
                        timestamp=now,
                        code=FACEStatus.REGISTERED_ERS.value,
                        detail=registration_number,
                    )
                ],
            )
            if not self.repository.compare_and_set_submission(invoice_id, None, patch):
                # FACE registered the document but another submission won the commit
                logger.error(
                    f"Invoice {invoice.code} was submitted concurrently; "
                    f"FACE registration {registration_number} was not recorded"
                )
                raise StateError(f"Invoice {invoice.code} was submitted concurrently ({registration_number})")
        except FacturaEError as e:
            logger.error(f"FACE submission failed for invoice {invoice_id}: {e.errors}")
            return SubmissionResult.error(e)
        except Exception:
            logger.exception(f"Unexpected error submitting invoice {invoice_id} to FACE")
            raise

        logger.info(f"Invoice {invoice.code} registered in FACE ({env}): {registration_number}")
        return SubmissionResult.ok(
            registration_number, FACEStatus.REGISTERED_ERS, generated.file_name, generated.warnings + signed.warnings
        )

    def query_status(self, invoice_id: str) -> StatusQueryResult:
        """
        Query FACE for the current state of a submitted invoice.

        The returned state and the query time are persisted. A ``queried``
        history entry is appended only when the state changes. Out-of-order
        states are stored as reported, with a warning.
        """
        try:
            invoice = self._load_invoice(invoice_id)
            submission = invoice.submission
            if not submission.is_submitted:
                raise StateError(f"Invoice {invoice.code} has not been submitted to FACE")

            env = submission.environment or self.settings.environment
            with self._transport(env) as transport:
                response = transport.query_invoice_status(submission.registration_number)
            if not response.is_success:
                raise IntegrationError(
                    f"FACE status query failed for {submission.registration_number}: "
                    f"[{response.result.code}] {response.result.description}"
                )

            try:
                state = FACEStatus(response.state_code)
            except ValueError as e:
                raise IntegrationError(f"FACE returned unknown state {response.state_code!r}") from e

            previous = submission.state
            changed = state != previous
            if changed and previous is not None and not previous.can_transition_to(state):
                logger.warning(f"FACE reported {previous} -> {state} for invoice {invoice.code}, storing as reported")

            now = self.clock()
            patch = SubmissionPatch(state=state, last_queried_at=now)
            if changed:
                patch.append_history.append(
                    HistoryEntry(
                        action=HistoryAction.QUERIED,
                        timestamp=now,
                        code=state.value,
                        reason=response.state_reason,
                    )
                )
            if not self.repository.compare_and_set_submission(invoice_id, previous, patch):
                raise StateError(f"Submission state of invoice {invoice.code} changed during the query")
        except FacturaEError as e:
            logger.error(f"FACE status query failed for invoice {invoice_id}: {e.errors}")
            return StatusQueryResult.error(e)
        except Exception:
            logger.exception(f"Unexpected error querying FACE status of invoice {invoice_id}")
            raise

        if changed:
            logger.info(f"Invoice {invoice.code} FACE state changed: {previous} -> {state}")
        return StatusQueryResult(
            success=True,
            state=state,
            description=response.state_description or state.description,
            reason=response.state_reason,
            changed=changed,
            cancellation_code=response.cancellation_code,
            cancellation_description=response.cancellation_description,
            cancellation_reason=response.cancellation_reason,
        )

    def cancel(self, invoice_id: str, reason: str) -> CancelResult:
        """
        Request cancellation of a registered invoice.

        Paid, executed and already cancelled invoices are refused with a
        ``StateError``. FACE is asked first; the new state is committed only
        if the stored state is still the one read before the request.
        """
        try:
            invoice = self._load_invoice(invoice_id)
            submission = invoice.submission
            if not submission.is_submitted:
                raise StateError(f"Invoice {invoice.code} has not been submitted to FACE")
            current = submission.state
            if current in FACEStatus.irreversible_statuses():
                raise StateError(f"Invoice {invoice.code} cannot be cancelled in state {current.description}")

            env = submission.environment or self.settings.environment
            with self._transport(env) as transport:
                response = transport.cancel_invoice(submission.registration_number, reason)
            if not response.is_success:
                raise IntegrationError(
                    f"FACE refused cancellation of {submission.registration_number}: "
                    f"[{response.result.code}] {response.result.description}"
                )

            patch = SubmissionPatch(
                state=FACEStatus.CANCELLED,
                append_history=[
                    HistoryEntry(
                        action=HistoryAction.CANCELLED,
                        timestamp=self.clock(),
                        code=FACEStatus.CANCELLED.value,
                        detail=reason,
                    )
                ],
            )
            if not self.repository.compare_and_set_submission(invoice_id, current, patch):
                raise StateError(f"Submission state of invoice {invoice.code} changed during cancellation")
        except FacturaEError as e:
            logger.error(f"FACE cancellation failed for invoice {invoice_id}: {e.errors}")
            return CancelResult.error(e)
        except Exception:
            logger.exception(f"Unexpected error cancelling invoice {invoice_id} in FACE")
            raise

        logger.info(f"Invoice {invoice.code} cancelled in FACE: {reason}")
        return CancelResult.ok()

    # --- Read-only views ---

    def check_submission_eligibility(self, invoice_id: str) -> EligibilityResult:
        """Pre-flight check. Advisory only: ``submit`` re-checks atomically."""
        missing: list[str] = []

        invoice = self.repository.find_invoice(invoice_id)
        if invoice is None:
            return EligibilityResult(eligible=False, missing=[f"Invoice {invoice_id} not found"])

        client = self.repository.find_client(invoice.client_id)
        if client is None:
            missing.append("Client not found")
        elif not client.einvoicing.enabled:
            missing.append("Client does not have electronic invoicing enabled")
        else:
            missing.extend(f"DIR3 {name} code" for name in client.einvoicing.missing_codes())

        if self.repository.find_company() is None:
            missing.append("Company data")
        if not self.signer.available_certificates():
            missing.append("Valid signing certificate")
        if invoice.submission.is_submitted:
            missing.append(f"Invoice already submitted ({invoice.submission.registration_number})")

        return EligibilityResult(eligible=not missing, missing=missing)

    def status_history(self, invoice_id: str) -> list[StatusHistoryEntry]:
        """Submission and state-change entries of the invoice's history log."""
        invoice = self.repository.find_invoice(invoice_id)
        if invoice is None:
            return []
        return [
            StatusHistoryEntry(date=entry.timestamp, state=entry.code, reason=entry.reason)
            for entry in invoice.submission.history
            if entry.action in (HistoryAction.SUBMITTED, HistoryAction.QUERIED)
        ]

    @staticmethod
    def status_description(state: FACEStatus | str) -> str:
        try:
            return FACEStatus(state).description
        except ValueError:
            return f"Unknown state {state}"

    # --- Helpers ---

    def _load_invoice(self, invoice_id: str) -> InvoiceRecord:
        invoice = self.repository.find_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    @contextmanager
    def _transport(self, environment: FACEEnvironment) -> Iterator[FACETransport]:
        transport = self.transport_factory(environment)
        try:
            yield transport
        finally:
            close = getattr(transport, "close", None)
            if close is not None:
                close()
