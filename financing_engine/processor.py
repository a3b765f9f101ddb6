"""
Investment Processor - Main Orchestrator

Commits an investor's funds to an opportunity through the versioned record
store. The store has per-document optimistic concurrency only, so the four
writes are not atomic: a stale version aborts the run as a retryable
conflict, and writes that already landed are compensated.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional

from .audit import AuditEvent, AuditSink, safe_emit
from .errors import ConflictError, DependencyError, EngineError, StateError, StoreTimeout, ValidationError
from .models import (
    InvestmentRequest,
    InvestmentTransaction,
    LedgerTransaction,
    OperationResult,
    Opportunity,
    OpportunityStatus,
    ReturnProjection,
    Wallet,
    to_decimal,
)
from .store import INVESTMENTS, OPPORTUNITIES, TRANSACTIONS, WALLETS, DocumentStore
from .validators import InputValidator

logger = logging.getLogger(__name__)

COMPENSATION_ATTEMPTS = 3

CONFLICT_MESSAGE = "The opportunity or wallet changed while processing. Please retry."
DEPENDENCY_MESSAGE = "Investment could not be processed right now. Please try again later."


def _naira(amount: Decimal) -> str:
    return f"₦{amount:,.2f}"


def calculate_returns(amount, return_min, return_max, term_months: int) -> ReturnProjection:
    """
    Projected returns for `amount` given a percentage return range.

    min = amount * return_min / 100, max = amount * return_max / 100,
    avg_monthly = (min + max) / 2 / term_months.
    """
    amount = to_decimal(amount, "amount")
    return_min = to_decimal(return_min, "return_min")
    return_max = to_decimal(return_max, "return_max")
    InputValidator().validate_returns(amount, term_months)

    min_return = amount * return_min / 100
    max_return = amount * return_max / 100
    return ReturnProjection(
        min_return=min_return,
        max_return=max_return,
        avg_monthly=(min_return + max_return) / 2 / term_months,
    )


class InvestmentProcessor:
    """
    Main orchestrator for investment processing.

    Pipeline:
    1. Validate Input
    2. Idempotency Check
    3. Load Opportunity and Wallet
    4. Check Preconditions (no writes happen before this passes)
    5. Versioned Writes: wallet, opportunity, investment, ledger
    6. Compensate earlier writes if a later one fails
    """

    def __init__(
        self,
        store: DocumentStore,
        audit: Optional[AuditSink] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.audit = audit
        self.clock = clock
        self.validator = InputValidator()

    def process(
        self,
        investor_id: str,
        investor_type,
        opportunity_id: str,
        amount,
        idempotency_key: Optional[str] = None,
        today: Optional[date] = None,
    ) -> OperationResult:
        """
        Process an investment. Never raises for engine errors: every failure
        comes back as an OperationResult with its error_kind.
        """
        try:
            request = InvestmentRequest.from_dict({
                "investorId": investor_id,
                "investorType": getattr(investor_type, "value", investor_type),
                "opportunityId": opportunity_id,
                "amount": amount,
                "idempotencyKey": idempotency_key,
            })
            return self.process_request(request, today)
        except ValidationError as e:
            logger.info(f"Investment rejected: {e}")
            return OperationResult.from_error(e)

    def process_request(self, request: InvestmentRequest, today: Optional[date] = None) -> OperationResult:
        try:
            return self._process(request, today)
        except (ValidationError, StateError) as e:
            logger.info(f"Investment rejected for {request.investor_id} on {request.opportunity_id}: {e}")
            return OperationResult.from_error(e)
        except ConflictError as e:
            logger.warning(f"Investment conflict for {request.investor_id} on {request.opportunity_id}: {e}")
            return OperationResult.from_error(e, CONFLICT_MESSAGE)
        except DependencyError as e:
            logger.error(
                f"Store failure processing investment for {request.investor_id} on {request.opportunity_id}: {e}",
                exc_info=True,
            )
            return OperationResult.from_error(e, DEPENDENCY_MESSAGE)

    def _process(self, request: InvestmentRequest, today: Optional[date]) -> OperationResult:
        # Step 1: Validate
        self.validator.validate_investment(request)
        now = self.clock()
        today = today or now.date()
        amount = request.amount

        # Step 2: Idempotency
        key = request.idempotency_key or f"inv_{uuid.uuid4().hex}"
        existing = self._existing_investment(key, request)
        if existing is not None:
            logger.info(f"Investment {key} already processed; returning existing record")
            return OperationResult.ok("Investment already processed", investment_id=existing.id)

        # Step 3: Load
        opportunity_doc = self.store.get(OPPORTUNITIES, request.opportunity_id)
        if opportunity_doc is None:
            raise StateError("Investment opportunity not found")
        opportunity = Opportunity.from_dict(opportunity_doc.data, opportunity_doc.key)
        if opportunity.status != OpportunityStatus.ACTIVE:
            raise StateError("This opportunity is no longer active")

        wallet_doc = self.store.get(WALLETS, request.investor_id)
        if wallet_doc is None:
            raise StateError("Wallet not found. Please deposit funds first.")
        wallet = Wallet.from_dict(wallet_doc.data, wallet_doc.key)

        # Step 4: Preconditions
        if wallet.available_balance < amount:
            raise StateError(f"Insufficient balance. Available: {_naira(wallet.available_balance)}")
        if amount < opportunity.minimum_investment:
            raise StateError(f"Minimum investment is {_naira(opportunity.minimum_investment)}")
        remaining = opportunity.remaining_capacity
        if amount > remaining:
            raise StateError(f"Remaining capacity exceeded: only {_naira(remaining)} remaining to fund")
        if opportunity.campaign_deadline < today:
            raise StateError("Campaign deadline has passed")

        investment = InvestmentTransaction(
            id=key,
            investor_id=request.investor_id,
            investor_type=request.investor_type,
            opportunity_id=opportunity.id,
            amount=amount,
            contract_type=opportunity.contract_type,
            expected_return_min=opportunity.expected_return_min,
            expected_return_max=opportunity.expected_return_max,
            term_months=opportunity.term_months,
            transaction_date=today,
            idempotency_key=key,
            application_id=opportunity.application_id,
            business_id=opportunity.business_id,
            business_name=opportunity.business_name,
        )
        ledger = LedgerTransaction(
            id=f"{request.investor_id}_{key}",
            user_id=request.investor_id,
            type="investment",
            amount=amount,
            reference=key,
            description=f"Investment in {opportunity.business_name or opportunity.id}",
            created_at=now,
            metadata={
                "opportunityId": opportunity.id,
                "businessName": opportunity.business_name,
                "contractType": opportunity.contract_type.value,
                "expectedReturnMin": str(opportunity.expected_return_min),
                "expectedReturnMax": str(opportunity.expected_return_max),
                "termMonths": str(opportunity.term_months),
            },
        )

        # Step 5: Writes
        duplicate = self._commit(
            wallet_doc.version, wallet, opportunity_doc.version, opportunity, investment, ledger, request
        )
        if duplicate is not None:
            return duplicate

        logger.info(f"Investment {key}: {request.investor_id} invested {amount} in {opportunity.id}")
        safe_emit(self.audit, AuditEvent(
            "investment_processed",
            request.investor_id,
            opportunity.id,
            now,
            {"investmentId": key, "amount": str(amount)},
        ))
        return OperationResult.ok(
            f"Successfully invested {_naira(amount)} in {opportunity.business_name or opportunity.id}",
            investment_id=key,
        )

    def _commit(self, wallet_version, wallet, opportunity_version, opportunity, investment, ledger, request):
        """
        Apply the four writes in order. Returns an OperationResult only when a
        concurrent duplicate of the same idempotency key won the race.
        """
        amount = investment.amount
        landed = []
        pending = None
        try:
            pending = "wallet"
            debited = replace(
                wallet,
                available_balance=wallet.available_balance - amount,
                total_balance=wallet.total_balance - amount,
                total_invested=wallet.total_invested + amount,
            )
            self.store.set(WALLETS, wallet.user_id, debited.to_dict(), wallet_version)
            landed.append(pending)

            pending = "opportunity"
            funding = opportunity.current_funding + amount
            funded = replace(
                opportunity,
                current_funding=funding,
                investor_count=opportunity.investor_count + 1,
                status=OpportunityStatus.FUNDED if funding >= opportunity.funding_goal else OpportunityStatus.ACTIVE,
            )
            self.store.set(OPPORTUNITIES, opportunity.id, funded.to_dict(), opportunity_version)
            landed.append(pending)

            pending = "investment"
            self.store.set(INVESTMENTS, investment.id, investment.to_dict())
            landed.append(pending)

            pending = "ledger"
            self.store.set(TRANSACTIONS, ledger.id, ledger.to_dict())
            landed.append(pending)
        except EngineError as e:
            uncertain = pending if isinstance(e, StoreTimeout) else None
            self._compensate(investment, ledger, landed, uncertain)
            if pending == "investment" and isinstance(e, ConflictError):
                existing = self._existing_investment(investment.id, request)
                if existing is not None:
                    return OperationResult.ok("Investment already processed", investment_id=existing.id)
            raise
        return None

    def _existing_investment(self, key: str, request: InvestmentRequest) -> Optional[InvestmentTransaction]:
        doc = self.store.get(INVESTMENTS, key)
        if doc is None:
            return None
        existing = InvestmentTransaction.from_dict(doc.data, doc.key)
        if (existing.investor_id, existing.opportunity_id, existing.amount) != (
            request.investor_id,
            request.opportunity_id,
            request.amount,
        ):
            raise ValidationError(f"Idempotency key {key} was already used for a different investment")
        return existing

    # -------------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------------

    def _compensate(self, investment, ledger, landed: list, uncertain: Optional[str]) -> None:
        """
        Undo the writes that landed, newest first. A write that timed out has an
        unknown outcome; those that cannot be undone safely are reported for
        manual reconciliation.
        """
        if not landed and uncertain is None:
            return

        failures = []

        if uncertain == "ledger":
            failures += self._attempt("ledger reversal", self._write_reversal, ledger)
        if "investment" in landed or uncertain == "investment":
            failures += self._attempt("investment record", self._remove_investment, investment)
        if "opportunity" in landed:
            failures += self._attempt("opportunity rollback", self._rollback_opportunity, investment)
        elif uncertain == "opportunity":
            failures.append("opportunity write outcome unknown")
        if "wallet" in landed:
            failures += self._attempt("wallet re-credit", self._recredit_wallet, investment)
        elif uncertain == "wallet":
            failures.append("wallet write outcome unknown")

        if failures:
            logger.error(
                f"RECONCILIATION REQUIRED for investment {investment.id}: investor={investment.investor_id} "
                f"opportunity={investment.opportunity_id} amount={investment.amount} "
                f"landed={landed} uncertain={uncertain} failed={failures}"
            )
        else:
            logger.warning(f"Compensated partial investment {investment.id}: undid {', '.join(landed)}")

    @staticmethod
    def _attempt(label: str, action, *args) -> list:
        try:
            action(*args)
            return []
        except EngineError as e:
            logger.error(f"Compensation step '{label}' failed: {e}", exc_info=True)
            return [label]

    def _rewrite(self, collection: str, key: str, mutate) -> None:
        """Fresh read-modify-write under the version token, retried on conflict."""
        for attempt in range(1, COMPENSATION_ATTEMPTS + 1):
            doc = self.store.get(collection, key)
            if doc is None:
                raise StateError(f"{collection}/{key} no longer exists")
            try:
                self.store.set(collection, key, mutate(doc.data, doc.key), doc.version)
                return
            except ConflictError:
                logger.warning(f"Compensation write to {collection}/{key} conflicted (attempt {attempt})")
        raise ConflictError(f"{collection}/{key} kept changing during compensation")

    def _recredit_wallet(self, investment: InvestmentTransaction) -> None:
        def mutate(data, key):
            wallet = Wallet.from_dict(data, key)
            wallet.available_balance += investment.amount
            wallet.total_balance += investment.amount
            wallet.total_invested -= investment.amount
            return wallet.to_dict()

        self._rewrite(WALLETS, investment.investor_id, mutate)

    def _rollback_opportunity(self, investment: InvestmentTransaction) -> None:
        def mutate(data, key):
            opportunity = Opportunity.from_dict(data, key)
            opportunity.current_funding -= investment.amount
            opportunity.investor_count = max(0, opportunity.investor_count - 1)
            if opportunity.status == OpportunityStatus.FUNDED and opportunity.current_funding < opportunity.funding_goal:
                opportunity.status = OpportunityStatus.ACTIVE
            return opportunity.to_dict()

        self._rewrite(OPPORTUNITIES, investment.opportunity_id, mutate)

    def _remove_investment(self, investment: InvestmentTransaction) -> None:
        doc = self.store.get(INVESTMENTS, investment.id)
        if doc is None or doc.data.get("investorId") != investment.investor_id:
            return
        self.store.delete(INVESTMENTS, investment.id, doc.version)

    def _write_reversal(self, ledger: LedgerTransaction) -> None:
        reversal = replace(
            ledger,
            id=f"{ledger.id}_reversal",
            type="investment_reversal",
            description=f"Reversal: {ledger.description}",
            created_at=self.clock(),
        )
        self.store.set(TRANSACTIONS, reversal.id, reversal.to_dict())
