"""
Contract analysis lifecycle controller.

Owns the record state machine around the analysis workflow:

    uploaded → analyzing → analyzed | error
    analyzed | error | pending-review → analyzing (re-analysis)

Every transition is a single atomic store update. Authorization and lookup
failures happen before the record is touched; anything that goes wrong after
the record enters "analyzing" is persisted as "error" and re-raised.
"""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional

from .contract_store import ContractStore
from .identity import Identity, authorize_owner
from ..models.schemas import ContractRecord, ContractStatus
from ..utils.errors import ContractAnalysisError, InvalidTransition, NotFound
from ..utils.functional import analyzed_fields, analyzing_fields, error_fields, utc_now
from ..utils.logging import get_logger

if TYPE_CHECKING:
    from ..workflows.contract_analysis_workflow import AnalysisOutcome, ContractAnalysisWorkflow

logger = get_logger("analysis_service")

STALE_ANALYSIS_MESSAGE = "Analysis interrupted before completion"
UNEXPECTED_ERROR_MESSAGE = "Unexpected error during analysis"

# "pending-review" is set by a manual review flow elsewhere; it is only left by re-analysis
ALLOWED_TRANSITIONS: Dict[ContractStatus, FrozenSet[ContractStatus]] = {
    ContractStatus.UPLOADED: frozenset({ContractStatus.ANALYZING}),
    ContractStatus.ANALYZING: frozenset({
        ContractStatus.ANALYZING,
        ContractStatus.ANALYZED,
        ContractStatus.ERROR,
    }),
    ContractStatus.ANALYZED: frozenset({ContractStatus.ANALYZING}),
    ContractStatus.ERROR: frozenset({ContractStatus.ANALYZING}),
    ContractStatus.PENDING_REVIEW: frozenset({ContractStatus.ANALYZING}),
}


def validate_transition(current: ContractStatus, target: ContractStatus) -> None:
    """
    Check a lifecycle transition against the transition table.

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(ContractStatus(current).value, ContractStatus(target).value)


def _failure_message(error: Exception) -> str:
    if isinstance(error, ContractAnalysisError):
        return error.message
    return str(error) or UNEXPECTED_ERROR_MESSAGE


class ContractAnalysisService:
    """Drives one contract through analysis and persists each lifecycle step."""

    def __init__(
        self,
        store: ContractStore,
        workflow: Optional["ContractAnalysisWorkflow"] = None
    ):
        """
        Initialize the service.

        Args:
            store: Contract record store
            workflow: Analysis workflow run between "analyzing" and the terminal
                      state. Not needed for reads and stale-analysis recovery.
        """
        self.store = store
        self.workflow = workflow

    async def _load(self, contract_id: str) -> ContractRecord:
        try:
            record = await self.store.get(contract_id)
        except Exception as e:
            logger.error("contract_fetch_failed", contract_id=contract_id, error=str(e))
            raise ContractAnalysisError("Failed to fetch contract", {"reason": str(e)})

        if record is None:
            raise NotFound("Contract not found", {"contract_id": contract_id})
        return record

    async def _transition(
        self,
        record: ContractRecord,
        fields: Dict[str, Any]
    ) -> ContractRecord:
        target = fields["status"]
        validate_transition(record.status, target)
        await self.store.update(record.id, fields)

        logger.info(
            "contract_status_transition",
            contract_id=record.id,
            from_status=ContractStatus(record.status).value,
            to_status=target.value,
        )
        return record.model_copy(update=fields)

    async def mark_analyzing(self, record: ContractRecord) -> ContractRecord:
        """Enter "analyzing", clearing any previous results or error."""
        return await self._transition(record, analyzing_fields())

    async def mark_analyzed(
        self,
        record: ContractRecord,
        outcome: "AnalysisOutcome"
    ) -> ContractRecord:
        """Persist a successful analysis in one update."""
        return await self._transition(
            record,
            analyzed_fields(outcome.analysis, outcome.risk_level, outcome.summary_text),
        )

    async def mark_error(self, record: ContractRecord, message: str) -> ContractRecord:
        """Persist a failed analysis with its message."""
        return await self._transition(record, error_fields(message))

    async def analyze(self, identity: Identity, contract_id: str) -> ContractRecord:
        """
        Analyze a contract on behalf of its owner.

        Args:
            identity: Authenticated caller
            contract_id: Contract to analyze

        Returns:
            The record in its "analyzed" state

        Raises:
            NotFound: If no record exists for the id
            Forbidden: If the caller does not own the record
            StorageUnavailable: If the stored file cannot be fetched (record → error)
            ExtractionFailed: If extraction fails (record → error)
        """
        record = await self._load(contract_id)
        authorize_owner(identity, record)

        if self.workflow is None:
            raise ContractAnalysisError("Analysis workflow not configured")

        record = await self.mark_analyzing(record)

        try:
            outcome = await self.workflow.run(record)
            analyzed = await self.mark_analyzed(record, outcome)
        except Exception as e:
            message = _failure_message(e)
            logger.error(
                "contract_analysis_failed",
                contract_id=contract_id,
                error_type=type(e).__name__,
                error=message,
            )
            try:
                await self.mark_error(record, message)
            except Exception as store_error:
                logger.error(
                    "contract_error_state_not_persisted",
                    contract_id=contract_id,
                    error=str(store_error),
                )
            raise

        logger.info(
            "contract_analysis_complete",
            contract_id=contract_id,
            risk_level=outcome.risk_level.value,
            document_format=outcome.document_format.value,
        )
        return analyzed

    async def get_contract(self, identity: Identity, contract_id: str) -> ContractRecord:
        """
        Read a contract's current state.

        Raises:
            NotFound: If no record exists for the id
            Forbidden: If the caller does not own the record
        """
        record = await self._load(contract_id)
        authorize_owner(identity, record)
        return record

    async def recover_stale_analyses(
        self,
        max_age_seconds: int,
        now: Optional[datetime] = None
    ) -> List[str]:
        """
        Move records stuck in "analyzing" to "error".

        A record is stuck when the process running its analysis stopped before
        reaching a terminal state.

        Args:
            max_age_seconds: Minimum time in "analyzing" before a record counts as stuck
            now: Reference time (defaults to the current UTC time)

        Returns:
            Ids of the recovered records
        """
        cutoff = (now or utc_now()) - timedelta(seconds=max_age_seconds)
        stale_ids = await self.store.list_stale_analyzing(cutoff)

        recovered = []
        for contract_id in stale_ids:
            record = await self.store.get(contract_id)
            if record is None or record.status != ContractStatus.ANALYZING:
                continue
            await self.mark_error(record, STALE_ANALYSIS_MESSAGE)
            recovered.append(contract_id)

        if recovered:
            logger.warning(
                "stale_analyses_recovered",
                count=len(recovered),
                contract_ids=recovered,
            )
        return recovered
