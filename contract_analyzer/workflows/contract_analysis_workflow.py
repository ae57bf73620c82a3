"""
LangGraph workflow for contract document analysis.

Fetches the stored file, routes it by format, extracts text where the format
needs it, runs structured extraction, and classifies overall risk. Nodes run
sequentially; any node failure propagates to the caller, which owns the
record's lifecycle.
"""

import logging
from dataclasses import dataclass
from typing import Optional, TypedDict

from langgraph.graph import StateGraph, END

from ..models.schemas import AnalysisResult, ContractRecord, RiskLevel
from ..services.blob_store import SupabaseBlobStore
from ..services.docx_extractor import decode_text, extract_docx_text
from ..services.extraction_strategies import ContractDocument, ExtractionDispatcher
from ..services.format_router import DocumentFormat, resolve_mime_type, route_document
from ..services.risk_classifier import build_summary_text, classify_risk
from ..utils.errors import StorageUnavailable
from ..utils.performance import log_execution_time

logger = logging.getLogger(__name__)


class ContractAnalysisState(TypedDict, total=False):
    """
    State schema for the contract analysis workflow.

    Input fields:
        record: Contract record being analyzed

    Intermediate fields:
        file_bytes: Raw file data from the blob store
        content_type: Content type reported by the blob store
        document_format: Routed format (archive, pdf, text)
        text: Extracted text for text-based strategies

    Output fields:
        analysis: Structured analysis from the completion service
        risk_level: Overall risk tier
        summary_text: Short summary for the record
    """
    # Input
    record: ContractRecord

    # Intermediate state
    file_bytes: bytes
    content_type: Optional[str]
    document_format: DocumentFormat
    text: Optional[str]

    # Output
    analysis: AnalysisResult
    risk_level: RiskLevel
    summary_text: str


@dataclass
class AnalysisOutcome:
    """Terminal output of a successful workflow run."""
    analysis: AnalysisResult
    risk_level: RiskLevel
    summary_text: str
    document_format: DocumentFormat


class ContractAnalysisWorkflow:
    """
    LangGraph workflow for the analysis pipeline.

    Nodes:
    1. fetch - Download the stored file
    2. route - Classify the document format
    3. extract_text - Unpack archive text or decode raw text (skipped for PDFs)
    4. analyze - Structured extraction via the completion service
    5. classify - Worst-wins risk tier and summary text
    """

    def __init__(
        self,
        blob_store: SupabaseBlobStore,
        dispatcher: ExtractionDispatcher
    ):
        """
        Initialize workflow with its collaborators.

        Args:
            blob_store: Source of stored contract files
            dispatcher: Extraction strategy dispatcher
        """
        self.blob_store = blob_store
        self.dispatcher = dispatcher
        self.workflow = self._build_workflow()

    def _build_workflow(self):
        """
        Build the LangGraph workflow.

        Flow: fetch → route → [extract_text] → analyze → classify → END
        """
        workflow = StateGraph(ContractAnalysisState)

        workflow.add_node("fetch", self._fetch_document_node)
        workflow.add_node("route", self._route_document_node)
        workflow.add_node("extract_text", self._extract_text_node)
        workflow.add_node("analyze", self._analyze_node)
        workflow.add_node("classify", self._classify_risk_node)

        workflow.set_entry_point("fetch")
        workflow.add_edge("fetch", "route")
        workflow.add_conditional_edges(
            "route",
            self._after_route,
            {"extract_text": "extract_text", "analyze": "analyze"}
        )
        workflow.add_edge("extract_text", "analyze")
        workflow.add_edge("analyze", "classify")
        workflow.add_edge("classify", END)

        return workflow.compile()

    @staticmethod
    def _after_route(state: ContractAnalysisState) -> str:
        if state["document_format"] == DocumentFormat.PDF:
            return "analyze"
        return "extract_text"

    @log_execution_time("fetch_document")
    async def _fetch_document_node(
        self,
        state: ContractAnalysisState
    ) -> ContractAnalysisState:
        """
        Node 1: Download the contract file from the blob store.

        Raises:
            StorageUnavailable: If the record has no storage location or the download fails
        """
        record = state["record"]
        if record.storage is None:
            raise StorageUnavailable("Contract has no storage location")

        logger.info(
            f"[fetch] Downloading {record.storage.bucket}/{record.storage.path} "
            f"for contract {record.id}"
        )
        stored = await self.blob_store.download(record.storage.bucket, record.storage.path)

        state["file_bytes"] = stored.data
        state["content_type"] = stored.content_type
        return state

    async def _route_document_node(
        self,
        state: ContractAnalysisState
    ) -> ContractAnalysisState:
        """Node 2: Pick the document format from MIME type and filename."""
        record = state["record"]
        mime_type = resolve_mime_type(record.mime_type, state.get("content_type"))
        state["document_format"] = route_document(mime_type, record.name)

        logger.info(
            f"[route] Contract {record.id} ({mime_type}, {record.name}) "
            f"routed as {state['document_format'].value}"
        )
        return state

    @log_execution_time("extract_text")
    async def _extract_text_node(
        self,
        state: ContractAnalysisState
    ) -> ContractAnalysisState:
        """Node 3: Produce plain text for the text extraction strategy."""
        if state["document_format"] == DocumentFormat.ARCHIVE:
            state["text"] = extract_docx_text(state["file_bytes"])
        else:
            state["text"] = decode_text(state["file_bytes"])

        logger.info(f"[extract_text] Extracted {len(state['text'])} characters")
        return state

    @log_execution_time("analyze_contract")
    async def _analyze_node(
        self,
        state: ContractAnalysisState
    ) -> ContractAnalysisState:
        """Node 4: Structured extraction via the completion service."""
        record = state["record"]
        document = ContractDocument(
            contract_id=record.id,
            filename=record.name,
            format=state["document_format"],
            data=state["file_bytes"],
            text=state.get("text"),
        )
        state["analysis"] = await self.dispatcher.extract(document)
        return state

    async def _classify_risk_node(
        self,
        state: ContractAnalysisState
    ) -> ContractAnalysisState:
        """Node 5: Overall risk tier and summary text."""
        analysis = state["analysis"]
        state["risk_level"] = classify_risk(analysis.risks)
        state["summary_text"] = build_summary_text(analysis.summary)

        logger.info(
            f"[classify] {len(analysis.risks)} risks, overall {state['risk_level'].value}"
        )
        return state

    async def run(self, record: ContractRecord) -> AnalysisOutcome:
        """
        Execute the analysis workflow for a record.

        Args:
            record: Contract record to analyze

        Returns:
            AnalysisOutcome with analysis, risk tier, and summary text

        Raises:
            StorageUnavailable: If the file cannot be fetched
            ExtractionFailed: If text extraction or the completion service fails
        """
        logger.info(f"Starting analysis workflow for contract: {record.id}")

        final_state = await self.workflow.ainvoke({"record": record})

        logger.info(
            f"Workflow completed for {record.id}: risk {final_state['risk_level'].value}"
        )

        return AnalysisOutcome(
            analysis=final_state["analysis"],
            risk_level=final_state["risk_level"],
            summary_text=final_state["summary_text"],
            document_format=final_state["document_format"],
        )
