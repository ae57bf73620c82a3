"""
Structured extraction strategies for contract documents.

Two strategies share one system instruction and one target schema:
- TextExtractionStrategy sends extracted text to the chat completions endpoint
- FileExtractionStrategy uploads the original file and references it from the
  responses endpoint

The ExtractionDispatcher picks a strategy from the routed document format.
Results are best-effort: the completion service is probabilistic even at low
temperature.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from .completion_client import CompletionClient
from .format_router import DocumentFormat
from ..models.schemas import AnalysisResult
from ..utils.errors import ExtractionFailed

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are an expert real estate contract analyst. Extract key points from the "
    "provided contract text or file and return strictly valid JSON matching the schema. "
    "Do not include any commentary outside the JSON. Dates should be ISO or simple "
    "human-readable strings. If a field is missing, use a sensible placeholder."
)

ANALYSIS_SCHEMA_PROMPT = """Return JSON with this exact shape:
{
  "summary": string,
  "purchasePrice": string,
  "earnestMoney": string,
  "closingDate": string,
  "inspectionPeriod": string,
  "financingContingency": string,
  "appraisalContingency": string,
  "contingencies": [ {"name": string, "deadline": string, "status": "active"|"expired"|"waived"|"satisfied", "description": string, "daysRemaining"?: number, "critical": boolean} ],
  "importantDates": [ {"event": string, "date": string, "description": string, "status": "upcoming"|"completed"|"overdue", "daysUntil"?: number} ],
  "risks": [ {"level": "high"|"medium"|"low", "category": string, "description": string, "recommendation": string} ],
  "recommendations": string[],
  "keyTerms": [ {"term": string, "value": string, "section": string, "importance": "critical"|"important"|"standard", "explanation"?: string} ]
}
Ensure valid JSON and concise values."""

CONTRACT_TEXT_HEADER = "\n\nContract text (truncated if long):\n"

DEFAULT_MAX_TEXT_CHARS = 24000


@dataclass
class ContractDocument:
    """A fetched contract ready for extraction."""
    contract_id: str
    filename: str
    format: DocumentFormat
    data: bytes
    text: Optional[str] = None


def parse_analysis(text: Optional[str]) -> AnalysisResult:
    """
    Parse completion output into an AnalysisResult.

    Raises:
        ExtractionFailed: If the output is empty, not JSON, or not a JSON object.
            Odd values inside the object fall back to defaults instead.
    """
    if not text or not text.strip():
        raise ExtractionFailed("Completion service returned no content")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExtractionFailed(
            "Completion service returned invalid JSON",
            {"reason": str(e)}
        )

    if not isinstance(payload, dict):
        raise ExtractionFailed("Completion service output is not a JSON object")

    return AnalysisResult.model_validate(payload)


class ExtractionStrategy(ABC):
    """Abstract base class for extraction strategies."""

    name = "base"

    def __init__(self, completion_client: CompletionClient):
        self.completion_client = completion_client

    @abstractmethod
    async def extract(self, document: ContractDocument) -> AnalysisResult:
        """
        Extract a structured analysis from the document.

        Raises:
            ExtractionFailed: If the completion service fails or returns unusable output
        """


class TextExtractionStrategy(ExtractionStrategy):
    """Sends extracted plain text to the chat completions endpoint."""

    name = "text"

    def __init__(
        self,
        completion_client: CompletionClient,
        max_text_chars: int = DEFAULT_MAX_TEXT_CHARS
    ):
        super().__init__(completion_client)
        self.max_text_chars = max_text_chars

    def build_user_prompt(self, text: str) -> str:
        """Schema instruction followed by the contract text, cut to the character limit."""
        return ANALYSIS_SCHEMA_PROMPT + CONTRACT_TEXT_HEADER + text[:self.max_text_chars]

    async def extract(self, document: ContractDocument) -> AnalysisResult:
        text = document.text or ""

        if len(text) > self.max_text_chars:
            logger.warning(
                f"Contract {document.contract_id} text truncated to {self.max_text_chars} "
                f"characters ({len(text) - self.max_text_chars} dropped)"
            )

        result = await self.completion_client.complete_json(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=self.build_user_prompt(text),
        )
        return parse_analysis(result.text)


class FileExtractionStrategy(ExtractionStrategy):
    """
    Uploads the original file and asks the responses endpoint to read it.

    The uploaded copy is deleted once the request finishes.
    """

    name = "file"

    async def extract(self, document: ContractDocument) -> AnalysisResult:
        file_id = await self.completion_client.upload_file(
            data=document.data,
            filename=document.filename,
        )
        try:
            result = await self.completion_client.complete_json_with_file(
                system_prompt=SYSTEM_PROMPT,
                user_prompt=ANALYSIS_SCHEMA_PROMPT,
                file_id=file_id,
            )
        finally:
            await self.completion_client.delete_file(file_id)
        return parse_analysis(result.text)


class ExtractionDispatcher:
    """Selects and runs the extraction strategy for a document format."""

    def __init__(
        self,
        completion_client: CompletionClient,
        max_text_chars: int = DEFAULT_MAX_TEXT_CHARS
    ):
        text_strategy = TextExtractionStrategy(completion_client, max_text_chars)
        file_strategy = FileExtractionStrategy(completion_client)

        self.strategies: Dict[DocumentFormat, ExtractionStrategy] = {
            DocumentFormat.ARCHIVE: text_strategy,
            DocumentFormat.TEXT: text_strategy,
            DocumentFormat.PDF: file_strategy,
        }

    def select_strategy(self, document_format: DocumentFormat) -> ExtractionStrategy:
        return self.strategies[document_format]

    async def extract(self, document: ContractDocument) -> AnalysisResult:
        strategy = self.select_strategy(document.format)
        logger.info(
            f"Extracting contract {document.contract_id} with {strategy.name} strategy "
            f"({document.format.value})"
        )
        return await strategy.extract(document)
