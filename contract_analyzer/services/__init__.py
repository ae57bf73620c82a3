"""
Services package for the Contract Analysis API.

Collaborator clients (blob store, identity, completion service), document
handling (format routing, text extraction, structured extraction, risk
classification), the record store, and the lifecycle controller.
"""

from .analysis_service import ContractAnalysisService, validate_transition
from .blob_store import StoredObject, SupabaseBlobStore
from .completion_client import CompletionClient, CompletionResult
from .contract_store import (
    ContractStore,
    InMemoryContractStore,
    RedisContractStore,
    build_contract_store,
)
from .docx_extractor import decode_text, extract_docx_text
from .extraction_strategies import (
    ContractDocument,
    ExtractionDispatcher,
    ExtractionStrategy,
    FileExtractionStrategy,
    TextExtractionStrategy,
)
from .format_router import DocumentFormat, route_document
from .identity import Identity, SupabaseIdentityService, authorize_owner
from .risk_classifier import classify_risk

__all__ = [
    "ContractAnalysisService",
    "validate_transition",
    "StoredObject",
    "SupabaseBlobStore",
    "CompletionClient",
    "CompletionResult",
    "ContractStore",
    "InMemoryContractStore",
    "RedisContractStore",
    "build_contract_store",
    "decode_text",
    "extract_docx_text",
    "ContractDocument",
    "ExtractionDispatcher",
    "ExtractionStrategy",
    "FileExtractionStrategy",
    "TextExtractionStrategy",
    "DocumentFormat",
    "route_document",
    "Identity",
    "SupabaseIdentityService",
    "authorize_owner",
    "classify_risk",
]
