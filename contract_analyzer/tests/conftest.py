"""
Shared pytest fixtures for contract analyzer tests.

Provides reusable mocks and test data for the unit tests.
"""

import io
import json
import zipfile

import pytest
from unittest.mock import MagicMock, AsyncMock

from contract_analyzer.models.schemas import ContractRecord, ContractStatus, StorageLocation
from contract_analyzer.services.api_resilience import BREAKERS
from contract_analyzer.services.blob_store import StoredObject
from contract_analyzer.services.completion_client import CompletionClient, CompletionResult
from contract_analyzer.services.contract_store import InMemoryContractStore
from contract_analyzer.services.identity import Identity

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

OWNER_ID = "user-owner"
OTHER_ID = "user-other"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def build_docx(document_xml=None, extra_parts=None) -> bytes:
    """Build an in-memory .docx archive. Omitting document_xml leaves out the body part."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("[Content_Types].xml", "<Types/>")
        if document_xml is not None:
            archive.writestr("word/document.xml", document_xml)
        for name, content in (extra_parts or {}).items():
            archive.writestr(name, content)
    return buffer.getvalue()


def wrap_document_body(body: str) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{body}</w:body></w:document>"
    )


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Circuit breakers are process-wide; start every test with them closed."""
    for breaker in BREAKERS:
        breaker.close()
    yield
    for breaker in BREAKERS:
        breaker.close()


@pytest.fixture
def sample_docx_bytes():
    """A small purchase agreement as a .docx archive."""
    body = (
        '<w:p><w:pPr><w:jc w:val="center"/></w:pPr>'
        "<w:r><w:t>RESIDENTIAL PURCHASE AGREEMENT</w:t></w:r></w:p>"
        '<w:p w:rsidR="00A1"><w:r><w:t xml:space="preserve">Purchase Price: </w:t></w:r>'
        "<w:r><w:t>$450,000</w:t></w:r></w:p>"
        "<w:p><w:r><w:t>Earnest money of $10,000 due within 3 days.</w:t></w:r></w:p>"
    )
    return build_docx(wrap_document_body(body))


@pytest.fixture
def sample_analysis_payload():
    """Completion service output for a contract with one medium risk."""
    return {
        "summary": "Standard residential purchase of 12 Oak St for $450,000.",
        "purchasePrice": "$450,000",
        "earnestMoney": "$10,000",
        "closingDate": "2025-03-15",
        "inspectionPeriod": "10 days",
        "financingContingency": "30 days",
        "appraisalContingency": "Included",
        "contingencies": [
            {
                "name": "Inspection",
                "deadline": "2025-02-10",
                "status": "active",
                "description": "Buyer may inspect the property.",
                "daysRemaining": 7,
                "critical": True
            }
        ],
        "importantDates": [
            {
                "event": "Closing",
                "date": "2025-03-15",
                "description": "Funds and title transfer.",
                "status": "upcoming",
                "daysUntil": 40
            }
        ],
        "risks": [
            {
                "level": "low",
                "category": "Title",
                "description": "Standard title insurance.",
                "recommendation": "None."
            },
            {
                "level": "medium",
                "category": "Financing",
                "description": "Short financing window.",
                "recommendation": "Request a 45-day financing contingency."
            }
        ],
        "recommendations": ["Schedule the inspection early."],
        "keyTerms": [
            {
                "term": "Purchase Price",
                "value": "$450,000",
                "section": "1",
                "importance": "critical"
            }
        ]
    }


def completion_result(text, model_name="gpt-4o-mini") -> CompletionResult:
    return CompletionResult(
        text=text,
        model_name=model_name,
        input_tokens=1000,
        output_tokens=400,
        total_tokens=1400,
        generation_time_ms=850.0
    )


@pytest.fixture
def mock_completion_client(sample_analysis_payload):
    """Completion client whose endpoints return the sample analysis."""
    client = MagicMock(spec=CompletionClient)
    payload = json.dumps(sample_analysis_payload)
    client.complete_json = AsyncMock(return_value=completion_result(payload))
    client.upload_file = AsyncMock(return_value="file-abc123")
    client.complete_json_with_file = AsyncMock(return_value=completion_result(payload))
    client.delete_file = AsyncMock()
    return client


@pytest.fixture
def mock_blob_store(sample_docx_bytes):
    """Blob store that serves the sample .docx."""
    store = MagicMock()
    store.download = AsyncMock(
        return_value=StoredObject(data=sample_docx_bytes, content_type=DOCX_MIME)
    )
    store.close = AsyncMock()
    return store


@pytest.fixture
def contract_store():
    """Empty in-memory contract store."""
    return InMemoryContractStore()


@pytest.fixture
def owner():
    return Identity(id=OWNER_ID, email="owner@example.com")


@pytest.fixture
def other_user():
    return Identity(id=OTHER_ID, email="other@example.com")


@pytest.fixture
def make_record():
    """Factory for contract records owned by the test owner."""
    def _make(
        contract_id="contract-1",
        name="purchase-agreement.docx",
        mime_type=DOCX_MIME,
        status=ContractStatus.UPLOADED,
        storage=StorageLocation(bucket="contracts", path=f"{OWNER_ID}/purchase-agreement.docx"),
        **fields
    ):
        return ContractRecord(
            id=contract_id,
            owner_id=fields.pop("owner_id", OWNER_ID),
            name=name,
            mime_type=mime_type,
            size_bytes=fields.pop("size_bytes", 2048),
            storage=storage,
            status=status,
            **fields
        )
    return _make


@pytest.fixture
def mock_redis():
    """Mock Redis client for contract store tests."""
    redis = MagicMock()

    redis.hgetall = MagicMock(return_value={})
    redis.ping = MagicMock(return_value=True)
    redis.zrangebyscore = MagicMock(return_value=[])

    pipeline_mock = MagicMock()
    pipeline_mock.hset = MagicMock(return_value=pipeline_mock)
    pipeline_mock.hdel = MagicMock(return_value=pipeline_mock)
    pipeline_mock.zadd = MagicMock(return_value=pipeline_mock)
    pipeline_mock.zrem = MagicMock(return_value=pipeline_mock)
    pipeline_mock.execute = MagicMock(return_value=[])
    redis.pipeline = MagicMock(return_value=pipeline_mock)

    return redis


@pytest.fixture
def docx_factory():
    """
    Build .docx archives from body markup.

    docx_factory("<w:p>...</w:p>") wraps the markup in a document; docx_factory(None)
    builds an archive without word/document.xml.
    """
    def _build(body=None, extra_parts=None):
        document_xml = wrap_document_body(body) if body is not None else None
        return build_docx(document_xml, extra_parts)
    return _build


@pytest.fixture
def completion_result_factory():
    return completion_result
