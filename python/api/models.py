"""
Pydantic request/response schemas for the SDN search API

Mirrors SdnRecord.to_dict() so API clients see the list's own field names.
"""

from typing import List, Optional, Dict

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    """Request schema for an individual search.

    Every field is optional; unknown fields are ignored. Length and character
    checks follow input_validation in config.yaml.
    """
    id: Optional[str] = Field(default=None, description="Identity document number")
    id_type: Optional[str] = Field(
        default=None,
        description="Identity document type (informational, not used for matching)"
    )
    country: Optional[str] = Field(default=None, description="Document issuing country")
    firstName: Optional[str] = Field(default=None, description="First name")
    lastName: Optional[str] = Field(default=None, description="Last name")

    model_config = {"extra": "ignore"}


class IdDocumentDetail(BaseModel):
    """Identity document of a listed individual."""
    uid: Optional[str] = None
    idType: Optional[str] = None
    idNumber: Optional[str] = None
    idCountry: Optional[str] = None
    issueDate: Optional[str] = None
    expirationDate: Optional[str] = None


class AliasDetail(BaseModel):
    """Alias of a listed individual."""
    uid: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None


class SdnRecordDetail(BaseModel):
    """Normalized SDN individual (all text lowercased)."""
    uid: Optional[str] = Field(default=None, description="SDN entry uid")
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    title: Optional[str] = None
    sdnType: str = Field(..., description="Always 'individual'")
    remarks: Optional[str] = None
    programList: List[str] = Field(default_factory=list, description="Sanctions programs")
    idList: List[IdDocumentDetail] = Field(default_factory=list)
    akaList: List[AliasDetail] = Field(default_factory=list)
    addressList: List[Dict[str, str]] = Field(default_factory=list)
    dateOfBirthList: List[Dict[str, str]] = Field(default_factory=list)
    placeOfBirthList: List[Dict[str, str]] = Field(default_factory=list)
    nationalityList: List[Dict[str, str]] = Field(default_factory=list)
    citizenshipList: List[Dict[str, str]] = Field(default_factory=list)


class MatchDetail(BaseModel):
    """One matching record and the rule that matched it."""
    record: SdnRecordDetail = Field(..., description="Matched SDN record")
    rule: str = Field(..., description="Matching rule: id_document, primary_name or alias")


class SearchResponse(BaseModel):
    """Response schema for an individual search."""
    search_id: str = Field(..., description="Unique search identifier (UUID)")
    search_date: str = Field(..., description="Search timestamp (ISO 8601)")
    query: Dict[str, Optional[str]] = Field(..., description="Normalized query used")
    is_hit: bool = Field(..., description="Whether any matches were found")
    hit_count: int = Field(..., ge=0, description="Number of matches found")
    matches: List[MatchDetail] = Field(default_factory=list, description="Matches in document order")
    processing_time_ms: int = Field(..., ge=0, description="Processing time in milliseconds")


class HealthResponse(BaseModel):
    """Response schema for health check endpoint."""
    status: str = Field(default="healthy", description="healthy, degraded or error")
    document: str = Field(..., description="Path of the SDN document searched")
    document_exists: bool = Field(..., description="Whether the document is present")
    size_bytes: Optional[int] = None
    last_modified: Optional[str] = None
    publish_date: Optional[str] = Field(default=None, description="Publish Date from the list header")
    record_count: Optional[int] = Field(default=None, description="Record Count from the list header")
    uptime_seconds: Optional[int] = Field(default=None, description="Server uptime in seconds")
    error_message: Optional[str] = None


class DataUpdateResponse(BaseModel):
    """Response schema for data update endpoint."""
    success: bool = Field(..., description="Whether update succeeded")
    document: str = Field(..., description="Path of the refreshed SDN document")
    publish_date: Optional[str] = None
    record_count: Optional[int] = None
    processing_time_ms: int = Field(..., ge=0, description="Processing time in milliseconds")


class ErrorDetail(BaseModel):
    """Detailed error information."""
    code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    field: Optional[str] = Field(default=None, description="Field that caused error")
    suggestion: Optional[str] = Field(default=None, description="How to fix the error")
    timestamp: str = Field(..., description="Error timestamp (ISO 8601)")


class ErrorResponse(BaseModel):
    """Standardized error response format."""
    error: ErrorDetail
