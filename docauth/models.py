from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class GeneratedIdentityResponse(BaseModel):
    did: str
    publicKeyJwk: Dict[str, str]
    privateKeyJwk: Dict[str, str]


class RegisterIdentityRequest(BaseModel):
    did: str
    publicKeyJwk: Dict[str, Any]


class ChallengeResponse(BaseModel):
    challenge: str
    expires_in: Optional[int] = None


class SignChallengeRequest(BaseModel):
    did: Optional[str] = None
    challenge: Optional[str] = None
    privateKeyJwk: Optional[Dict[str, Any]] = None


class VerifySignatureRequest(BaseModel):
    jwt: Optional[str] = None


class VerifySignatureResponse(BaseModel):
    success: bool = True
    did: str
    session_token: str
    expires_at: int


class DocumentOut(BaseModel):
    digest: str
    version: int
    owner: str
    timestamp: str
    versioned_hash: str


class AddDocumentResponse(BaseModel):
    success: bool = True
    digest: str
    version: int
    versionedHash: str
    owner: str
    timestamp: str
    anchored: bool
    anchor_reference: Optional[str] = None


class VerifyDocumentResponse(BaseModel):
    exists: bool
    digest: str
    version: Optional[int] = None
    document: Optional[DocumentOut] = None


class DocumentHistoryResponse(BaseModel):
    digest: str
    versions: List[DocumentOut] = Field(default_factory=list)
