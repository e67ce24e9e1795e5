import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

from fastapi import FastAPI, File, Header, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .anchors import AnchorSink, anchor_record, get_anchor_sink
from .assertion import sign_assertion
from .challenges import Authenticator
from .db import SqliteDocumentStore
from .errors import (
    DocAuthError,
    DocumentTooLarge,
    InvalidDigest,
    InvalidKey,
    InvalidSession,
    MissingContent,
    MissingFields,
    NotFound,
    RateLimited,
)
from .keys import KeyRegistry, generate_identity
from .ledger import DocumentLedger, DocumentRecord, content_digest
from .logging_config import audit_log, configure_logging, set_request_id
from .models import (
    AddDocumentResponse,
    ChallengeResponse,
    DocumentHistoryResponse,
    DocumentOut,
    GeneratedIdentityResponse,
    RegisterIdentityRequest,
    SignChallengeRequest,
    VerifyDocumentResponse,
    VerifySignatureRequest,
    VerifySignatureResponse,
)
from .rate_limit import RateLimiter
from .security import extract_client_id, is_sha256_hex, validate_identity
from .sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class DocAuthService:
    """Everything one app instance owns. Nothing here is module-global."""
    registry: KeyRegistry
    authenticator: Authenticator
    sessions: SessionStore
    ledger: DocumentLedger
    anchor_sink: AnchorSink
    challenge_limiter: RateLimiter = field(default_factory=lambda: RateLimiter(config.CHALLENGE_RPM))
    verify_limiter: RateLimiter = field(default_factory=lambda: RateLimiter(config.VERIFY_RPM))
    store: Optional[SqliteDocumentStore] = None

    @classmethod
    def from_config(cls) -> "DocAuthService":
        registry = KeyRegistry()
        store = SqliteDocumentStore(config.DB_PATH, config.DB_TIMEOUT_SECONDS) if config.DB_PATH else None
        return cls(
            registry=registry,
            authenticator=Authenticator(registry),
            sessions=SessionStore(),
            ledger=DocumentLedger(store=store),
            anchor_sink=get_anchor_sink(),
            store=store,
        )


def _document_out(record: DocumentRecord) -> DocumentOut:
    return DocumentOut(**record.to_dict())


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


async def _read_upload(file: Optional[UploadFile]) -> bytes:
    if file is None:
        raise MissingContent()
    content = await file.read(config.MAX_DOCUMENT_BYTES + 1)
    if len(content) > config.MAX_DOCUMENT_BYTES:
        raise DocumentTooLarge()
    if not content:
        raise MissingContent()
    return content


def _rate_limit(limiter: RateLimiter, endpoint: str, request: Request) -> None:
    peer = request.client.host if request.client else None
    client_id = extract_client_id(request.headers, peer)
    if not limiter.allow(f"{endpoint}:{client_id}"):
        audit_log.rate_limit_exceeded(client_id, endpoint)
        raise RateLimited()


def create_app(service: Optional[DocAuthService] = None) -> FastAPI:
    service = service or DocAuthService.from_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.LOG_LEVEL, json_format=config.LOG_JSON)
        for check, passed in config.validate_config().items():
            if not passed:
                logger.warning("configuration check failed: %s", check)
        yield
        if service.store is not None:
            service.store.close()

    app = FastAPI(title="DocAuth (DID login + document ledger)", lifespan=lifespan)
    app.state.service = service

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = set_request_id(request.headers.get("x-request-id"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(DocAuthError)
    async def docauth_error_handler(request: Request, exc: DocAuthError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Unrouted paths and wrong methods use the same body as DocAuthError.
        code = NotFound.code if exc.status_code == 404 else f"HTTP_{exc.status_code}"
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": code, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "error": "INTERNAL_ERROR"})

    # ============================================================
    # Identity and login
    # ============================================================

    @app.get("/generate-did", response_model=GeneratedIdentityResponse)
    def generate_did():
        generated = generate_identity()
        service.registry.register(generated.identity, generated.public_jwk)
        return GeneratedIdentityResponse(
            did=generated.identity,
            publicKeyJwk=generated.public_jwk,
            privateKeyJwk=generated.private_jwk,
        )

    @app.post("/register-did")
    def register_did(req: RegisterIdentityRequest):
        try:
            service.registry.register(req.did, req.publicKeyJwk)
        except ValueError as e:
            raise InvalidKey(str(e))
        return {"success": True, "did": req.did}

    @app.get("/login-challenge/{did}", response_model=ChallengeResponse)
    def login_challenge(did: str, request: Request):
        _rate_limit(service.challenge_limiter, "login-challenge", request)
        challenge = service.authenticator.issue_challenge(did)
        return ChallengeResponse(challenge=challenge.value, expires_in=config.CHALLENGE_TTL_SECONDS)

    @app.post("/sign-challenge")
    def sign_challenge(req: SignChallengeRequest):
        # Demo only: the client's private key crosses the wire.
        if not config.server_signing_enabled():
            raise NotFound()
        if not req.did or not req.challenge or not req.privateKeyJwk:
            raise MissingFields("did, challenge and privateKeyJwk are required")
        validate_identity(req.did, "did")
        audit_log.security_event("server_side_signing", severity="high", identity=req.did)
        try:
            jwt = sign_assertion(req.did, req.challenge, req.privateKeyJwk)
        except ValueError as e:
            raise InvalidKey(str(e))
        return {"jwt": jwt}

    @app.post("/verify-signature", response_model=VerifySignatureResponse)
    def verify_signature(req: VerifySignatureRequest, request: Request):
        _rate_limit(service.verify_limiter, "verify-signature", request)
        identity = service.authenticator.verify_assertion(req.jwt)
        session = service.sessions.issue(identity)
        return VerifySignatureResponse(
            did=identity,
            session_token=session.token,
            expires_at=int(session.expires_at),
        )

    # ============================================================
    # Documents
    # ============================================================

    @app.post("/add-document", response_model=AddDocumentResponse)
    async def add_document(
        file: Optional[UploadFile] = File(None),
        authorization: Optional[str] = Header(None),
    ):
        token = _bearer_token(authorization)
        try:
            owner = service.sessions.resolve(token)
        except InvalidSession:
            audit_log.session_rejected(token)
            raise
        content = await _read_upload(file)

        record = await run_in_threadpool(service.ledger.register_document, content, owner)
        ack = await run_in_threadpool(anchor_record, service.anchor_sink, record.digest, record.version)

        return AddDocumentResponse(
            digest=record.digest,
            version=record.version,
            versionedHash=record.versioned_hash,
            owner=record.owner,
            timestamp=record.timestamp,
            anchored=ack is not None,
            anchor_reference=ack.reference if ack else None,
        )

    @app.post("/verify-document", response_model=VerifyDocumentResponse)
    async def verify_document(file: Optional[UploadFile] = File(None)):
        content = await _read_upload(file)
        record = await run_in_threadpool(service.ledger.lookup_latest, content)
        if record is None:
            digest = await run_in_threadpool(content_digest, content)
            return VerifyDocumentResponse(exists=False, digest=digest)
        return VerifyDocumentResponse(
            exists=True,
            digest=record.digest,
            version=record.version,
            document=_document_out(record),
        )

    @app.get("/documents/{digest}", response_model=DocumentHistoryResponse)
    def document_history(digest: str):
        digest = digest.lower()
        if not is_sha256_hex(digest):
            raise InvalidDigest()
        versions = service.ledger.history(digest)
        if not versions:
            raise NotFound()
        return DocumentHistoryResponse(digest=digest, versions=[_document_out(r) for r in versions])

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "documents": len(service.ledger),
            "pending_challenges": len(service.authenticator),
        }

    return app


app = create_app()
