"""HTTP implementation of the identity, document and blob backends.

Thin wrapper around httpx that talks to a REST backend exposing account,
database and storage endpoints. Error responses are translated into the
domain taxonomy (never raw httpx exceptions) so the sync engine can
decide what to retry.

Example:
    async with RemoteBackend.from_config(cfg.backend) as backend:
        user = await backend.get_current_user()
"""

import json
import logging
from typing import Any, Callable, TypeVar

import httpx

from backupsync.errors import (
    AuthenticationError,
    AuthFailure,
    AuthorizationError,
    DomainError,
    IdentityCollisionError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from backupsync.services.backend_types import (
    BlobInfo,
    DocumentQuery,
    RemoteSession,
    UserProfile,
)
from backupsync.utils.redaction import redact_for_logging, redact_message

logger = logging.getLogger(__name__)

T = TypeVar("T")

SNAPSHOT_CONTENT_TYPE = "application/vnd.sqlite3"

# Backend error types that identify a specific authentication failure.
_AUTH_ERROR_TYPES: dict[str, AuthFailure] = {
    "user_invalid_credentials": AuthFailure.INVALID_CREDENTIALS,
    "user_not_found": AuthFailure.ACCOUNT_NOT_FOUND,
    "user_session_not_found": AuthFailure.SESSION_EXPIRED,
    "user_jwt_invalid": AuthFailure.SESSION_EXPIRED,
    "user_password_mismatch": AuthFailure.INVALID_CREDENTIALS,
}


def build_queries(query: DocumentQuery) -> list[str]:
    """Encode a DocumentQuery as JSON query strings.

    Args:
        query: Equality filters, ordering and limit.

    Returns:
        List of JSON-encoded query objects for the ``queries[]`` parameter.
    """
    encoded = [
        json.dumps({"method": "equal", "attribute": attr, "values": [value]})
        for attr, value in query.equals.items()
    ]
    if query.order_by:
        method = "orderDesc" if query.descending else "orderAsc"
        encoded.append(json.dumps({"method": method, "attribute": query.order_by}))
    if query.limit is not None:
        encoded.append(json.dumps({"method": "limit", "values": [query.limit]}))
    return encoded


def _json_body(resp: httpx.Response) -> dict:
    """Decode a successful response body as a JSON object.

    Raises:
        DomainError: If the body is not a JSON object (E-4005).
    """
    try:
        body = resp.json()
    except ValueError as e:
        raise DomainError.from_code("E-4005", details=f"malformed response body ({e})") from e
    if not isinstance(body, dict):
        raise DomainError.from_code("E-4005", details="response body is not an object")
    return body


def _parse_model(factory: Callable[[dict], T], data: dict) -> T:
    """Build a model from a response body, mapping missing fields to E-4005."""
    try:
        return factory(data)
    except (KeyError, TypeError, ValueError) as e:
        raise DomainError.from_code("E-4005", details=f"incomplete response body ({e})") from e


class RemoteBackend:
    """IdentityService, DocumentStore and BlobStore over HTTP."""

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        database_id: str,
        collection_id: str,
        bucket_id: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize with service coordinates.

        Args:
            endpoint: Base URL, e.g. ``https://cloud.example.com/v1``.
            project_id: Project/tenant identity sent with every request.
            database_id: Database holding the backups collection.
            collection_id: Collection of backup record documents.
            bucket_id: Bucket holding snapshot blobs.
            timeout: Per-request timeout in seconds.
            client: Optional pre-built client (tests inject a fake transport).
        """
        self._endpoint = endpoint.rstrip("/")
        self._project_id = project_id
        self._database_id = database_id
        self._collection_id = collection_id
        self._bucket_id = bucket_id
        self._timeout = timeout
        self._client = client
        self._session_secret: str | None = None

    @classmethod
    def from_config(cls, config: Any) -> "RemoteBackend":
        """Build from a validated BackendConfig."""
        return cls(
            endpoint=config.endpoint,
            project_id=config.project_id,
            database_id=config.database_id,
            collection_id=config.collection_id,
            bucket_id=config.bucket_id,
            timeout=config.timeout_seconds,
        )

    async def __aenter__(self) -> "RemoteBackend":
        """Open httpx async client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._endpoint,
                timeout=self._timeout,
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close httpx async client."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying client if open."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def _documents_path(self) -> str:
        return f"/databases/{self._database_id}/collections/{self._collection_id}/documents"

    @property
    def _files_path(self) -> str:
        return f"/storage/buckets/{self._bucket_id}/files"

    def use_session(self, secret: str | None) -> None:
        """Attach (or detach, with None) the session credential."""
        self._session_secret = secret or None

    def _headers(self) -> dict[str, str]:
        headers = {"X-Appwrite-Project": self._project_id}
        if self._session_secret:
            headers["X-Appwrite-Session"] = self._session_secret
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        resource: str = "Resource",
        identifier: str = "",
        unauthorized: AuthFailure = AuthFailure.NOT_AUTHENTICATED,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request and translate failures into domain errors.

        Raises:
            TransientError: On timeouts, transport errors, 429 and 5xx.
            AuthenticationError: On 401 (reason from the body or ``unauthorized``).
            AuthorizationError: On 403.
            NotFoundError: On 404.
            IdentityCollisionError: On 409.
            ValidationError: On 400.
        """
        if self._client is None:
            await self.__aenter__()
        if "json" in kwargs:
            logger.debug("%s %s %s", method, path, redact_for_logging(kwargs["json"]))
        else:
            logger.debug("%s %s", method, path)
        try:
            resp = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise TransientError.from_code("E-3003") from e
        except httpx.TransportError as e:
            raise TransientError.from_code("E-3004", details=str(e) or type(e).__name__) from e
        self._raise_for_status(resp, resource, identifier, unauthorized)
        return resp

    def _raise_for_status(
        self,
        resp: httpx.Response,
        resource: str,
        identifier: str,
        unauthorized: AuthFailure,
    ) -> None:
        """Raise the domain error matching a non-2xx response."""
        status = resp.status_code
        if status < 400:
            return
        try:
            body = resp.json()
            message = str(body.get("message", resp.text))
            error_type = str(body.get("type", ""))
        except (ValueError, AttributeError):
            message = resp.text
            error_type = ""
        message = redact_message(message)

        if error_type in _AUTH_ERROR_TYPES:
            raise AuthenticationError.for_reason(_AUTH_ERROR_TYPES[error_type])
        if status == 401:
            raise AuthenticationError.for_reason(unauthorized)
        if status == 403:
            raise AuthorizationError(identifier or resource)
        if status == 404:
            raise NotFoundError(resource, identifier)
        if status == 409:
            raise IdentityCollisionError(resource, identifier)
        if status == 429:
            raise TransientError.from_code("E-3002")
        if status == 400:
            raise ValidationError.from_code("E-2004", details=message)
        if status >= 500:
            raise TransientError.from_code("E-3001", status=status)
        raise DomainError.from_code("E-4005", details=f"HTTP {status}: {message}")

    # ------------------------------------------------------------------
    # IdentityService
    # ------------------------------------------------------------------

    async def create_account(self, user_id: str, email: str, password: str, name: str) -> UserProfile:
        """Create an account via POST /account."""
        resp = await self._request(
            "POST", "/account", resource="Account", identifier=email,
            json={"userId": user_id, "email": email, "password": password, "name": name},
        )
        return _parse_model(UserProfile.from_api, _json_body(resp))

    async def create_session(self, email: str, password: str) -> RemoteSession:
        """Create an email/password session via POST /account/sessions/email.

        The session secret comes from the response body when the service
        returns it, otherwise from the session cookie.
        """
        resp = await self._request(
            "POST", "/account/sessions/email", resource="Session",
            unauthorized=AuthFailure.INVALID_CREDENTIALS,
            json={"email": email, "password": password},
        )
        data = _json_body(resp)
        if not data.get("secret"):
            data["secret"] = resp.cookies.get(f"a_session_{self._project_id}", "")
        return _parse_model(RemoteSession.from_api, data)

    async def get_current_user(self) -> UserProfile:
        """Fetch the signed-in account via GET /account."""
        resp = await self._request("GET", "/account", resource="Account")
        return _parse_model(UserProfile.from_api, _json_body(resp))

    async def get_session(self, session_id: str = "current") -> RemoteSession:
        """Fetch session details via GET /account/sessions/{id}."""
        resp = await self._request(
            "GET", f"/account/sessions/{session_id}",
            resource="Session", identifier=session_id,
        )
        data = _json_body(resp)
        data.setdefault("secret", self._session_secret or "")
        return _parse_model(RemoteSession.from_api, data)

    async def delete_session(self, session_id: str = "current") -> None:
        """Delete a session via DELETE /account/sessions/{id}."""
        await self._request(
            "DELETE", f"/account/sessions/{session_id}",
            resource="Session", identifier=session_id,
        )

    async def create_recovery(self, email: str, redirect_url: str) -> None:
        """Request a password recovery email via POST /account/recovery."""
        await self._request(
            "POST", "/account/recovery", resource="Account", identifier=email,
            json={"email": email, "url": redirect_url},
        )

    async def update_password(self, new_password: str, old_password: str) -> None:
        """Change the account password via PATCH /account/password."""
        await self._request(
            "PATCH", "/account/password", resource="Account",
            unauthorized=AuthFailure.INVALID_CREDENTIALS,
            json={"password": new_password, "oldPassword": old_password},
        )

    async def create_jwt(self) -> str:
        """Issue a short-lived bearer token via POST /account/jwt."""
        resp = await self._request("POST", "/account/jwt", resource="Session")
        token = _json_body(resp).get("jwt")
        if not token:
            raise DomainError.from_code("E-4005", details="token response without jwt")
        return token

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def list_documents(self, query: DocumentQuery) -> list[dict]:
        """List documents matching a query."""
        resp = await self._request(
            "GET", self._documents_path, resource="Backup",
            params={"queries[]": build_queries(query)},
        )
        return list(_json_body(resp).get("documents", []))

    async def get_document(self, document_id: str) -> dict:
        """Fetch one document by identity."""
        resp = await self._request(
            "GET", f"{self._documents_path}/{document_id}",
            resource="Backup", identifier=document_id,
        )
        return _json_body(resp)

    async def create_document(self, document_id: str, data: dict) -> dict:
        """Create a document with the given identity."""
        resp = await self._request(
            "POST", self._documents_path, resource="Backup", identifier=document_id,
            json={"documentId": document_id, "data": data},
        )
        return _json_body(resp)

    async def update_document(self, document_id: str, data: dict) -> dict:
        """Patch fields of an existing document."""
        resp = await self._request(
            "PATCH", f"{self._documents_path}/{document_id}",
            resource="Backup", identifier=document_id,
            json={"data": data},
        )
        return _json_body(resp)

    async def delete_document(self, document_id: str) -> None:
        """Delete a document."""
        await self._request(
            "DELETE", f"{self._documents_path}/{document_id}",
            resource="Backup", identifier=document_id,
        )

    # ------------------------------------------------------------------
    # BlobStore
    # ------------------------------------------------------------------

    async def create_blob(self, blob_id: str, data: bytes, file_name: str) -> BlobInfo:
        """Upload snapshot bytes as a multipart file."""
        resp = await self._request(
            "POST", self._files_path, resource="Blob", identifier=blob_id,
            data={"fileId": blob_id},
            files={"file": (file_name, data, SNAPSHOT_CONTENT_TYPE)},
        )
        return _parse_model(BlobInfo.from_api, _json_body(resp))

    async def get_blob(self, blob_id: str) -> BlobInfo:
        """Fetch blob metadata."""
        resp = await self._request(
            "GET", f"{self._files_path}/{blob_id}",
            resource="Blob", identifier=blob_id,
        )
        return _parse_model(BlobInfo.from_api, _json_body(resp))

    async def download_blob(self, blob_id: str) -> bytes:
        """Fetch raw blob bytes."""
        resp = await self._request(
            "GET", f"{self._files_path}/{blob_id}/download",
            resource="Blob", identifier=blob_id,
        )
        return resp.content

    async def delete_blob(self, blob_id: str) -> None:
        """Delete a blob."""
        await self._request(
            "DELETE", f"{self._files_path}/{blob_id}",
            resource="Blob", identifier=blob_id,
        )

    def download_url(self, blob_id: str) -> str:
        """Direct download URL for a blob."""
        return (
            f"{self._endpoint}{self._files_path}/{blob_id}/download"
            f"?project={self._project_id}"
        )
