"""HTTP client for the business-relationship backend.

This module provides functionality to:
- Fetch companies, groups, divisions, industries and persons
- Read and edit phone numbers, emails and locations with their associations
- Query the audit trail
- Retry transient failures (5xx responses and network errors)
"""

import logging
import threading
import time
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, TypeVar

import httpx

from orgbook.backend.errors import BackendError, NotFoundError
from orgbook.models import (
    AssociationLink,
    AuditLog,
    AuditLogFilters,
    Contact,
    ContactKind,
    EntityKind,
    EntityRecord,
    Industry,
    Person,
    RecordDecodeError,
)

if TYPE_CHECKING:
    from orgbook.config import OrgbookConfig


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_API_BASE_URL = "http://localhost:8000"


class BackendClient:
    """Client for the backend REST API with retry handling."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the backend client.

        Args:
            base_url: Root URL of the backend, without a trailing slash.
            max_retries: Maximum number of retries for failed requests.
            retry_delay: Base delay between retries (exponential backoff).
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport, mainly for tests.
        """
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._client_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: "OrgbookConfig") -> "BackendClient":
        """Create a client from the persisted configuration."""
        return cls(
            base_url=config.api_base_url,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            timeout=config.timeout,
        )

    @property
    def client(self) -> httpx.Client:
        """Get or create HTTP client.

        Dashboard workers share one client from several threads, so creation
        happens under a lock.
        """
        client = self._client
        if client is not None:
            return client
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    base_url=self.base_url,
                    headers={
                        "Accept": "application/json",
                        "Content-Type": "application/json",
                        "User-Agent": "Orgbook-Admin-Client",
                    },
                    timeout=self.timeout,
                    follow_redirects=True,
                    transport=self._transport,
                )
            return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        with self._client_lock:
            if self._client:
                self._client.close()
                self._client = None

    def __enter__(self) -> "BackendClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Make a request, retrying server errors and network failures.

        Client errors (4xx) are returned straight away. A server error that
        persists after the last retry is returned as is.

        Raises:
            httpx.TransportError: If the network error persists after retries.
        """
        for attempt in range(self.max_retries + 1):
            delay = self.retry_delay * (2 ** attempt)
            try:
                response = self.client.request(method, url, **kwargs)
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                if attempt < self.max_retries:
                    logger.warning(
                        "Network error on %s %s, retrying in %.1fs (attempt %d/%d): %s",
                        method, url, delay, attempt + 1, self.max_retries, e,
                    )
                    time.sleep(delay)
                    continue
                raise

            if response.status_code >= 500 and attempt < self.max_retries:
                logger.warning(
                    "%s %s failed (%d), retrying in %.1fs (attempt %d/%d)",
                    method, url, response.status_code, delay, attempt + 1, self.max_retries,
                )
                time.sleep(delay)
                continue

            return response

        raise RuntimeError("Request failed without response")

    def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Make a request and raise BackendError on an error status."""
        response = self._request_with_retry(method, url, **kwargs)
        if response.is_error:
            raise BackendError.from_response(response)
        return response

    def get(self, url: str, **kwargs) -> httpx.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, data: Any = None, **kwargs) -> httpx.Response:
        return self.request("POST", url, json=data, **kwargs)

    def put(self, url: str, data: Any = None, **kwargs) -> httpx.Response:
        return self.request("PUT", url, json=data, **kwargs)

    def delete(self, url: str, **kwargs) -> httpx.Response:
        return self.request("DELETE", url, **kwargs)

    def _get_list(self, url: str, **kwargs) -> list:
        response = self.get(url, **kwargs)
        data = response.json()
        if not isinstance(data, list):
            raise BackendError(
                f"Expected a JSON array from {url}",
                status_code=response.status_code,
                method="GET",
                url=url,
            )
        return data

    @staticmethod
    def _json_or_empty(response: httpx.Response) -> dict:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _decode_many(items: Iterable[dict], decoder: Callable[[dict], T], label: str) -> list[T]:
        """Decode records, skipping malformed ones with a warning."""
        records = []
        for item in items:
            try:
                records.append(decoder(item))
            except RecordDecodeError as e:
                logger.warning("Skipping malformed %s record: %s", label, e)
        return records

    # -- Companies, groups and divisions -----------------------------------

    def list_entities(self) -> list[EntityRecord]:
        """Fetch every company, group and division as a flat list.

        Returns:
            Records in backend order, ready for build_entity_forest.
        """
        return self._decode_many(self._get_list("/companies/"), EntityRecord.from_api, "entity")

    def list_all_companies(self) -> list[EntityRecord]:
        """Fetch the lightweight company listing used for lookups."""
        return self._decode_many(
            self._get_list("/companies/all"),
            lambda item: EntityRecord.from_api(item, default_kind=EntityKind.COMPANY),
            "company",
        )

    def search_companies(self, query: str) -> list[EntityRecord]:
        """Search companies by name on the backend."""
        return self._decode_many(
            self._get_list("/companies/search", params={"q": query}),
            lambda item: EntityRecord.from_api(item, default_kind=EntityKind.COMPANY),
            "company",
        )

    def list_kind(self, kind: EntityKind) -> list[EntityRecord]:
        """Fetch the records of one kind from its own collection."""
        return self._decode_many(
            self._get_list(kind.collection_path),
            lambda item: EntityRecord.from_api(item, default_kind=kind),
            kind.value.lower(),
        )

    def list_groups(self) -> list[EntityRecord]:
        return self.list_kind(EntityKind.GROUP)

    def list_divisions(self) -> list[EntityRecord]:
        return self.list_kind(EntityKind.DIVISION)

    def get_entity(self, record_id: str) -> EntityRecord:
        """Fetch one entity without knowing its kind.

        Each kind's detail endpoint is tried in turn; when a detail request
        fails the kind's list is searched instead.

        Raises:
            NotFoundError: If no kind has a record with this id.
        """
        for kind in EntityKind:
            try:
                response = self.get(f"{kind.collection_path}{record_id}")
                return EntityRecord.from_api(response.json(), default_kind=kind)
            except BackendError as e:
                logger.debug("%s detail lookup for %s failed: %s", kind.value, record_id, e)

            try:
                for record in self.list_kind(kind):
                    if record.id == str(record_id):
                        return record
            except BackendError as e:
                logger.debug("%s list lookup for %s failed: %s", kind.value, record_id, e)

        raise NotFoundError(f"Entity {record_id} not found", status_code=404)

    def get_group_name(self, group_id: str) -> Optional[str]:
        """Resolve a group's display name, or None if it is not a group."""
        try:
            response = self.get(f"{EntityKind.GROUP.collection_path}{group_id}")
        except NotFoundError:
            return None
        data = response.json()
        return data.get("company_group_print_name") or data.get("group_print_name")

    def create_entity(self, record: EntityRecord) -> dict:
        """Create a company, group or division.

        The record's kind picks the collection the request goes to.
        """
        response = self.post(record.kind.collection_path, record.to_payload())
        return self._json_or_empty(response)

    def update_entity(self, record: EntityRecord) -> dict:
        response = self.put(f"{record.kind.collection_path}{record.id}", record.to_payload())
        return self._json_or_empty(response)

    def delete_entity(self, kind: EntityKind, record_id: str) -> None:
        """Delete an entity. The backend removes its children as well."""
        self.delete(f"{kind.collection_path}{record_id}")

    # -- Industries ---------------------------------------------------------

    def list_industries(self) -> list[Industry]:
        return self._decode_many(self._get_list("/industries/"), Industry.from_api, "industry")

    def create_industry(self, name: str, category: str = "main", parent_id: Optional[int] = None) -> dict:
        response = self.post(
            "/industries/",
            {"industry_name": name, "category": category, "parent_id": parent_id},
        )
        return self._json_or_empty(response)

    def rename_industry(self, industry_id: int, name: str) -> None:
        """Rename an industry, trying the legacy update route on 404."""
        try:
            self.put(f"/industries/{industry_id}", {"industry_name": name})
        except NotFoundError:
            self.put(f"/industries/update/{industry_id}", {"industry_name": name})

    def move_industry(self, industry_id: int, new_parent_id: Optional[int]) -> None:
        """Reparent an industry; None moves it to the top level."""
        self.post("/industries/update-parent", {"id": industry_id, "new_parent_id": new_parent_id})

    def delete_industry(self, industry_id: int) -> None:
        self.delete(f"/industries/{industry_id}")

    # -- Persons ------------------------------------------------------------

    def list_persons(self) -> list[Person]:
        return self._decode_many(self._get_list("/persons/all"), Person.from_api, "person")

    def search_persons(self, query: str) -> list[Person]:
        return self._decode_many(
            self._get_list("/persons/search", params={"q": query}),
            Person.from_api,
            "person",
        )

    def get_person(self, person_id: int) -> Person:
        response = self.get(f"/persons/{person_id}")
        return Person.from_api(response.json())

    def create_person(self, payload: dict) -> dict:
        return self._json_or_empty(self.post("/persons/", payload))

    def update_person(self, person_id: int, payload: dict) -> dict:
        return self._json_or_empty(self.put(f"/persons/{person_id}", payload))

    def company_names(self) -> dict[int, str]:
        """Map company record ids to display names."""
        names = {}
        for record in self.list_all_companies():
            try:
                names[int(record.id)] = record.display_name
            except ValueError:
                continue
        return names

    def person_names(self) -> dict[int, str]:
        """Map person record ids to display names."""
        return {person.id: person.display_name for person in self.list_persons()}

    # -- Contacts and associations -----------------------------------------

    def list_contacts(self, kind: ContactKind, search: str = "") -> list[Contact]:
        """List phone numbers, emails or locations.

        Args:
            kind: Contact method to list.
            search: Optional backend search term.
        """
        if search:
            items = self._get_list(f"{kind.path}/search", params={"q": search})
        else:
            items = self._get_list(f"{kind.path}/all")
        return self._decode_many(items, lambda item: Contact.from_api(kind, item), kind.value)

    def get_contact(self, kind: ContactKind, contact_id: int) -> Contact:
        """Fetch one contact including its associations."""
        response = self.get(f"{kind.path}/{contact_id}")
        return Contact.from_api(kind, response.json())

    def create_contact(
        self,
        kind: ContactKind,
        record: dict,
        links: Iterable[AssociationLink] = (),
    ) -> dict:
        """Create a contact together with its first associations.

        Args:
            kind: Contact method to create.
            record: Contact fields, e.g. ``{"phone_number": ..., "is_active": ...}``.
            links: Associations created in the same request.
        """
        payload = {
            kind.record_key: record,
            "associations": [link.to_payload(kind) for link in links],
        }
        return self._json_or_empty(self.post(f"{kind.path}/", payload))

    def update_contact(self, kind: ContactKind, contact_id: int, payload: dict) -> dict:
        return self._json_or_empty(self.put(f"{kind.path}/{contact_id}", payload))

    def delete_contact(self, kind: ContactKind, contact_id: int) -> None:
        self.delete(f"{kind.path}/{contact_id}")

    def create_association(self, kind: ContactKind, contact_id: int, link: AssociationLink) -> dict:
        return self._json_or_empty(
            self.post(f"{kind.path}/{contact_id}/associations", link.to_payload(kind))
        )

    def update_association(self, kind: ContactKind, association_id: int, link: AssociationLink) -> dict:
        return self._json_or_empty(
            self.put(f"{kind.path}/associations/{association_id}", link.to_payload(kind))
        )

    def delete_association(self, kind: ContactKind, association_id: int) -> None:
        self.delete(f"{kind.path}/associations/{association_id}")

    # -- Audit trail --------------------------------------------------------

    def get_audit_logs(self, filters: Optional[AuditLogFilters] = None) -> list[AuditLog]:
        params = filters.to_params() if filters else {}
        return self._decode_many(
            self._get_list("/audit-logs", params=params),
            AuditLog.from_api,
            "audit log",
        )

    def get_audit_logs_for_record(self, table_name: str, record_id: str) -> list[AuditLog]:
        return self._decode_many(
            self._get_list(f"/audit-logs/record/{table_name}/{record_id}"),
            AuditLog.from_api,
            "audit log",
        )

    def get_recent_audit_logs(self, limit: int = 50) -> list[AuditLog]:
        return self._decode_many(
            self._get_list("/audit-logs/recent", params={"limit": limit}),
            AuditLog.from_api,
            "audit log",
        )
