"""ConnectWise Manage REST connector.

Stateless wrapper around the ConnectWise Manage 3.0 API: companies,
company types, contacts, agreements and agreement additions. Every call
builds its own Basic auth header from the credential set, so an instance
holds no session state and can be rebuilt per request.

Business Rules:
- Site URL: trailing slash stripped, https:// added when no scheme given,
  fixed versioned API path appended
- Auth: Basic "{companyId}+{publicKey}:{privateKey}" plus clientId header
- Any non-2xx response raises ConnectWiseApiError(status, body); transport
  failures raise the same error with status_code=None
- No retries here; the sync engine decides what a failure means
- Company list is paged 100 at a time; total comes from the /count endpoint
- Agreement-addition failures are skipped while collecting SKUs

Called by: services/connectwise_sync.py, routers/connectwise.py
Depends on: http_client.py, httpx, pydantic
"""

import base64
import logging
from typing import Any, Callable

import httpx
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from ..http_client import http

log = logging.getLogger(__name__)

API_PATH = "/v4_6_release/apis/3.0"
PAGE_SIZE = 100
MAX_PAGE_SIZE = 1000


class ConnectWiseApiError(Exception):
    """Non-2xx response (or transport failure) from ConnectWise."""

    def __init__(self, status_code: int | None, body: str):
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"ConnectWise API error: {body}"
        else:
            message = f"ConnectWise API error: {status_code} - {body}"
        super().__init__(message)


# ── Response payloads ────────────────────────────────────────────────


class _CWModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class CWRef(_CWModel):
    id: int
    name: str = ""


class CWCompany(_CWModel):
    id: int
    identifier: str = ""
    name: str = ""
    types: list[CWRef] = []
    address_line1: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    phone_number: str | None = None
    website: str | None = None
    default_contact: CWRef | None = None

    @field_validator("types", mode="before")
    @classmethod
    def _types_default(cls, v):
        return v or []

    @property
    def type_names(self) -> list[str]:
        return [t.name for t in self.types]

    def single_line_address(self) -> str:
        parts = [self.address_line1, self.city, self.state, self.zip]
        return ", ".join(p for p in parts if p)


class CWCommunicationItem(_CWModel):
    type: CWRef
    value: str = ""
    default_flag: bool = False


class CWContact(_CWModel):
    id: int
    first_name: str | None = None
    last_name: str | None = None
    communication_items: list[CWCommunicationItem] = []

    @field_validator("communication_items", mode="before")
    @classmethod
    def _items_default(cls, v):
        return v or []

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def preferred_value(self, kind: str) -> str | None:
        """Default-flagged communication item of a kind, else the first one."""
        matches = [
            item for item in self.communication_items
            if kind in item.type.name.lower()
        ]
        for item in matches:
            if item.default_flag:
                return item.value
        return matches[0].value if matches else None


class CWAgreement(_CWModel):
    id: int
    name: str = ""
    cancelled: bool = False


class CWProduct(_CWModel):
    id: int | None = None
    identifier: str | None = None
    description: str | None = None


class CWAgreementAddition(_CWModel):
    id: int
    product: CWProduct | None = None
    quantity: float | None = None


class CompanyPage(BaseModel):
    items: list[CWCompany]
    total_count: int


# ── Client ───────────────────────────────────────────────────────────


def normalize_site_url(site_url: str) -> str:
    """Return the API base URL for a ConnectWise site."""
    url = (site_url or "").strip().rstrip("/")
    if not url.startswith(("https://", "http://")):
        url = f"https://{url}"
    return f"{url}{API_PATH}"


class ConnectWiseClient:
    """ConnectWise Manage API client with per-request Basic auth."""

    def __init__(
        self,
        company_id: str,
        public_key: str,
        private_key: str,
        site_url: str,
        client_id: str,
        timeout: float = 30.0,
    ):
        self.company_id = company_id
        self.public_key = public_key
        self.private_key = private_key
        self.client_id = client_id
        self.base_url = normalize_site_url(site_url)
        self.timeout = timeout

    @classmethod
    def from_settings(cls, row, timeout: float = 30.0) -> "ConnectWiseClient":
        """Build from a ConnectwiseSettings row."""
        return cls(
            company_id=row.company_id,
            public_key=row.public_key,
            private_key=row.private_key or "",
            site_url=row.site_url,
            client_id=row.client_id,
            timeout=timeout,
        )

    def _headers(self) -> dict[str, str]:
        raw = f"{self.company_id}+{self.public_key}:{self.private_key}"
        token = base64.b64encode(raw.encode()).decode()
        return {
            "Authorization": f"Basic {token}",
            "clientId": self.client_id,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _get(self, endpoint: str, params: dict[str, str] | None = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            r = await http.get(
                url, params=params, headers=self._headers(), timeout=self.timeout
            )
        except httpx.HTTPError as e:
            raise ConnectWiseApiError(None, f"{type(e).__name__}: {e}") from e
        if not r.is_success:
            raise ConnectWiseApiError(r.status_code, r.text)
        return r.json()

    async def test_connection(self) -> dict:
        """Lightweight metadata call. Never raises."""
        try:
            await self._get("/system/info")
            return {"success": True, "message": "Connection successful"}
        except Exception as e:
            log.warning(f"ConnectWise connection test failed: {e}")
            return {"success": False, "message": str(e) or "Connection failed"}

    async def list_company_types(self) -> list[CWRef]:
        data = await self._get(
            "/company/companies/types", {"pageSize": str(MAX_PAGE_SIZE)}
        )
        return [CWRef.model_validate(t) for t in data or []]

    async def get_companies(
        self, page: int = 1, page_size: int = PAGE_SIZE, conditions: str | None = None
    ) -> CompanyPage:
        """One page of companies plus the total count (two calls)."""
        params = {"page": str(page), "pageSize": str(page_size)}
        count_params = {}
        if conditions:
            params["conditions"] = conditions
            count_params["conditions"] = conditions

        items = await self._get("/company/companies", params)
        count = await self._get("/company/companies/count", count_params or None)
        return CompanyPage(
            items=[CWCompany.model_validate(c) for c in items or []],
            total_count=int((count or {}).get("count", 0)),
        )

    async def get_all_companies(
        self,
        conditions: str | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> list[CWCompany]:
        """Every company, page by page. Any page failure propagates."""
        companies: list[CWCompany] = []
        page = 1
        while True:
            result = await self.get_companies(page, PAGE_SIZE, conditions)
            companies.extend(result.items)
            if on_progress:
                on_progress(len(companies), result.total_count)
            if not result.items or len(companies) >= result.total_count:
                break
            page += 1
        log.info(f"ConnectWise: fetched {len(companies)} companies in {page} page(s)")
        return companies

    async def get_company(self, company_id: int) -> CWCompany:
        return CWCompany.model_validate(
            await self._get(f"/company/companies/{company_id}")
        )

    async def get_company_contact(self, contact_id: int) -> CWContact:
        return CWContact.model_validate(
            await self._get(f"/company/contacts/{contact_id}")
        )

    async def get_agreements_by_company(self, company_id: int) -> list[CWAgreement]:
        """Active (non-cancelled) agreements, single page of up to 1000."""
        data = await self._get(
            "/finance/agreements",
            {
                "conditions": f"company/id={company_id} and cancelled=false",
                "pageSize": str(MAX_PAGE_SIZE),
            },
        )
        return [CWAgreement.model_validate(a) for a in data or []]

    async def get_agreement_additions(self, agreement_id: int) -> list[CWAgreementAddition]:
        data = await self._get(
            f"/finance/agreements/{agreement_id}/additions",
            {"pageSize": str(MAX_PAGE_SIZE)},
        )
        return [CWAgreementAddition.model_validate(a) for a in data or []]

    async def get_company_product_skus(
        self, company_id: int, warnings: list[str] | None = None
    ) -> list[str]:
        """Distinct product identifiers across a company's active agreements.

        A failing agreement is logged, noted in `warnings` when given, and
        skipped. Failure to list the agreements themselves propagates.
        """
        agreements = await self.get_agreements_by_company(company_id)
        skus: list[str] = []
        seen: set[str] = set()
        for agreement in agreements:
            try:
                additions = await self.get_agreement_additions(agreement.id)
            except Exception as e:
                msg = f"Failed to get additions for agreement {agreement.id}: {e}"
                log.warning(msg)
                if warnings is not None:
                    warnings.append(msg)
                continue
            for addition in additions:
                sku = addition.product.identifier if addition.product else None
                if sku and sku not in seen:
                    seen.add(sku)
                    skus.append(sku)
        return skus
