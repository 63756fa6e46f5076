# ================================================================
# File     : client.py
# Purpose  : Microsoft Graph API read-only client for Entra (Azure AD)
# Notes    : Read-only: GET + pagination + retries. No destructive ops.
#            - Auto-refresh token on 401
#            - Proactive refresh if token expires in <5 minutes
#            - Honours Retry-After on 429
#            - One explicit session per client; nothing global
# ================================================================

import time
import getpass
from typing import Dict, Any, List, Optional

import msal
import requests

from groupkennel.core.errors import GraphAuthError, GraphRequestError
from groupkennel.core.utils import fncPrintMessage, fncRetry

GRAPH_HOST = "https://graph.microsoft.com"
GRAPH_ROOT = f"{GRAPH_HOST}/v1.0"
GRAPH_BETA_ROOT = f"{GRAPH_HOST}/beta"
DEFAULT_AUTHORITY = "https://login.microsoftonline.com"

TRANSIENT_STATUS = (500, 502, 503, 504)
MAX_THROTTLE_RETRIES = 5
REQUEST_TIMEOUT = 60


def _is_transient(ex: Exception) -> bool:
    if isinstance(ex, GraphRequestError):
        return ex.status_code in TRANSIENT_STATUS
    return isinstance(ex, requests.RequestException)


class GraphClient:
    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        authority: str = DEFAULT_AUTHORITY,
        session: Optional[requests.Session] = None,
    ):
        # Prompt interactively if any credential is missing
        if not tenant_id:
            tenant_id = input("Enter Tenant ID: ").strip()
        if not client_id:
            client_id = input("Enter Application (Client) ID: ").strip()
        if not client_secret:
            fncPrintMessage("No Client Secret configured. It is kept in memory for this run only.", "warn")
            client_secret = getpass.getpass("Enter Client Secret (input hidden): ").strip()

        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret

        # Application scope (app-only). Ensure the app has read-only app perms.
        self.scope = ["https://graph.microsoft.com/.default"]
        self.authority = f"{authority.rstrip('/')}/{tenant_id}"
        self.session = session or requests.Session()

        fncPrintMessage("Connecting to Microsoft Graph for tenant assessment...", "info")

        try:
            self.app = msal.ConfidentialClientApplication(
                client_id=self.client_id,
                client_credential=self.client_secret,
                authority=self.authority,
            )
        except ValueError as ex:
            raise GraphAuthError(f"Could not initialise MSAL for tenant {tenant_id}: {ex}", ex) from ex

        self.token: str = ""
        self._token_expires_on: int = 0  # epoch seconds
        self._set_token(self._acquire_token())

        fncPrintMessage("Graph token acquired; client ready.", "success")

    # ---------- Token helpers ----------

    def _acquire_token(self) -> Dict[str, Any]:
        """Client-credentials token via MSAL, cache first; raises GraphAuthError."""
        fncPrintMessage("Requesting Microsoft Graph access token...", "debug")
        result = self.app.acquire_token_silent(self.scope, account=None)
        if not result:
            result = self.app.acquire_token_for_client(scopes=self.scope)
        if "access_token" not in result:
            reason = result.get("error_description") or result.get("error") or "Unknown error"
            fncPrintMessage(f"MSAL Authentication failed: {reason}", "error")
            raise GraphAuthError(f"Failed to acquire access token: {reason}")
        return result

    def _set_token(self, msal_result: Dict[str, Any]) -> None:
        """Keep the bearer token and work out when it lapses."""
        self.token = msal_result["access_token"]
        try:
            self._token_expires_on = int(msal_result.get("expires_on") or 0)
        except (TypeError, ValueError):
            self._token_expires_on = 0
        if not self._token_expires_on:
            self._token_expires_on = int(time.time()) + int(msal_result.get("expires_in", 3600))

    def _ensure_fresh_token(self) -> None:
        """Refresh when fewer than five minutes remain."""
        now = int(time.time())
        if now >= (self._token_expires_on - 300):
            fncPrintMessage("Refreshing access token (nearing expiry)...", "debug")
            self._set_token(self._acquire_token())

    def _auth_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    # ---------- HTTP handling ----------

    def _send(self, url: str, params: Optional[Dict[str, Any]], headers: Optional[Dict[str, str]]) -> requests.Response:
        return self.session.request(
            "GET", url, headers=self._auth_headers(headers), params=params, timeout=REQUEST_TIMEOUT,
        )

    def _request(self, url: str, params: Optional[Dict[str, Any]] = None,
                 headers: Optional[Dict[str, str]] = None) -> requests.Response:
        """
        Single logical GET: proactive refresh, 429 back-off, one 401 refresh.
        Returns the successful Response or raises GraphRequestError.
        """
        self._ensure_fresh_token()
        resp = self._send(url, params, headers)

        throttles = 0
        while resp.status_code == 429 and throttles < MAX_THROTTLE_RETRIES:
            throttles += 1
            try:
                retry_after = int(resp.headers.get("Retry-After", 5))
            except ValueError:
                retry_after = 5
            fncPrintMessage(f"Rate limit hit. Sleeping for {retry_after}s...", "warn")
            time.sleep(retry_after)
            resp = self._send(url, params, headers)

        if resp.status_code == 401:
            body = resp.text or ""
            if "InvalidAuthenticationToken" in body or "expired" in body.lower():
                fncPrintMessage("Access token expired, attempting refresh.", "warn")
                self._set_token(self._acquire_token())
                resp = self._send(url, params, headers)

        if resp.status_code >= 400:
            fncPrintMessage(f"Graph API Error [{resp.status_code}] {url} -> {resp.text[:300]}", "debug")
            raise GraphRequestError(resp.status_code, resp.text, url)
        return resp

    def _url(self, endpoint: str, api: str = "v1.0") -> str:
        if endpoint.startswith("https://"):
            return endpoint
        root = GRAPH_BETA_ROOT if api == "beta" else GRAPH_ROOT
        return f"{root}/{endpoint.strip().lstrip('/')}"

    def _get_json(self, url: str, params=None, headers=None) -> Dict[str, Any]:
        resp = fncRetry(lambda: self._request(url, params=params, headers=headers), retry_if=_is_transient)
        if not resp.content:
            return {}
        return resp.json()

    # ---------- Public API ----------

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, api: str = "v1.0",
            headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Single GET; the JSON body is returned as-is.
        Paged collections should go through get_all.
        """
        url = self._url(endpoint, api)
        fncPrintMessage(f"GET {url}", "debug")
        return self._get_json(url, params=params, headers=headers)

    def get_all(self, endpoint: str, params: Optional[Dict[str, Any]] = None, api: str = "v1.0",
                headers: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        """
        Walk @odata.nextLink and collect every "value" item.
        Non-collection responses come back as a one-item list.
        Example: client.get_all("groups?$select=id,displayName")
        """
        url = self._url(endpoint, api)
        fncPrintMessage(f"GET (all pages) {url}", "debug")

        data = self._get_json(url, params=params, headers=headers)
        if isinstance(data, dict) and "value" not in data:
            return [data] if data else []

        items: List[Dict[str, Any]] = list(data.get("value", []))
        next_link = data.get("@odata.nextLink")
        while next_link:
            fncPrintMessage(f"Following nextLink -> {next_link}", "debug")
            page = self._get_json(next_link, headers=headers)
            items.extend(page.get("value", []))
            next_link = page.get("@odata.nextLink")
        return items

    def get_count(self, endpoint: str) -> int:
        """GET a /$count path (needs ConsistencyLevel: eventual); returns int."""
        url = self._url(endpoint)
        fncPrintMessage(f"GET (count) {url}", "debug")
        resp = fncRetry(
            lambda: self._request(url, headers={"ConsistencyLevel": "eventual", "Accept": "text/plain"}),
            retry_if=_is_transient,
        )
        text = (resp.text or "").lstrip("\ufeff").strip()
        try:
            return int(text)
        except ValueError:
            raise GraphRequestError(resp.status_code, f"Unexpected $count body: {text[:100]}", url)

    def get_text(self, endpoint: str, api: str = "v1.0") -> str:
        """GET a non-JSON resource (e.g. CSV usage reports, which redirect to a download)."""
        url = self._url(endpoint, api)
        fncPrintMessage(f"GET (text) {url}", "debug")
        resp = fncRetry(
            lambda: self._request(url, headers={"Accept": "text/csv, application/octet-stream, */*"}),
            retry_if=_is_transient,
        )
        resp.encoding = resp.encoding or "utf-8"
        return (resp.text or "").lstrip("\ufeff")
