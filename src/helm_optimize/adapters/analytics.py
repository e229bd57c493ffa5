"""Insight repository backed by the analytics service REST API."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import httpx

from ..config import PluginConfig
from ..constants import (
    ANALYTICS_ANALYSIS_EP,
    ANALYTICS_AUTHORIZE_EP,
    ANALYTICS_SYSTEMS_EP,
    APPROVAL_ATTRIBUTE_ID,
    APPROVAL_ATTRIBUTE_NAME,
    APPROVE_SPECIFIC_CHANGE,
    AdapterNames,
    NOT_APPROVED_SETTING,
)
from ..forwarder import analytics_url, load_forwarder_config
from ..kubectl import KubectlClient
from ..prompts import prompt_required, prompt_secret
from ..secrets import SecretStore
from ..types import (
    AnalyticsApiError,
    Approval,
    ContainerIdentity,
    CredError,
    InsightNotFoundError,
    InvalidSpecError,
    ResourceBlock,
)
from .base import InsightAdapter

URL_KEY = "analyticsUrl"
USER_KEY = "analyticsUser"
PASS_KEY = "analyticsPass"

InsightKey = Tuple[str, str, str, str, str]

_INTEGER = re.compile(r"-?[0-9]+")


def insight_key(cluster: str, namespace: str, kind: str, name: str, container: str) -> InsightKey:
    """Cache key of a container; distinct identities never share a key."""
    return (cluster, namespace, kind, name, container)


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and _INTEGER.fullmatch(value.strip()):
        return int(value.strip())
    return 0


@dataclass(frozen=True)
class InsightRecord:
    """One container record of an analysis."""

    cluster: str
    namespace: str
    controller_type: str
    pod_service: str
    container: str
    entity_id: str
    current_cpu_limit: int = 0
    current_mem_limit: int = 0
    current_cpu_request: int = 0
    current_mem_request: int = 0
    recommended_cpu_limit: int = 0
    recommended_mem_limit: int = 0
    recommended_cpu_request: int = 0
    recommended_mem_request: int = 0

    @classmethod
    def from_json(cls, data: Mapping[str, Any]) -> "InsightRecord":
        """Build a record from an analysis result; missing numbers read as 0."""
        return cls(
            cluster=str(data.get("cluster", "")),
            namespace=str(data.get("namespace", "")),
            controller_type=str(data.get("controllerType", "")),
            pod_service=str(data.get("podService", "")),
            container=str(data.get("container", "")),
            entity_id=str(data.get("entityId", "")),
            current_cpu_limit=_as_int(data.get("currentCpuLimit")),
            current_mem_limit=_as_int(data.get("currentMemLimit")),
            current_cpu_request=_as_int(data.get("currentCpuRequest")),
            current_mem_request=_as_int(data.get("currentMemRequest")),
            recommended_cpu_limit=_as_int(data.get("recommendedCpuLimit")),
            recommended_mem_limit=_as_int(data.get("recommendedMemLimit")),
            recommended_cpu_request=_as_int(data.get("recommendedCpuRequest")),
            recommended_mem_request=_as_int(data.get("recommendedMemRequest")),
        )

    @property
    def key(self) -> InsightKey:
        return insight_key(
            self.cluster, self.namespace, self.controller_type, self.pod_service, self.container
        )

    def recommended(self) -> ResourceBlock:
        return ResourceBlock.from_values(
            self.recommended_cpu_limit,
            self.recommended_mem_limit,
            self.recommended_cpu_request,
            self.recommended_mem_request,
        )

    def current(self) -> ResourceBlock:
        return ResourceBlock.from_values(
            self.current_cpu_limit,
            self.current_mem_limit,
            self.current_cpu_request,
            self.current_mem_request,
        )


def approval_from_setting(setting: Optional[str]) -> Approval:
    """Map an ``Approval Setting`` value; anything but ``Not Approved`` is approved."""
    if setting is None or setting == NOT_APPROVED_SETTING:
        return Approval.NOT_APPROVED
    return Approval.APPROVED


class AnalyticsClient:
    """Synchronous client for the analytics REST API."""

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        api_root: str,
        verify: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.logger = logging.getLogger(__name__)
        self._http = httpx.Client(
            base_url=self.base_url + api_root,
            auth=httpx.BasicAuth(username, password),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            verify=verify,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def authorize(self) -> None:
        """
        Validate the credentials.

        Raises:
            CredError: If the service rejects them or cannot be reached
        """
        try:
            self._request(
                "POST",
                ANALYTICS_AUTHORIZE_EP,
                json={"userName": self.username, "pwd": self.password},
            )
        except AnalyticsApiError as e:
            raise CredError(f"analytics service rejected the credentials: {e}") from e

    def list_analyses(self) -> List[Dict[str, Any]]:
        return self._list(self._request("GET", ANALYTICS_ANALYSIS_EP))

    def analysis_results(self, analysis_id: str) -> List[Dict[str, Any]]:
        return self._list(self._request("GET", f"{ANALYTICS_ANALYSIS_EP}/{analysis_id}/results"))

    def get_system(self, entity_id: str) -> Dict[str, Any]:
        data = self._request("GET", f"{ANALYTICS_SYSTEMS_EP}/{entity_id}")
        if not isinstance(data, dict):
            raise AnalyticsApiError(f"unexpected system payload for {entity_id}")
        return data

    def put_attribute(self, entity_id: str, name: str, value: str) -> None:
        self._request(
            "PUT",
            f"{ANALYTICS_SYSTEMS_EP}/{entity_id}/attributes",
            json=[{"name": name, "value": value}],
        )

    def _request(self, method: str, path: str, json: Any = None) -> Any:
        """
        Send one request; only HTTP 200 counts as success.

        Raises:
            AnalyticsApiError: On a non-200 status, a transport failure or a non-JSON body
        """
        self.logger.debug("%s %s%s", method, self._http.base_url, path.lstrip("/"))
        try:
            response = self._http.request(method, path, json=json)
        except httpx.HTTPError as e:
            raise AnalyticsApiError(f"{method} {path} failed: {e}") from e

        if response.status_code != 200:
            raise AnalyticsApiError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise AnalyticsApiError(f"{method} {path} returned invalid JSON: {e}") from e

    @staticmethod
    def _list(data: Any) -> List[Dict[str, Any]]:
        if not isinstance(data, list):
            raise AnalyticsApiError("expected a JSON array")
        return [item for item in data if isinstance(item, dict)]


ClientFactory = Callable[[str, str, str], AnalyticsClient]


class AnalyticsAdapter(InsightAdapter):
    """
    Insights from the analytics service.

    Analysis results are fetched once per cluster and kept for the life of
    the adapter.
    """

    name = AdapterNames.ANALYTICS
    credential_keys = (URL_KEY, USER_KEY, PASS_KEY)

    def __init__(
        self,
        secrets: SecretStore,
        kubectl: KubectlClient,
        config: Optional[PluginConfig] = None,
        client_factory: Optional[ClientFactory] = None,
    ):
        super().__init__(secrets)
        self.kubectl = kubectl
        self.config = config or PluginConfig()
        self._client_factory = client_factory or self._default_client
        self.client: Optional[AnalyticsClient] = None
        self._cache: Dict[str, Optional[Dict[InsightKey, InsightRecord]]] = {}

    def _default_client(self, url: str, username: str, password: str) -> AnalyticsClient:
        return AnalyticsClient(
            url,
            username,
            password,
            api_root=self.config.analytics_api_root,
            verify=self.config.analytics_verify_tls,
        )

    def initialize(self, reconfigure: bool = False) -> None:
        stored = None if reconfigure else self.stored_settings()
        if stored and stored.get(URL_KEY):
            client = self._client_factory(
                stored[URL_KEY], stored.get(USER_KEY, ""), stored.get(PASS_KEY, "")
            )
            try:
                client.authorize()
                self.client = client
                self.logger.debug("Using stored analytics credentials for %s", client.base_url)
                return
            except CredError as e:
                self.logger.warning("Stored analytics credentials are no longer valid: %s", e)

        url = self._discover_url()
        if url:
            print(f"Analytics URL: {url}")
        else:
            url = prompt_required("Analytics URL").rstrip("/")
        username = prompt_required("Analytics Username")
        password = prompt_secret("Analytics Password")

        client = self._client_factory(url, username, password)
        try:
            client.authorize()
        except CredError:
            self.forget_settings()
            raise

        self.store_settings({URL_KEY: url, USER_KEY: username, PASS_KEY: password})
        self.client = client

    def _discover_url(self) -> Optional[str]:
        properties = load_forwarder_config(self.kubectl)
        return analytics_url(properties) if properties else None

    def _require_client(self) -> AnalyticsClient:
        if self.client is None:
            raise CredError("analytics adapter is not initialized")
        return self.client

    def _records(self, cluster: str) -> Dict[InsightKey, InsightRecord]:
        if cluster not in self._cache:
            self._cache[cluster] = self._fetch_records(cluster)
        records = self._cache[cluster]
        if records is None:
            raise InsightNotFoundError(f"no analysis found for cluster {cluster}")
        return records

    def _fetch_records(self, cluster: str) -> Optional[Dict[InsightKey, InsightRecord]]:
        client = self._require_client()
        for analysis in client.list_analyses():
            if analysis.get("analysisName") != cluster:
                continue
            results = client.analysis_results(str(analysis.get("analysisId", "")))
            records = {}
            for item in results:
                record = InsightRecord.from_json(item)
                records[record.key] = record
            self.logger.debug("Cached %d insights for cluster %s", len(records), cluster)
            return records
        self.logger.debug("No analysis named %s", cluster)
        return None

    def lookup(self, identity: ContainerIdentity) -> InsightRecord:
        """
        Find the cached record for a container.

        Raises:
            InsightNotFoundError: If the cluster has no analysis or the container no record
            AnalyticsApiError: If the service cannot be queried
        """
        records = self._records(identity.cluster)
        key = insight_key(
            identity.cluster, identity.namespace, identity.kind, identity.name, identity.container
        )
        record = records.get(key)
        if record is None:
            raise InsightNotFoundError(f"no insight for {identity}")
        return record

    def approval_setting(self, record: InsightRecord) -> Optional[str]:
        """Read the raw ``Approval Setting`` of a record, or None when unreadable."""
        try:
            system = self._require_client().get_system(record.entity_id)
        except AnalyticsApiError as e:
            self.logger.debug("Could not read approval setting of %s: %s", record.entity_id, e)
            return None

        for attribute in system.get("attributes") or []:
            if not isinstance(attribute, dict):
                continue
            if attribute.get("id") == APPROVAL_ATTRIBUTE_ID or attribute.get("name") == APPROVAL_ATTRIBUTE_NAME:
                value = attribute.get("value")
                return value if isinstance(value, str) else None
        return None

    def _fetch_insight(self, identity: ContainerIdentity) -> Tuple[ResourceBlock, Approval]:
        record = self.lookup(identity)
        approval = approval_from_setting(self.approval_setting(record))

        if approval.is_approved:
            try:
                return record.recommended(), Approval.APPROVED
            except InvalidSpecError as e:
                self.logger.debug("Recommendation for %s unusable: %s", identity, e)

        try:
            return record.current(), Approval.NOT_APPROVED
        except InvalidSpecError as e:
            raise InvalidSpecError(f"invalid resource specs received for {identity}") from e

    def get_approval(
        self, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> Approval:
        record = self.lookup(ContainerIdentity(cluster, namespace, kind, name, container))
        return approval_from_setting(self.approval_setting(record))

    def set_approval(
        self, approved: bool, cluster: str, namespace: str, kind: str, name: str, container: str
    ) -> None:
        record = self.lookup(ContainerIdentity(cluster, namespace, kind, name, container))
        value = APPROVE_SPECIFIC_CHANGE if approved else NOT_APPROVED_SETTING
        self._require_client().put_attribute(record.entity_id, APPROVAL_ATTRIBUTE_NAME, value)
        self.logger.debug("Set approval of %s to %s", record.entity_id, value)
