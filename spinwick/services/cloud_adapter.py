from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import httpx

from spinwick.transport import AdapterRequestError, decode_object, send_request

logger = logging.getLogger(__name__)

STATE_CREATING = "creating"
STATE_NO_COMPATIBLE_CLUSTERS = "creation-no-compatible-clusters"
STATE_STABLE = "stable"
STATE_CREATION_FAILED = "creation-failed"
STATE_UPDATE_FAILED = "update-failed"
STATE_UPDATE_REQUESTED = "update-requested"


@dataclass(frozen=True)
class Cluster:
    id: str
    provider: str
    size: str
    state: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Cluster":
        return cls(
            id=str(payload.get("ID") or ""),
            provider=str(payload.get("Provider") or ""),
            size=str(payload.get("Size") or ""),
            state=str(payload.get("State") or ""),
        )


@dataclass(frozen=True)
class Installation:
    id: str
    owner_id: str
    version: str
    dns: str
    size: str
    affinity: str
    state: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Installation":
        return cls(
            id=str(payload.get("ID") or ""),
            owner_id=str(payload.get("OwnerID") or ""),
            version=str(payload.get("Version") or ""),
            dns=str(payload.get("DNS") or ""),
            size=str(payload.get("Size") or ""),
            affinity=str(payload.get("Affinity") or ""),
            state=str(payload.get("State") or ""),
        )


@dataclass(frozen=True)
class InstallationDeleteResult:
    installation_id: str
    changed: bool
    status: str


class CloudAdapter:
    """Adapter for the cloud provisioner's cluster and installation API."""

    def __init__(
        self,
        *,
        base_url: str,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = {"Content-Type": "application/json"}

    def close(self) -> None:
        self._client.close()

    def create_cluster(self, *, size: str, provider: str = "aws", zones: list[str] | None = None) -> Cluster:
        logger.info("Requesting cluster creation (provider=%s size=%s)", provider, size)
        response = send_request(
            self._client,
            "POST",
            f"{self._base_url}/api/clusters",
            json={"Provider": provider, "Size": size, "Zones": zones or []},
            headers=self._headers,
            expected_status=(200, 201, 202),
            error_message="Failed to request cluster creation",
        )
        cluster = Cluster.from_payload(decode_object(response, error_message="Invalid cluster creation response"))
        logger.info("Cluster requested: id=%s state=%s", cluster.id, cluster.state)
        return cluster

    def get_cluster(self, cluster_id: str) -> Cluster:
        response = send_request(
            self._client,
            "GET",
            f"{self._base_url}/api/cluster/{cluster_id}",
            error_message=f"Failed to fetch cluster {cluster_id}",
        )
        return Cluster.from_payload(decode_object(response, error_message=f"Invalid cluster {cluster_id} response"))

    def create_installation(
        self,
        *,
        owner_id: str,
        version: str,
        dns: str,
        size: str,
        affinity: str,
    ) -> Installation:
        logger.info(
            "Requesting installation (owner=%s version=%s dns=%s size=%s affinity=%s)",
            owner_id,
            version,
            dns,
            size,
            affinity,
        )
        response = send_request(
            self._client,
            "POST",
            f"{self._base_url}/api/installations",
            json={
                "OwnerID": owner_id,
                "Version": version,
                "DNS": dns,
                "Size": size,
                "Affinity": affinity,
            },
            headers=self._headers,
            expected_status=(200, 201, 202),
            error_message=f"Failed to request installation for {owner_id}",
        )
        installation = Installation.from_payload(
            decode_object(response, error_message="Invalid installation creation response")
        )
        logger.info("Installation requested: id=%s state=%s", installation.id, installation.state)
        return installation

    def get_installation(self, installation_id: str) -> Installation:
        response = send_request(
            self._client,
            "GET",
            f"{self._base_url}/api/installation/{installation_id}",
            error_message=f"Failed to fetch installation {installation_id}",
        )
        return Installation.from_payload(
            decode_object(response, error_message=f"Invalid installation {installation_id} response")
        )

    def upgrade_installation(self, installation_id: str, *, version: str) -> None:
        """Request a version change; the provisioner must accept it with 202."""
        logger.info("Requesting upgrade of installation %s to version %s", installation_id, version)
        send_request(
            self._client,
            "PUT",
            f"{self._base_url}/api/installation/{installation_id}/mattermost",
            json={"version": version},
            headers=self._headers,
            expected_status=(202,),
            error_message=f"Upgrade of installation {installation_id} was not accepted",
        )

    def delete_installation(self, installation_id: str) -> InstallationDeleteResult:
        logger.info("Requesting deletion of installation %s", installation_id)
        try:
            send_request(
                self._client,
                "DELETE",
                f"{self._base_url}/api/installation/{installation_id}",
                expected_status=(200, 202, 204),
                error_message=f"Failed to delete installation {installation_id}",
            )
        except AdapterRequestError as exc:
            if exc.not_found:
                logger.debug("Installation was already absent: %s", installation_id)
                return InstallationDeleteResult(installation_id=installation_id, changed=False, status="not-found")
            raise
        return InstallationDeleteResult(installation_id=installation_id, changed=True, status="deletion-requested")
