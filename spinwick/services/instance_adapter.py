from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import httpx

from spinwick.transport import decode_object, send_request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstanceUser:
    id: str
    username: str


@dataclass(frozen=True)
class InstanceTeam:
    id: str
    name: str


class InstanceAdapter:
    """Adapter for the v4 REST API of a running SpinWick instance."""

    def __init__(
        self,
        *,
        base_url: str,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._token: str | None = None

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> dict[str, str]:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    def _url(self, path: str) -> str:
        return f"{self._base_url}/api/v4{path}"

    def ping(self) -> str:
        response = send_request(self._client, "GET", self._url("/system/ping"), error_message="Ping failed")
        return str(decode_object(response, error_message="Invalid ping response").get("status") or "")

    def create_user(self, *, username: str, email: str, password: str) -> InstanceUser:
        response = send_request(
            self._client,
            "POST",
            self._url("/users"),
            json={"username": username, "email": email, "password": password},
            headers=self._headers(),
            expected_status=(201,),
            error_message=f"Failed to create user {username}",
        )
        payload = decode_object(response, error_message=f"Invalid response creating user {username}")
        logger.debug("Created user %s", username)
        return InstanceUser(id=str(payload.get("id") or ""), username=username)

    def login(self, *, login_id: str, password: str) -> InstanceUser:
        response = send_request(
            self._client,
            "POST",
            self._url("/users/login"),
            json={"login_id": login_id, "password": password},
            error_message=f"Failed to log in as {login_id}",
        )
        payload = decode_object(response, error_message=f"Invalid login response for {login_id}")
        self._token = response.headers.get("Token")
        return InstanceUser(id=str(payload.get("id") or ""), username=str(payload.get("username") or login_id))

    def create_team(self, *, name: str, display_name: str, team_type: str = "O") -> InstanceTeam:
        response = send_request(
            self._client,
            "POST",
            self._url("/teams"),
            json={"name": name, "display_name": display_name, "type": team_type},
            headers=self._headers(),
            expected_status=(201,),
            error_message=f"Failed to create team {name}",
        )
        payload = decode_object(response, error_message=f"Invalid response creating team {name}")
        return InstanceTeam(id=str(payload.get("id") or ""), name=name)

    def add_team_member(self, *, team_id: str, user_id: str) -> None:
        send_request(
            self._client,
            "POST",
            self._url(f"/teams/{team_id}/members"),
            json={"team_id": team_id, "user_id": user_id},
            headers=self._headers(),
            expected_status=(201,),
            error_message=f"Failed to add user {user_id} to team {team_id}",
        )

    def get_config(self) -> dict[str, Any]:
        response = send_request(
            self._client,
            "GET",
            self._url("/config"),
            headers=self._headers(),
            error_message="Failed to get the server config",
        )
        return decode_object(response, error_message="Invalid server config response")

    def update_config(self, config: dict[str, Any]) -> dict[str, Any]:
        response = send_request(
            self._client,
            "PUT",
            self._url("/config"),
            json=config,
            headers=self._headers(),
            error_message="Failed to update the server config",
        )
        return decode_object(response, error_message="Invalid server config update response")
