from __future__ import annotations

import logging
import re

import httpx

from spinwick.transport import AdapterRequestError, ResponseResult, decode_object, send_request

logger = logging.getLogger(__name__)

_MANIFEST_MEDIA_TYPES = ", ".join(
    (
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.oci.image.index.v1+json",
    )
)
_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


class RegistryAdapter:
    """Adapter for manifest lookups against a Docker Registry HTTP API v2.

    Anonymous pulls are supported through the registry's bearer-token
    challenge; tokens are cached per image.
    """

    def __init__(
        self,
        *,
        base_url: str = "https://registry-1.docker.io",
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)
        self._tokens: dict[str, str] = {}

    def close(self) -> None:
        self._client.close()

    def manifest_digest(self, image: str, tag: str) -> str:
        """Digest of ``image:tag``. A missing tag raises a ``not_found`` error."""
        url = f"{self._base_url}/v2/{image}/manifests/{tag}"
        error_message = f"Failed to fetch manifest for {image}:{tag}"
        response = self._head_manifest(url, image, error_message=error_message)
        if response.status_code == 401:
            self._tokens[image] = self._fetch_token(response, image)
            response = self._head_manifest(url, image, error_message=error_message)
        if response.status_code == 401:
            raise AdapterRequestError(
                message=f"{error_message}: registry rejected the pull token",
                result=ResponseResult(method="HEAD", url=url, status_code=401, body=""),
                category="fatal",
            )

        digest = response.headers.get("Docker-Content-Digest")
        if not digest:
            raise AdapterRequestError(
                message=f"{error_message}: response carries no digest",
                result=ResponseResult(method="HEAD", url=url, status_code=response.status_code, body=""),
                category="fatal",
            )
        logger.debug("Resolved %s:%s to %s", image, tag, digest)
        return digest

    def _head_manifest(self, url: str, image: str, *, error_message: str) -> httpx.Response:
        headers = {"Accept": _MANIFEST_MEDIA_TYPES}
        if token := self._tokens.get(image):
            headers["Authorization"] = f"Bearer {token}"
        return send_request(
            self._client,
            "HEAD",
            url,
            headers=headers,
            expected_status=(200, 401),
            error_message=error_message,
        )

    def _fetch_token(self, challenge_response: httpx.Response, image: str) -> str:
        challenge = challenge_response.headers.get("WWW-Authenticate", "")
        scheme, _, params_text = challenge.partition(" ")
        params = dict(_CHALLENGE_PARAM_RE.findall(params_text))
        if scheme.lower() != "bearer" or "realm" not in params:
            raise AdapterRequestError(
                message=f"Unsupported registry auth challenge for {image}",
                result=ResponseResult(
                    method="HEAD",
                    url=str(challenge_response.request.url),
                    status_code=401,
                    body=challenge,
                ),
                category="fatal",
            )

        query = {key: value for key, value in params.items() if key in ("service", "scope")}
        query.setdefault("scope", f"repository:{image}:pull")
        logger.debug("Requesting registry pull token for %s from %s", image, params["realm"])
        response = send_request(
            self._client,
            "GET",
            params["realm"],
            params=query,
            error_message=f"Failed to obtain registry token for {image}",
        )
        payload = decode_object(response, error_message=f"Invalid registry token response for {image}")
        token = payload.get("token") or payload.get("access_token")
        if not isinstance(token, str) or not token:
            raise AdapterRequestError(
                message=f"Registry token response for {image} carries no token",
                result=ResponseResult(method="GET", url=params["realm"], status_code=response.status_code, body=""),
                category="fatal",
            )
        return token
