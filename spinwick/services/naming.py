from __future__ import annotations

import re

DNS_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_HYPHEN_RUN_RE = re.compile(r"-+")

SHORT_SHA_LEN = 7


def slugify_token(value: str) -> str:
    lowered = value.lower()
    replaced = _NON_ALNUM_RE.sub("-", lowered)
    collapsed = _HYPHEN_RUN_RE.sub("-", replaced)
    return collapsed.strip("-")


def is_valid_dns_label(value: str) -> bool:
    return bool(DNS_LABEL_RE.fullmatch(value))


def owner_id_for_pull_request(repo_name: str, number: int) -> str:
    """Deterministic installation owner id, e.g. ``mattermost-server-pr-1234``."""
    owner_id = f"{repo_name}-pr-{number}".lower()
    if not is_valid_dns_label(owner_id):
        # Repository names may contain dots or underscores; DNS labels may not.
        owner_id = slugify_token(owner_id)
    if not is_valid_dns_label(owner_id):
        raise ValueError(f"cannot derive a DNS label from repository {repo_name!r}")
    return owner_id


def installation_version(sha: str) -> str:
    if len(sha) < SHORT_SHA_LEN:
        raise ValueError("commit sha is too short to derive an installation version")
    return sha[0:SHORT_SHA_LEN]


def dns_name_for_owner(owner_id: str, base_domain: str) -> str:
    return f"{owner_id}.{base_domain.strip('.')}"


def instance_url(dns_name: str) -> str:
    return f"https://{dns_name}"
