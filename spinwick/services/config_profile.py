from __future__ import annotations

from copy import deepcopy
from typing import Any

from spinwick.settings import SmtpSettings

FEEDBACK_EMAIL = "feedback@mattermost.com"
LDAP_SERVER = "ldap.forumsys.com"
LDAP_BASE_DN = "dc=example,dc=com"


def deep_merge(current: Any, profile: Any) -> Any:
    """Overlay ``profile`` onto a server config section by section.

    Sections merge recursively; a ``None`` in the profile leaves the server's
    value alone, and lists are replaced whole.
    """
    if not (isinstance(current, dict) and isinstance(profile, dict)):
        return deepcopy(current if profile is None else profile)
    merged = deepcopy(current)
    for key, value in profile.items():
        merged[key] = deep_merge(merged.get(key), value)
    return merged


def build_config_profile(smtp: SmtpSettings) -> dict[str, Any]:
    """Server settings every fresh SpinWick runs with."""
    return {
        "TeamSettings": {
            "EnableOpenServer": True,
            "ExperimentalViewArchivedChannels": True,
        },
        "PluginSettings": {"EnableUploads": True},
        "ServiceSettings": {
            "EnableTesting": True,
            "EnableDeveloper": True,
            "ExperimentalLdapGroupSync": True,
        },
        "LogSettings": {"FileLevel": "INFO"},
        "EmailSettings": {
            "FeedbackName": "SpinWick Feedback",
            "FeedbackEmail": FEEDBACK_EMAIL,
            "ReplyToAddress": FEEDBACK_EMAIL,
            "SMTPUsername": smtp.username,
            "SMTPPassword": smtp.password,
            "SMTPServer": smtp.server,
            "SMTPPort": "465",
            "EnableSMTPAuth": True,
            "ConnectionSecurity": "TLS",
            "SendEmailNotifications": True,
        },
        "LdapSettings": {
            "Enable": True,
            "EnableSync": True,
            "LdapServer": LDAP_SERVER,
            "BaseDN": LDAP_BASE_DN,
            "BindUsername": f"cn=read-only-admin,{LDAP_BASE_DN}",
            "BindPassword": "password",
            "GroupDisplayNameAttribute": "cn",
            "GroupIdAttribute": "entryUUID",
            "EmailAttribute": "mail",
            "UsernameAttribute": "uid",
            "IdAttribute": "uid",
            "LoginIdAttribute": "uid",
        },
    }


def apply_config_profile(current: dict[str, Any], smtp: SmtpSettings) -> dict[str, Any]:
    return deep_merge(current, build_config_profile(smtp))
