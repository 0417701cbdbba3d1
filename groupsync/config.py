from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from .models import ReconcilePolicy

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DOTENV_PATH = PROJECT_ROOT / ".env"

MODE_STANDARD = "standard"
MODE_DEMO = "demo"
MODES = (MODE_STANDARD, MODE_DEMO)

DEFAULT_PROPERTIES = ["name", "distinguishedName", "objectClass"]

TRUTHY = {"1", "true", "yes", "on"}


def env_flag(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip().lower() in TRUTHY


def split_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class Settings:
    default_mode: str = MODE_STANDARD
    mongo_uri: Optional[str] = None
    mongo_db: str = "groupsync_demo"
    demo_auto_seed: bool = True
    ldap_server: Optional[str] = None
    ldap_user: Optional[str] = None
    ldap_password: Optional[str] = None
    ldap_search_base: Optional[str] = None
    ldap_use_ssl: bool = True
    member_properties: List[str] = field(default_factory=lambda: list(DEFAULT_PROPERTIES))
    skip_group_with_no_nested_group: bool = False
    skip_group_with_no_indirect_member: bool = False
    dry_run: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = str(PROJECT_ROOT / "log.txt")

    def policy(self) -> ReconcilePolicy:
        return ReconcilePolicy(
            skip_group_with_no_nested_group=self.skip_group_with_no_nested_group,
            skip_group_with_no_indirect_member=self.skip_group_with_no_indirect_member,
        )

    def build_adapter(self, mode: Optional[str] = None):
        mode = (mode or self.default_mode).lower()
        if mode == MODE_DEMO:
            if not self.mongo_uri:
                raise ValueError("DEMO_MONGO_URI is required for demo mode.")
            from adapters.demo_adapter import DemoAdapter

            return DemoAdapter(self.mongo_uri, db_name=self.mongo_db, seed=self.demo_auto_seed)
        if mode != MODE_STANDARD:
            raise ValueError(f"Unsupported mode '{mode}'. Expected one of: {', '.join(MODES)}.")
        if not self.ldap_server or not self.ldap_search_base:
            raise ValueError("LDAP_SERVER and LDAP_SEARCH_BASE are required for standard mode.")
        from adapters.standard_adapter import StandardAdapter

        return StandardAdapter(
            server=self.ldap_server,
            username=self.ldap_user,
            password=self.ldap_password,
            search_base=self.ldap_search_base,
            use_ssl=self.ldap_use_ssl,
        )


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from ``env`` (defaults to ``os.environ`` after reading ``.env``)."""
    if env is None:
        if DOTENV_PATH.exists():
            load_dotenv(DOTENV_PATH)
        env = os.environ

    properties = split_list(env.get("MEMBER_PROPERTIES")) or list(DEFAULT_PROPERTIES)
    log_file = env.get("LOG_FILE")
    return Settings(
        default_mode=(env.get("DEFAULT_MODE") or MODE_STANDARD).lower(),
        mongo_uri=env.get("DEMO_MONGO_URI") or None,
        mongo_db=env.get("DEMO_MONGO_DB") or "groupsync_demo",
        demo_auto_seed=env_flag(env, "DEMO_AUTO_SEED", True),
        ldap_server=env.get("LDAP_SERVER") or None,
        ldap_user=env.get("LDAP_USER") or None,
        ldap_password=env.get("LDAP_PASSWORD") or None,
        ldap_search_base=env.get("LDAP_SEARCH_BASE") or None,
        ldap_use_ssl=env_flag(env, "LDAP_USE_SSL", True),
        member_properties=properties,
        skip_group_with_no_nested_group=env_flag(env, "SKIP_GROUP_WITH_NO_NESTED_GROUP"),
        skip_group_with_no_indirect_member=env_flag(env, "SKIP_GROUP_WITH_NO_INDIRECT_MEMBER"),
        dry_run=env_flag(env, "DRY_RUN"),
        log_level=env.get("LOG_LEVEL") or "INFO",
        log_file=log_file if log_file is not None else str(PROJECT_ROOT / "log.txt"),
    )
