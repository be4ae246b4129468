"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    build_sync_engine,
    get_audit_log,
    get_credential_vault,
    get_crm_proxy,
    get_job_catalog,
    get_oauth_session_manager,
    get_rate_limiter,
    get_session_verifier,
    get_sync_engine_factory,
    get_token_store,
)
from .config import SettingsDependency, get_app_settings
from .session import get_admin_session, get_optional_session, get_session, rate_limit

__all__ = [
    "SettingsDependency",
    "build_sync_engine",
    "get_admin_session",
    "get_app_settings",
    "get_audit_log",
    "get_credential_vault",
    "get_crm_proxy",
    "get_job_catalog",
    "get_oauth_session_manager",
    "get_optional_session",
    "get_rate_limiter",
    "get_session",
    "get_session_verifier",
    "get_sync_engine_factory",
    "get_token_store",
    "rate_limit",
]
