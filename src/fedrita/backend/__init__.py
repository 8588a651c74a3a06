from fedrita.backend.base import Backend, Filter, SignUpResult, TableQuery
from fedrita.backend.local import LocalBackend
from fedrita.backend.supabase import SupabaseBackend
from fedrita.exceptions import ConfigError


def build_backend(settings) -> Backend:
    kind = (settings.backend.kind or "local").strip().lower()
    if kind == "local":
        return LocalBackend(
            db_path=settings.paths.db_path,
            storage_dir=settings.paths.storage_dir,
            autoconfirm=settings.backend.local_autoconfirm,
            session_ttl_seconds=settings.backend.local_session_ttl_seconds,
        )
    if kind == "supabase":
        return SupabaseBackend(
            url=settings.backend.supabase_url,
            anon_key=settings.backend.supabase_anon_key,
            service_role_key=settings.backend.supabase_service_role_key,
            timeout=settings.backend.timeout_seconds,
        )
    raise ConfigError(f"Unknown backend kind: {kind}")


__all__ = [
    "Backend",
    "Filter",
    "LocalBackend",
    "SignUpResult",
    "SupabaseBackend",
    "TableQuery",
    "build_backend",
]
