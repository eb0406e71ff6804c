"""
Validaciones de seguridad en arranque para APP_ENV=prod.
Si alguna falla, se lanza RuntimeError y la aplicación no inicia.
"""
from app.core.config import settings

# Valores considerados "por defecto" inseguros en producción
INSECURE_DEFAULTS = {
    "JWT_SECRET_KEY": "change_me_jwt_secret",
    "DEMO_ADMIN_PASSWORD": "admin123",
}


def validate_production_config() -> None:
    """Comprueba que en producción no se usen CORS *, secretos por defecto ni una fuente sin configurar."""
    if (getattr(settings, "app_env", "dev") or "dev").strip().lower() != "prod":
        return

    errors: list[str] = []

    cors = (settings.cors_origins or "").strip()
    if not cors:
        errors.append("CORS_ORIGINS no puede estar vacío en producción.")
    elif cors == "*":
        errors.append("CORS_ORIGINS no puede ser '*' en producción.")

    if (settings.jwt_secret_key or "").strip() in ("", INSECURE_DEFAULTS["JWT_SECRET_KEY"]):
        errors.append("JWT_SECRET_KEY debe estar definido y no usar el valor por defecto en producción.")

    if (settings.demo_admin_password or "").strip() == INSECURE_DEFAULTS["DEMO_ADMIN_PASSWORD"]:
        errors.append("DEMO_ADMIN_PASSWORD no puede usar el valor por defecto en producción.")

    if not (settings.backoffice_base_url or "").strip():
        errors.append("BACKOFFICE_BASE_URL debe estar definido en producción.")

    db_url = (getattr(settings, "database_url", "") or "").strip().lower()
    if db_url.startswith("postgresql"):
        if "change_me" in db_url or "change_me" in (settings.postgres_password or ""):
            errors.append("DATABASE_URL no debe contener contraseña por defecto (change_me) en producción.")

    if int(settings.stalled_task_days or 0) < 1:
        errors.append("STALLED_TASK_DAYS debe ser >= 1.")

    if errors:
        raise RuntimeError(
            "Configuración de producción inválida:\n  - " + "\n  - ".join(errors)
        )
