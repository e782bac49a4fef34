"""Platform defaults loaded from environment variables or a .env file."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class PlatformSettings(BaseSettings):
    """Chart versions and release behaviour for the cluster services.

    Override with ``EKS_PLATFORM_<FIELD>`` environment variables, e.g.
    ``EKS_PLATFORM_ARGOCD_CHART_VERSION=7.3.4``.
    """

    model_config = SettingsConfigDict(
        env_prefix="EKS_PLATFORM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Native add-ons
    ebs_csi_addon_version: str = "v1.44.0-eksbuild.1"

    # Ingress controller (AWS Load Balancer Controller)
    ingress_chart_version: str = "1.7.0"
    ingress_class: str = "alb"

    # Secret sync (External Secrets Operator)
    external_secrets_chart_version: str = "0.9.9"
    external_secrets_namespace: str = "kube-system"

    # GitOps engine (Argo CD)
    argocd_chart_version: str = "7.0.0"
    argocd_namespace: str = "argocd"
    argocd_repo_url: str = ""
    argocd_ha_enabled: bool = False
    argocd_insecure: bool = False
    argocd_service_type: str = "LoadBalancer"

    # Helm release behaviour
    helm_timeout: int = 900

    # Storage
    storage_class_name: str = "ebs-sc-gp3"


@lru_cache
def get_settings() -> PlatformSettings:
    """Get cached settings instance."""
    return PlatformSettings()
