import os
from dataclasses import dataclass

SUPPORTED_CLOUD_PROVIDERS = ("aws", "gcp", "azure")


@dataclass
class Config:
    # listen_address: format ":9090" or
    # "0.0.0.0:9090"
    listen_address: "str" = ":9090"
    # collection interval in seconds
    update_interval: "int" = 60
    log_level: "str" = "info"

    cloud_provider: "str" = "aws"
    region: "str" = "us-east-1"
    # empty means in-cluster config
    kubeconfig: "str" = ""

    gcp_project: "str" = ""
    azure_subscription_id: "str" = ""

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            cloud_provider=os.environ.get("CLOUD_PROVIDER", "aws"),
            region=os.environ.get("CLOUD_REGION", "us-east-1"),
            kubeconfig=os.environ.get("KUBECONFIG", ""),
            gcp_project=os.environ.get("GCP_PROJECT", ""),
            azure_subscription_id=os.environ.get("AZURE_SUBSCRIPTION_ID", ""),
        )

    def validate(self) -> "None":
        """
        raises ValueError when the selected cloud provider is
        unknown or misses its required settings.
        """
        if self.cloud_provider not in SUPPORTED_CLOUD_PROVIDERS:
            raise ValueError(f"unknown cloud provider: {self.cloud_provider}")
        if self.cloud_provider == "gcp" and not self.gcp_project:
            raise ValueError("GCP_PROJECT environment variable is required for gcp")
        if self.cloud_provider == "azure" and not self.azure_subscription_id:
            raise ValueError(
                "AZURE_SUBSCRIPTION_ID environment variable is required for azure"
            )
        if self.update_interval <= 0:
            raise ValueError("update interval must be positive")
