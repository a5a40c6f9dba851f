"""
Deployment Configuration
========================
Every environment-specific value of the Counter deployment lives here as a
Pydantic model. Invalid combinations fail at model construction, i.e. before a
single construct is created and long before CloudFormation sees anything.

Values come from CDK context (cdk.json, or `cdk deploy -c key=value`):

    cdk deploy --all -c vpc_name=staging-vpc -c feature_database=false

Variants:
  The deployment grew in steps (plain API → CDN in front → custom domains with
  TLS → managed Postgres). Each step is a feature flag so the earlier shapes can
  still be deployed:

    features.cdn       bucket + CloudFront distribution
    features.tls       ACM certificates + Route 53 alias records (needs cdn)
    features.database  RDS Postgres wired into the API container
"""
from __future__ import annotations

import json
import os
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

# CloudFront only accepts ACM certificates issued in this region.
EDGE_CERTIFICATE_REGION = "us-east-1"


def _parse_json_string(value: Any) -> Any:
    # `-c key=value` always yields a string; cdk.json yields native JSON
    if isinstance(value, str) and value.strip()[:1] in ("[", "{"):
        return json.loads(value)
    return value


class Features(BaseModel):
    cdn: bool = False
    tls: bool = False
    database: bool = False


class DatabaseSettings(BaseModel):
    engine_version: str = "16"
    instance_class: str = "t3"
    instance_size: str = "micro"
    allocated_storage_gib: int = Field(default=20, gt=0)
    max_allocated_storage_gib: int = Field(default=20, gt=0)  # storage ceiling
    database_name: str = Field(default="counter", min_length=1)
    username: str = Field(default="counter", min_length=1)
    port: int = Field(default=5432, gt=0, le=65535)

    @model_validator(mode="after")
    def _storage_ceiling(self) -> "DatabaseSettings":
        if self.max_allocated_storage_gib < self.allocated_storage_gib:
            raise ValueError(
                f"max_allocated_storage_gib ({self.max_allocated_storage_gib}) is below "
                f"allocated_storage_gib ({self.allocated_storage_gib})"
            )
        return self


class DeploymentConfig(BaseModel):
    """
    Input parameters of the deployment declaration.

    Defaults reproduce the reference deployment: the `jenkins-vpc` network, a
    512 MiB single-replica API on port 8080, and a 100/200 rollout window
    (never drop below desired capacity, allow a full second set of tasks
    while replacing). The rollout bounds are passed through verbatim; they
    are deliberately not checked against each other.
    """
    account: str | None = None
    region: str = "us-east-1"

    # Network
    vpc_name: str = Field(default="jenkins-vpc", min_length=1)

    # API service
    image_directory: str = "../back"
    container_port: int = Field(default=8080, gt=0, le=65535)
    memory_limit_mib: int = Field(default=512, gt=0)
    desired_count: int = Field(default=1, ge=0)
    health_check_grace_period_seconds: int = Field(default=60, ge=0)
    health_check_path: str = "/"
    min_healthy_percent: int = Field(default=100, ge=0)
    max_healthy_percent: int = Field(default=200, ge=0)

    # Frontend
    api_path_patterns: list[str] = Field(default_factory=lambda: ["/api/*"])
    site_directory: str | None = None
    index_document: str = "index.html"

    # Domains
    hosted_zone_name: str | None = None
    api_domain: str | None = None
    frontend_domain: str | None = None
    edge_certificate_region: str = EDGE_CERTIFICATE_REGION

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    features: Features = Field(default_factory=Features)

    @field_validator("api_path_patterns", "database", "features", mode="before")
    @classmethod
    def _parse_collections(cls, value: Any, info: ValidationInfo) -> Any:
        value = _parse_json_string(value)
        if info.field_name == "api_path_patterns" and isinstance(value, str):
            # -c api_path_patterns=/api/*,/health
            return [pattern.strip() for pattern in value.split(",")]
        return value

    @field_validator("api_path_patterns")
    @classmethod
    def _distinct_path_patterns(cls, patterns: list[str]) -> list[str]:
        seen: set[str] = set()
        for pattern in patterns:
            if not pattern or not pattern.strip():
                raise ValueError("api_path_patterns must not contain empty patterns")
            if pattern == "*":
                raise ValueError("'*' is the default behavior and cannot be an API path pattern")
            if pattern in seen:
                raise ValueError(f"duplicate API path pattern: {pattern!r}")
            seen.add(pattern)
        return patterns

    @field_validator("edge_certificate_region")
    @classmethod
    def _edge_region(cls, region: str) -> str:
        if region != EDGE_CERTIFICATE_REGION:
            raise ValueError(
                f"CloudFront certificates must be issued in {EDGE_CERTIFICATE_REGION}, got {region!r}"
            )
        return region

    @model_validator(mode="after")
    def _tls_requirements(self) -> "DeploymentConfig":
        if not self.features.tls:
            return self
        if not self.features.cdn:
            raise ValueError("features.tls requires features.cdn (the frontend domain points at the distribution)")
        missing = [
            name for name in ("hosted_zone_name", "api_domain", "frontend_domain")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"features.tls requires {', '.join(missing)}")
        return self

    @property
    def hosted_zone_domain(self) -> str | None:
        return self.hosted_zone_name.rstrip(".") if self.hosted_zone_name else None

    @classmethod
    def from_context(cls, node) -> "DeploymentConfig":
        """
        Build the config from a construct node's context (usually `app.node`).
        The account falls back to the one the CDK CLI resolved from the AWS profile.
        """
        values: dict[str, Any] = {}
        if os.environ.get("CDK_DEFAULT_ACCOUNT"):
            values["account"] = os.environ["CDK_DEFAULT_ACCOUNT"]
        for name in cls.model_fields:
            if name == "features":
                continue
            value = node.try_get_context(name)
            if value is not None:
                values[name] = value

        features = {}
        for flag in Features.model_fields:
            value = node.try_get_context(f"feature_{flag}")
            if value is not None:
                features[flag] = value
        if features:
            values["features"] = features

        return cls(**values)
