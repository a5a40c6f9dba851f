"""
Pytest configuration and shared fixtures.
Preflight tests use moto (AWS mocks in-process).
Stack tests synthesize the CDK app in-process and assert on the templates;
VPC and hosted zone lookups return the CDK's built-in dummy values.
"""
import aws_cdk as cdk
import pytest

from counter.config import DeploymentConfig
from counter.counter_stack import build_deployment

TEST_ACCOUNT = "123456789012"

_FULL_DEPLOYMENT = {
    "hosted_zone_name": "example.com",
    "api_domain": "api.clickme.example.com",
    "frontend_domain": "clickme.example.com",
    "features": {"cdn": True, "tls": True, "database": True},
}


@pytest.fixture(autouse=True)
def aws_env(monkeypatch):
    """Set fake AWS credentials so boto3 doesn't error in tests."""
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "test")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "test")
    monkeypatch.delenv("CDK_DEFAULT_ACCOUNT", raising=False)
    monkeypatch.delenv("AWS_PROFILE", raising=False)


@pytest.fixture
def full_deployment():
    """Context of the most complete variant: CDN, custom domains with TLS, database."""
    return {**_FULL_DEPLOYMENT, "features": dict(_FULL_DEPLOYMENT["features"])}


@pytest.fixture
def image_directory(tmp_path):
    """A minimal Docker build context; the image is only fingerprinted, never built."""
    context = tmp_path / "back"
    context.mkdir()
    (context / "Dockerfile").write_text("FROM scratch\nEXPOSE 8080\n")
    return context


@pytest.fixture
def make_config(image_directory):
    def _make(**overrides) -> DeploymentConfig:
        overrides.setdefault("account", TEST_ACCOUNT)
        overrides.setdefault("image_directory", str(image_directory))
        return DeploymentConfig(**overrides)
    return _make


@pytest.fixture
def deploy(make_config):
    """Declare the deployment on a fresh cdk.App and return it (not yet synthesized)."""
    def _deploy(**overrides):
        app = cdk.App()
        return build_deployment(app, make_config(**overrides))
    return _deploy
