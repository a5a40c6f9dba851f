"""
Counter Stack
=============
The whole deployment declaration in one stack. CloudFormation applies it in
the order of its reference edges:

  VPC (lookup) → Cluster → {API certificate, Database} → API service
      → Bucket + Distribution → Route 53 alias records

The CloudFront certificate is the only thing that cannot live here; it comes
from EdgeCertificateStack in us-east-1 (see certificates.py).

Outputs (stable names, consumed by the frontend build and by operators):
  LoadBalancerDNS         always
  DistributionDomainName  features.cdn
  DistributionId          features.cdn
  FrontendURL             features.cdn
  DatabaseEndpoint        features.database
"""
from __future__ import annotations

from dataclasses import dataclass

import aws_cdk as cdk
from aws_cdk import aws_certificatemanager as acm
from constructs import Construct

from counter.certificates import (
    EdgeCertificateStack,
    alias_records,
    dns_validated_certificate,
    lookup_hosted_zone,
)
from counter.config import DeploymentConfig
from counter.database import CounterDatabase
from counter.frontend import StaticSite
from counter.logger import get_logger
from counter.network import lookup_vpc
from counter.service import CounterService

logger = get_logger(__name__)


class CounterStack(cdk.Stack):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        config: DeploymentConfig,
        edge_certificate: acm.ICertificate | None = None,
        **kwargs,
    ):
        if config.features.tls:
            # The CloudFront certificate arrives from us-east-1
            kwargs.setdefault("cross_region_references", True)
            if edge_certificate is None:
                raise ValueError("features.tls needs the us-east-1 edge certificate")
        super().__init__(scope, id, **kwargs)

        self.config = config
        self.database: CounterDatabase | None = None
        self.site: StaticSite | None = None

        vpc = lookup_vpc(self, config.vpc_name)

        zone = None
        api_certificate = None
        if config.features.tls:
            zone = lookup_hosted_zone(self, config.hosted_zone_domain)
            api_certificate = dns_validated_certificate(
                self, "ApiCertificate", domain_name=config.api_domain, zone=zone,
            )

        # ----------------------------------------------------------------
        # API service (+ database wiring)
        # ----------------------------------------------------------------
        # The database ingress rule needs the tasks' security group and the
        # tasks need the database endpoint, so the service is declared first and
        # its container picks up the connection settings afterwards.
        self.service = CounterService(
            self, "Api",
            vpc=vpc,
            config=config,
            certificate=api_certificate,
        )

        if config.features.database:
            self.database = CounterDatabase(
                self, "Database",
                vpc=vpc,
                client_security_group=self.service.security_group,
                settings=config.database,
            )
            environment = self.database.connection_environment()
            secrets = self.database.connection_secrets()
            container = self.service.fargate_service.task_definition.default_container
            for name, value in environment.items():
                container.add_environment(name, value)
            for name, secret in secrets.items():
                container.add_secret(name, secret)
            self.service.service.node.add_dependency(self.database.instance)
            logger.info(
                "Database connection wired into the API container",
                extra={"event": "database.wired", "environment": environment, "sensitive_variables": sorted(secrets)},
            )

        cdk.CfnOutput(
            self, "LoadBalancerDNS",
            value=self.service.load_balancer.load_balancer_dns_name,
            description="The DNS name of the load balancer",
        )

        # ----------------------------------------------------------------
        # Static frontend + CDN
        # ----------------------------------------------------------------
        if config.features.cdn:
            self.site = StaticSite(
                self, "Frontend",
                api_path_patterns=config.api_path_patterns,
                load_balancer=self.service.load_balancer,
                api_domain=config.api_domain if config.features.tls else None,
                index_document=config.index_document,
                site_directory=config.site_directory,
                certificate=edge_certificate if config.features.tls else None,
                domain_name=config.frontend_domain if config.features.tls else None,
            )

            cdk.CfnOutput(
                self, "DistributionDomainName",
                value=self.site.distribution.distribution_domain_name,
                description="CloudFront domain name of the frontend",
            )
            cdk.CfnOutput(
                self, "DistributionId",
                value=self.site.distribution.distribution_id,
                description="CloudFront distribution id (for cache invalidations)",
            )
            cdk.CfnOutput(
                self, "FrontendURL",
                value=self.site.frontend_url,
                description="Public URL of the frontend",
            )

        # ----------------------------------------------------------------
        # DNS
        # ----------------------------------------------------------------
        if config.features.tls:
            self.records = alias_records(
                self,
                zone=zone,
                api_domain=config.api_domain,
                load_balancer=self.service.load_balancer,
                frontend_domain=config.frontend_domain,
                distribution=self.site.distribution,
            )

        if self.database is not None:
            cdk.CfnOutput(
                self, "DatabaseEndpoint",
                value=self.database.endpoint_address,
                description="Postgres endpoint address",
            )


@dataclass
class Deployment:
    stack: CounterStack
    edge_certificate_stack: EdgeCertificateStack | None = None

    @property
    def stacks(self) -> list[cdk.Stack]:
        stacks: list[cdk.Stack] = []
        if self.edge_certificate_stack is not None:
            stacks.append(self.edge_certificate_stack)
        stacks.append(self.stack)
        return stacks


def build_deployment(scope: Construct, config: DeploymentConfig, *, stack_name: str = "CounterStack") -> Deployment:
    """
    Declare every stack of the deployment on `scope` (normally the cdk.App).
    The edge certificate stack is only created when TLS is enabled.
    """
    env = cdk.Environment(account=config.account, region=config.region)

    edge_stack = None
    if config.features.tls:
        edge_stack = EdgeCertificateStack(
            scope, f"{stack_name}EdgeCertificate",
            domain_name=config.frontend_domain,
            zone_name=config.hosted_zone_domain,
            env=cdk.Environment(account=config.account, region=config.edge_certificate_region),
        )

    stack = CounterStack(
        scope, stack_name,
        config=config,
        edge_certificate=edge_stack.certificate if edge_stack else None,
        env=env,
    )
    if edge_stack is not None:
        stack.add_dependency(edge_stack)

    return Deployment(stack=stack, edge_certificate_stack=edge_stack)
