"""
Certificates & DNS
==================
ACM certificates (one domain each, DNS-validated) and Route 53 alias records
for the two public endpoints: the API load balancer and the frontend
distribution.

CloudFront only reads certificates from us-east-1, whatever region the rest
of the app is deployed to. The frontend certificate therefore lives in its own
stack pinned to us-east-1 and is handed to the main stack through a
cross-region reference (SSM parameters written by CDK-managed custom
resources). The API certificate stays in the main stack's region, next to
the load balancer.

Validation is asynchronous: CloudFormation keeps the certificate resource in
CREATE_IN_PROGRESS until ACM sees the validation CNAME, so consumers are only
created once the certificate is issued.
"""
from __future__ import annotations

import aws_cdk as cdk
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk import aws_route53 as route53
from aws_cdk import aws_route53_targets as targets
from constructs import Construct

from counter.config import EDGE_CERTIFICATE_REGION


def lookup_hosted_zone(scope: Construct, zone_name: str) -> route53.IHostedZone:
    """Reference the existing public zone. Never created or modified as a whole."""
    return route53.HostedZone.from_lookup(scope, "HostedZone", domain_name=zone_name.rstrip("."))


def dns_validated_certificate(
    scope: Construct, id: str, *, domain_name: str, zone: route53.IHostedZone
) -> acm.Certificate:
    return acm.Certificate(
        scope, id,
        domain_name=domain_name,
        validation=acm.CertificateValidation.from_dns(zone),
    )


class EdgeCertificateStack(cdk.Stack):
    """Certificate for the CloudFront distribution, always in us-east-1."""

    def __init__(self, scope: Construct, id: str, *, domain_name: str, zone_name: str, **kwargs):
        env = kwargs.get("env")
        if env is None or env.region != EDGE_CERTIFICATE_REGION:
            raise ValueError(
                f"EdgeCertificateStack must be deployed to {EDGE_CERTIFICATE_REGION} "
                f"(got {getattr(env, 'region', None)!r})"
            )
        kwargs.setdefault("cross_region_references", True)
        super().__init__(scope, id, **kwargs)

        zone = lookup_hosted_zone(self, zone_name)
        self.certificate = dns_validated_certificate(
            self, "FrontendCertificate", domain_name=domain_name, zone=zone,
        )

        cdk.CfnOutput(self, "FrontendCertificateArn", value=self.certificate.certificate_arn)


def alias_records(
    scope: Construct,
    *,
    zone: route53.IHostedZone,
    api_domain: str,
    load_balancer: elbv2.ILoadBalancerV2,
    frontend_domain: str,
    distribution: cloudfront.IDistribution,
) -> dict[str, route53.ARecord]:
    """A records aliasing the API domain to the ALB and the frontend domain to CloudFront."""
    return {
        "api": route53.ARecord(
            scope, "ApiAliasRecord",
            zone=zone,
            record_name=api_domain,
            target=route53.RecordTarget.from_alias(targets.LoadBalancerTarget(load_balancer)),
        ),
        "frontend": route53.ARecord(
            scope, "FrontendAliasRecord",
            zone=zone,
            record_name=frontend_domain,
            target=route53.RecordTarget.from_alias(targets.CloudFrontTarget(distribution)),
        ),
    }
