"""
Frontend
========
S3 website bucket + CloudFront distribution.

Routing:
  default (*)       → website bucket, HTTP redirected to HTTPS, normal caching
  api patterns      → the API (load balancer over HTTP, or its custom domain
                      over HTTPS once TLS is on), no caching, every method,
                      every query string / header / cookie forwarded

Serving /api/* from the same origin as the page avoids CORS entirely. The
API behaviors trade cacheability for correctness: the counter changes on every
POST, so nothing under them may be cached.

The bucket is public-read (website endpoints cannot use OAC) and is emptied
and deleted with the stack.
"""
from __future__ import annotations

import aws_cdk as cdk
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_cloudfront as cloudfront
from aws_cdk import aws_cloudfront_origins as origins
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_s3_deployment as s3deploy
from constructs import Construct


class StaticSite(Construct):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        api_path_patterns: list[str],
        load_balancer: elbv2.ILoadBalancerV2,
        api_domain: str | None = None,
        index_document: str = "index.html",
        site_directory: str | None = None,
        certificate: acm.ICertificate | None = None,
        domain_name: str | None = None,
    ):
        super().__init__(scope, id)

        if (certificate is None) != (domain_name is None):
            raise ValueError("A custom frontend domain needs a certificate, and a certificate needs a domain")

        self.domain_name = domain_name

        # ----------------------------------------------------------------
        # Website bucket
        # ----------------------------------------------------------------
        self.bucket = s3.Bucket(
            self, "WebsiteBucket",
            website_index_document=index_document,
            public_read_access=True,
            block_public_access=s3.BlockPublicAccess(
                block_public_acls=True,
                ignore_public_acls=True,
                block_public_policy=False,
                restrict_public_buckets=False,
            ),
            removal_policy=cdk.RemovalPolicy.DESTROY,
            auto_delete_objects=True,
        )

        # ----------------------------------------------------------------
        # API origin
        # ----------------------------------------------------------------
        if api_domain:
            api_origin = origins.HttpOrigin(
                api_domain,
                protocol_policy=cloudfront.OriginProtocolPolicy.HTTPS_ONLY,
            )
        else:
            api_origin = origins.LoadBalancerV2Origin(
                load_balancer,
                protocol_policy=cloudfront.OriginProtocolPolicy.HTTP_ONLY,
            )

        self.api_origin_request_policy = cloudfront.OriginRequestPolicy(
            self, "ApiOriginRequestPolicy",
            comment="Forward everything to the counter API",
            query_string_behavior=cloudfront.OriginRequestQueryStringBehavior.all(),
            header_behavior=cloudfront.OriginRequestHeaderBehavior.all(),
            cookie_behavior=cloudfront.OriginRequestCookieBehavior.all(),
        )

        api_behavior = cloudfront.BehaviorOptions(
            origin=api_origin,
            viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
            allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
            cache_policy=cloudfront.CachePolicy.CACHING_DISABLED,
            origin_request_policy=self.api_origin_request_policy,
        )

        # ----------------------------------------------------------------
        # Distribution
        # ----------------------------------------------------------------
        self.distribution = cloudfront.Distribution(
            self, "Distribution",
            default_root_object=index_document,
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.S3StaticWebsiteOrigin(self.bucket),
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
            ),
            additional_behaviors={pattern: api_behavior for pattern in api_path_patterns},
            certificate=certificate,
            domain_names=[domain_name] if domain_name else None,
        )

        if site_directory:
            s3deploy.BucketDeployment(
                self, "DeployWebsite",
                sources=[s3deploy.Source.asset(site_directory)],
                destination_bucket=self.bucket,
                distribution=self.distribution,
                distribution_paths=["/*"],
            )

    @property
    def frontend_url(self) -> str:
        host = self.domain_name or self.distribution.distribution_domain_name
        return f"https://{host}"
