"""
Frontend tests: website bucket policy, CloudFront behaviors and origins.
"""
import json

import aws_cdk as cdk
import pytest
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from aws_cdk.assertions import Template

from counter.frontend import StaticSite
from counter.network import lookup_vpc

# Managed policy id of CloudFront's "CachingDisabled"
CACHING_DISABLED = "4135ea2d-6df8-44a3-9df3-4b5a84be39ad"
ALL_METHODS = ["GET", "HEAD", "OPTIONS", "PUT", "PATCH", "POST", "DELETE"]


def _distribution_config(template: Template) -> dict:
    distributions = template.find_resources("AWS::CloudFront::Distribution")
    assert len(distributions) == 1
    return next(iter(distributions.values()))["Properties"]["DistributionConfig"]


def test_bucket_is_public_website_destroyed_with_contents(deploy):
    template = Template.from_stack(deploy(features={"cdn": True}).stack)

    buckets = template.find_resources("AWS::S3::Bucket")
    assert len(buckets) == 1
    bucket_id, bucket = next(iter(buckets.items()))
    assert bucket["Properties"]["WebsiteConfiguration"]["IndexDocument"] == "index.html"
    assert bucket["DeletionPolicy"] == "Delete"
    template.resource_count_is("Custom::S3AutoDeleteObjects", 1)

    policy = next(iter(template.find_resources("AWS::S3::BucketPolicy").values()))
    statements = policy["Properties"]["PolicyDocument"]["Statement"]
    public_reads = [
        s for s in statements
        if s["Effect"] == "Allow" and s["Action"] == "s3:GetObject" and s["Principal"] == {"AWS": "*"}
    ]
    assert len(public_reads) == 1
    assert bucket_id in json.dumps(public_reads[0]["Resource"])


def test_exactly_one_default_behavior_to_bucket(deploy):
    template = Template.from_stack(deploy(features={"cdn": True}).stack)
    config = _distribution_config(template)

    default = config["DefaultCacheBehavior"]
    assert default["ViewerProtocolPolicy"] == "redirect-to-https"
    assert "PathPattern" not in default
    bucket_origin = next(o for o in config["Origins"] if o["Id"] == default["TargetOriginId"])
    assert "WebsiteURL" in json.dumps(bucket_origin["DomainName"])
    assert bucket_origin["CustomOriginConfig"]["OriginProtocolPolicy"] == "http-only"
    assert config["DefaultRootObject"] == "index.html"


def test_api_behavior_forwards_everything_uncached_to_load_balancer(deploy):
    template = Template.from_stack(deploy(features={"cdn": True}).stack)
    config = _distribution_config(template)

    [behavior] = config["CacheBehaviors"]
    assert behavior["PathPattern"] == "/api/*"
    assert behavior["ViewerProtocolPolicy"] == "redirect-to-https"
    assert sorted(behavior["AllowedMethods"]) == sorted(ALL_METHODS)
    assert behavior["CachePolicyId"] == CACHING_DISABLED

    api_origin = next(o for o in config["Origins"] if o["Id"] == behavior["TargetOriginId"])
    assert api_origin["CustomOriginConfig"]["OriginProtocolPolicy"] == "http-only"
    lb_id = next(iter(template.find_resources("AWS::ElasticLoadBalancingV2::LoadBalancer")))
    assert api_origin["DomainName"] == {"Fn::GetAtt": [lb_id, "DNSName"]}

    policy_id, policy = next(iter(template.find_resources("AWS::CloudFront::OriginRequestPolicy").items()))
    assert behavior["OriginRequestPolicyId"] == {"Ref": policy_id}
    policy_config = policy["Properties"]["OriginRequestPolicyConfig"]
    assert policy_config["QueryStringsConfig"]["QueryStringBehavior"] == "all"
    assert policy_config["HeadersConfig"]["HeaderBehavior"] == "allViewer"
    assert policy_config["CookiesConfig"]["CookieBehavior"] == "all"


def test_api_behavior_uses_custom_domain_over_https_with_tls(deploy, full_deployment):
    config = _distribution_config(Template.from_stack(deploy(**full_deployment).stack))

    [behavior] = config["CacheBehaviors"]
    api_origin = next(o for o in config["Origins"] if o["Id"] == behavior["TargetOriginId"])
    assert api_origin["DomainName"] == "api.clickme.example.com"
    assert api_origin["CustomOriginConfig"]["OriginProtocolPolicy"] == "https-only"


def test_one_behavior_per_distinct_path_pattern(deploy):
    config = _distribution_config(
        Template.from_stack(deploy(features={"cdn": True}, api_path_patterns=["/api/*", "/count"]).stack)
    )

    patterns = [b["PathPattern"] for b in config["CacheBehaviors"]]
    assert sorted(patterns) == ["/api/*", "/count"]
    assert len(set(patterns)) == len(patterns)


def test_no_aliases_without_custom_domain(deploy):
    config = _distribution_config(Template.from_stack(deploy(features={"cdn": True}).stack))
    assert "Aliases" not in config


def test_site_directory_is_uploaded_and_invalidated(deploy, tmp_path):
    site = tmp_path / "front"
    site.mkdir()
    (site / "index.html").write_text("<h1>clicks</h1>")

    template = Template.from_stack(deploy(features={"cdn": True}, site_directory=str(site)).stack)

    deployments = template.find_resources("Custom::CDKBucketDeployment")
    assert len(deployments) == 1
    properties = next(iter(deployments.values()))["Properties"]
    assert properties["DistributionPaths"] == ["/*"]


def test_domain_without_certificate_rejected():
    stack = cdk.Stack(cdk.App(), "FrontendTest", env=cdk.Environment(account="123456789012", region="us-east-1"))
    vpc = lookup_vpc(stack, "jenkins-vpc")
    load_balancer = elbv2.ApplicationLoadBalancer(stack, "Alb", vpc=vpc, internet_facing=True)

    with pytest.raises(ValueError, match="certificate"):
        StaticSite(
            stack, "Frontend",
            api_path_patterns=["/api/*"],
            load_balancer=load_balancer,
            domain_name="clickme.example.com",
        )
