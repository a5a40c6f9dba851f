"""
Preflight Resolution
====================
The deployment references two things it does not own: the VPC it runs in and
the Route 53 zone its domains live under. Both must resolve to exactly one
existing resource. A missing or ambiguous match is fatal and is reported here,
before synthesis, instead of as a context-provider error halfway through
`cdk deploy`.

Only read-only describe/list calls are made. botocore errors (expired
credentials, throttling, missing permissions) are not caught: they surface
exactly as AWS reported them.
"""
from __future__ import annotations

import boto3

from counter.config import DeploymentConfig
from counter.logger import get_logger

logger = get_logger(__name__)


class ResolutionError(Exception):
    """A referenced pre-existing resource could not be resolved to exactly one match."""

    def __init__(self, kind: str, name: str, matches: list[str]):
        self.kind = kind
        self.name = name
        self.matches = matches
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"{self.kind} {self.name!r} matched {len(self.matches)} resources"


class NetworkNotFoundError(ResolutionError):
    def __init__(self, name: str):
        super().__init__("VPC", name, [])

    def _describe(self) -> str:
        return f"No VPC tagged Name={self.name!r} exists in this account/region"


class AmbiguousNetworkError(ResolutionError):
    def _describe(self) -> str:
        return (
            f"VPC name {self.name!r} is ambiguous: {len(self.matches)} VPCs match "
            f"({', '.join(self.matches)})"
        )


class HostedZoneNotFoundError(ResolutionError):
    def __init__(self, name: str):
        super().__init__("Hosted zone", name, [])

    def _describe(self) -> str:
        return f"No public hosted zone named {self.name!r} exists"


class AmbiguousHostedZoneError(ResolutionError):
    def _describe(self) -> str:
        return (
            f"Hosted zone name {self.name!r} is ambiguous: {len(self.matches)} public zones match "
            f"({', '.join(self.matches)})"
        )


def resolve_network(vpc_name: str, ec2_client=None) -> str:
    """Return the id of the one VPC whose Name tag equals `vpc_name`."""
    client = ec2_client or boto3.client("ec2")
    vpc_ids: list[str] = []
    paginator = client.get_paginator("describe_vpcs")
    for page in paginator.paginate(Filters=[{"Name": "tag:Name", "Values": [vpc_name]}]):
        vpc_ids.extend(vpc["VpcId"] for vpc in page["Vpcs"])

    if not vpc_ids:
        raise NetworkNotFoundError(vpc_name)
    if len(vpc_ids) > 1:
        raise AmbiguousNetworkError("VPC", vpc_name, sorted(vpc_ids))

    logger.info("VPC resolved", extra={"event": "preflight.resolved", "vpc_name": vpc_name, "vpc_id": vpc_ids[0]})
    return vpc_ids[0]


def resolve_hosted_zone(zone_name: str, route53_client=None) -> str:
    """
    Return the id of the one public hosted zone named `zone_name`.

    Private zones with the same name are ignored: alias records and DNS
    certificate validation only work against the public zone.
    """
    client = route53_client or boto3.client("route53")
    wanted = zone_name.rstrip(".").lower() + "."

    zone_ids: list[str] = []
    kwargs = {"DNSName": wanted}
    while True:
        response = client.list_hosted_zones_by_name(**kwargs)
        for zone in response["HostedZones"]:
            if zone["Name"].lower() != wanted:
                # Results are sorted by name; everything after this is a different zone
                break
            if zone.get("Config", {}).get("PrivateZone"):
                continue
            zone_ids.append(zone["Id"].split("/")[-1])
        else:
            if response.get("IsTruncated"):
                kwargs = {
                    "DNSName": response["NextDNSName"],
                    "HostedZoneId": response["NextHostedZoneId"],
                }
                continue
        break

    if not zone_ids:
        raise HostedZoneNotFoundError(zone_name)
    if len(zone_ids) > 1:
        raise AmbiguousHostedZoneError("Hosted zone", zone_name, sorted(zone_ids))

    logger.info(
        "Hosted zone resolved",
        extra={"event": "preflight.resolved", "zone_name": zone_name, "hosted_zone_id": zone_ids[0]},
    )
    return zone_ids[0]


def run_preflight(config: DeploymentConfig, session: boto3.session.Session | None = None) -> dict[str, str]:
    """
    Resolve every external reference the declaration needs.
    Returns the resolved ids keyed by role; raises ResolutionError on the first failure.
    """
    session = session or boto3.session.Session(region_name=config.region)
    resolved = {"vpc_id": resolve_network(config.vpc_name, session.client("ec2"))}

    if config.features.tls:
        resolved["hosted_zone_id"] = resolve_hosted_zone(
            config.hosted_zone_domain, session.client("route53")
        )
    return resolved
