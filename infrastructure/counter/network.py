"""
Network reference: the pre-existing VPC everything is placed in.
The VPC is looked up, never created or destroyed by this app.
"""
from aws_cdk import aws_ec2 as ec2
from constructs import Construct


def lookup_vpc(scope: Construct, vpc_name: str) -> ec2.IVpc:
    """
    Resolve the VPC by its Name tag through the CDK context provider.

    The lookup needs a stack with an explicit account/region. The result is
    cached in cdk.context.json; the CLI fails the synth if zero or several
    VPCs carry the name.
    """
    if not vpc_name:
        raise ValueError("vpc_name is required to look up the VPC")
    return ec2.Vpc.from_lookup(scope, "CounterVpc", vpc_name=vpc_name)
