"""
API Service
===========
ECS cluster + Fargate service behind a public Application Load Balancer.

Rollout window:
  min_healthy_percent=100 / max_healthy_percent=200 means ECS starts a full
  replacement set of tasks before stopping any old one. Capacity never dips
  during a deploy, at the cost of briefly running twice the tasks.

Listener:
  With a certificate the load balancer listens on HTTPS/443 only; without one
  on HTTP/80 only. No redirect listener is added, so exactly one port is open.

The tasks run in a dedicated security group. The database admits traffic from
that group and nothing else.
"""
from __future__ import annotations

import aws_cdk as cdk
from aws_cdk import aws_certificatemanager as acm
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_ecs_patterns as ecs_patterns
from aws_cdk import aws_elasticloadbalancingv2 as elbv2
from constructs import Construct

from counter.config import DeploymentConfig

HTTP_PORT = 80
HTTPS_PORT = 443


class CounterService(Construct):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        vpc: ec2.IVpc,
        config: DeploymentConfig,
        certificate: acm.ICertificate | None = None,
        environment: dict[str, str] | None = None,
        secrets: dict[str, ecs.Secret] | None = None,
    ):
        super().__init__(scope, id)

        self.cluster = ecs.Cluster(self, "CounterCluster", vpc=vpc)

        # ----------------------------------------------------------------
        # Compute tier security group (database ingress is scoped to it)
        # ----------------------------------------------------------------
        self.security_group = ec2.SecurityGroup(
            self, "ServiceSecurityGroup",
            vpc=vpc,
            description="Counter API tasks",
            allow_all_outbound=True,
        )

        if certificate is not None:
            protocol = elbv2.ApplicationProtocol.HTTPS
            self.listener_port = HTTPS_PORT
        else:
            protocol = elbv2.ApplicationProtocol.HTTP
            self.listener_port = HTTP_PORT

        # See https://docs.aws.amazon.com/cdk/api/v2/python/aws_cdk.aws_ecs_patterns/ApplicationLoadBalancedFargateService.html
        self.fargate_service = ecs_patterns.ApplicationLoadBalancedFargateService(
            self, "CounterFargateService",
            cluster=self.cluster,
            memory_limit_mib=config.memory_limit_mib,
            desired_count=config.desired_count,
            task_image_options=ecs_patterns.ApplicationLoadBalancedTaskImageOptions(
                image=ecs.ContainerImage.from_asset(config.image_directory),
                container_port=config.container_port,
                environment=dict(environment or {}),
                secrets=dict(secrets or {}),
            ),
            public_load_balancer=True,
            protocol=protocol,
            listener_port=self.listener_port,
            certificate=certificate,
            redirect_http=False,
            security_groups=[self.security_group],
            health_check_grace_period=cdk.Duration.seconds(config.health_check_grace_period_seconds),
            min_healthy_percent=config.min_healthy_percent,
            max_healthy_percent=config.max_healthy_percent,
        )

        self.fargate_service.target_group.configure_health_check(path=config.health_check_path)

    @property
    def load_balancer(self) -> elbv2.ApplicationLoadBalancer:
        return self.fargate_service.load_balancer

    @property
    def service(self) -> ecs.FargateService:
        return self.fargate_service.service
