"""
Database
========
Single RDS Postgres instance for the counter table.

Design choices for this tier:
1. Single-AZ: no standby, no automatic failover
2. Credentials generated into Secrets Manager; the API reads the password
   through an ECS secret reference, never as a literal in the template
3. Dedicated security group with one ingress rule: the API tasks' group on
   the Postgres port
4. RemovalPolicy.DESTROY with no final snapshot and no retained backups.
   `cdk destroy` deletes the data immediately. Use RETAIN/SNAPSHOT before
   pointing this at anything you want to keep.
"""
from __future__ import annotations

import aws_cdk as cdk
from aws_cdk import aws_ec2 as ec2
from aws_cdk import aws_ecs as ecs
from aws_cdk import aws_rds as rds
from constructs import Construct

from counter.config import DatabaseSettings


class CounterDatabase(Construct):
    def __init__(
        self,
        scope: Construct,
        id: str,
        *,
        vpc: ec2.IVpc,
        client_security_group: ec2.ISecurityGroup,
        settings: DatabaseSettings,
    ):
        super().__init__(scope, id)

        self.settings = settings

        self.security_group = ec2.SecurityGroup(
            self, "DatabaseSecurityGroup",
            vpc=vpc,
            description="Counter Postgres, reachable from the API tasks only",
            allow_all_outbound=False,
        )
        self.security_group.add_ingress_rule(
            client_security_group,
            ec2.Port.tcp(settings.port),
            "Postgres from the API tasks",
        )

        self.instance = rds.DatabaseInstance(
            self, "CounterDatabase",
            engine=rds.DatabaseInstanceEngine.postgres(
                version=rds.PostgresEngineVersion.of(settings.engine_version, settings.engine_version.split(".")[0]),
            ),
            instance_type=ec2.InstanceType(f"{settings.instance_class}.{settings.instance_size}"),
            vpc=vpc,
            security_groups=[self.security_group],
            port=settings.port,
            allocated_storage=settings.allocated_storage_gib,
            max_allocated_storage=settings.max_allocated_storage_gib,
            multi_az=False,
            credentials=rds.Credentials.from_generated_secret(settings.username),
            database_name=settings.database_name,
            publicly_accessible=False,
            removal_policy=cdk.RemovalPolicy.DESTROY,  # no snapshot: data is gone on destroy
            deletion_protection=False,
            delete_automated_backups=True,
        )

    @property
    def endpoint_address(self) -> str:
        return self.instance.db_instance_endpoint_address

    def connection_environment(self) -> dict[str, str]:
        """Plain (non-secret) connection settings for the API container."""
        return {
            "DB_HOST": self.endpoint_address,
            "DB_NAME": self.settings.database_name,
            "DB_USER": self.settings.username,
        }

    def connection_secrets(self) -> dict[str, ecs.Secret]:
        """The password, as a Secrets Manager reference resolved by ECS at task start."""
        return {
            "DB_PASSWORD": ecs.Secret.from_secrets_manager(self.instance.secret, "password"),
        }
