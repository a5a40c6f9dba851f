#!/usr/bin/env python3
"""
Counter CDK App
===============
Infrastructure as Code for the counter web app: a containerised Go API behind
an Application Load Balancer, a static frontend on S3 + CloudFront, custom
domains with ACM certificates, and an RDS Postgres database.

Stacks:
  CounterStackEdgeCertificate  (us-east-1, only with feature_tls)
  CounterStack                 (context `region`, default us-east-1)

Every value is read from CDK context; see cdk.json and counter/config.py.

Run:
  cdk deploy --all
  cdk deploy --all -c feature_database=false -c preflight=false
"""
from __future__ import annotations

import aws_cdk as cdk

from counter.config import DeploymentConfig
from counter.counter_stack import build_deployment
from counter.graph import DeclarationGraph
from counter.logger import get_logger
from counter.preflight import run_preflight

logger = get_logger("counter.app")


def main(context: dict | None = None) -> cdk.App:
    """
    Declare, synthesize and check the deployment.
    The CDK CLI passes its context through the environment; `context` is
    merged on top of it.
    """
    app = cdk.App(context=context)

    config = DeploymentConfig.from_context(app.node)
    logger.info(
        "Declaring counter deployment",
        extra={"region": config.region, "vpc_name": config.vpc_name, "features": config.features.model_dump()},
    )

    if str(app.node.try_get_context("preflight")).lower() != "false":
        run_preflight(config)

    deployment = build_deployment(app, config, stack_name=app.node.try_get_context("stack_name") or "CounterStack")

    assembly = app.synth()

    for stack in deployment.stacks:
        graph = DeclarationGraph.from_template(assembly.get_stack_by_name(stack.stack_name).template)
        graph.validate()
        logger.info(
            "Stack declared",
            extra={
                "event": "stack.declared",
                "stack": stack.stack_name,
                "resources": len(graph.resources),
                "apply_order": graph.apply_order(),
            },
        )
    return app


if __name__ == "__main__":
    main()
