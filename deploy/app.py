#!/usr/bin/env python3
"""CDK app entry point for the edge-auth Lambda deployment."""

import aws_cdk as cdk

from stack import EdgeAuthStack

app = cdk.App()
EdgeAuthStack(app, "EdgeAuth")
app.synth()
