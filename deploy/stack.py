"""CDK stack for the edge-auth FastAPI app on Lambda behind CloudFront."""

from aws_cdk import (
    CfnOutput,
    Duration,
    Fn,
    RemovalPolicy,
    Stack,
    aws_cloudfront as cloudfront,
    aws_cloudfront_origins as origins,
    aws_dynamodb as dynamodb,
    aws_lambda as lambda_,
    aws_logs as logs,
)
from aws_cdk.aws_apigatewayv2 import HttpApi, HttpMethod
from aws_cdk.aws_apigatewayv2_integrations import HttpLambdaIntegration
from constructs import Construct

from edge_auth.platform import ORIGIN_REQUEST_HEADERS, ORIGIN_VERIFY_HEADER


class EdgeAuthStack(Stack):
    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # --- Context values (pass via -c or cdk.json) ---
        database_url = self.node.try_get_context("database_url") or "CHANGE_ME"
        auth_secret = self.node.try_get_context("auth_secret") or "CHANGE_ME"
        public_origin = self.node.try_get_context("public_origin") or ""
        # Shared between the distribution and the Lambda; requests without it
        # did not come through CloudFront.
        origin_secret = self.node.try_get_context("origin_secret") or "CHANGE_ME"

        # --- DynamoDB table for login form state ---
        ui_sessions = dynamodb.Table(
            self,
            "UiSessionsTable",
            table_name="edge_auth_ui_sessions",
            partition_key=dynamodb.Attribute(
                name="session_id", type=dynamodb.AttributeType.STRING
            ),
            billing_mode=dynamodb.BillingMode.PAY_PER_REQUEST,
            removal_policy=RemovalPolicy.DESTROY,
            time_to_live_attribute="ttl",
        )

        # --- Lambda function ---
        fn = lambda_.Function(
            self,
            "Handler",
            runtime=lambda_.Runtime.PYTHON_3_13,
            handler="handler.handler",
            code=lambda_.Code.from_asset(
                "..",
                exclude=[
                    "deploy/*",
                    "tests/*",
                    "scripts/*",
                    ".venv/*",
                    "__pycache__",
                    "*.pyc",
                    ".pytest_cache",
                    ".git",
                ],
            ),
            memory_size=512,
            timeout=Duration.seconds(30),
            log_retention=logs.RetentionDays.TWO_WEEKS,
            environment={
                "ENVIRONMENT": "production",
                "HYPERDRIVE": database_url,
                "AUTH_SECRET": auth_secret,
                "PUBLIC_ORIGIN": public_origin,
                "SESSION_BACKEND": "dynamodb",
                "DYNAMODB_TABLE": ui_sessions.table_name,
                "SESSION_HTTPS_ONLY": "true",
                "EDGE_ORIGIN_SECRET": origin_secret,
                **({"BASE_URL": public_origin} if public_origin else {}),
            },
        )

        ui_sessions.grant_read_write_data(fn)

        # --- HTTP API (API Gateway v2) ---
        integration = HttpLambdaIntegration("LambdaIntegration", fn)
        api = HttpApi(self, "HttpApi", api_name="edge-auth")
        api.add_routes(
            path="/{proxy+}",
            methods=[HttpMethod.GET, HttpMethod.POST],
            integration=integration,
        )
        api.add_routes(path="/", methods=[HttpMethod.GET], integration=integration)

        # --- CloudFront in front, forwarding viewer location headers ---
        # The API's own endpoint stays reachable (it is CloudFront's origin),
        # so the app trusts viewer headers only alongside the origin secret.
        # No viewer header carries the edge location: colo stays null.
        api_domain = Fn.select(2, Fn.split("/", api.api_endpoint))
        viewer_policy = cloudfront.OriginRequestPolicy(
            self,
            "ViewerHeaders",
            header_behavior=cloudfront.OriginRequestHeaderBehavior.allow_list(
                *ORIGIN_REQUEST_HEADERS
            ),
            cookie_behavior=cloudfront.OriginRequestCookieBehavior.all(),
            query_string_behavior=cloudfront.OriginRequestQueryStringBehavior.all(),
        )
        distribution = cloudfront.Distribution(
            self,
            "Distribution",
            default_behavior=cloudfront.BehaviorOptions(
                origin=origins.HttpOrigin(
                    api_domain, custom_headers={ORIGIN_VERIFY_HEADER: origin_secret}
                ),
                allowed_methods=cloudfront.AllowedMethods.ALLOW_ALL,
                cache_policy=cloudfront.CachePolicy.CACHING_DISABLED,
                origin_request_policy=viewer_policy,
                viewer_protocol_policy=cloudfront.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
            ),
        )

        # --- Outputs ---
        CfnOutput(self, "DistributionUrl", value=f"https://{distribution.distribution_domain_name}")
        CfnOutput(self, "TableName", value=ui_sessions.table_name)
        CfnOutput(self, "FunctionName", value=fn.function_name)
