"""AWS Lambda handler via Mangum.

Wraps the FastAPI app for API Gateway (v2 HTTP API) events behind
CloudFront. The app and Mangum adapter are created at module level so they
persist across warm Lambda invocations; auth instances are still built per
request inside the app.

Environment variables (required):
    HYPERDRIVE (Postgres connection string; name set by DATABASE_BINDING),
    AUTH_SECRET

Environment variables (recommended for Lambda):
    ENVIRONMENT=production
    PUBLIC_ORIGIN=https://auth.example.com
    SESSION_BACKEND=dynamodb
    SESSION_HTTPS_ONLY=true
    DYNAMODB_TABLE=edge_auth_ui_sessions
"""

import logging

from mangum import Mangum

from edge_auth.config import get_settings
from edge_auth.main import create_app
from edge_auth.session import DynamoDBSessionBackend

s = get_settings()
logging.getLogger().setLevel(s.log_level)

# Choose UI session backend based on config
session_backend = None
if s.session_backend == "dynamodb":
    session_backend = DynamoDBSessionBackend(
        table_name=s.dynamodb_table,
        endpoint_url=s.dynamodb_endpoint,
        region_name=s.aws_region,
    )

app = create_app(session_backend=session_backend)

handler = Mangum(app, lifespan="auto")
