"""
Health Check Router
Liveness endpoint plus a connectivity report for the AWS services in use
"""
import logging

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter

from app.core.config import settings
from app.core.exceptions import envelope
from app.db import dynamo
from app.utils import storage
from app.utils.dates import to_iso, utcnow
from app.utils.scheduler import get_scheduler_status

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns API status.
    """
    return envelope("API is running", {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "environment": settings.ENVIRONMENT,
        "timestamp": to_iso(utcnow()),
    })


def _table_status(name: str, table) -> dict:
    try:
        table.scan(Limit=1)
        return {"name": name, "status": "accessible", "region": settings.DYNAMO_REGION}
    except (ClientError, BotoCoreError) as e:
        logger.error(f"DynamoDB check failed for {name}: {str(e)}")
        return {"name": name, "status": "error", "error": str(e)}


def _bucket_status() -> dict:
    bucket_status = {"configured": storage.is_configured(), "bucket": settings.S3_BUCKET_NAME}
    if not bucket_status["configured"]:
        return bucket_status

    try:
        storage.get_client().head_bucket(Bucket=settings.S3_BUCKET_NAME)
        bucket_status["status"] = "accessible"
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        bucket_status["status"] = "error"
        bucket_status["error"] = f"{error_code}: {str(e)}"
        logger.error(f"S3 check failed: {str(e)}")
    except BotoCoreError as e:
        bucket_status["status"] = "error"
        bucket_status["error"] = str(e)
        logger.error(f"S3 check failed: {str(e)}")
    return bucket_status


@router.get("/status")
def aws_services_status():
    """
    Check connectivity of the DynamoDB tables and, when configured, the
    avatar bucket. Also reports the background scheduler.
    """
    tables = {
        "users": _table_status(settings.DYNAMO_USERS_TABLE, dynamo.users_table()),
        "categories": _table_status(settings.DYNAMO_CATEGORIES_TABLE, dynamo.categories_table()),
        "transactions": _table_status(settings.DYNAMO_TRANSACTIONS_TABLE, dynamo.transactions_table()),
    }
    s3 = _bucket_status()

    healthy = all(t["status"] == "accessible" for t in tables.values())
    if s3["configured"]:
        healthy = healthy and s3["status"] == "accessible"

    return envelope("Service status", {
        "timestamp": to_iso(utcnow()),
        "overall_status": "healthy" if healthy else "degraded",
        "services": {
            "dynamodb": {"connected": all(t["status"] == "accessible" for t in tables.values()), "tables": tables},
            "s3": s3,
            "scheduler": get_scheduler_status(),
        },
    })
