"""
DynamoDB configuration and table setup using PynamoDB.
"""

from pynamodb.models import Model
from config import settings
import structlog

logger = structlog.get_logger()


class BaseDynamoModel(Model):
    """
    Base model for all DynamoDB models with common configuration.

    Credentials are not set here. ProjectItem sets them in its Meta only for
    local DynamoDB; in production PynamoDB uses boto3's credential chain.
    """

    class Meta:
        region = settings.DYNAMODB_REGION


def init_dynamodb_tables() -> None:
    """
    Create the projects table if it does not exist.

    Idempotent; tolerates a concurrent creator winning the race.
    """
    from project_models import ProjectItem
    from pynamodb.exceptions import TableError

    try:
        try:
            table_exists = ProjectItem.exists()
        except TableError as e:
            error_str = str(e).lower()
            if "timeout" in error_str or "timed out" in error_str:
                logger.warning(
                    "dynamodb_exists_check_timeout",
                    message="Table existence check timed out, attempting to create table anyway",
                    error=str(e)
                )
                table_exists = False
            else:
                raise

        if not table_exists:
            logger.info("dynamodb_table_creating", table_name=settings.DYNAMODB_TABLE_NAME)
            try:
                ProjectItem.create_table(
                    read_capacity_units=5,
                    write_capacity_units=5,
                    wait=True
                )
                logger.info("dynamodb_table_created", table_name=settings.DYNAMODB_TABLE_NAME)
            except TableError as e:
                error_str = str(e).lower()
                if "already exists" in error_str or "resourceinuseexception" in error_str:
                    logger.info("dynamodb_table_exists", table_name=settings.DYNAMODB_TABLE_NAME)
                else:
                    raise
        else:
            logger.info("dynamodb_table_exists", table_name=settings.DYNAMODB_TABLE_NAME)
    except Exception as e:
        logger.error("dynamodb_table_init_error", error=str(e), exc_info=True)
        raise
