import time
from collections.abc import Callable
from datetime import timedelta

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from weather_proxy.utils.exceptions import CacheBackendError

from .base import CacheStore


class DynamoDBCacheStore(CacheStore):
    """
    DynamoDB implementation of the cache store.

    Items look like {"cache_key": S, "payload": S, "expires_at": N}. The
    table should have TTL enabled on "expires_at"; DynamoDB removes expired
    items lazily, so reads check the expiry themselves.
    """

    def __init__(
        self,
        table_name: str,
        region: str,
        key_prefix: str = "",
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        aws_session_token: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(key_prefix)
        self.table_name = table_name
        self.region = region
        self._clock = clock
        self._session = aioboto3.Session(
            aws_access_key_id=aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key,
            aws_session_token=aws_session_token,
            region_name=region,
        )
        self.logger = structlog.get_logger(__name__).bind(
            provider="dynamodb", table=self.table_name
        )

    @staticmethod
    def _error_code(error: Exception) -> str:
        if isinstance(error, ClientError):
            return error.response.get("Error", {}).get("Code", "Unknown")
        return type(error).__name__

    async def get(self, key: str) -> str | None:
        try:
            async with self._session.resource("dynamodb") as dynamodb:
                table = await dynamodb.Table(self.table_name)
                response = await table.get_item(
                    Key={"cache_key": self._full_key(key)},
                    ConsistentRead=True,
                )

        except (ClientError, BotoCoreError) as e:
            raise CacheBackendError(
                f"DynamoDB get_item failed: {self._error_code(e)} - {e}",
                operation="get",
            ) from e

        item = response.get("Item")
        if not item:
            return None

        if self._clock() >= float(item.get("expires_at", 0)):
            return None

        return item.get("payload")

    async def set(self, key: str, value: str, ttl: timedelta) -> None:
        try:
            async with self._session.resource("dynamodb") as dynamodb:
                table = await dynamodb.Table(self.table_name)
                await table.put_item(
                    Item={
                        "cache_key": self._full_key(key),
                        "payload": value,
                        "expires_at": int(self._clock() + ttl.total_seconds()),
                    }
                )

        except (ClientError, BotoCoreError) as e:
            raise CacheBackendError(
                f"DynamoDB put_item failed: {self._error_code(e)} - {e}",
                operation="set",
            ) from e

    async def delete(self, key: str) -> bool:
        try:
            async with self._session.resource("dynamodb") as dynamodb:
                table = await dynamodb.Table(self.table_name)
                response = await table.delete_item(
                    Key={"cache_key": self._full_key(key)},
                    ReturnValues="ALL_OLD",
                )

        except (ClientError, BotoCoreError) as e:
            raise CacheBackendError(
                f"DynamoDB delete_item failed: {self._error_code(e)} - {e}",
                operation="delete",
            ) from e

        return bool(response.get("Attributes"))

    async def health_check(self) -> bool:
        try:
            async with self._session.client("dynamodb") as client:
                response = await client.describe_table(TableName=self.table_name)
                table_status = response["Table"]["TableStatus"]
                is_healthy = table_status == "ACTIVE"

                self.logger.info(
                    "health_check_completed",
                    table_status=table_status,
                    is_healthy=is_healthy,
                )
                return is_healthy

        except ClientError as e:
            error_code = self._error_code(e)
            self.logger.warning(
                "health_check_failed",
                error_code=error_code,
                table_exists=(error_code != "ResourceNotFoundException"),
            )
            return False
        except BotoCoreError as e:
            self.logger.error("health_check_error", error=str(e))
            return False
