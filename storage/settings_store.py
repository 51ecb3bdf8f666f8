"""DynamoDB-backed settings and block configuration storage."""
import logging
from decimal import Decimal
from typing import Any, Dict, Iterator, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

SETTINGS_ID = 'calendly_availability.settings'
BLOCK_PLUGIN_ID = 'calendly_availability_block'


def _from_dynamodb(value: Any) -> Any:
    """Convert DynamoDB Decimal values back to int/float recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {key: _from_dynamodb(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_from_dynamodb(item) for item in value]
    if isinstance(value, set):
        return sorted(_from_dynamodb(item) for item in value)
    return value


class DynamoDBSettingsStore:
    """Reads integration settings and persists OAuth tokens."""

    def __init__(self, table_name: str, settings_id: str = SETTINGS_ID):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
            settings_id: Partition key of the settings item
        """
        self.table_name = table_name
        self.settings_id = settings_id
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBSettingsStore for table: {table_name}")

    def load(self) -> Dict[str, Any]:
        """
        Load the settings item.

        Returns:
            Settings dictionary (empty if the item does not exist)

        Raises:
            ClientError: If the table cannot be read
        """
        try:
            response = self.table.get_item(Key={'config_id': self.settings_id})
        except ClientError as e:
            logger.error(f"Error reading settings item {self.settings_id}: {e}")
            raise

        item = response.get('Item')
        if not item:
            logger.warning(f"Settings item {self.settings_id} not found in {self.table_name}")
            return {}

        settings = _from_dynamodb(item)
        settings.pop('config_id', None)
        return settings

    def save_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: int
    ) -> None:
        """
        Persist OAuth tokens on the settings item.

        Raises:
            ClientError: If the update fails
        """
        expression = 'SET personal_access_token = :access, token_expires_at = :expires'
        values = {':access': access_token, ':expires': int(expires_at)}
        if refresh_token:
            expression += ', refresh_token = :refresh'
            values[':refresh'] = refresh_token

        try:
            self.table.update_item(
                Key={'config_id': self.settings_id},
                UpdateExpression=expression,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            logger.error(f"Error saving Calendly tokens: {e}")
            raise

        logger.info("Stored Calendly access token")


class DynamoDBBlockConfigSource:
    """Enumerates availability block configurations used for category overrides."""

    def __init__(self, table_name: str, plugin_id: str = BLOCK_PLUGIN_ID):
        self.table_name = table_name
        self.plugin_id = plugin_id
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)

    def list_block_configs(self) -> Iterator[Dict[str, Any]]:
        """
        Scan for block configuration items.

        Yields:
            Dicts with label, selected_event_type_uris and stats_category

        Raises:
            ClientError: If the scan fails
        """
        scan_kwargs = {'FilterExpression': Attr('plugin_id').eq(self.plugin_id)}

        while True:
            response = self.table.scan(**scan_kwargs)

            for item in response.get('Items', []):
                block = _from_dynamodb(item)
                settings = block.get('settings') or {}
                yield {
                    'label': block.get('label') or settings.get('label') or '',
                    'selected_event_type_uris': settings.get('selected_event_type_uris') or [],
                    'stats_category': settings.get('stats_category') or '',
                }

            if 'LastEvaluatedKey' not in response:
                break
            scan_kwargs['ExclusiveStartKey'] = response['LastEvaluatedKey']
