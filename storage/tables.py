"""DynamoDB table definitions for the schedule store."""
import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

EVENTS = 'events'
EXAMS = 'exams'
NOTIFICATIONS = 'notifications'
TASKS = 'tasks'
FILES = 'files'

DATE_INDEX = 'date-index'


def table_name(prefix: str, kind: str) -> str:
    return f"{prefix}-{kind}"


def _simple_table(name: str, key: str) -> Dict[str, Any]:
    return {
        'TableName': name,
        'KeySchema': [{'AttributeName': key, 'KeyType': 'HASH'}],
        'AttributeDefinitions': [{'AttributeName': key, 'AttributeType': 'S'}],
        'BillingMode': 'PAY_PER_REQUEST',
    }


def table_definitions(prefix: str) -> List[Dict[str, Any]]:
    """
    Build create_table arguments for every table the store uses.

    Args:
        prefix: Table name prefix

    Returns:
        List of keyword-argument dicts for create_table
    """
    events = {
        'TableName': table_name(prefix, EVENTS),
        'KeySchema': [{'AttributeName': 'event_id', 'KeyType': 'HASH'}],
        'AttributeDefinitions': [
            {'AttributeName': 'event_id', 'AttributeType': 'S'},
            {'AttributeName': 'event_date', 'AttributeType': 'S'},
            {'AttributeName': 'start_time', 'AttributeType': 'S'},
        ],
        'GlobalSecondaryIndexes': [
            {
                'IndexName': DATE_INDEX,
                'KeySchema': [
                    {'AttributeName': 'event_date', 'KeyType': 'HASH'},
                    {'AttributeName': 'start_time', 'KeyType': 'RANGE'},
                ],
                'Projection': {'ProjectionType': 'ALL'},
            }
        ],
        'BillingMode': 'PAY_PER_REQUEST',
    }
    return [
        events,
        _simple_table(table_name(prefix, EXAMS), 'event_id'),
        _simple_table(table_name(prefix, NOTIFICATIONS), 'alert_key'),
        _simple_table(table_name(prefix, TASKS), 'task_id'),
        _simple_table(table_name(prefix, FILES), 'file_id'),
    ]


def create_tables(dynamodb, prefix: str) -> List[str]:
    """
    Create any missing tables and wait until they are active.

    Args:
        dynamodb: boto3 DynamoDB service resource
        prefix: Table name prefix

    Returns:
        Names of the tables that were created
    """
    existing = {table.name for table in dynamodb.tables.all()}
    created = []
    for definition in table_definitions(prefix):
        name = definition['TableName']
        if name in existing:
            continue
        table = dynamodb.create_table(**definition)
        table.wait_until_exists()
        created.append(name)
        logger.info(f"Created table: {name}")
    return created
