"""Shared fixtures for the test suite."""
import boto3
import pytest
from moto import mock_aws

from notifier.digest import DigestFormatter
from storage.dynamodb_manager import DynamoDBManager
from storage.tables import create_tables
from utils.time_window import TimeWindow

from helpers import MutableClock

TABLE_PREFIX = 'test-schedule'


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb(aws_credentials):
    """Mock DynamoDB resource with every schedule table created."""
    with mock_aws():
        resource = boto3.resource('dynamodb', region_name='us-east-1')
        create_tables(resource, TABLE_PREFIX)
        yield resource


@pytest.fixture
def storage(dynamodb):
    return DynamoDBManager(TABLE_PREFIX, dynamodb=dynamodb)


@pytest.fixture
def clock():
    # Thursday 2024-02-15 10:00 in Manila
    return MutableClock(2024, 2, 15, 10, 0)


@pytest.fixture
def time_window(clock):
    return TimeWindow('Asia/Manila', clock=clock)


@pytest.fixture
def formatter(time_window):
    return DigestFormatter(time_window)


@pytest.fixture
def raw_event():
    """Factory for raw backend event records."""
    def _build(
        event_id='E1',
        title='Anatomy Lecture',
        start='2024-02-15T00:00:00.000Z',
        end='2024-02-15T02:00:00.000Z',
        activity='Lecture',
        color=None,
        section='3B',
        subject='Anatomy',
        topic='Upper limb',
        room='R101',
        faculty='Dr. Cruz',
        department='ANAT'
    ):
        ext = {
            'subjectID': subject,
            'activity': activity,
            'sectionID': section,
            'roomID': room,
            'faculty': faculty,
            'topic': topic,
            'departmentID': department,
        }
        if event_id is not None:
            ext['meuTTid'] = event_id
        record = {'title': title, 'start': start, 'end': end, 'extendedProps': ext}
        if color is not None:
            record['color'] = color
        return record

    return _build
