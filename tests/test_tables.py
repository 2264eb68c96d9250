"""Unit tests for table definitions."""
from storage import tables


def test_table_names_use_prefix():
    assert tables.table_name('acad', tables.EVENTS) == 'acad-events'


def test_events_table_has_date_index():
    """Test that the events table carries the per-day index."""
    definitions = {d['TableName']: d for d in tables.table_definitions('acad')}
    events = definitions['acad-events']

    index = events['GlobalSecondaryIndexes'][0]
    assert index['IndexName'] == tables.DATE_INDEX
    assert [k['AttributeName'] for k in index['KeySchema']] == ['event_date', 'start_time']
    assert set(definitions) == {
        'acad-events', 'acad-exams', 'acad-notifications', 'acad-tasks', 'acad-files'
    }


def test_create_tables_is_idempotent(dynamodb):
    """Test that existing tables are left alone."""
    assert tables.create_tables(dynamodb, 'test-schedule') == []
    assert len(tables.create_tables(dynamodb, 'other')) == 5
