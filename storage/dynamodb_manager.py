"""DynamoDB manager for schedule storage operations."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.models import CalendarEvent, Exam, SharedFile, Task
from storage import tables

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when a storage operation fails."""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoDBManager:
    """Manager for DynamoDB operations."""

    BATCH_SIZE = 25  # DynamoDB batch operation limit

    def __init__(
        self,
        table_prefix: str,
        region_name: Optional[str] = None,
        dynamodb=None
    ):
        """
        Initialize DynamoDB resource and table references.

        Args:
            table_prefix: Prefix shared by all schedule tables
            region_name: AWS region (default: boto3 configuration)
            dynamodb: Existing boto3 DynamoDB resource to reuse
        """
        self.table_prefix = table_prefix
        self.dynamodb = dynamodb or boto3.resource('dynamodb', region_name=region_name)
        self.events_table = self.dynamodb.Table(tables.table_name(table_prefix, tables.EVENTS))
        self.exams_table = self.dynamodb.Table(tables.table_name(table_prefix, tables.EXAMS))
        self.notifications_table = self.dynamodb.Table(
            tables.table_name(table_prefix, tables.NOTIFICATIONS)
        )
        self.tasks_table = self.dynamodb.Table(tables.table_name(table_prefix, tables.TASKS))
        self.files_table = self.dynamodb.Table(tables.table_name(table_prefix, tables.FILES))
        logger.info(f"Initialized DynamoDBManager with table prefix: {table_prefix}")

    # ========== Calendar events ==========

    def put_event(self, event: CalendarEvent) -> None:
        """
        Insert or overwrite an event keyed by event_id.

        Args:
            event: Normalized event with a backend identifier

        Raises:
            StorageError: If the write fails
        """
        item = self._event_to_item(event)
        try:
            self.events_table.put_item(Item=item)
        except ClientError as e:
            raise StorageError(f"Error writing event {event.event_id}: {e}") from e

    def delete_event(self, event_id: str) -> bool:
        """
        Delete an event.

        Returns:
            True if a row existed and was removed
        """
        return self._delete(self.events_table, {'event_id': event_id})

    def get_event(self, event_id: str) -> Optional[CalendarEvent]:
        item = self._get(self.events_table, {'event_id': event_id})
        return self._item_to_event(item) if item else None

    def get_all_events(self) -> Dict[str, CalendarEvent]:
        """
        Retrieve all events using Scan operation.

        Returns:
            Dictionary mapping event_id to CalendarEvent objects
        """
        logger.info("Scanning events table")
        events = {}
        for item in self._scan_all(self.events_table):
            event = self._item_to_event(item)
            if event:
                events[event.event_id] = event

        logger.info(f"Retrieved {len(events)} events from DynamoDB")
        return events

    def get_events_by_date(self, date_str: str) -> List[CalendarEvent]:
        """
        Events starting on one civil date, ordered by start time.

        Args:
            date_str: Civil date (YYYY-MM-DD)

        Returns:
            List of CalendarEvent objects
        """
        items = self._query_all(
            self.events_table,
            IndexName=tables.DATE_INDEX,
            KeyConditionExpression=Key('event_date').eq(date_str)
        )
        events = [self._item_to_event(item) for item in items]
        events = [event for event in events if event]
        events.sort(key=lambda e: e.start_time)
        return events

    def get_events_for_dates(self, dates: List[str]) -> List[CalendarEvent]:
        """Events for each civil date in order, e.g. one week."""
        events = []
        for date_str in dates:
            events.extend(self.get_events_by_date(date_str))
        return events

    def batch_delete_events(self, event_ids: List[str]) -> int:
        """
        Delete events and their exam projections in batches of 25 items.

        Args:
            event_ids: List of event IDs to delete

        Returns:
            Count of deleted events

        Raises:
            StorageError: If a batch fails
        """
        if not event_ids:
            return 0

        logger.info(f"Deleting {len(event_ids)} events from DynamoDB")
        success_count = 0

        for i in range(0, len(event_ids), self.BATCH_SIZE):
            batch = event_ids[i:i + self.BATCH_SIZE]

            try:
                with self.events_table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'event_id': event_id})
                with self.exams_table.batch_writer() as writer:
                    for event_id in batch:
                        writer.delete_item(Key={'event_id': event_id})
            except ClientError as e:
                raise StorageError(
                    f"Error deleting batch {i // self.BATCH_SIZE + 1}: {e}"
                ) from e
            success_count += len(batch)

        logger.info(f"Successfully deleted {success_count} events")
        return success_count

    # ========== Exams ==========

    def put_exam(self, exam: Exam) -> None:
        item = {
            'event_id': exam.event_id,
            'subject': exam.subject,
            'exam_date': exam.exam_date,
        }
        for name in ('room', 'faculty', 'topic', 'color'):
            value = getattr(exam, name)
            if value is not None:
                item[name] = value

        try:
            self.exams_table.put_item(Item=item)
        except ClientError as e:
            raise StorageError(f"Error writing exam {exam.event_id}: {e}") from e

    def delete_exam(self, event_id: str) -> bool:
        return self._delete(self.exams_table, {'event_id': event_id})

    def get_exam(self, event_id: str) -> Optional[Exam]:
        item = self._get(self.exams_table, {'event_id': event_id})
        return self._item_to_exam(item) if item else None

    def get_all_exams(self) -> List[Exam]:
        exams = [self._item_to_exam(item) for item in self._scan_all(self.exams_table)]
        exams.sort(key=lambda e: e.exam_date)
        return exams

    def get_upcoming_exams(self, from_time: str, limit: int = 10) -> List[Exam]:
        """
        Exams at or after a civil timestamp, soonest first.

        Args:
            from_time: Local civil "YYYY-MM-DD HH:MM:SS" lower bound
            limit: Maximum number of exams returned

        Returns:
            List of Exam objects
        """
        items = self._scan_all(
            self.exams_table,
            FilterExpression=Attr('exam_date').gte(from_time)
        )
        exams = sorted(
            (self._item_to_exam(item) for item in items),
            key=lambda e: e.exam_date
        )
        return exams[:max(0, limit)]

    def get_exams_between(self, start: str, end: str) -> List[Exam]:
        """
        Every exam in a half-open civil time range, soonest first.

        Args:
            start: Inclusive local civil "YYYY-MM-DD HH:MM:SS" lower bound
            end: Exclusive local civil upper bound

        Returns:
            List of Exam objects
        """
        items = self._scan_all(
            self.exams_table,
            FilterExpression=Attr('exam_date').gte(start) & Attr('exam_date').lt(end)
        )
        exams = [self._item_to_exam(item) for item in items]
        exams.sort(key=lambda e: e.exam_date)
        return exams

    # ========== Notification ledger ==========

    def claim_notification(self, alert_key: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """
        Record that a notification occurrence is being sent.

        The conditional put succeeds only for the first caller, so
        concurrent or repeated job runs cannot both claim the same key.

        Args:
            alert_key: Occurrence key, e.g. "exam_alert#E42#3"
            details: Extra attributes stored with the claim

        Returns:
            True if this call claimed the key, False if it was already claimed
        """
        item = dict(details or {})
        item['alert_key'] = alert_key
        item['claimed_at'] = _utc_now()
        try:
            self.notifications_table.put_item(
                Item=item,
                ConditionExpression='attribute_not_exists(alert_key)'
            )
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'ConditionalCheckFailedException':
                return False
            raise StorageError(f"Error claiming notification {alert_key}: {e}") from e
        return True

    def release_notification(self, alert_key: str) -> None:
        """Remove a claim so the occurrence can be sent again."""
        self._delete(self.notifications_table, {'alert_key': alert_key})

    def has_notification(self, alert_key: str) -> bool:
        return self._get(self.notifications_table, {'alert_key': alert_key}) is not None

    # ========== Tasks ==========

    def put_task(self, task: Task) -> None:
        item = {
            'task_id': task.task_id,
            'title': task.title,
            'completed': bool(task.completed),
            'created_at': _utc_now(),
        }
        for name in ('deadline', 'description', 'group_name', 'source'):
            value = getattr(task, name)
            if value is not None:
                item[name] = value

        try:
            self.tasks_table.put_item(Item=item)
        except ClientError as e:
            raise StorageError(f"Error writing task {task.task_id}: {e}") from e

    def complete_task(self, task_id: str) -> None:
        try:
            self.tasks_table.update_item(
                Key={'task_id': task_id},
                UpdateExpression='SET completed = :done',
                ConditionExpression='attribute_exists(task_id)',
                ExpressionAttributeValues={':done': True}
            )
        except ClientError as e:
            raise StorageError(f"Error completing task {task_id}: {e}") from e

    def get_pending_tasks(self) -> List[Task]:
        """Incomplete tasks, earliest deadline first, undated last."""
        items = self._scan_all(
            self.tasks_table,
            FilterExpression=Attr('completed').eq(False)
        )
        tasks = [
            Task(
                task_id=item['task_id'],
                title=item.get('title', ''),
                deadline=item.get('deadline'),
                completed=bool(item.get('completed', False)),
                description=item.get('description'),
                group_name=item.get('group_name'),
                source=item.get('source')
            )
            for item in items
        ]
        tasks.sort(key=lambda t: (t.deadline is None, t.deadline or ''))
        return tasks

    # ========== Shared files ==========

    def put_shared_file(self, shared_file: SharedFile) -> None:
        item = {
            'file_id': shared_file.file_id,
            'filename': shared_file.filename,
            'downloaded_at': shared_file.downloaded_at,
        }
        if shared_file.subject is not None:
            item['subject'] = shared_file.subject
        if shared_file.group_name is not None:
            item['group_name'] = shared_file.group_name

        try:
            self.files_table.put_item(Item=item)
        except ClientError as e:
            raise StorageError(f"Error writing file {shared_file.file_id}: {e}") from e

    def get_recent_files(self, since: str) -> List[SharedFile]:
        """
        Files downloaded at or after a UTC ISO timestamp, newest first.

        Args:
            since: UTC ISO 8601 lower bound

        Returns:
            List of SharedFile objects
        """
        items = self._scan_all(
            self.files_table,
            FilterExpression=Attr('downloaded_at').gte(since)
        )
        files = [
            SharedFile(
                file_id=item['file_id'],
                filename=item.get('filename', ''),
                downloaded_at=item.get('downloaded_at', ''),
                subject=item.get('subject'),
                group_name=item.get('group_name')
            )
            for item in items
        ]
        files.sort(key=lambda f: f.downloaded_at, reverse=True)
        return files

    # ========== Helpers ==========

    def _get(self, table, key: Dict[str, str]) -> Optional[Dict[str, Any]]:
        try:
            response = table.get_item(Key=key)
        except ClientError as e:
            raise StorageError(f"Error reading {table.name}: {e}") from e
        return response.get('Item')

    def _delete(self, table, key: Dict[str, str]) -> bool:
        try:
            response = table.delete_item(Key=key, ReturnValues='ALL_OLD')
        except ClientError as e:
            raise StorageError(f"Error deleting from {table.name}: {e}") from e
        return bool(response.get('Attributes'))

    def _scan_all(self, table, **kwargs) -> List[Dict[str, Any]]:
        try:
            response = table.scan(**kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = table.scan(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **kwargs
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table {table.name}: {e}")
            raise StorageError(f"Error scanning {table.name}: {e}") from e
        return items

    def _query_all(self, table, **kwargs) -> List[Dict[str, Any]]:
        try:
            response = table.query(**kwargs)
            items = response.get('Items', [])

            while 'LastEvaluatedKey' in response:
                response = table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **kwargs
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error querying DynamoDB table {table.name}: {e}")
            raise StorageError(f"Error querying {table.name}: {e}") from e
        return items

    def _item_to_event(self, item: dict) -> Optional[CalendarEvent]:
        """
        Convert DynamoDB item to CalendarEvent object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            CalendarEvent object or None if conversion fails
        """
        try:
            return CalendarEvent(
                event_id=item['event_id'],
                title=item.get('title', ''),
                subject=item.get('subject', ''),
                activity=item.get('activity', 'Other'),
                start_time=item['start_time'],
                end_time=item.get('end_time'),
                room=item.get('room'),
                faculty=item.get('faculty'),
                topic=item.get('topic'),
                department=item.get('department'),
                color=item.get('color'),
                is_exam=bool(item.get('is_exam', False)),
                synced_at=item.get('synced_at')
            )
        except KeyError as e:
            logger.warning(f"Failed to convert item to CalendarEvent: {e}")
            return None

    def _event_to_item(self, event: CalendarEvent) -> dict:
        """
        Convert CalendarEvent object to DynamoDB item.

        Args:
            event: CalendarEvent object

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'event_id': event.event_id,
            'title': event.title,
            'subject': event.subject,
            'activity': event.activity,
            'event_date': event.event_date,
            'start_time': event.start_time,
            'is_exam': bool(event.is_exam),
            'synced_at': _utc_now()
        }

        # Add optional fields if present
        for name in ('end_time', 'room', 'faculty', 'topic', 'department', 'color'):
            value = getattr(event, name)
            if value is not None:
                item[name] = value

        return item

    def _item_to_exam(self, item: dict) -> Exam:
        return Exam(
            event_id=item['event_id'],
            subject=item.get('subject', ''),
            exam_date=item['exam_date'],
            room=item.get('room'),
            faculty=item.get('faculty'),
            topic=item.get('topic'),
            color=item.get('color')
        )
