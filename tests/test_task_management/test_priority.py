"""Tests for priority classification."""

from datetime import datetime, timedelta

import pytest

from deadline_radar.task_management.models import Task, TaskPriority, TaskStatus
from deadline_radar.task_management.priority import (
    classify_priority,
    countdown_text,
    days_until,
    most_pressing,
    recompute_priorities,
)

NOW = datetime(2025, 6, 1, 8, 0)


def make_task(deadline: datetime, status: TaskStatus = TaskStatus.PENDING) -> Task:
    return Task(
        id="task_1_abc",
        title="Essay",
        description="Essay due",
        deadline=deadline,
        priority=TaskPriority.LOW,
        status=status,
        context="",
        detected_at=NOW,
        created_at=NOW,
        updated_at=NOW,
        source="test",
    )


@pytest.mark.unit
class TestClassifyPriority:
    """Test cases for the urgency bands."""

    @pytest.mark.parametrize(
        ("offset", "expected"),
        [
            (timedelta(hours=-1), TaskPriority.OVERDUE),
            (timedelta(0), TaskPriority.URGENT),
            (timedelta(hours=23, minutes=59), TaskPriority.URGENT),
            (timedelta(days=1), TaskPriority.HIGH),
            (timedelta(days=2, hours=23), TaskPriority.HIGH),
            (timedelta(days=3), TaskPriority.MEDIUM),
            (timedelta(days=6, hours=23), TaskPriority.MEDIUM),
            (timedelta(days=7), TaskPriority.LOW),
            (timedelta(days=90), TaskPriority.LOW),
        ],
    )
    def test_bands(self, offset: timedelta, expected: TaskPriority) -> None:
        """Test each band and its boundaries."""
        assert classify_priority(NOW + offset, NOW) == expected

    def test_deadline_equal_to_now_is_urgent_not_overdue(self) -> None:
        """Test the zero boundary."""
        assert classify_priority(NOW, NOW) == TaskPriority.URGENT

    def test_completed_task_is_low(self) -> None:
        """Test that completed tasks never classify as urgent or overdue."""
        assert classify_priority(NOW - timedelta(days=3), NOW, TaskStatus.COMPLETED) == (
            TaskPriority.LOW
        )

    def test_tomorrow_at_five_from_eight_am_is_high(self) -> None:
        """Test 33 hours out."""
        assert classify_priority(datetime(2025, 6, 2, 17, 0), NOW) == TaskPriority.HIGH

    def test_same_deadline_later_in_the_day_is_urgent(self) -> None:
        """Test 8 hours out."""
        later = datetime(2025, 6, 2, 9, 0)
        assert classify_priority(datetime(2025, 6, 2, 17, 0), later) == TaskPriority.URGENT

    def test_days_until_is_fractional(self) -> None:
        """Test the day computation."""
        assert days_until(NOW + timedelta(hours=36), NOW) == 1.5


@pytest.mark.unit
class TestPriorityHelpers:
    """Test cases for helpers built on classification."""

    def test_recompute_returns_copies(self) -> None:
        """Test that recomputation does not mutate the input."""
        task = make_task(NOW + timedelta(hours=2))

        [updated] = recompute_priorities([task], NOW)

        assert updated.priority == TaskPriority.URGENT
        assert task.priority == TaskPriority.LOW

    def test_most_pressing(self) -> None:
        """Test ordering of bands."""
        assert most_pressing([TaskPriority.LOW, TaskPriority.URGENT, TaskPriority.HIGH]) == (
            TaskPriority.URGENT
        )
        assert most_pressing([]) == TaskPriority.LOW

    @pytest.mark.parametrize(
        ("offset", "expected"),
        [
            (timedelta(minutes=-5), "Overdue"),
            (timedelta(days=3, hours=4, minutes=10), "3d 4h"),
            (timedelta(hours=5, minutes=12), "5h 12m"),
            (timedelta(minutes=42), "42m"),
        ],
    )
    def test_countdown_text(self, offset: timedelta, expected: str) -> None:
        """Test the display formats."""
        assert countdown_text(NOW + offset, NOW) == expected
