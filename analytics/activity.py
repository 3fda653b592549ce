"""
Task metrics and the recent-activity feed.

Both are pure shaping over already-fetched records; the builders own the
HubSpot calls.
"""

from __future__ import annotations

from typing import Iterable, List

from lib.date_utils import get_metric_date_ranges
from lib.utils import parse_amount, parse_timestamp
from models.crm_models import Company, Contact, Deal, Task
from models.metrics_models import ActivityItem, TaskMetrics, TaskSummary


def compute_task_metrics(tasks: Iterable[Task], days: int, now: int) -> TaskMetrics:
    """
    Period counts for tasks, mirroring the deal aggregator's windows.

    Completion needs both status COMPLETED and a completion date. Open and
    overdue counts are all-time.
    """
    tasks = list(tasks)
    windows = get_metric_date_ranges(days, now)
    m = TaskMetrics(total_tasks=len(tasks))

    for task in tasks:
        created = task.created_at
        completed = task.completed_at
        due = task.due_at
        done = task.is_completed

        if days == 0:
            if created is not None:
                m.created_in_period += 1
            if done and completed is not None:
                m.completed_in_period += 1
        else:
            if created is not None and windows.start <= created <= now:
                m.created_in_period += 1
            if done and completed is not None and windows.start <= completed <= now:
                m.completed_in_period += 1
            if created is not None and windows.prev_start <= created < windows.prev_end:
                m.created_prev_period += 1

        if not done:
            m.open_tasks += 1
            if due is not None and due < now:
                m.overdue += 1

    return m


def count_overdue(tasks: Iterable[Task], now: int) -> int:
    return sum(1 for t in tasks if not t.is_completed and t.due_at is not None and t.due_at < now)


def _format_amount(raw) -> str:
    return f"${parse_amount(raw):,.2f}"


def build_activity_feed(
    contacts: Iterable[Contact],
    companies: Iterable[Company],
    deals: Iterable[Deal],
    tasks: Iterable[Task],
    limit: int = 10,
) -> List[ActivityItem]:
    """Merge records of every type into one newest-first feed of at most `limit` items."""
    items: List[ActivityItem] = []

    for c in contacts:
        p = c.properties
        items.append(ActivityItem(
            type="contact",
            id=c.id,
            title=c.full_name or "New Contact",
            date=p.lastmodifieddate or p.createdate,
            description=p.email or "Contact created/updated",
        ))
    for c in companies:
        p = c.properties
        items.append(ActivityItem(
            type="company",
            id=c.id,
            title=p.name or "New Company",
            date=p.lastmodifieddate or p.createdate,
            description=p.industry or "Company created/updated",
        ))
    for d in deals:
        p = d.properties
        items.append(ActivityItem(
            type="deal",
            id=d.id,
            title=p.dealname or "New Deal",
            date=p.lastmodifieddate or p.createdate,
            description=f"{_format_amount(p.amount)} - {p.dealstage or 'Deal created/updated'}",
        ))
    for t in tasks:
        p = t.properties
        items.append(ActivityItem(
            type="task",
            id=t.id,
            title=p.hs_task_subject or "New Task",
            date=p.hs_timestamp or p.hs_task_completion_date,
            description=p.hs_task_status or "Task created/updated",
        ))

    # Undated items sink to the end; sorted() is stable for ties
    items = sorted(items, key=lambda item: parse_timestamp(item.date) or 0, reverse=True)
    return items[:max(limit, 0)]


def summarize_tasks(tasks: Iterable[Task], limit: int = 10) -> List[TaskSummary]:
    """Inspection rows for the first `limit` tasks."""
    rows = []
    for task in list(tasks)[:max(limit, 0)]:
        p = task.properties
        rows.append(TaskSummary(
            id=task.id,
            name=p.hs_task_subject or None,
            creation_date=p.hs_createdate or None,
            due_date=p.hs_timestamp or None,
            completion_date=p.hs_task_completion_date or None,
            status=p.hs_task_status or None,
        ))
    return rows
