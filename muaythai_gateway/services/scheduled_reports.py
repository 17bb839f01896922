"""Scheduled report generation and delivery"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from muaythai_gateway.config import settings
from muaythai_gateway.domain.models import EmailMessage, TaskResult
from muaythai_gateway.domain.recurrence import calculate_next_run_at
from muaythai_gateway.domain.reports import render_report
from muaythai_gateway.infrastructure.clients.email import EmailClient
from muaythai_gateway.infrastructure.database.models import ScheduledReport, ScheduledReportExecution
from muaythai_gateway.infrastructure.database.repositories import ScheduledReportRepository
from muaythai_gateway.services import email_templates
from muaythai_gateway.utils.date_utils import to_local, to_utc

logger = logging.getLogger(__name__)


class ScheduledReportService:
    """
    Runs every due scheduled report once.

    Each report gets an execution row and its own failure boundary. Whatever
    the outcome, the report's ``next_run_at`` moves past ``now`` so a broken
    report cannot fire on every dispatcher tick.
    """

    def __init__(self, db: Session, email_client: EmailClient, timezone: Optional[str] = None):
        self.db = db
        self.email_client = email_client
        self.timezone = timezone or settings.schedule_timezone
        self.repo = ScheduledReportRepository(db)

    async def generate_due(self, now: datetime) -> TaskResult:
        reports = self.repo.due(now)
        if not reports:
            return TaskResult(count_field="generated", details={"failed": 0, "processed": 0})

        generated = failed = 0
        for report in reports:
            outcome = await self._run(report, now)
            if outcome == "generated":
                generated += 1
            elif outcome == "failed":
                failed += 1

        return TaskResult(
            count_field="generated",
            count=generated,
            details={"failed": failed, "processed": len(reports)},
        )

    def next_run_at(self, report: ScheduledReport, now: datetime) -> datetime:
        """Next firing in naive UTC, scheduled on the local wall clock"""
        local_next = calculate_next_run_at(report.frequency, report.schedule_config or {}, to_local(now, self.timezone))
        return to_utc(local_next, self.timezone)

    def _definition(self, report: ScheduledReport) -> Tuple[str, List[str], List[str], Dict[str, Any]]:
        table_name = report.table_name
        columns = report.columns or []
        column_headers = report.column_headers or []
        filters = dict(report.filters or {})

        if report.custom_report_id:
            custom = self.repo.get_custom_report(report.custom_report_id)
            if custom is not None:
                table_name = custom.table_name
                columns = custom.columns or columns
                column_headers = custom.column_headers or column_headers
                filters = {**(custom.filters or {}), **filters}

        if not table_name or not columns:
            raise ValueError("Report has no table or columns configured")
        return table_name, list(columns), list(column_headers), filters

    async def _run(self, report: ScheduledReport, now: datetime) -> str:
        execution = self.repo.start_execution(report, now)
        self.db.commit()
        log_extra = {"report_id": str(report.id), "execution_id": str(execution.id)}

        try:
            outcome = await self._generate(report, execution, now)
            report.success_count = (report.success_count or 0) + 1
        except Exception as e:
            self.db.rollback()
            logger.error(f"Scheduled report {report.name} failed: {e}", extra=log_extra)
            execution.status = "failed"
            execution.completed_at = now
            execution.error_message = str(e)
            report.failure_count = (report.failure_count or 0) + 1
            report.last_error_message = str(e)
            outcome = "failed"

        report.last_run_at = now
        report.run_count = (report.run_count or 0) + 1
        report.next_run_at = self.next_run_at(report, now)
        self.db.commit()

        logger.info(
            f"Scheduled report {report.name}: {outcome}, next run {report.next_run_at.isoformat()}",
            extra=log_extra,
        )
        return outcome

    async def _generate(self, report: ScheduledReport, execution: ScheduledReportExecution, now: datetime) -> str:
        table_name, columns, column_headers, filters = self._definition(report)
        rows = self.repo.fetch_rows(table_name, filters)

        if not rows:
            execution.status = "completed"
            execution.completed_at = now
            execution.rows_processed = 0
            execution.email_sent = False
            return "empty"

        report_file = render_report(report.format, report.name, rows, columns, column_headers, now)

        email_error = None
        recipients = report.recipients or []
        if recipients:
            subject, html = email_templates.scheduled_report(report.name, len(rows), report.format, to_local(now, self.timezone))
            try:
                await self.email_client.send(
                    EmailMessage(
                        to=recipients,
                        subject=subject,
                        html=html,
                        cc=report.cc_recipients or None,
                        bcc=report.bcc_recipients or None,
                        attachments=[(report_file.file_name, report_file.content)],
                    )
                )
            except Exception as e:
                email_error = str(e)
                logger.error(f"Failed to send report email for {report.name}: {e}", extra={"report_id": str(report.id)})
            else:
                execution.email_sent = True
                execution.email_sent_at = now
        else:
            logger.warning(f"No recipients specified for scheduled report {report.id}")

        execution.status = "completed"
        execution.completed_at = now
        execution.rows_processed = len(rows)
        execution.file_size_bytes = report_file.size_bytes
        execution.email_recipients = recipients
        execution.error_message = email_error
        return "generated"
