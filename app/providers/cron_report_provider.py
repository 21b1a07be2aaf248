from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.db.models import CronReport
from app.providers.storage import storage_guard


class CronReportProvider:
    def __init__(self, db_session: Session):
        self.db = db_session

    async def create(
        self,
        job_name: str,
        run_at: datetime,
        status: str,
        message: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> CronReport:
        report = CronReport(
            job_name=job_name,
            run_at=run_at,
            status=status,
            message=message,
            details=details,
        )
        with storage_guard(self.db, "cron report insert"):
            self.db.add(report)
            self.db.commit()
        return report
