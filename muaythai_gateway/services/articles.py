"""Publishing of articles whose scheduled time has passed"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from muaythai_gateway.domain.models import TaskResult
from muaythai_gateway.infrastructure.database.repositories import ArticleRepository

logger = logging.getLogger(__name__)


def publish_scheduled_articles(db: Session, now: datetime) -> TaskResult:
    repo = ArticleRepository(db)
    articles = repo.due_for_publish(now)
    published = failed = 0

    for article in articles:
        article_id, slug = article.id, article.slug
        try:
            if repo.publish(article_id, now):
                published += 1
                logger.info(f"Published scheduled article {slug}", extra={"article_id": str(article_id)})
            db.commit()
        except Exception as e:
            db.rollback()
            failed += 1
            logger.error(f"Failed to publish article {slug}: {e}", extra={"article_id": str(article_id)})

    return TaskResult(count_field="published", count=published, details={"failed": failed} if failed else {})
