"""JIRA work-item source."""

import logging
from typing import List, Optional

from jira import JIRA
from jira.resources import Issue

from ...core.config import JIRAConfig
from ...core.task import ExecutionResult, PriorityTier, WorkItem
from ...utils.error_handling import ErrorContext

logger = logging.getLogger(__name__)

# JIRA priority names -> priority tiers; unknown names carry no hint
PRIORITY_NAMES = {
    "blocker": PriorityTier.CRITICAL,
    "highest": PriorityTier.CRITICAL,
    "critical": PriorityTier.CRITICAL,
    "high": PriorityTier.HIGH,
    "major": PriorityTier.HIGH,
    "medium": PriorityTier.MEDIUM,
    "low": PriorityTier.LOW,
    "lowest": PriorityTier.LOW,
    "minor": PriorityTier.LOW,
    "trivial": PriorityTier.LOW,
}

ISSUE_FIELDS = "summary,description,priority,labels,issuetype"


def priority_from_name(name: Optional[str]) -> Optional[PriorityTier]:
    if not name:
        return None
    return PRIORITY_NAMES.get(name.strip().lower())


class JIRAWorkItemSource:
    """Reads JIRA issues as WorkItems and reports run outcomes back as comments."""

    def __init__(self, config: JIRAConfig, jira: Optional[JIRA] = None):
        self.config = config
        self.jira = jira or JIRA(
            server=config.server,
            basic_auth=(config.email, config.api_token),
        )

    def get_work_item(self, key: str) -> WorkItem:
        """Fetch one issue by key (e.g. PROJ-123)."""
        issue = self.jira.issue(key, fields=ISSUE_FIELDS)
        return self.issue_to_work_item(issue)

    def pull_triggered(self, jql: Optional[str] = None, max_results: Optional[int] = None) -> List[WorkItem]:
        """List issues matching the trigger query.

        Falls back to every open issue in the configured project when neither
        ``jql`` nor ``trigger_jql`` is set.
        """
        query = jql or self.config.trigger_jql or (
            f"project = {self.config.project} AND statusCategory != Done ORDER BY priority DESC"
        )
        issues = self.jira.search_issues(
            jql_str=query,
            maxResults=max_results or self.config.max_results,
            fields=ISSUE_FIELDS,
        )
        logger.info(f"JQL returned {len(issues)} issue(s): {query}")

        items: List[WorkItem] = []
        for issue in issues:
            # One malformed issue must not hide the rest of the batch
            with ErrorContext(
                f"converting issue {issue.key}",
                raise_on_error=False,
                logger_instance=logger,
                log_level=logging.WARNING,
            ):
                items.append(self.issue_to_work_item(issue))
        return items

    def issue_to_work_item(self, issue: Issue) -> WorkItem:
        fields = issue.fields
        priority = getattr(fields, "priority", None)
        return WorkItem(
            id=str(issue.id),
            key=issue.key,
            title=fields.summary,
            description=getattr(fields, "description", None) or None,
            priority_hint=priority_from_name(getattr(priority, "name", None)),
            labels=list(getattr(fields, "labels", None) or []),
            url=f"{self.config.server.rstrip('/')}/browse/{issue.key}",
        )

    def add_comment(self, key: str, body: str) -> None:
        self.jira.add_comment(key, body)

    def report_result(self, key: str, result: ExecutionResult) -> None:
        """Post the run summary on the issue."""
        lines = [f"Boss agent run {result.run_id} finished: {result.status.value}"]
        if result.error:
            lines.append(f"Error: {result.error}")
        if result.result is not None:
            lines.extend(["", result.result.summary])
        self.add_comment(key, "\n".join(lines))
        logger.info(f"Reported run {result.run_id} on {key}")
