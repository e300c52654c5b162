"""
BigQuery Conversation Summary Reader

Reads per-chat WhatsApp analytics for a set of workspaces from the
warehouse. Group chats and rows without a resolvable chat id are excluded
in the query.
"""

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from crm_sync.config import Settings, get_settings
from crm_sync.sync.models import ChatSummary

logger = structlog.get_logger()

QueryRunner = Callable[[str, list[str]], list[dict[str, Any]]]


def build_summary_query(table_ref: str) -> str:
    return f"""
        SELECT
            uid,
            org_id,
            chat_id,
            analytics,
            average_response_time,
            created_at,
            updated_at
        FROM `{table_ref}`
        WHERE uid IN UNNEST(@workspace_ids)
        AND chat_id NOT LIKE '%missing%' AND chat_id NOT LIKE '%@g.us%'
    """


class ConversationSummaryReader:
    """
    Batched reader over the conversation summary table.

    The BigQuery client is synchronous, so each query runs in a worker
    thread. `query_runner` replaces the BigQuery call (tests, other
    warehouses).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        query_runner: QueryRunner | None = None,
    ):
        self.settings = settings or get_settings()
        self._query_runner = query_runner
        self._client = None

    def _get_client(self):
        if self._client is None:
            from google.cloud import bigquery

            if self.settings.bigquery_credentials_path:
                from google.oauth2 import service_account

                credentials = service_account.Credentials.from_service_account_file(
                    self.settings.bigquery_credentials_path
                )
                self._client = bigquery.Client(
                    credentials=credentials,
                    project=self.settings.bigquery_project or credentials.project_id,
                )
            else:
                self._client = bigquery.Client(project=self.settings.bigquery_project)
        return self._client

    def _run_query(self, query: str, workspace_ids: list[str]) -> list[dict[str, Any]]:
        if self._query_runner is not None:
            return self._query_runner(query, workspace_ids)

        from google.cloud import bigquery

        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ArrayQueryParameter("workspace_ids", "STRING", workspace_ids),
            ]
        )
        query_job = self._get_client().query(query, job_config=job_config)
        return [dict(row) for row in query_job.result()]

    async def fetch(self, workspace_ids: Sequence[str]) -> list[ChatSummary]:
        """
        Chat summaries for the given workspaces.

        A failed batch is logged and skipped; rows that fail validation are
        dropped individually.
        """
        ids = list(dict.fromkeys(str(workspace_id) for workspace_id in workspace_ids))
        if not ids:
            return []

        batch_size = self.settings.warehouse_workspace_batch_size
        batches = [ids[start : start + batch_size] for start in range(0, len(ids), batch_size)]
        query = build_summary_query(self.settings.bigquery_table_ref)

        chats: list[ChatSummary] = []
        for index, batch in enumerate(batches):
            if index:
                await asyncio.sleep(self.settings.warehouse_batch_delay_seconds)
            try:
                rows = await asyncio.to_thread(self._run_query, query, batch)
            except Exception as exc:
                logger.error(
                    "Warehouse batch failed, skipping",
                    batch=index,
                    workspaces=len(batch),
                    error=str(exc),
                )
                continue

            for row in rows:
                try:
                    chats.append(ChatSummary.model_validate(row))
                except ValidationError as exc:
                    logger.warning("Skipping invalid warehouse row", chat_id=row.get("chat_id"), error=str(exc))

            logger.info("Warehouse batch completed", batch=index, rows=len(rows))

        return chats
