"""Tenant workspace discovery and database naming."""

from __future__ import annotations

import re
from collections.abc import Iterator

from staminads_migrate.core.logging import get_logger
from staminads_migrate.core.protocols import AnalyticsClient

logger = get_logger(__name__)

DEFAULT_WORKSPACE_PREFIX = "staminads_ws"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_]")


def workspace_database_name(workspace_id: str, prefix: str = DEFAULT_WORKSPACE_PREFIX) -> str:
    """Physical database name for a workspace.

    Lowercases the id and replaces everything outside ``[a-z0-9_]`` with an
    underscore, since ClickHouse identifiers cannot contain hyphens.
    Distinct ids may collide (``ws-1`` and ``ws_1``); workspace ids are
    generated by the platform and never differ only in punctuation.

        >>> workspace_database_name("ws-with-dashes")
        'staminads_ws_ws_with_dashes'
    """
    if not workspace_id:
        raise ValueError("workspace_id must be a non-empty string")
    return f"{prefix}_{_UNSAFE_CHARS.sub('_', workspace_id.lower())}"


class WorkspaceEnumerator:
    """Lists tenant workspaces from the system database.

    Every call queries afresh; workspaces created between two runs are
    picked up by the second one. Rows with an empty id are skipped with a
    warning before any workspace is migrated.
    """

    def __init__(
        self,
        client: AnalyticsClient,
        system_database: str,
        *,
        prefix: str = DEFAULT_WORKSPACE_PREFIX,
    ) -> None:
        self.client = client
        self.system_database = system_database
        self.prefix = prefix

    def iter_workspace_ids(self) -> Iterator[str]:
        rows = self.client.query(
            f"SELECT DISTINCT id FROM {self.system_database}.workspaces ORDER BY id"
        )
        for row in rows:
            workspace_id = row["id"]
            if not workspace_id:
                # No database can be named for it
                logger.warning(
                    "workspaces.empty_id_skipped", system_database=self.system_database
                )
                continue
            yield workspace_id

    def list_workspace_ids(self) -> list[str]:
        ids = list(self.iter_workspace_ids())
        logger.debug("workspaces.listed", count=len(ids))
        return ids

    def to_database_name(self, workspace_id: str) -> str:
        return workspace_database_name(workspace_id, self.prefix)

    def __iter__(self) -> Iterator[str]:
        return self.iter_workspace_ids()


__all__ = [
    "DEFAULT_WORKSPACE_PREFIX",
    "WorkspaceEnumerator",
    "workspace_database_name",
]
