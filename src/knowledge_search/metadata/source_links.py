"""Deep links and provenance for the systems documents are synced from."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from knowledge_search.errors import LinkGenerationError
from knowledge_search.types import DocumentSnapshot, SourceLink, SourceMetadata

# GitLab chunks are cut at roughly this many lines.
LINES_PER_CHUNK = 50
DEFAULT_GITLAB_URL = "https://gitlab.com"
DEFAULT_BRANCH = "main"


class SourceLinkResolver(Protocol):
    def generate_link(
        self,
        datasource_type: str,
        metadata: dict[str, Any],
        datasource_config: dict[str, Any] | None = None,
    ) -> SourceLink | None:
        """Build a deep link, or `None` when the type or metadata does not allow one."""

    def extract_metadata(
        self, document: DocumentSnapshot | None, datasource_type: str
    ) -> SourceMetadata:
        """Collect provenance fields for a document."""


class DefaultSourceLinkResolver:
    """Resolver for Feishu documents, GitLab files and database tables."""

    def generate_link(
        self,
        datasource_type: str,
        metadata: dict[str, Any],
        datasource_config: dict[str, Any] | None = None,
    ) -> SourceLink | None:
        kind = datasource_type.upper()
        if kind == "FEISHU":
            return _feishu_link(metadata)
        if kind == "GITLAB":
            return _gitlab_link(metadata)
        if kind == "DATABASE":
            return _database_link(metadata, datasource_config or {})
        return None

    def extract_metadata(
        self, document: DocumentSnapshot | None, datasource_type: str
    ) -> SourceMetadata:
        metadata = document.metadata if document is not None else {}
        return SourceMetadata(
            datasource_type=datasource_type,
            title=document.title if document is not None else None,
            author=_optional_str(metadata.get("author")),
            modified_by=_optional_str(metadata.get("modifiedBy")),
            updated_at=_parse_timestamp(metadata.get("modifiedTime")),
            synced_at=document.synced_at if document is not None else None,
            version=_optional_str(metadata.get("version")),
            commit_id=_optional_str(metadata.get("commitId")),
        )


def _feishu_link(metadata: dict[str, Any]) -> SourceLink | None:
    url = metadata.get("url")
    if not url:
        return None
    return SourceLink(url=str(url), type="feishu", display_text="Open Feishu document")


def _gitlab_link(metadata: dict[str, Any]) -> SourceLink | None:
    project_path = metadata.get("projectPath")
    file_path = metadata.get("filePath")
    if not project_path or not file_path:
        return None

    branch = metadata.get("branch") or DEFAULT_BRANCH
    base_url = str(metadata.get("gitlabUrl") or DEFAULT_GITLAB_URL).rstrip("/")

    line_range = ""
    chunk_index = metadata.get("chunkIndex")
    if chunk_index is not None:
        if isinstance(chunk_index, bool) or not isinstance(chunk_index, int) or chunk_index < 0:
            raise LinkGenerationError(f"invalid chunkIndex: {chunk_index!r}")
        start_line = chunk_index * LINES_PER_CHUNK + 1
        end_line = start_line + LINES_PER_CHUNK - 1
        line_range = f"#L{start_line}-{end_line}"

    return SourceLink(
        url=f"{base_url}/{project_path}/-/blob/{branch}/{file_path}{line_range}",
        type="gitlab",
        display_text=f"View code: {file_path}",
    )


def _database_link(
    metadata: dict[str, Any], datasource_config: dict[str, Any]
) -> SourceLink | None:
    database_type = metadata.get("databaseType")
    database = metadata.get("database")
    table = metadata.get("table")
    if not database_type or not database or not table:
        return None

    # Not a browsable URL; a connection locator for the table.
    locator = f"{database_type}://"
    host = datasource_config.get("host")
    if host:
        locator += str(host)
        port = datasource_config.get("port")
        if port:
            locator += f":{port}"
    locator += f"/{database}/{table}"

    return SourceLink(
        url=locator,
        type="database",
        display_text=f"{database_type} database: {database}.{table}",
    )


def _optional_str(value: Any) -> str | None:
    return str(value) if value is not None else None


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as exc:
        raise LinkGenerationError(f"invalid modifiedTime: {value!r}") from exc
