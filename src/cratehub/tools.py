"""ToolRouter — the JSON-RPC tool-call surface over a CrateHub.

Transport agnostic: an HTTP layer decodes the request body, passes it to
:meth:`ToolRouter.handle` together with the caller's API key, and sends
back the returned dict.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from cratehub.exceptions import (
    CrateHubError,
    CrateNotFoundError,
    DependencyError,
    PermissionDeniedError,
    ValidationError,
)
from cratehub.store.classifier import coerce_category
from cratehub.store.types import UploadRequest

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from cratehub._hub import CrateHub
    from cratehub.auth import Caller
    from cratehub.store.types import RenderedCrate, ShareResult

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2025-03-26"
SERVER_NAME = "cratehub"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
PERMISSION_DENIED = -32003
NOT_FOUND = -32004
DEPENDENCY_FAILURE = -32010

ERROR_CODES: dict[type[CrateHubError], int] = {
    CrateNotFoundError: NOT_FOUND,
    PermissionDeniedError: PERMISSION_DENIED,
    ValidationError: INVALID_PARAMS,
    DependencyError: DEPENDENCY_FAILURE,
}


class ToolError(Exception):
    """A JSON-RPC level failure with an explicit error code."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


# =============================================================================
# Argument Schemas
# =============================================================================


class _Args(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True, extra="ignore")


class NoArgs(_Args):
    pass


class CrateIdArgs(_Args):
    id: str = Field(min_length=1, description="Crate id")


class GetArgs(CrateIdArgs):
    expires_in_seconds: int | None = Field(
        default=None,
        ge=1,
        le=86_400,
        alias="expiresInSeconds",
        description="Lifetime of any download link, in seconds (default 300)",
    )


class SearchArgs(_Args):
    query: str = Field(min_length=1)


class UploadArgs(_Args):
    file_name: str = Field(default="", alias="fileName")
    content_type: str = Field(alias="contentType", min_length=1)
    data: str | None = Field(default=None, description="Base64-encoded content")
    ttl_days: int | None = Field(default=None, ge=1, le=365, alias="ttlDays")
    title: str | None = None
    description: str | None = None
    category: str | None = Field(
        default=None,
        validation_alias=AliasChoices("category", "fileType"),
    )
    tags: list[str] | None = None
    metadata: dict[str, str] | None = None
    is_public: bool = Field(default=False, alias="isPublic")
    password: str | None = None

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return coerce_category(value).value


class ShareArgs(CrateIdArgs):
    public: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("public", "isShared"),
    )
    shared_with: list[str] | None = Field(default=None, alias="sharedWith")
    password_protected: bool | None = Field(default=None, alias="passwordProtected")
    password: str | None = None


# =============================================================================
# Result Formatting
# =============================================================================


def _text(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def _result(content: list[dict[str, Any]], structured: dict[str, Any]) -> dict[str, Any]:
    return {"content": content, "structuredContent": structured}


def _share_payload(result: ShareResult) -> dict[str, Any]:
    return {"id": result.crate_id, "shareUrl": result.share_url, "shared": result.shared.to_dict()}


def _rendered_result(rendered: RenderedCrate) -> dict[str, Any]:
    structured: dict[str, Any] = {"kind": rendered.kind, "crate": rendered.crate.to_dict()}
    if rendered.is_link:
        structured["url"] = rendered.url
        structured["expiresIn"] = rendered.expires_in

    if rendered.kind == "image":
        content = [{"type": "image", "data": rendered.data, "mimeType": rendered.mime_type}]
    elif rendered.kind == "text":
        content = [_text(rendered.text or "")]
    elif rendered.kind == "resource":
        content = [
            {
                "type": "resource",
                "resource": {
                    "uri": rendered.url,
                    "mimeType": rendered.mime_type,
                    "text": rendered.text or "",
                },
            }
        ]
    else:
        content = [
            _text(f"Download link (valid for {rendered.expires_in} seconds): {rendered.url}")
        ]
    return _result(content, structured)


# =============================================================================
# Router
# =============================================================================


_ToolSpec = tuple[str, type[_Args], "Callable[..., Awaitable[dict[str, Any]]]"]


class ToolRouter:
    """Maps tool names to CrateHub operations.

    Each tool has a canonical ``crates_*`` name; the bare verb (``get``,
    ``upload``, ...) is accepted as an alias.
    """

    def __init__(self, hub: CrateHub) -> None:
        self._hub = hub
        self._tools: dict[str, _ToolSpec] = {
            "crates_list": ("List crates uploaded in the last 30 days", NoArgs, self._list),
            "crates_get": (
                "Get a crate's contents (text, image, or a download link for binary data)",
                GetArgs,
                self._get,
            ),
            "crates_get_by_link": (
                "Get a time-limited download link for a crate",
                GetArgs,
                self._get_by_link,
            ),
            "crates_get_metadata": (
                "Get a crate's metadata without its contents",
                CrateIdArgs,
                self._get_metadata,
            ),
            "crates_search": (
                "Search crates by title, description, tags and metadata",
                SearchArgs,
                self._search,
            ),
            "crates_upload": (
                "Upload a crate. Binary and data crates return a pre-signed upload URL",
                UploadArgs,
                self._upload,
            ),
            "crates_confirm_upload": (
                "Confirm that bytes were PUT to a pre-signed upload URL",
                CrateIdArgs,
                self._confirm_upload,
            ),
            "crates_share": ("Update a crate's sharing settings", ShareArgs, self._share),
            "crates_unshare": ("Make a crate private again", CrateIdArgs, self._unshare),
            "crates_delete": ("Delete a crate and its contents", CrateIdArgs, self._delete),
            "crates_usage": ("Show monthly tool calls and storage used", NoArgs, self._usage),
        }
        self._aliases = {name.removeprefix("crates_"): name for name in self._tools}

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def resolve_name(self, name: str) -> str:
        if name in self._tools:
            return name
        canonical = self._aliases.get(name)
        if canonical is None:
            raise ToolError(METHOD_NOT_FOUND, f"Unknown tool: {name}")
        return canonical

    def list_tools(self) -> list[dict[str, Any]]:
        return [
            {
                "name": name,
                "description": description,
                "inputSchema": schema.model_json_schema(by_alias=True),
            }
            for name, (description, schema, _) in self._tools.items()
        ]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        caller: Caller | None = None,
    ) -> dict[str, Any]:
        """Validate *arguments* and run tool *name*. Raises on failure."""
        canonical = self.resolve_name(name)
        _, schema, handler = self._tools[canonical]
        try:
            args = schema.model_validate(arguments or {})
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid arguments for {canonical}: {e}") from None

        if caller is not None:
            try:
                await self._hub.record_tool_call(caller.user_id, canonical)
            except Exception:
                logger.warning("Failed to record tool usage for %s", caller.user_id, exc_info=True)

        return await handler(args, caller)

    async def handle(
        self,
        message: Any,
        *,
        api_key: str | None = None,
    ) -> dict[str, Any] | None:
        """Handle one decoded JSON-RPC message. Returns None for notifications."""
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            return self._error(None, INVALID_REQUEST, "Invalid JSON-RPC request")

        request_id = message.get("id")
        is_notification = "id" not in message
        params = message.get("params") or {}

        try:
            result = await self._dispatch(message["method"], params, api_key)
        except ToolError as e:
            response = self._error(request_id, e.code, e.message)
        except CrateHubError as e:
            code = next(
                (c for exc, c in ERROR_CODES.items() if isinstance(e, exc)),
                INTERNAL_ERROR,
            )
            if isinstance(e, DependencyError):
                logger.error("Dependency failure in %s: %s", message["method"], e)
            response = self._error(request_id, code, str(e))
        except Exception:
            logger.exception("Unhandled error in %s", message["method"])
            response = self._error(request_id, INTERNAL_ERROR, "Internal error")
        else:
            response = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}

        return None if is_notification else response

    async def _dispatch(
        self,
        method: str,
        params: dict[str, Any],
        api_key: str | None,
    ) -> dict[str, Any]:
        if method == "initialize":
            return {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {"tools": {}},
                "serverInfo": {"name": SERVER_NAME, "version": _version()},
            }
        if method == "ping":
            return {}
        if method == "tools/list":
            return {"tools": self.list_tools()}
        if method == "tools/call":
            if not isinstance(params, dict) or not isinstance(params.get("name"), str):
                raise ToolError(INVALID_PARAMS, "tools/call requires a tool name")
            caller = await self._authenticate(api_key)
            return await self.call_tool(params["name"], params.get("arguments"), caller)
        raise ToolError(METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _authenticate(self, api_key: str | None) -> Caller | None:
        if not api_key:
            return None
        caller = await self._hub.resolve_caller(api_key)
        if caller is None:
            raise PermissionDeniedError("Invalid API key")
        return caller

    @staticmethod
    def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": request_id,
            "error": {"code": code, "message": message},
        }

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def _list(self, args: NoArgs, caller: Caller | None) -> dict[str, Any]:
        crates = await self._hub.list_crates()
        ids = ", ".join(c.id for c in crates)
        return _result(
            [_text(f"IDs: {ids}" if crates else "No crates found")],
            {"crates": [c.to_dict() for c in crates]},
        )

    async def _get(self, args: GetArgs, caller: Caller | None) -> dict[str, Any]:
        return _rendered_result(await self._hub.get(args.id, args.expires_in_seconds))

    async def _get_by_link(self, args: GetArgs, caller: Caller | None) -> dict[str, Any]:
        return _rendered_result(await self._hub.get_by_link(args.id, args.expires_in_seconds))

    async def _get_metadata(self, args: CrateIdArgs, caller: Caller | None) -> dict[str, Any]:
        info = await self._hub.get_metadata(args.id)
        summary = f"{info.title} ({info.category}, {info.size} bytes)"
        return _result([_text(summary)], {"crate": info.to_dict()})

    async def _search(self, args: SearchArgs, caller: Caller | None) -> dict[str, Any]:
        crates = await self._hub.search(args.query)
        if crates:
            lines = [f"{c.id}: {c.title}" for c in crates]
            text = f"Found {len(crates)} crate(s):\n" + "\n".join(lines)
        else:
            text = f"No crates match {args.query!r}"
        return _result([_text(text)], {"crates": [c.to_dict() for c in crates]})

    async def _upload(self, args: UploadArgs, caller: Caller | None) -> dict[str, Any]:
        request = UploadRequest(
            file_name=args.file_name,
            content_type=args.content_type,
            data=args.data,
            ttl_days=args.ttl_days,
            title=args.title,
            description=args.description,
            category=args.category,
            tags=args.tags,
            metadata=args.metadata,
            is_public=args.is_public,
            password=args.password,
        )
        result = await self._hub.upload(request, caller.user_id if caller else None)
        if result.ticket is not None:
            ticket = result.ticket
            return _result(
                [_text(f"{result.message}\nUpload URL: {ticket.upload_url}")],
                {
                    "uploadUrl": ticket.upload_url,
                    "crateId": ticket.crate_id,
                    "storagePath": ticket.storage_path,
                    "expiresIn": ticket.expires_in,
                    "contentType": ticket.content_type,
                },
            )
        if result.crate is None:
            msg = f"Upload returned neither a crate nor a ticket: {result.message}"
            raise CrateHubError(msg)
        return _result([_text(result.message)], {"crate": result.crate.to_dict()})

    async def _confirm_upload(self, args: CrateIdArgs, caller: Caller | None) -> dict[str, Any]:
        info = await self._hub.confirm_upload(args.id, caller.user_id if caller else None)
        return _result(
            [_text(f"Upload of crate {info.id} confirmed ({info.size} bytes)")],
            {"crate": info.to_dict()},
        )

    async def _share(self, args: ShareArgs, caller: Caller | None) -> dict[str, Any]:
        result = await self._hub.share(
            args.id,
            caller.user_id if caller else None,
            public=args.public,
            shared_with=args.shared_with,
            password_protected=args.password_protected,
            password=args.password,
        )
        return _result(
            [_text(result.message)],
            _share_payload(result),
        )

    async def _unshare(self, args: CrateIdArgs, caller: Caller | None) -> dict[str, Any]:
        result = await self._hub.unshare(args.id, caller.user_id if caller else None)
        return _result(
            [_text(result.message)],
            _share_payload(result),
        )

    async def _delete(self, args: CrateIdArgs, caller: Caller | None) -> dict[str, Any]:
        result = await self._hub.delete(args.id, caller.user_id if caller else None)
        return _result([_text(result.message)], {"id": result.crate_id, "deleted": True})

    async def _usage(self, args: NoArgs, caller: Caller | None) -> dict[str, Any]:
        if caller is None:
            raise PermissionDeniedError("Usage is only available with an API key")
        tools, storage = await self._hub.usage(caller.user_id)
        return _result(
            [
                _text(
                    f"Tool calls this month: {tools.count}/{tools.limit}. "
                    f"Storage: {storage.used}/{storage.limit} bytes."
                )
            ],
            {
                "toolCalls": {
                    "count": tools.count,
                    "limit": tools.limit,
                    "remaining": tools.remaining,
                },
                "storage": {
                    "used": storage.used,
                    "limit": storage.limit,
                    "remaining": storage.remaining,
                },
            },
        )


def _version() -> str:
    from cratehub import __version__

    return __version__


async def handle_raw(
    router: ToolRouter,
    body: str | bytes,
    *,
    api_key: str | None = None,
) -> dict[str, Any] | None:
    """Decode a raw JSON-RPC body and dispatch it through *router*."""
    try:
        message = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ToolRouter._error(None, PARSE_ERROR, "Parse error")
    return await router.handle(message, api_key=api_key)
