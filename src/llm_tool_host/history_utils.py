import json
import logging
from typing import Any, Dict, Tuple

logger = logging.getLogger(__name__)

TOOL_ERROR_PLACEHOLDER = "An error occurred while calling the tool"


def content_items_to_text(items: Any) -> str:
    """Flatten MCP tool result content items into plain text.

    Text items are used as-is; resources, images and unknown item types are
    replaced with short placeholders so the model still sees that something
    was returned.

    Args:
        items: List of MCP content dicts (``{"type": "text", "text": ...}`` etc.)

    Returns:
        Joined text, or "(no text output)" if nothing could be extracted
    """
    text_parts = []
    for item in items or []:
        if not isinstance(item, dict):
            text_parts.append(str(item))
            continue

        item_type = item.get("type")
        if item_type == "text":
            text_parts.append(item.get("text", ""))
        elif item_type == "resource":
            resource = item.get("resource", {})
            if "text" in resource:
                text_parts.append(resource["text"])
            elif "uri" in resource:
                uri = resource["uri"]
                mime_type = resource.get("mimeType", "unknown")
                text_parts.append(f"[Resource: {uri} ({mime_type})]")
                logger.debug("Non-text resource converted to URI: type=%s, uri=%s", mime_type, uri)
        elif item_type == "image":
            mime_type = item.get("mimeType", "image")
            text_parts.append(f"[Image: {mime_type}]")
            logger.debug("Image content converted to placeholder: type=%s", mime_type)
        else:
            text_parts.append(f"[Unknown content: {json.dumps(item)}]")
            logger.debug("Unknown content type stringified: type=%s", item_type)

    return "\n".join(text_parts) if text_parts else "(no text output)"


def tool_result_to_text(result: Dict[str, Any]) -> Tuple[str, bool]:
    """Convert a tool result dict to the text sent back to the model.

    Args:
        result: ``{"content": [...], "isError": bool}`` as returned by run_tool

    Returns:
        (text, is_error). Error results are prefixed with "[ERROR]".
    """
    text = content_items_to_text(result.get("content", []))
    is_error = bool(result.get("isError", False))
    if is_error:
        text = f"[ERROR] {text}"
    return text, is_error


def tool_error_text(error: BaseException) -> str:
    """Text folded into the conversation when a tool call raised."""
    return f"{TOOL_ERROR_PLACEHOLDER}: {error}"
