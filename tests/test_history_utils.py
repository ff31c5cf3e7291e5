from llm_tool_host.history_utils import (
    TOOL_ERROR_PLACEHOLDER,
    content_items_to_text,
    tool_error_text,
    tool_result_to_text,
)


def test_text_items_are_joined():
    items = [{"type": "text", "text": "line 1"}, {"type": "text", "text": "line 2"}]
    assert content_items_to_text(items) == "line 1\nline 2"


def test_resource_with_text_uses_text():
    items = [{"type": "resource", "resource": {"uri": "file:///a.txt", "text": "contents"}}]
    assert content_items_to_text(items) == "contents"


def test_binary_resource_becomes_uri_placeholder():
    items = [
        {"type": "resource", "resource": {"uri": "file:///a.png", "mimeType": "image/png"}}
    ]
    assert content_items_to_text(items) == "[Resource: file:///a.png (image/png)]"


def test_image_becomes_placeholder():
    items = [{"type": "image", "data": "AAAA", "mimeType": "image/jpeg"}]
    assert content_items_to_text(items) == "[Image: image/jpeg]"


def test_unknown_item_is_stringified():
    text = content_items_to_text([{"type": "audio", "data": "x"}])
    assert text.startswith("[Unknown content:")
    assert '"audio"' in text


def test_empty_content():
    assert content_items_to_text([]) == "(no text output)"
    assert content_items_to_text(None) == "(no text output)"


def test_tool_result_to_text():
    result = {"content": [{"type": "text", "text": "ok"}], "isError": False}
    assert tool_result_to_text(result) == ("ok", False)


def test_error_result_is_prefixed():
    result = {"content": [{"type": "text", "text": "no such file"}], "isError": True}
    assert tool_result_to_text(result) == ("[ERROR] no such file", True)


def test_tool_error_text():
    text = tool_error_text(TimeoutError("took too long"))
    assert text == f"{TOOL_ERROR_PLACEHOLDER}: took too long"
