"""
Tests for MCP client implementation.
"""

import asyncio
import unittest

from mcp_helpers import FakeTransport, initialize_result

from llm_tool_host.mcp.capabilities import ClientCapabilities
from llm_tool_host.mcp.client import LATEST_PROTOCOL_VERSION, ClientState, MCPClient
from llm_tool_host.mcp.errors import (
    CapabilityError,
    ClientStateError,
    HandshakeError,
    RPCError,
    UnsupportedProtocolVersionError,
)
from llm_tool_host.mcp.tool_schema import ToolDefinition

READ_FILE_TOOL = {
    "name": "read_file",
    "description": "Read a file",
    "inputSchema": {"type": "object", "properties": {"path": {"type": "string"}}},
}


class TestMCPClientHandshake(unittest.IsolatedAsyncioTestCase):
    """初期化ハンドシェイクのテスト"""

    async def test_initialize_success(self):
        """ハンドシェイクが成功するとREADYになる"""
        transport = FakeTransport({"initialize": initialize_result()})
        client = MCPClient("fs", transport)
        self.assertEqual(client.state, ClientState.CREATED)

        result = await client.initialize()

        self.assertIs(result, client)
        self.assertEqual(client.state, ClientState.READY)
        self.assertTrue(transport.started)
        self.assertEqual(transport.sent_methods(), ["initialize", "notifications/initialized"])

        params = transport.sent[0]["params"]
        self.assertEqual(params["protocolVersion"], LATEST_PROTOCOL_VERSION)
        self.assertEqual(params["clientInfo"]["name"], "llm-tool-host")
        self.assertEqual(params["capabilities"], {})
        self.assertNotIn("id", transport.sent[1])

        self.assertTrue(client.server_capabilities.tools)
        self.assertEqual(client.server_info["name"], "fake-server")
        self.assertEqual(client.protocol_version, LATEST_PROTOCOL_VERSION)

    async def test_older_supported_version_is_accepted(self):
        """サポート対象の旧バージョンも受け入れる"""
        transport = FakeTransport({"initialize": initialize_result(version="2024-10-07")})
        client = await MCPClient("fs", transport).initialize()
        self.assertEqual(client.protocol_version, "2024-10-07")

    async def test_unsupported_version_kills_client(self):
        """未サポートのバージョンではDEADになりプロセスが終了される"""
        transport = FakeTransport({"initialize": initialize_result(version="1999-01-01")})
        client = MCPClient("fs", transport)

        with self.assertRaises(UnsupportedProtocolVersionError) as cm:
            await client.initialize()

        self.assertEqual(cm.exception.version, "1999-01-01")
        self.assertIsInstance(cm.exception, ConnectionError)
        self.assertEqual(client.state, ClientState.DEAD)
        self.assertTrue(transport.killed)
        self.assertNotIn("notifications/initialized", transport.sent_methods())

    async def test_handshake_timeout(self):
        """初期化の返信がなければHandshakeErrorになる"""
        transport = FakeTransport(auto_reply=False)
        client = MCPClient("fs", transport, timeout=0.05)

        with self.assertRaises(HandshakeError):
            await client.initialize()
        self.assertEqual(client.state, ClientState.DEAD)
        self.assertTrue(transport.killed)

    async def test_handshake_error_reply(self):
        """初期化へのエラー返信はHandshakeErrorになる"""
        transport = FakeTransport(
            {
                "initialize": lambda m: {
                    "jsonrpc": "2.0",
                    "id": m["id"],
                    "error": {"code": -32603, "message": "internal"},
                }
            }
        )
        client = MCPClient("fs", transport)
        with self.assertRaises(HandshakeError):
            await client.initialize()
        self.assertEqual(client.state, ClientState.DEAD)

    async def test_initialize_twice_raises(self):
        """二度目の初期化はClientStateError"""
        transport = FakeTransport({"initialize": initialize_result()})
        client = await MCPClient("fs", transport).initialize()
        with self.assertRaises(ClientStateError):
            await client.initialize()

    async def test_client_capabilities_are_declared(self):
        """宣言したクライアント能力が送信される"""
        transport = FakeTransport({"initialize": initialize_result()})
        caps = ClientCapabilities(roots=True, roots_list_changed=True)
        client = await MCPClient("fs", transport, capabilities=caps).initialize()

        self.assertEqual(
            transport.sent[0]["params"]["capabilities"], {"roots": {"listChanged": True}}
        )
        await client.send_roots_list_changed()
        self.assertEqual(transport.sent_methods()[-1], "notifications/roots/list_changed")


class TestMCPClientRequests(unittest.IsolatedAsyncioTestCase):
    """READY後のリクエストのテスト"""

    async def test_request_before_ready_raises(self):
        """READY前のリクエストはClientStateError"""
        client = MCPClient("fs", FakeTransport())
        with self.assertRaises(ClientStateError):
            await client.list_tools()

    async def test_missing_capability_sends_nothing(self):
        """サーバーがtoolsを持たない場合、何も書き込まずにエラーになる"""
        transport = FakeTransport({"initialize": initialize_result(capabilities={})})
        client = await MCPClient("fs", transport).initialize()
        sent_before = len(transport.sent)

        with self.assertRaises(CapabilityError) as cm:
            await client.call_tool("read_file", {"path": "README.md"})

        self.assertIn("tools", str(cm.exception))
        self.assertEqual(len(transport.sent), sent_before)
        self.assertEqual(client.state, ClientState.READY)

    async def test_roots_notification_without_capability_is_rejected(self):
        """roots能力がなければ通知は送信されない"""
        transport = FakeTransport({"initialize": initialize_result()})
        client = await MCPClient("fs", transport).initialize()
        sent_before = len(transport.sent)

        with self.assertRaises(CapabilityError):
            await client.send_roots_list_changed()
        self.assertEqual(len(transport.sent), sent_before)

    async def test_get_tools_is_cached(self):
        """ツール一覧は一度だけ取得される"""
        transport = FakeTransport(
            {
                "initialize": initialize_result(),
                "tools/list": {"tools": [READ_FILE_TOOL, {"description": "no name"}]},
            }
        )
        client = await MCPClient("fs", transport).initialize()

        tools = await client.get_tools()
        again = await client.get_tools()

        self.assertEqual(
            tools,
            [
                ToolDefinition(
                    name="read_file",
                    description="Read a file",
                    input_schema=READ_FILE_TOOL["inputSchema"],
                )
            ],
        )
        self.assertEqual(again, tools)
        self.assertEqual(transport.sent_methods().count("tools/list"), 1)

    async def test_get_tools_follows_pagination(self):
        """nextCursorがあれば続きのページを取得する"""

        def tools_page(message):
            cursor = message["params"].get("cursor")
            if cursor is None:
                result = {"tools": [READ_FILE_TOOL], "nextCursor": "page2"}
            else:
                result = {
                    "tools": [{"name": "write_file", "inputSchema": {"type": "object"}}]
                }
            return {"jsonrpc": "2.0", "id": message["id"], "result": result}

        transport = FakeTransport({"initialize": initialize_result(), "tools/list": tools_page})
        client = await MCPClient("fs", transport).initialize()

        tools = await client.get_tools()

        self.assertEqual([t.name for t in tools], ["read_file", "write_file"])
        self.assertEqual(transport.sent[-1]["params"], {"cursor": "page2"})

    async def test_call_tool_returns_content(self):
        """ツール実行結果がcontent/isError形式で返る"""
        transport = FakeTransport(
            {
                "initialize": initialize_result(),
                "tools/call": {"content": [{"type": "text", "text": "hello"}], "isError": False},
            }
        )
        client = await MCPClient("fs", transport).initialize()

        result = await client.call_tool("read_file", {"path": "README.md"})

        self.assertEqual(result, {"content": [{"type": "text", "text": "hello"}], "isError": False})
        self.assertEqual(
            transport.sent[-1]["params"], {"name": "read_file", "arguments": {"path": "README.md"}}
        )

    async def test_call_tool_rpc_error(self):
        """エラー返信はRPCErrorとして伝わる"""
        transport = FakeTransport(
            {
                "initialize": initialize_result(),
                "tools/call": lambda m: {
                    "jsonrpc": "2.0",
                    "id": m["id"],
                    "error": {"code": -32602, "message": "Unknown tool"},
                },
            }
        )
        client = await MCPClient("fs", transport).initialize()

        with self.assertRaises(RPCError) as cm:
            await client.call_tool("nope")
        self.assertEqual(cm.exception.code, -32602)

    async def test_malformed_call_result_becomes_error_result(self):
        """不正なツール結果はエラー結果に変換される"""
        transport = FakeTransport(
            {"initialize": initialize_result(), "tools/call": {"content": "oops"}}
        )
        client = await MCPClient("fs", transport).initialize()

        result = await client.call_tool("read_file")
        self.assertTrue(result["isError"])

    async def test_process_exit_marks_client_dead(self):
        """プロセスが終了するとDEADになり、以降のリクエストは拒否される"""
        transport = FakeTransport({"initialize": initialize_result()})
        client = await MCPClient("fs", transport).initialize()

        transport.exit(1)

        self.assertEqual(client.state, ClientState.DEAD)
        with self.assertRaises(ClientStateError):
            await client.list_tools()

    async def test_kill_is_terminal(self):
        """kill後はDEADのまま"""
        transport = FakeTransport({"initialize": initialize_result()})
        client = await MCPClient("fs", transport).initialize()

        client.kill()
        client.kill()

        self.assertEqual(client.state, ClientState.DEAD)
        self.assertTrue(transport.killed)
        with self.assertRaises(ClientStateError):
            await client.ping()


    async def test_kill_abandons_outstanding_requests(self):
        """タイムアウトなしで保留中の3件のリクエストはkill後も完了しない"""
        transport = FakeTransport(
            {"initialize": initialize_result(), "tools/list": lambda message: None}
        )
        client = await MCPClient("fs", transport, timeout=None).initialize()

        pending = [asyncio.ensure_future(client.list_tools()) for _ in range(3)]
        while transport.sent_methods().count("tools/list") < 3:
            await asyncio.sleep(0)

        client.kill()
        await asyncio.sleep(0.05)

        self.assertFalse(any(task.done() for task in pending))
        self.assertEqual(client.state, ClientState.DEAD)

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


class TestMCPClientServerRequests(unittest.IsolatedAsyncioTestCase):
    """サーバーからのリクエストへの応答"""

    async def test_server_ping_is_answered(self):
        """サーバーからのpingに空の結果で応答する"""
        transport = FakeTransport({"initialize": initialize_result()})
        await MCPClient("fs", transport).initialize()

        transport.deliver({"jsonrpc": "2.0", "id": "srv-1", "method": "ping"})
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        self.assertIn({"jsonrpc": "2.0", "id": "srv-1", "result": {}}, transport.sent)

    async def test_unknown_server_request_gets_method_not_found(self):
        """未対応のサーバーリクエストには-32601で応答する"""
        transport = FakeTransport({"initialize": initialize_result()})
        await MCPClient("fs", transport).initialize()

        transport.deliver({"jsonrpc": "2.0", "id": 7, "method": "sampling/createMessage"})
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        reply = transport.sent[-1]
        self.assertEqual(reply["id"], 7)
        self.assertEqual(reply["error"]["code"], -32601)

    async def test_server_notification_is_ignored(self):
        """サーバーからの通知には応答しない"""
        transport = FakeTransport({"initialize": initialize_result()})
        client = await MCPClient("fs", transport).initialize()
        sent_before = len(transport.sent)

        transport.deliver({"jsonrpc": "2.0", "method": "notifications/tools/list_changed"})
        transport.deliver(["not", "an", "object"])
        await asyncio.sleep(0)

        self.assertEqual(len(transport.sent), sent_before)
        self.assertEqual(client.state, ClientState.READY)

    async def test_invalid_envelopes_are_dropped(self):
        """JSON-RPCとして不正なメッセージは警告を出して捨てる"""
        transport = FakeTransport({"initialize": initialize_result()})
        client = await MCPClient("fs", transport).initialize()
        sent_before = len(transport.sent)

        with self.assertLogs("llm_tool_host.mcp.client", level="WARNING") as logs:
            transport.deliver({"jsonrpc": "2.0"})
            transport.deliver({"jsonrpc": "1.0", "id": 3, "method": "ping"})
        await asyncio.sleep(0)

        self.assertEqual(len(logs.records), 2)
        self.assertTrue(all("invalid JSON-RPC" in r.getMessage() for r in logs.records))
        self.assertEqual(len(transport.sent), sent_before)
        self.assertEqual(client.state, ClientState.READY)

    async def test_outgoing_envelopes(self):
        """送信するリクエストと通知はJSON-RPC 2.0の形式になる"""
        transport = FakeTransport({"initialize": initialize_result()})
        await MCPClient("fs", transport).initialize()

        request, notification = transport.sent[:2]
        self.assertEqual(request["jsonrpc"], "2.0")
        self.assertEqual(request["id"], 1)
        self.assertEqual(request["method"], "initialize")
        self.assertEqual(
            notification,
            {"jsonrpc": "2.0", "method": "notifications/initialized", "params": {}},
        )
