import argparse
import asyncio
import logging
import sys

from .config import get_config
from .core_modules.agentic_loop import ConversationTurn, TurnAbortedError
from .mcp.client import ClientState
from .mcp.permissions import console_permission_prompt
from .mcp.server_config import find_config_file
from .mcp.server_manager import MCPServerManager
from .providers.openai import OpenAIBackend
from .runtime import init_runtime

logger = logging.getLogger(__name__)


def _parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="llm-tool-host",
        description="Chat with a model that can call tools from local MCP servers.",
    )
    parser.add_argument("--config", help="Path to .mcpconfig.json (default: search upwards)")
    parser.add_argument("--system", default=None, help="System prompt for every turn")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


def _print_text(text):
    print(text, end="", flush=True)


def _report_servers(states):
    if not states:
        print("[System: MCPサーバーは設定されていません。]")
        return
    for name, state in states.items():
        if state is ClientState.READY:
            print(f"[System: MCPサーバー '{name}' に接続しました。]")
        else:
            print(f"[System: MCPサーバー '{name}' の起動に失敗しました。]")


async def _run_turn(backend, host, prompt, system_prompt):
    tools = await host.get_all_tools()
    request = backend.build_request(
        [{"role": "user", "content": prompt}], tools=tools, system_prompt=system_prompt
    )
    turn = ConversationTurn(backend, host, request, sink=_print_text)

    print(f"[{backend.name.capitalize()}]: ", end="", flush=True)
    try:
        result = await turn.run()
    except TurnAbortedError as e:
        print()
        print(f"[System: 応答の取得に失敗しました: {e}]", flush=True)
        return None

    print()
    if not result.final_text.strip():
        print(f"[System: {backend.name.capitalize()}からの応答がありませんでした。]", flush=True)
    return result


async def main(argv=None):
    """Main CLI loop"""
    args = _parse_args(argv)
    init_runtime(args.log_level)
    config = get_config()

    config_path = args.config or find_config_file(config.mcp_config_file)
    host = MCPServerManager(permission_prompt=console_permission_prompt)
    try:
        try:
            host.load_from_file(config_path, timeout=config.mcp_request_timeout_seconds)
        except ValueError as e:
            print(f"エラー: MCP設定ファイルを読み込めませんでした: {e}")
            return 1
        _report_servers(await host.wait_until_ready())

        backend = OpenAIBackend()
        while True:
            prompt = (await asyncio.to_thread(input, "> ")).strip()

            if prompt.lower() in ["exit", "quit"]:
                break
            if not prompt:
                continue

            await _run_turn(backend, host, prompt, args.system)
    except (EOFError, KeyboardInterrupt):
        print()
    finally:
        host.kill_all()
    return 0


def run():
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
