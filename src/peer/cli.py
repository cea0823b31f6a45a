"""Interactive voice call client.

Connects to the rendezvous server, drives a PeerAgent from keyboard commands
and prints status messages as the handshake progresses.
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import websockets
from dotenv import load_dotenv

from peer.agent import PeerAgent
from peer.channel import WebSocketSignalChannel
from peer.config import PeerConfig
from peer.endpoint import AiortcEndpoint
from peer.media import AiortcMediaSource, RemoteAudioOutput

logger = logging.getLogger(__name__)

HELP_TEXT = """
Commands:
  /join   - Join the call (opens the microphone first)
  /leave  - Leave the call
  /status - Show handshake state
  /quit   - Exit client
  /help   - Show this help
"""


class CallClient:
    """WebSocket client running one peer agent."""

    def __init__(self, config: PeerConfig) -> None:
        self.config = config
        self.running = True
        self.agent: PeerAgent | None = None

    def build_agent(self, channel: WebSocketSignalChannel) -> PeerAgent:
        """Create the agent wired to aiortc media and endpoints."""
        return PeerAgent(
            channel=channel,
            media_source=AiortcMediaSource(self.config.media),
            endpoint_factory=lambda: AiortcEndpoint(self.config.ice_servers),
            remote_output=RemoteAudioOutput(self.config.media.record_to),
            rejoin_on_friend_left=self.config.rejoin_on_friend_left,
            notify=lambda text: print(f"  {text}"),
        )

    async def handle_command(self, text: str) -> None:
        """Apply one line of user input."""
        if self.agent is None:
            return

        command = text.strip().lstrip("/").lower()

        if command == "join":
            self.agent.initiate()
        elif command == "leave":
            self.agent.hang_up()
        elif command == "status":
            role = self.agent.role.value if self.agent.role else "-"
            print(f"  state={self.agent.state.value} role={role}")
        elif command == "help":
            print(HELP_TEXT)
        elif command == "quit":
            self.running = False
        elif command:
            print(f"Unknown command: {command}")
            print("Type /help for available commands")

    async def receive_messages(self, channel: WebSocketSignalChannel) -> None:
        """Feed server messages to the agent until the connection closes."""
        if self.agent is None:
            return

        try:
            async for message in channel.messages():
                self.agent.deliver(message)
        finally:
            self.agent.transport_closed()
            self.running = False

    async def input_loop(self) -> None:
        """Read commands from stdin."""
        print(HELP_TEXT)
        loop = asyncio.get_running_loop()

        while self.running:
            try:
                text = await loop.run_in_executor(None, input, "> ")
            except EOFError:
                self.running = False
                break

            await self.handle_command(text)

    async def run(self) -> None:
        """Connect and run until the user quits or the server goes away."""
        async with websockets.connect(self.config.server_url) as websocket:
            logger.info(f"Connected to {self.config.server_url}")
            channel = WebSocketSignalChannel(websocket)
            self.agent = self.build_agent(channel)

            agent_task = asyncio.create_task(self.agent.run())
            receive_task = asyncio.create_task(self.receive_messages(channel))
            input_task = asyncio.create_task(self.input_loop())

            loop = asyncio.get_running_loop()

            def signal_handler() -> None:
                self.running = False
                input_task.cancel()

            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, signal_handler)

            try:
                await asyncio.wait(
                    {receive_task, input_task}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                for sig in (signal.SIGINT, signal.SIGTERM):
                    loop.remove_signal_handler(sig)

                # Only hang up politely while the server is still reachable
                if not receive_task.done() and not agent_task.done():
                    self.agent.hang_up()
                    await self.agent.drain()
                await channel.close()
                await receive_task
                await agent_task
                input_task.cancel()


def main() -> None:
    """Main entry point for the call client."""
    parser = argparse.ArgumentParser(description="Two-party voice call client")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs") / "peer.yaml",
        help="Path to client config YAML file",
    )
    parser.add_argument("--url", type=str, default=None, help="Rendezvous server WebSocket URL")
    parser.add_argument("--audio-input", type=str, default=None, help="Audio device or file")
    parser.add_argument("--audio-format", type=str, default=None, help="Capture format")
    parser.add_argument("--record", type=Path, default=None, help="Record remote audio to file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    load_dotenv()

    try:
        config = PeerConfig.from_yaml_with_defaults(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Invalid configuration: {e}")
        sys.exit(2)

    if args.url:
        config.server_url = args.url
    if args.audio_input:
        config.media.audio_input = args.audio_input
        config.media.audio_format = args.audio_format
    if args.record:
        config.media.record_to = args.record

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        asyncio.run(CallClient(config).run())
    except OSError as e:
        logger.error(f"Connection failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nExiting...")


if __name__ == "__main__":
    main()
