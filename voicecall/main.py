from __future__ import annotations

import argparse
import asyncio
import sys

from .config import EndpointConfig, RelayConfig
from .logging_config import setup_logging


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog="voicecall", description="Two-party audio calls over a signaling relay")
	parser.add_argument(
		"--log-level",
		default=None,
		help="Logging level (debug, info, warning, error). Can also use VOICECALL_LOG_LEVEL or VOICECALL_LOG.",
	)
	sub = parser.add_subparsers(dest="command", required=True)

	relay_defaults = RelayConfig.from_env()
	relay = sub.add_parser("relay", help="Run the signaling relay")
	relay.add_argument("--host", default=relay_defaults.host, help="Bind host (VOICECALL_RELAY_HOST)")
	relay.add_argument("--port", type=int, default=relay_defaults.port, help="Bind port (VOICECALL_RELAY_PORT or PORT)")

	endpoint = argparse.ArgumentParser(add_help=False)
	endpoint.add_argument(
		"--server-url",
		default=None,
		help="WebSocket signaling URL (VOICECALL_SERVER_URL)",
	)
	endpoint.add_argument("--record", default=None, metavar="FILE", help="Write remote audio to FILE instead of playing it")
	endpoint.add_argument(
		"--allow-silence",
		action="store_true",
		help="Send silence when no microphone is available (VOICECALL_ALLOW_SILENCE)",
	)
	endpoint.add_argument("--mute", action="store_true", help="Start the call with the microphone muted")

	create = sub.add_parser("create", parents=[endpoint], help="Create a call and wait for the other participant")
	create.add_argument("--call-id", default=None, help="Call ID to use (random if omitted)")

	join = sub.add_parser("join", parents=[endpoint], help="Join an existing call")
	join.add_argument("call_id", help="Call ID shared by the creator")

	return parser


def _endpoint_config(args: argparse.Namespace) -> EndpointConfig:
	cfg = EndpointConfig.from_env()
	if args.server_url:
		cfg.server_url = args.server_url
	if args.allow_silence:
		cfg.allow_silence = True
	cfg.record_path = args.record
	return cfg


async def _run_relay(cfg: RelayConfig) -> int:
	from .relay.server import RelayServer

	server = RelayServer(cfg)
	await server.start()
	print(f"Relay listening on ws://{cfg.host}:{server.port}")
	await server.serve_forever()
	return 0


async def _run_endpoint(args: argparse.Namespace, cfg: EndpointConfig) -> int:
	from .rtc.call import CallCallbacks, CallController

	async def on_state(state) -> None:
		print(f"[{state.value}]")

	async def on_error(error: str) -> None:
		print(f"Error: {error}")

	controller = CallController(cfg, CallCallbacks(on_state=on_state, on_error=on_error))
	try:
		await controller.start()
	except OSError as e:
		print(f"Could not reach signaling relay at {cfg.server_url}: {e}")
		return 2

	try:
		controller.set_muted(args.mute)
		if args.command == "create":
			call_id = controller.create_call(args.call_id)
			print(f"Call ID: {call_id} (share it with the other participant)")
		else:
			controller.join_call(args.call_id)
		await controller.wait_closed()
	finally:
		await controller.shutdown()
	return 0


def main(argv: list[str] | None = None) -> int:
	args = _build_parser().parse_args(argv)

	setup_logging(args.log_level)

	try:
		if args.command == "relay":
			return asyncio.run(_run_relay(RelayConfig(host=args.host, port=args.port)))
		return asyncio.run(_run_endpoint(args, _endpoint_config(args)))
	except KeyboardInterrupt:
		return 130


if __name__ == "__main__":
	raise SystemExit(main(sys.argv[1:]))
