"""Python client for a PadLink server.

Connects, prints live sensor readings and profile changes, and optionally
switches profile or player on start-up.

    pip install padlink-client

    python examples/client_python.py --url ws://pad.local:3000/ws
    python examples/client_python.py --profile Expert --player alice
"""

import argparse
import asyncio
import logging
import signal

from padlink_client import ChangePlayer, ChangeProfile, connect


async def main(url: str, profile: str | None, player: str | None):
    stop = asyncio.Event()
    loop = asyncio.get_event_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with connect(url) as session:

        @session.on_sensor_stream
        def show_sensors(msg):
            print(f"sensors {list(msg.sensor_values)}", end="\r")

        @session.on_profiles_changed
        def show_profiles(msg):
            snap = msg.data
            print(f"\nprofile={snap.current_profile}", snap.current_thresholds)

        @session.on_presence_changed
        def show_player(msg):
            print(f"\nactive player: {session.current_player or 'None'}")

        @session.on_notice
        def show_notice(notice):
            print(f"\n[{notice.level.value}] {notice.text}")

        if profile:
            session.submit(ChangeProfile(profile))
        if player:
            session.submit(ChangePlayer(player))

        print(f"Connected to {url} (Ctrl+C to stop)\n")
        await stop.wait()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="PadLink Python client")
    parser.add_argument("--url", default="ws://localhost:3000/ws")
    parser.add_argument("--profile", help="Profile to switch to after connecting")
    parser.add_argument("--player", help="Player name to activate after connecting")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)
    asyncio.run(main(args.url, args.profile, args.player))
